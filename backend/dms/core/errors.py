import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from dms.auth.errors import AuthError, TwoFactorRequired
from dms.core.config import settings

logger = logging.getLogger(__name__)


def error_response(exc: AuthError, *, clear_refresh_cookie: bool = False) -> JSONResponse:
    body: dict = {"error": {"code": exc.error_code, "message": exc.message}}
    if isinstance(exc, TwoFactorRequired):
        body["requires_2fa"] = True
    response = JSONResponse(status_code=exc.status_code, content=body)
    if clear_refresh_cookie:
        response.delete_cookie(settings.REFRESH_COOKIE_NAME, path=settings.REFRESH_COOKIE_PATH)
    return response


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AuthError)
    async def handle_auth_error(request: Request, exc: AuthError):
        logger.info(
            "auth_error path=%s method=%s status=%s code=%s",
            request.url.path,
            request.method,
            exc.status_code,
            exc.error_code,
        )
        return error_response(exc)
