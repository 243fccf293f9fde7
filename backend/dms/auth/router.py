from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from dms.audit.service import DbAuditSink
from dms.auth.deps import get_credential_store, get_current_claims, get_session_engine
from dms.auth.errors import (
    InvalidCredentials,
    InvalidOrExpiredToken,
    InvalidTwoFactorCode,
    ReuseDetected,
    TooManyAttempts,
    UserNotFound,
)
from dms.auth.login_guard import login_key, login_throttle
from dms.auth.schemas import (
    LoginRequest,
    OkResponse,
    RegisterAdminRequest,
    TokenResponse,
    TwoFactorSetupResponse,
    TwoFactorVerifyRequest,
    UserOut,
)
from dms.auth.security import JWT_ACCESS_EXP_MINUTES, REFRESH_TOKEN_EXP_DAYS, AccessClaims
from dms.auth.service import IssuedSession, SessionEngine, UserProfile, bootstrap_admin
from dms.auth.store import SqlAlchemyCredentialStore
from dms.core.config import settings
from dms.core.errors import error_response
from dms.db.session import get_db

router = APIRouter()


def _client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


def _user_out(profile: UserProfile) -> UserOut:
    return UserOut(
        id=profile.id,
        email=profile.email,
        name=profile.name,
        role=profile.role,
        tenant_id=profile.tenant_id,
        is_active=profile.is_active,
        two_factor_enabled=profile.two_factor_enabled,
    )


def _set_refresh_cookie(response: Response, issued: IssuedSession) -> None:
    response.set_cookie(
        settings.REFRESH_COOKIE_NAME,
        issued.refresh_token,
        max_age=REFRESH_TOKEN_EXP_DAYS * 24 * 60 * 60,
        path=settings.REFRESH_COOKIE_PATH,
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
    )


def _token_response(issued: IssuedSession) -> TokenResponse:
    return TokenResponse(
        access_token=issued.access_token,
        expires_in=JWT_ACCESS_EXP_MINUTES * 60,
        user=_user_out(issued.user),
    )


@router.post("/register-admin", response_model=UserOut, status_code=201)
def register_admin(payload: RegisterAdminRequest, db: Session = Depends(get_db)):
    profile = bootstrap_admin(
        SqlAlchemyCredentialStore(db),
        email=str(payload.email),
        password=payload.password,
        name=payload.name,
        audit=DbAuditSink(db),
    )
    return _user_out(profile)


@router.post("/login", response_model=TokenResponse)
def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    engine: SessionEngine = Depends(get_session_engine),
):
    client_ip = _client_ip(request)
    key = login_key(str(payload.email), client_ip)
    locked_until = login_throttle.is_locked(key)
    if locked_until:
        raise TooManyAttempts(f"Too many failed attempts. Retry after {locked_until.isoformat()}")

    try:
        issued = engine.login(
            str(payload.email),
            payload.password,
            payload.totp_code,
            ip=client_ip,
            user_agent=request.headers.get("user-agent"),
        )
    except (InvalidCredentials, InvalidTwoFactorCode):
        new_lock = login_throttle.register_failure(key)
        if new_lock:
            raise TooManyAttempts(f"Too many failed attempts. Retry after {new_lock.isoformat()}")
        raise

    login_throttle.clear(key)
    _set_refresh_cookie(response, issued)
    return _token_response(issued)


@router.post("/refresh", response_model=TokenResponse)
def refresh(
    request: Request,
    response: Response,
    engine: SessionEngine = Depends(get_session_engine),
):
    try:
        issued = engine.refresh(
            request.cookies.get(settings.REFRESH_COOKIE_NAME),
            ip=_client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    except (InvalidOrExpiredToken, ReuseDetected) as exc:
        return error_response(exc, clear_refresh_cookie=True)

    _set_refresh_cookie(response, issued)
    return _token_response(issued)


@router.post("/logout", response_model=OkResponse)
def logout(
    request: Request,
    response: Response,
    engine: SessionEngine = Depends(get_session_engine),
):
    engine.logout(
        request.cookies.get(settings.REFRESH_COOKIE_NAME),
        ip=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    response.delete_cookie(settings.REFRESH_COOKIE_NAME, path=settings.REFRESH_COOKIE_PATH)
    return OkResponse(message="Logged out successfully")


@router.post("/2fa/setup", response_model=TwoFactorSetupResponse)
def setup_2fa(
    claims: AccessClaims = Depends(get_current_claims),
    engine: SessionEngine = Depends(get_session_engine),
):
    enrollment = engine.setup_2fa(claims.subject_id)
    return TwoFactorSetupResponse(secret=enrollment.secret, qr_payload=enrollment.qr_payload)


@router.post("/2fa/verify", response_model=OkResponse)
def verify_2fa(
    payload: TwoFactorVerifyRequest,
    claims: AccessClaims = Depends(get_current_claims),
    engine: SessionEngine = Depends(get_session_engine),
):
    engine.verify_2fa(claims.subject_id, payload.secret, payload.totp_code)
    return OkResponse(message="2FA enabled successfully")


@router.get("/me", response_model=UserOut)
def me(
    claims: AccessClaims = Depends(get_current_claims),
    store: SqlAlchemyCredentialStore = Depends(get_credential_store),
):
    user = store.find_user_by_id(claims.subject_id)
    if user is None:
        raise UserNotFound()
    return _user_out(UserProfile.from_user(user))
