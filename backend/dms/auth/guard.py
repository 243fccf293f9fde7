import logging
from typing import Iterable

from dms.auth.errors import Forbidden, Unauthenticated
from dms.auth.roles import Role
from dms.auth.security import AccessClaims, JWTError, decode_access_token

logger = logging.getLogger(__name__)


def authenticate(token: str | None) -> AccessClaims:
    """Stateless check of an access token: signature, expiry and shape only.

    Revoking a refresh chain does not reach tokens already issued from it;
    they stay valid until their own ``exp``.
    """
    if not token:
        raise Unauthenticated("Missing token")
    try:
        return decode_access_token(token)
    except JWTError as exc:
        logger.info("Access token rejected: %s", exc)
        raise Unauthenticated() from exc


def require_permissions(claims: AccessClaims, required: Iterable[str]) -> None:
    if claims.role is Role.SYSTEM_ADMIN:
        return
    missing = [perm for perm in required if perm not in claims.permissions]
    if missing:
        raise Forbidden()


def require_tenant_access(claims: AccessClaims, target_tenant_id: str | None) -> None:
    if claims.role is Role.SYSTEM_ADMIN:
        return
    if claims.tenant_id is None or target_tenant_id is None:
        raise Forbidden("Access denied to this merchant")
    if str(claims.tenant_id) != str(target_tenant_id):
        raise Forbidden("Access denied to this merchant")
