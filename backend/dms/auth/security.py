import hmac
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from hashlib import sha256
from typing import Any, Dict

from jose import JWTError, jwt
from passlib.context import CryptContext

from dms.auth.errors import MalformedToken
from dms.auth.rbac import permissions_for
from dms.auth.roles import Role
from dms.core.config import settings

# argon2id; the encoded hash carries its own salt and cost parameters.
pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")

ENV = settings.ENV
JWT_ACCESS_SECRET = settings.JWT_ACCESS_SECRET
if not JWT_ACCESS_SECRET and ENV not in {"dev", "test"}:
    raise RuntimeError("JWT_ACCESS_SECRET is not set")
if not JWT_ACCESS_SECRET:
    JWT_ACCESS_SECRET = "dev-change-me"
JWT_ALG = settings.JWT_ALGORITHM
JWT_ACCESS_EXP_MINUTES = settings.JWT_ACCESS_EXP_MINUTES
REFRESH_TOKEN_EXP_DAYS = settings.REFRESH_TOKEN_EXP_DAYS

REFRESH_SECRET_BYTES = 32
_RECORD_ID_RE = re.compile(r"[A-Za-z0-9_-]{1,64}")
_SECRET_RE = re.compile(r"[A-Za-z0-9_-]{16,256}")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    try:
        return pwd_context.verify(password, password_hash)
    except (ValueError, TypeError):
        # Unknown or corrupt hash format.
        return False


@dataclass(frozen=True)
class AccessClaims:
    subject_id: str
    refresh_record_id: str
    role: Role
    permissions: tuple[str, ...]
    tenant_id: str | None
    expires_at: datetime

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions


def build_access_claims(
    *, user_id: str, role: Role | str, tenant_id: str | None, refresh_record_id: str, now: datetime
) -> AccessClaims:
    parsed = Role.parse(role)
    if parsed is None:
        raise ValueError(f"Unknown role: {role!r}")
    return AccessClaims(
        subject_id=user_id,
        refresh_record_id=refresh_record_id,
        role=parsed,
        permissions=permissions_for(parsed),
        tenant_id=tenant_id,
        expires_at=now + timedelta(minutes=JWT_ACCESS_EXP_MINUTES),
    )


def encode_access_token(claims: AccessClaims) -> str:
    to_encode: Dict[str, Any] = {
        "typ": "access",
        "sub": claims.subject_id,
        "rid": claims.refresh_record_id,
        "role": claims.role.value,
        "perms": list(claims.permissions),
        "exp": claims.expires_at,
    }
    if claims.tenant_id:
        to_encode["mid"] = claims.tenant_id
    return jwt.encode(to_encode, JWT_ACCESS_SECRET, algorithm=JWT_ALG)


def decode_access_token(token: str) -> AccessClaims:
    """Verify signature and expiry and rebuild the claims.

    Raises ``JWTError`` for anything that is not a well-formed, current access
    token issued by this service.
    """
    payload = jwt.decode(token, JWT_ACCESS_SECRET, algorithms=[JWT_ALG])

    if payload.get("typ") != "access":
        raise JWTError("Invalid token type")

    subject_id = payload.get("sub")
    record_id = payload.get("rid")
    role = Role.parse(payload.get("role"))
    perms = payload.get("perms")
    exp = payload.get("exp")
    if not subject_id or not record_id or role is None or exp is None:
        raise JWTError("Invalid token payload")
    if not isinstance(perms, list) or not all(isinstance(p, str) for p in perms):
        raise JWTError("Invalid token permissions")

    return AccessClaims(
        subject_id=subject_id,
        refresh_record_id=record_id,
        role=role,
        permissions=tuple(perms),
        tenant_id=payload.get("mid") or None,
        expires_at=datetime.fromtimestamp(int(exp), tz=timezone.utc).replace(tzinfo=None),
    )


def new_refresh_record_id() -> str:
    return f"rt_{secrets.token_hex(10)}"


def generate_refresh_secret() -> str:
    return secrets.token_urlsafe(REFRESH_SECRET_BYTES)


def format_refresh_token(record_id: str, secret: str) -> str:
    return f"{record_id}.{secret}"


def parse_refresh_token(raw: str | None) -> tuple[str, str]:
    if not raw or not isinstance(raw, str):
        raise MalformedToken()
    record_id, sep, secret = raw.partition(".")
    if not sep or not _RECORD_ID_RE.fullmatch(record_id) or not _SECRET_RE.fullmatch(secret):
        raise MalformedToken()
    return record_id, secret


def refresh_record_id_of(raw: str | None) -> str | None:
    """Record id of a refresh token without validating the secret part."""
    if not raw or not isinstance(raw, str):
        return None
    record_id = raw.partition(".")[0]
    return record_id if _RECORD_ID_RE.fullmatch(record_id) else None


def hash_token(token: str) -> str:
    return sha256(token.encode("utf-8")).hexdigest()


def token_matches(token: str, token_hash: str) -> bool:
    return hmac.compare_digest(hash_token(token), token_hash or "")


__all__ = [
    "AccessClaims",
    "JWTError",
    "build_access_claims",
    "decode_access_token",
    "encode_access_token",
    "format_refresh_token",
    "generate_refresh_secret",
    "hash_password",
    "hash_token",
    "new_refresh_record_id",
    "parse_refresh_token",
    "refresh_record_id_of",
    "token_matches",
    "verify_password",
]
