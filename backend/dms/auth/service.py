"""Session engine: login, refresh-token rotation with reuse detection, 2FA enrollment.

The engine is built per request around a credential store and holds no state
between calls. Refresh tokens are ``<record_id>.<secret>``; only a digest of
the secret is stored. A rotated, revoked or tampered secret presented again is
treated as theft and revokes every refresh record the user owns.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Callable

from dms.audit.service import (
    AUTH_2FA_ENABLED,
    AUTH_ADMIN_BOOTSTRAP,
    AUTH_LOGIN,
    AUTH_LOGOUT,
    AUTH_REFRESH_REUSE,
    AuditEvent,
    AuditSink,
)
from dms.auth.errors import (
    AdminAlreadyExists,
    AlreadyEnabled,
    EmailAlreadyRegistered,
    InvalidCredentials,
    InvalidOrExpiredToken,
    InvalidTwoFactorCode,
    ReuseDetected,
    TwoFactorRequired,
    UserNotFound,
)
from dms.auth.models import User
from dms.auth.roles import Role
from dms.auth.security import (
    REFRESH_TOKEN_EXP_DAYS,
    AccessClaims,
    build_access_claims,
    encode_access_token,
    format_refresh_token,
    generate_refresh_secret,
    hash_password,
    hash_token,
    new_refresh_record_id,
    parse_refresh_token,
    refresh_record_id_of,
    token_matches,
    verify_password,
)
from dms.auth.store import CredentialStore, DuplicateUser
from dms.auth.totp import TotpEngine, TotpEnrollment, TotpSecretBox

logger = logging.getLogger(__name__)

BOOTSTRAP_ADMIN_ID = "u_bootstrap_admin"


@lru_cache(maxsize=1)
def _dummy_password_hash() -> str:
    # Keeps unknown-email logins as slow as wrong-password ones.
    return hash_password(generate_refresh_secret())


@dataclass(frozen=True)
class UserProfile:
    id: str
    email: str
    name: str | None
    role: Role
    tenant_id: str | None
    is_active: bool
    two_factor_enabled: bool

    @classmethod
    def from_user(cls, user: User) -> "UserProfile":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            role=Role(user.role),
            tenant_id=user.tenant_id,
            is_active=bool(user.is_active),
            two_factor_enabled=bool(user.totp_secret),
        )


@dataclass(frozen=True)
class IssuedSession:
    access_token: str
    refresh_token: str
    claims: AccessClaims
    refresh_expires_at: datetime
    user: UserProfile


class SessionEngine:
    def __init__(
        self,
        store: CredentialStore,
        *,
        audit: AuditSink | None = None,
        totp: TotpEngine | None = None,
        secret_box: TotpSecretBox | None = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.store = store
        self.audit = audit
        self.totp = totp or TotpEngine()
        self.secret_box = secret_box or TotpSecretBox.from_settings()
        self.clock = clock

    def login(
        self,
        email: str,
        password: str,
        totp_code: str | None = None,
        *,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> IssuedSession:
        user = self.store.find_user_by_email(email)
        if user is None or not user.is_active:
            verify_password(password, _dummy_password_hash())
            logger.warning("Login rejected: unknown or inactive account ip=%s", ip)
            raise InvalidCredentials()

        if not verify_password(password, user.password_hash):
            logger.warning("Login rejected: bad password user_id=%s ip=%s", user.id, ip)
            raise InvalidCredentials()

        if user.totp_secret:
            if not totp_code:
                raise TwoFactorRequired()
            secret = self.secret_box.open(user.totp_secret)
            if secret is None:
                logger.error("Stored TOTP secret could not be decrypted user_id=%s", user.id)
                raise InvalidTwoFactorCode()
            if not self.totp.verify_code(secret, totp_code):
                logger.warning("Login rejected: bad 2FA code user_id=%s ip=%s", user.id, ip)
                raise InvalidTwoFactorCode()

        issued = self._issue(user, ip=ip, user_agent=user_agent)
        self._emit(
            AuditEvent(
                action=AUTH_LOGIN,
                actor_id=user.id,
                merchant_id=user.tenant_id,
                ip=ip,
                user_agent=user_agent,
            )
        )
        logger.info("Login ok user_id=%s rid=%s", user.id, issued.claims.refresh_record_id)
        return issued

    def refresh(
        self,
        raw_refresh_token: str | None,
        *,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> IssuedSession:
        record_id, secret = parse_refresh_token(raw_refresh_token)
        now = self.clock()

        record = self.store.find_refresh_record_by_id(record_id)
        if record is None or record.is_expired(now):
            logger.warning("Refresh rejected: unknown or expired record rid=%s", record_id)
            raise InvalidOrExpiredToken()

        user_id = record.user_id
        if record.revoked_at is not None:
            raise self._reuse_detected(user_id, record_id, ip=ip, user_agent=user_agent, reason="revoked")
        if not token_matches(secret, record.token_hash):
            raise self._reuse_detected(user_id, record_id, ip=ip, user_agent=user_agent, reason="digest")

        user = self.store.find_user_by_id(user_id)
        if user is None or not user.is_active:
            self.store.revoke_refresh_record(record_id, now=now)
            logger.warning("Refresh rejected: inactive account user_id=%s", user_id)
            raise InvalidOrExpiredToken()

        issued = self._issue(user, ip=ip, user_agent=user_agent, rotated_from=record_id)
        logger.info(
            "Refresh rotated user_id=%s rid=%s -> %s",
            user.id,
            record_id,
            issued.claims.refresh_record_id,
        )
        return issued

    def logout(
        self,
        raw_refresh_token: str | None,
        *,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        record_id = refresh_record_id_of(raw_refresh_token)
        if record_id is None:
            return
        record = self.store.find_refresh_record_by_id(record_id)
        if record is None:
            return
        if self.store.revoke_refresh_record(record_id, now=self.clock()):
            self._emit(
                AuditEvent(
                    action=AUTH_LOGOUT,
                    actor_id=record.user_id,
                    target_id=record_id,
                    ip=ip,
                    user_agent=user_agent,
                )
            )
            logger.info("Logout user_id=%s rid=%s", record.user_id, record_id)

    def setup_2fa(self, user_id: str) -> TotpEnrollment:
        user = self.store.find_user_by_id(user_id)
        if user is None:
            raise UserNotFound()
        if user.totp_secret:
            raise AlreadyEnabled()
        return self.totp.generate_secret(user.email)

    def verify_2fa(self, user_id: str, secret: str, code: str) -> None:
        user = self.store.find_user_by_id(user_id)
        if user is None:
            raise UserNotFound()
        if user.totp_secret:
            raise AlreadyEnabled()
        if not self.totp.verify_code(secret, code):
            logger.warning("2FA enrollment rejected: bad code user_id=%s", user_id)
            raise InvalidTwoFactorCode()

        self.store.update_user(user_id, {"totp_secret": self.secret_box.seal(secret)})
        self._emit(
            AuditEvent(action=AUTH_2FA_ENABLED, actor_id=user_id, merchant_id=user.tenant_id)
        )
        logger.info("2FA enabled user_id=%s", user_id)

    def _issue(
        self,
        user: User,
        *,
        ip: str | None,
        user_agent: str | None,
        rotated_from: str | None = None,
    ) -> IssuedSession:
        now = self.clock()
        record_id = new_refresh_record_id()
        secret = generate_refresh_secret()
        expires_at = now + timedelta(days=REFRESH_TOKEN_EXP_DAYS)

        claims = build_access_claims(
            user_id=user.id,
            role=user.role,
            tenant_id=user.tenant_id,
            refresh_record_id=record_id,
            now=now,
        )
        record = dict(
            record_id=record_id,
            user_id=user.id,
            token_hash=hash_token(secret),
            expires_at=expires_at,
            ip=ip,
            user_agent=user_agent,
        )
        if rotated_from is None:
            self.store.create_refresh_record(**record)
        # Only one caller can win the unrevoked -> revoked transition.
        elif self.store.rotate_refresh_record(rotated_from, now=now, **record) is None:
            raise self._reuse_detected(
                user.id, rotated_from, ip=ip, user_agent=user_agent, reason="race"
            )
        return IssuedSession(
            access_token=encode_access_token(claims),
            refresh_token=format_refresh_token(record_id, secret),
            claims=claims,
            refresh_expires_at=expires_at,
            user=UserProfile.from_user(user),
        )

    def _reuse_detected(
        self,
        user_id: str,
        record_id: str,
        *,
        ip: str | None,
        user_agent: str | None,
        reason: str,
    ) -> ReuseDetected:
        revoked = self.store.revoke_all_refresh_records_for_user(user_id, now=self.clock())
        logger.error(
            "Refresh token reuse detected user_id=%s rid=%s reason=%s revoked=%s ip=%s",
            user_id,
            record_id,
            reason,
            revoked,
            ip,
        )
        self._emit(
            AuditEvent(
                action=AUTH_REFRESH_REUSE,
                actor_id=user_id,
                target_id=record_id,
                ip=ip,
                user_agent=user_agent,
                metadata={"reason": reason, "revoked": revoked},
            )
        )
        return ReuseDetected()

    def _emit(self, event: AuditEvent) -> None:
        if self.audit is not None:
            self.audit.emit(event)


def bootstrap_admin(
    store: CredentialStore,
    *,
    email: str,
    password: str,
    name: str | None = None,
    audit: AuditSink | None = None,
) -> UserProfile:
    """Create the first system administrator; refused once one exists.

    The bootstrap admin always gets the same id, so of two concurrent calls
    that both pass the existence check only one insert can succeed.
    """
    if store.has_user_with_role(Role.SYSTEM_ADMIN):
        raise AdminAlreadyExists()
    if store.find_user_by_email(email) is not None:
        raise EmailAlreadyRegistered()

    try:
        user = store.create_user(
            email=email,
            password_hash=hash_password(password),
            role=Role.SYSTEM_ADMIN,
            name=name,
            user_id=BOOTSTRAP_ADMIN_ID,
        )
    except DuplicateUser:
        if store.has_user_with_role(Role.SYSTEM_ADMIN):
            raise AdminAlreadyExists()
        raise EmailAlreadyRegistered()
    if audit is not None:
        audit.emit(AuditEvent(action=AUTH_ADMIN_BOOTSTRAP, actor_id=user.id, target_id=user.id))
    logger.info("Bootstrapped system admin user_id=%s", user.id)
    return UserProfile.from_user(user)
