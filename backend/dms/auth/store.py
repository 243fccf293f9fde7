import secrets
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from dms.auth.models import RefreshToken, User
from dms.auth.roles import Role

USER_PATCHABLE_FIELDS = frozenset(
    {"name", "password_hash", "role", "tenant_id", "is_active", "totp_secret"}
)


class DuplicateUser(Exception):
    pass


class CredentialStore(Protocol):
    def find_user_by_email(self, email: str) -> User | None: ...

    def find_user_by_id(self, user_id: str) -> User | None: ...

    def create_user(
        self,
        *,
        email: str,
        password_hash: str,
        role: Role,
        name: str | None = None,
        tenant_id: str | None = None,
        is_active: bool = True,
        user_id: str | None = None,
    ) -> User: ...

    def has_user_with_role(self, role: Role) -> bool: ...

    def update_user(self, user_id: str, patch: dict[str, Any]) -> User | None: ...

    def create_refresh_record(
        self,
        *,
        record_id: str,
        user_id: str,
        token_hash: str,
        expires_at: datetime,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> RefreshToken: ...

    def find_refresh_record_by_id(self, record_id: str) -> RefreshToken | None: ...

    def rotate_refresh_record(
        self,
        old_record_id: str,
        *,
        now: datetime,
        record_id: str,
        user_id: str,
        token_hash: str,
        expires_at: datetime,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> RefreshToken | None: ...

    def revoke_refresh_record(self, record_id: str, *, now: datetime) -> bool: ...

    def revoke_all_refresh_records_for_user(self, user_id: str, *, now: datetime) -> int: ...


def normalize_email(email: str) -> str:
    return str(email).strip().lower()


class SqlAlchemyCredentialStore:
    """Credential store over a request-scoped SQLAlchemy session.

    Every write commits on its own; rotation revokes and inserts in a single
    transaction. Revocation is a conditional UPDATE so only one caller can
    move a record out of the unrevoked state.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def find_user_by_email(self, email: str) -> User | None:
        return self.db.execute(
            select(User).where(User.email == normalize_email(email))
        ).scalar_one_or_none()

    def find_user_by_id(self, user_id: str) -> User | None:
        return self.db.get(User, user_id)

    def create_user(
        self,
        *,
        email: str,
        password_hash: str,
        role: Role,
        name: str | None = None,
        tenant_id: str | None = None,
        is_active: bool = True,
        user_id: str | None = None,
    ) -> User:
        """Insert a user. Raises ``DuplicateUser`` when the id or email is taken."""
        user = User(
            id=user_id or f"u_{secrets.token_hex(10)}",
            email=normalize_email(email),
            name=name,
            password_hash=password_hash,
            role=Role(role).value,
            tenant_id=tenant_id,
            is_active=is_active,
        )
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise DuplicateUser(normalize_email(email)) from exc
        self.db.refresh(user)
        return user

    def has_user_with_role(self, role: Role) -> bool:
        row = self.db.execute(
            select(User.id).where(User.role == Role(role).value).limit(1)
        ).first()
        return row is not None

    def update_user(self, user_id: str, patch: dict[str, Any]) -> User | None:
        unknown = set(patch) - USER_PATCHABLE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported user fields: {sorted(unknown)}")

        user = self.db.get(User, user_id)
        if user is None:
            return None
        for key, value in patch.items():
            if key == "role":
                value = Role(value).value
            setattr(user, key, value)
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    def _new_refresh_record(
        self,
        *,
        record_id: str,
        user_id: str,
        token_hash: str,
        expires_at: datetime,
        ip: str | None,
        user_agent: str | None,
    ) -> RefreshToken:
        return RefreshToken(
            id=record_id,
            user_id=user_id,
            token_hash=token_hash,
            expires_at=expires_at,
            revoked_at=None,
            created_from_ip=ip,
            created_from_agent=user_agent[:512] if user_agent else None,
        )

    def create_refresh_record(
        self,
        *,
        record_id: str,
        user_id: str,
        token_hash: str,
        expires_at: datetime,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> RefreshToken:
        record = self._new_refresh_record(
            record_id=record_id,
            user_id=user_id,
            token_hash=token_hash,
            expires_at=expires_at,
            ip=ip,
            user_agent=user_agent,
        )
        self.db.add(record)
        self.db.commit()
        return record

    def rotate_refresh_record(
        self,
        old_record_id: str,
        *,
        now: datetime,
        record_id: str,
        user_id: str,
        token_hash: str,
        expires_at: datetime,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> RefreshToken | None:
        """Revoke ``old_record_id`` and insert its successor in one transaction.

        Returns None, having written nothing, when ``old_record_id`` was no
        longer unrevoked. Any failure rolls back both writes.
        """
        try:
            result = self.db.execute(
                update(RefreshToken)
                .where(RefreshToken.id == old_record_id, RefreshToken.revoked_at.is_(None))
                .values(revoked_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                self.db.rollback()
                return None

            record = self._new_refresh_record(
                record_id=record_id,
                user_id=user_id,
                token_hash=token_hash,
                expires_at=expires_at,
                ip=ip,
                user_agent=user_agent,
            )
            self.db.add(record)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return record

    def find_refresh_record_by_id(self, record_id: str) -> RefreshToken | None:
        return self.db.get(RefreshToken, record_id)

    def revoke_refresh_record(self, record_id: str, *, now: datetime) -> bool:
        result = self.db.execute(
            update(RefreshToken)
            .where(RefreshToken.id == record_id, RefreshToken.revoked_at.is_(None))
            .values(revoked_at=now)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount == 1

    def revoke_all_refresh_records_for_user(self, user_id: str, *, now: datetime) -> int:
        result = self.db.execute(
            update(RefreshToken)
            .where(RefreshToken.user_id == user_id, RefreshToken.revoked_at.is_(None))
            .values(revoked_at=now)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount
