import logging
import secrets
from dataclasses import dataclass, field
from typing import Protocol

from sqlalchemy.orm import Session

from dms.audit.models import AuditLog

logger = logging.getLogger(__name__)

AUTH_LOGIN = "AUTH.LOGIN"
AUTH_LOGOUT = "AUTH.LOGOUT"
AUTH_REFRESH_REUSE = "AUTH.REFRESH_REUSE"
AUTH_2FA_ENABLED = "AUTH.2FA_ENABLED"
AUTH_ADMIN_BOOTSTRAP = "AUTH.ADMIN_BOOTSTRAP"


@dataclass(frozen=True)
class AuditEvent:
    action: str
    actor_id: str | None = None
    merchant_id: str | None = None
    target_id: str | None = None
    ip: str | None = None
    user_agent: str | None = None
    metadata: dict = field(default_factory=dict)


class AuditSink(Protocol):
    def emit(self, event: AuditEvent) -> None: ...


def write_audit_log(db: Session, event: AuditEvent) -> AuditLog:
    log = AuditLog(
        id=f"al_{secrets.token_hex(12)}",
        actor_id=event.actor_id,
        merchant_id=event.merchant_id,
        action=event.action,
        target_id=event.target_id,
        ip=event.ip,
        user_agent=(event.user_agent or None) and event.user_agent[:512],
        metadata_json=dict(event.metadata),
    )
    db.add(log)
    db.commit()
    return log


class DbAuditSink:
    def __init__(self, db: Session) -> None:
        self.db = db

    def emit(self, event: AuditEvent) -> None:
        write_audit_log(self.db, event)

