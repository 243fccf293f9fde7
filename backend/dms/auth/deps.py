from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from dms.audit.service import DbAuditSink
from dms.auth.guard import authenticate, require_permissions, require_tenant_access
from dms.auth.security import AccessClaims
from dms.auth.service import SessionEngine
from dms.auth.store import SqlAlchemyCredentialStore
from dms.db.session import get_db

bearer = HTTPBearer(auto_error=False)


def get_credential_store(db: Session = Depends(get_db)) -> SqlAlchemyCredentialStore:
    return SqlAlchemyCredentialStore(db)


def get_session_engine(db: Session = Depends(get_db)) -> SessionEngine:
    return SessionEngine(SqlAlchemyCredentialStore(db), audit=DbAuditSink(db))


def get_current_claims(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
) -> AccessClaims:
    return authenticate(creds.credentials if creds else None)


def require_perms(*permissions: str):
    def _dep(claims: AccessClaims = Depends(get_current_claims)) -> AccessClaims:
        require_permissions(claims, permissions)
        return claims

    return _dep


def require_merchant_access(
    merchant_id: str,
    claims: AccessClaims = Depends(get_current_claims),
) -> AccessClaims:
    require_tenant_access(claims, merchant_id)
    return claims
