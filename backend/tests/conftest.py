import os
from datetime import datetime, timedelta

os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_ACCESS_SECRET", "test-secret-key-for-testing-only")
os.environ.pop("TOTP_ENCRYPTION_KEY", None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import select  # noqa: E402

from dms.auth.login_guard import login_throttle  # noqa: E402
from dms.auth.models import RefreshToken  # noqa: E402
from dms.auth.roles import Role  # noqa: E402
from dms.auth.security import hash_password  # noqa: E402
from dms.auth.service import SessionEngine  # noqa: E402
from dms.auth.store import SqlAlchemyCredentialStore  # noqa: E402
from dms.db.base import Base  # noqa: E402
from dms.db.session import SessionLocal, engine, get_db  # noqa: E402
import dms.db.models  # noqa: F401, E402


class MemoryAuditSink:
    def __init__(self):
        self.events = []

    def emit(self, event):
        self.events.append(event)

    def actions(self):
        return [e.action for e in self.events]


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime.utcnow()

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def store(db):
    return SqlAlchemyCredentialStore(db)


@pytest.fixture
def audit():
    return MemoryAuditSink()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session_engine(store, audit, clock):
    return SessionEngine(store, audit=audit, clock=clock)


@pytest.fixture
def make_user(store):
    def _make(
        email="a@x.com",
        password="Secret#1234",
        role=Role.TENANT_ADMIN,
        tenant_id="T1",
        is_active=True,
        totp_secret=None,
    ):
        user = store.create_user(
            email=email,
            password_hash=hash_password(password),
            role=role,
            tenant_id=tenant_id,
            is_active=is_active,
        )
        if totp_secret:
            user = store.update_user(user.id, {"totp_secret": totp_secret})
        return user

    return _make


@pytest.fixture
def live_records(db):
    def _live(user_id, now=None):
        now = now or datetime.utcnow()
        db.expire_all()
        rows = db.execute(select(RefreshToken).where(RefreshToken.user_id == user_id)).scalars().all()
        return [r for r in rows if r.is_live(now)]

    return _live


@pytest.fixture
def client(db):
    from dms.main import app

    def _get_db():
        yield db

    login_throttle.reset()
    app.dependency_overrides[get_db] = _get_db
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()
        login_throttle.reset()
