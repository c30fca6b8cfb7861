from __future__ import annotations

import os
import tempfile

# precisa vir antes de qualquer import de tenant_auth (settings/engine são lidos no import)
_TMP = tempfile.mkdtemp(prefix="tenant_auth_tests_")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP, 'test.db')}"
os.environ["AUTO_MIGRATE"] = "0"
os.environ["SESSION_PURGE_INTERVAL_HOURS"] = "0"
os.environ["COOKIE_SECURE"] = "0"
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["SESSION_SECRET"] = "test-session-secret"
os.environ["FRONTEND_URL"] = "http://localhost:5173"
os.environ["LOG_LEVEL"] = "WARNING"

from typing import List, Optional, Tuple  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import select  # noqa: E402

from tenant_auth.core.device import DeviceInfo  # noqa: E402
from tenant_auth.core.ratelimit import limiter  # noqa: E402
from tenant_auth.core.security_password import hash_password  # noqa: E402
from tenant_auth.crud.user import user_crud  # noqa: E402
from tenant_auth.db.base import Base  # noqa: E402
from tenant_auth.db.session import SessionLocal, engine  # noqa: E402
from tenant_auth.main import api  # noqa: E402
from tenant_auth.models.tenant import Tenant  # noqa: E402
from tenant_auth.services.mailer import get_mailer  # noqa: E402

from helpers import PASSWORD  # noqa: E402


class RecordingMailer:
    def __init__(self) -> None:
        self.sent: List[Tuple[str, str]] = []

    def send_verification(self, email: str, token: str, first_name: Optional[str] = None) -> None:
        self.sent.append((email, token))

    def token_for(self, email: str) -> str:
        return [t for e, t in self.sent if e == email][-1]


@pytest.fixture(autouse=True)
def _fresh_db():
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    limiter.reset()
    with SessionLocal() as s:
        s.add_all([Tenant(name="Demo", slug="demo"), Tenant(name="Other", slug="other")])
        s.commit()
    yield


@pytest.fixture
def db():
    with SessionLocal() as s:
        yield s


@pytest.fixture
def tenant(db) -> Tenant:
    return db.scalar(select(Tenant).where(Tenant.slug == "demo"))


@pytest.fixture
def device() -> DeviceInfo:
    return DeviceInfo(device_id="device-0001", device_name="Firefox on Linux", user_agent="pytest", ip_address="127.0.0.1")


@pytest.fixture
def make_user(db):
    def _make(email: str = "ana@example.com", password: str = PASSWORD, *, verified: bool = True,
              tenant_slug: str = "demo", role: str = "Employee"):
        t = db.scalar(select(Tenant).where(Tenant.slug == tenant_slug))
        return user_crud.create(
            db,
            tenant_id=t.id,
            email=email,
            password_hash=hash_password(password),
            first_name="Ana",
            last_name="Silva",
            role=role,
            email_verified=verified,
        )

    return _make


@pytest.fixture
def mailer():
    m = RecordingMailer()
    api.dependency_overrides[get_mailer] = lambda: m
    yield m
    api.dependency_overrides.pop(get_mailer, None)


@pytest.fixture
def client(mailer):
    with TestClient(api) as c:
        yield c

