"""Pytest configuration.

Settings are read from the environment at import time, so minimal test
defaults are set here before anything from ``app`` is imported.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-mfa-tests")
os.environ.setdefault("PASSWORD_BCRYPT_ROUNDS", "4")
os.environ.setdefault("MAIL_ENABLED", "false")
os.environ.setdefault("AUTO_CREATE_TABLES", "false")
os.environ.setdefault("FRONTEND_URL", "https://app.example.com")
os.environ.setdefault("MFA_ENCRYPTION_KEY", "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff")

from datetime import datetime, timedelta, timezone
from typing import List

import pytest
from fastapi import Request
from fastapi.testclient import TestClient

from app.core.clock import Clock
from app.core.dependencies import get_client_info, get_mfa_service
from app.core.security.audit.models import AuditLog  # noqa: F401
from app.core.security.mfa.challenge import RedeemedChallengeRegistry
from app.core.security.mfa.service import MFAService
from app.core.security.mfa.totp import totp_now
from app.core.security.password import hash_password
from app.crud.user import create_user
from app.db.base_class import Base
from app.db.session import SessionLocal, engine, get_db
from app.main import app
from app.services.mailer import Mail, Mailer

PASSWORD = "correct horse battery staple"


class FakeClock(Clock):
    """Manually advanced clock."""

    def __init__(self, start: datetime):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current

    def set(self, value: datetime) -> None:
        self.current = value


class RecordingMailer(Mailer):
    def __init__(self):
        self.sent: List[Mail] = []
        self.fail = False

    def send(self, mail: Mail) -> None:
        if self.fail:
            raise ConnectionError("smtp unavailable")
        self.sent.append(mail)


class SyncDispatcher:
    """Runs the mailer inline; failures are only recorded."""

    def __init__(self, mailer: Mailer):
        self.mailer = mailer
        self.errors: List[Exception] = []

    def dispatch(self, mail: Mail) -> None:
        try:
            self.mailer.send(mail)
        except ConnectionError as e:
            self.errors.append(e)


@pytest.fixture
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clock() -> FakeClock:
    # middle of a 30 second step so window edges are unambiguous
    return FakeClock(datetime(2026, 3, 2, 9, 0, 15, tzinfo=timezone.utc))


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def dispatcher(mailer) -> SyncDispatcher:
    return SyncDispatcher(mailer)


@pytest.fixture
def registry() -> RedeemedChallengeRegistry:
    return RedeemedChallengeRegistry()


@pytest.fixture
def service(db, clock, dispatcher, registry) -> MFAService:
    return MFAService(db, clock=clock, dispatcher=dispatcher, challenge_registry=registry)


@pytest.fixture
def make_user(db):
    def _make(email: str = "alice@example.com", password: str = PASSWORD, role: str = "user"):
        return create_user(db, email=email, username=email.split("@")[0], password_hash=hash_password(password), role=role)

    return _make


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def enrolled(service, user, clock):
    """User with MFA enabled. Returns (user, secret, plaintext backup codes)."""
    result = service.setup(user)
    service.enable(user, totp_now(result["secret"], clock.now()))
    return user, result["secret"], result["backup_codes"]


@pytest.fixture
def client(db, clock, dispatcher, registry):
    def _get_db():
        yield db

    def _get_mfa_service(request: Request) -> MFAService:
        return MFAService(
            db,
            clock=clock,
            dispatcher=dispatcher,
            challenge_registry=registry,
            client=get_client_info(request),
        )

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_mfa_service] = _get_mfa_service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def wrong_code():
    """Returns a six digit code outside the accepted window."""

    def _wrong(secret: str, now: datetime, window: int = 1) -> str:
        valid = {totp_now(secret, now, k) for k in range(-window - 1, window + 2)}
        for candidate in ("000000", "111111", "123456", "654321", "999999"):
            if candidate not in valid:
                return candidate
        raise AssertionError("no wrong code available")

    return _wrong


@pytest.fixture
def password() -> str:
    return PASSWORD
