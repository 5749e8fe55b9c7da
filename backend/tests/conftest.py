"""Pytest configuration and fixtures.

The route guard and the presence WebSocket open their own database sessions
through ``SessionLocal``, so instead of overriding ``get_db`` the whole app is
pointed at the SQLite test database before it is imported.
"""
import os

os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["LOG_LEVEL"] = "WARNING"

from typing import Generator

import pyotp
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from adminguard.database import Base, SessionLocal, engine
from adminguard.main import app
from adminguard.models.admin_user import AdminUser
from adminguard.realtime.channel import PresenceHub
from adminguard.realtime.presence import PresenceRegistry
from adminguard.services.identity import IdentityStore
from adminguard.services.totp import TotpService
from adminguard.utils.auth import hash_backup_code
from adminguard.utils.tokens import SessionTokenCodec, TwoFactorStampCodec

ADMIN_PASSWORD = "correct-horse-battery"
BACKUP_CODES = ["A1B2C3D4", "E5F6A7B8", "0011AAFF"]


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test"""
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db: Session) -> Generator[TestClient, None, None]:
    """Test client sharing one event loop for HTTP calls and WebSockets"""
    app.state.presence_hub = PresenceHub()
    app.state.presence_registry = PresenceRegistry()
    with TestClient(app) as test_client:
        yield test_client


def _create(db: Session, email: str, **fields) -> AdminUser:
    user = IdentityStore(db).create(email, ADMIN_PASSWORD, role=fields.pop("role", "admin"))
    for name, value in fields.items():
        setattr(user, name, value)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def admin_user(db: Session) -> AdminUser:
    """Active, confirmed admin without 2FA"""
    return _create(db, "admin@example.com")


@pytest.fixture
def totp_secret() -> str:
    return pyotp.random_base32(length=32)


@pytest.fixture
def two_factor_admin(db: Session, totp_secret: str) -> AdminUser:
    """Admin with TOTP enabled and three unused backup codes"""
    return _create(
        db,
        "secure-admin@example.com",
        role="super_admin",
        totp_secret=totp_secret,
        totp_enabled=True,
        backup_code_hashes=[hash_backup_code(code) for code in BACKUP_CODES],
    )


@pytest.fixture
def make_user(db: Session):
    """Factory for accounts with arbitrary role/state"""

    def _make(email: str, **fields) -> AdminUser:
        return _create(db, email, **fields)

    return _make


@pytest.fixture
def session_token():
    """Issue a signed session token for a user"""

    def _issue(user: AdminUser, two_factor_verified: bool = False, now=None) -> str:
        return SessionTokenCodec().issue(user.id, user.email, user.role, two_factor_verified, now=now)

    return _issue


@pytest.fixture
def stamp_token():
    def _issue(user: AdminUser, now=None) -> str:
        return TwoFactorStampCodec().issue(user.id, now=now)

    return _issue


@pytest.fixture
def totp() -> TotpService:
    return TotpService()


@pytest.fixture
def login(client: TestClient):
    """POST credentials to the login endpoint"""

    def _login(email: str, password: str = ADMIN_PASSWORD):
        return client.post("/admin/api/auth/login", json={"email": email, "password": password})

    return _login
