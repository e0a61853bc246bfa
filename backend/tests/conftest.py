"""Pytest configuration and fixtures"""
import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("METRICS_ENABLED", "false")
os.environ.setdefault("AUTO_CREATE_TABLES", "false")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

from datetime import datetime, timedelta
from typing import Any, Dict, Generator, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from coralguard_admin.api.deps import get_diagnostics, get_notifier, get_token_signer
from coralguard_admin.database import Base, get_db
from coralguard_admin.main import app
from coralguard_admin.models.admin_account import AdminAccount
from coralguard_admin.models.user_account import UserAccount
from coralguard_admin.services.admin_accounts import generate_admin_id
from coralguard_admin.services.audit_trail import AuditTrail
from coralguard_admin.services.permission_catalog import (
    admin_level_for,
    default_admin_permissions,
    default_user_permissions,
    ordered,
)
from coralguard_admin.utils.diagnostics import DiagnosticsSink
from coralguard_admin.utils.jwt_utils import ADMIN_TOKEN_TYPE
from coralguard_admin.utils.passwords import PasswordHasher

TEST_DATABASE_URL = "sqlite:///./test.db"
DEFAULT_PASSWORD = "CoralReef#2024"

engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FrozenClock:
    """Clock that only moves when a test moves it"""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2024, 6, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingNotifier:
    """Stands in for the webhook notifier and keeps every call"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: List[Dict[str, Any]] = []

    def notify(self, user, event: str, payload: Optional[Dict[str, Any]] = None) -> bool:
        self.calls.append({"user_id": user.user_id, "event": event, "payload": payload or {}})
        if self.fail:
            raise ConnectionError("notification endpoint unreachable")
        return True


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def diagnostics() -> DiagnosticsSink:
    return DiagnosticsSink()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture
def audit(db: Session, diagnostics: DiagnosticsSink) -> AuditTrail:
    return AuditTrail(db, diagnostics)


@pytest.fixture(scope="function")
def client(db: Session, diagnostics: DiagnosticsSink, notifier: RecordingNotifier) -> Generator[TestClient, None, None]:
    """Create test client with database session, notifier and diagnostics overrides"""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_diagnostics] = lambda: diagnostics
    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_admin(db: Session, hasher: PasswordHasher):
    """Insert an AdminAccount directly; role defaults drive level and permissions."""
    counter = {"n": 0}

    def _make(
        role: str = "admin",
        email: Optional[str] = None,
        password: str = DEFAULT_PASSWORD,
        permissions: Optional[List[str]] = None,
        admin_level: Optional[int] = None,
        access_level: str = "write",
        is_active: bool = True,
    ) -> AdminAccount:
        counter["n"] += 1
        account = AdminAccount(
            admin_id=generate_admin_id(),
            name=f"{role.replace('_', ' ').title()} {counter['n']}",
            email=email or f"{role}{counter['n']}@coralguard.test",
            password_hash=hasher.hash(password),
            role=role,
            admin_level=admin_level if admin_level is not None else admin_level_for(role),
            access_level=access_level,
            permissions=permissions if permissions is not None else ordered(default_admin_permissions(role)),
            is_active=is_active,
            is_verified=True,
            login_attempts=0,
        )
        db.add(account)
        db.commit()
        db.refresh(account)
        return account

    return _make


@pytest.fixture
def make_user(db: Session):
    """Insert a UserAccount with the role's default permissions."""
    counter = {"n": 0}

    def _make(role: str = "user", user_id: Optional[str] = None, subscription: Optional[str] = "free") -> UserAccount:
        counter["n"] += 1
        user = UserAccount(
            user_id=user_id or f"usr_{counter['n']:04d}",
            name=f"Diver {counter['n']}",
            email=f"diver{counter['n']}@reef.test",
            role=role,
            permissions=ordered(default_user_permissions(role)),
            subscription=subscription,
            is_active=True,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def auth_headers():
    """Bearer headers for an admin, signed with the app's own key."""

    def _headers(account: AdminAccount) -> Dict[str, str]:
        token = get_token_signer().issue(
            account.admin_id,
            ADMIN_TOKEN_TYPE,
            3600,
            {"email": account.email, "role": account.role},
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def super_admin(make_admin) -> AdminAccount:
    return make_admin(role="super_admin", email="root@coralguard.test", access_level="full_access")
