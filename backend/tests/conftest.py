"""
Test configuration and fixtures for the shared todo list tests.

Provides:
- Test database with SQLite in-memory for speed
- FastAPI test client with database dependency override
- Fresh lockout table (fake clock), broadcaster and AI fakes per test
- Authentication helpers (JWT token generation)
- Common fixtures for users and todos
"""

import os
import sys
import logging
from datetime import timedelta
from typing import Generator, Dict

# Keep the app's own engine off the filesystem during tests
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Add backend and tests directories to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from database import Base, get_db
from main import app
import models
from auth.lockout import LockoutTable
from auth.security import hash_pin, create_access_token
from fakes import FakeClock, FakeLLM, FakeTranscriber, RecordingBroadcaster

# Configure logging for tests
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)

# SQLite in-memory database for fast testing
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

ALICE_PIN = "1234"
BOB_PIN = "5678"


@pytest.fixture(scope="function")
def test_db() -> Generator[Session, None, None]:
    """
    Create a fresh in-memory SQLite database for each test.

    This ensures test isolation and fast execution.
    """
    logger.debug("Creating test database")

    engine = create_engine(
        SQLALCHEMY_TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSessionLocal()

    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        logger.debug("Test database cleaned up")


@pytest.fixture(scope="function")
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(scope="function")
def lockouts(clock: FakeClock) -> LockoutTable:
    return LockoutTable(max_attempts=3, lockout_seconds=30, clock=clock)


@pytest.fixture(scope="function")
def broadcaster() -> RecordingBroadcaster:
    return RecordingBroadcaster()


@pytest.fixture(scope="function")
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture(scope="function")
def fake_transcriber() -> FakeTranscriber:
    return FakeTranscriber()


@pytest.fixture(scope="function")
def client(
    test_db: Session,
    lockouts: LockoutTable,
    broadcaster: RecordingBroadcaster,
    fake_llm: FakeLLM,
    fake_transcriber: FakeTranscriber,
) -> TestClient:
    """
    Create FastAPI test client with database dependency override and
    per-test application state.
    """
    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    saved_state = {
        name: getattr(app.state, name)
        for name in ("lockouts", "broadcaster", "llm", "transcriber")
    }
    app.state.lockouts = lockouts
    app.state.broadcaster = broadcaster
    app.state.llm = fake_llm
    app.state.transcriber = fake_transcriber

    with TestClient(app) as test_client:
        yield test_client

    for name, value in saved_state.items():
        setattr(app.state, name, value)
    app.dependency_overrides.clear()


def make_user(db: Session, name: str, pin: str, role: str = "member") -> models.User:
    user = models.User(name=name, pin_hash=hash_pin(pin), color="#0033A0", role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Created user {name} with ID: {user.id}")
    return user


@pytest.fixture(scope="function")
def alice(test_db: Session) -> models.User:
    """Admin user."""
    return make_user(test_db, "Alice", ALICE_PIN, role="admin")


@pytest.fixture(scope="function")
def bob(test_db: Session) -> models.User:
    """Regular member."""
    return make_user(test_db, "Bob", BOB_PIN)


def create_auth_token(user: models.User, expires_delta: timedelta = None) -> str:
    """
    Helper to create JWT access token for a user.

    Args:
        user: User to create token for
        expires_delta: Optional expiration time override

    Returns:
        JWT access token string
    """
    logger.debug(f"Creating auth token for user {user.id}")
    token_data = {
        "sub": str(user.id),
        "name": user.name,
        "role": user.role,
    }
    return create_access_token(token_data, expires_delta)


@pytest.fixture(scope="function")
def auth_headers(alice: models.User) -> Dict[str, str]:
    """Authorization headers for Alice (admin)."""
    return {"Authorization": f"Bearer {create_auth_token(alice)}"}


@pytest.fixture(scope="function")
def bob_headers(bob: models.User) -> Dict[str, str]:
    """Authorization headers for Bob (member)."""
    return {"Authorization": f"Bearer {create_auth_token(bob)}"}
