"""Pytest configuration and fixtures."""

import os

# Must be set before config is imported
os.environ.setdefault("CREDENTIAL_ENCRYPTION_KEY", "test-encryption-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("PYTHON_KEYRING_BACKEND", "keyring.backends.null.Keyring")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from api.deps import get_aggregator, get_bank_provider, get_registration_limiter
from database import Base, get_db
from main import app
from services.rate_limiter import RateLimiter
from utils.ttl_cache import InMemoryTTLCache
# Pytest fixtures - imported to make them available to tests
from tests.fixtures import CSRF_TOKEN, admin_user, identity, user  # noqa: F401
from tests.fixtures.mocks import FakeAggregator, FakeBankProvider


@pytest.fixture(name="db")
def db_fixture():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(name="file_db_factory")
def file_db_factory_fixture(tmp_path):
    """Sessionmaker over a file-backed SQLite database, for multi-threaded tests."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'flint-test.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        engine.dispose()


@pytest.fixture(name="fake_aggregator")
def fake_aggregator_fixture():
    return FakeAggregator()


@pytest.fixture(name="fake_bank")
def fake_bank_fixture():
    return FakeBankProvider()


@pytest.fixture(name="client")
def client_fixture(db, fake_aggregator, fake_bank):
    """Create a test client with the test database and fake providers."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    limiter = RateLimiter(InMemoryTTLCache(), limit=100, window_seconds=60)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_aggregator] = lambda: fake_aggregator
    app.dependency_overrides[get_bank_provider] = lambda: fake_bank
    app.dependency_overrides[get_registration_limiter] = lambda: limiter
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="auth_headers")
def auth_headers_fixture(user):
    """Headers for a signed-in user passing the double-submit CSRF check."""
    return {
        "X-User-Id": user.id,
        "X-CSRF-Token": CSRF_TOKEN,
        "Cookie": f"csrf_token={CSRF_TOKEN}",
    }


@pytest.fixture(name="admin_headers")
def admin_headers_fixture(admin_user):
    return {
        "X-User-Id": admin_user.id,
        "X-CSRF-Token": CSRF_TOKEN,
        "Cookie": f"csrf_token={CSRF_TOKEN}",
    }
