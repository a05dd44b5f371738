# ABOUTME: Pytest fixtures and configuration
# ABOUTME: Provides test database, platform service, client, and API key fixtures

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from apiplatform.main import app
from apiplatform.models.database import Base
from apiplatform.database import get_db
from apiplatform.services.cache import AnalyticsCache
from apiplatform.services.platform import APIPlatform
from apiplatform.services.rate_limiter import InMemoryRateCounterStore, RateLimiter


# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    """Override database dependency for tests."""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


def make_platform(store=None, fail_open=True, clock=None) -> APIPlatform:
    """Build a platform with process-local counters and cache."""
    limiter_kwargs = {"fail_open": fail_open}
    if clock is not None:
        limiter_kwargs["clock"] = clock
    return APIPlatform(
        limiter=RateLimiter(store or InMemoryRateCounterStore(), **limiter_kwargs),
        cache=AnalyticsCache(ttl_seconds=300),
    )


def issue_test_key(platform, owner_id="employer_1", scopes=("jobs:read",), tier="basic", **kwargs):
    """Issue a key through the platform in its own session. Returns (plaintext, key_id)."""
    db = TestingSessionLocal()
    try:
        issued = platform.issue_key(db, owner_id=owner_id, name=kwargs.pop("name", "test key"),
                                    scopes=list(scopes), tier=tier, **kwargs)
        return issued.plaintext, issued.api_key.id
    finally:
        db.close()


@pytest.fixture(scope="function", autouse=True)
def setup_database():
    """Create tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    """Provides a database session for tests."""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def platform():
    """Fresh platform per test so rate-limit counters never leak between tests."""
    return make_platform()


@pytest.fixture
def client(setup_database, platform):
    """Provides a FastAPI test client with test database and platform."""
    app.dependency_overrides[get_db] = override_get_db
    original_platform = app.state.platform
    original_session_factory = app.state.session_factory
    app.state.platform = platform
    app.state.session_factory = TestingSessionLocal
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()
        app.state.platform = original_platform
        app.state.session_factory = original_session_factory


@pytest.fixture
def admin_key(platform):
    """Plaintext key carrying the admin scope."""
    plaintext, _ = issue_test_key(platform, owner_id="platform_admin", scopes=("admin",), tier="enterprise",
                                  name="admin key")
    return plaintext
