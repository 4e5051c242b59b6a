"""
Test configuration and fixtures.
Environment is pinned before any app import: SQLite engine, rate limiting off,
no migrations on startup, mocked email (no Resend key).
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["RUN_MIGRATIONS_ON_STARTUP"] = "false"
for _key in ("REDIS_URL", "RESEND_API_KEY", "SENDGRID_API_KEY", "SENTRY_DSN"):
    os.environ.pop(_key, None)

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.db import Base, get_db  # noqa: E402
from app.models import AccountStatus, Client, UserRole  # noqa: E402
from app.services.cache_service import CacheService, get_cache_service  # noqa: E402
from app.services.webhook_service import WebhookService, get_webhook_service  # noqa: E402
from app.utils.cache import CacheManager  # noqa: E402
from tests.helpers import FakeRedis, RecordingTransport, headers_for, make_user  # noqa: E402

# Test database URL (in-memory SQLite)
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

# Create test engine
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Create test session
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database session for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cache_service(fake_redis):
    return CacheService(CacheManager(client=fake_redis))


@pytest.fixture
def webhook_transport():
    return RecordingTransport()


@pytest.fixture
def webhooks(webhook_transport):
    return WebhookService(transport=webhook_transport, timeout=5)


@pytest.fixture(scope="function")
def client(db_session, cache_service, webhooks):
    """Create a test client with database, cache and webhook overrides."""
    from fastapi.testclient import TestClient
    from app.main import app

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache_service] = lambda: cache_service
    app.dependency_overrides[get_webhook_service] = lambda: webhooks
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def user(db_session):
    """A regular user on a fresh 7-day trial."""
    return make_user(db_session, "user@test.com")


@pytest.fixture
def other_user(db_session):
    return make_user(db_session, "other@test.com", first_name="Other")


@pytest.fixture
def admin_user(db_session):
    return make_user(db_session, "admin@test.com", UserRole.ADMIN, account_status=AccountStatus.ACTIVE)


@pytest.fixture
def master_admin(db_session):
    return make_user(db_session, "master@test.com", UserRole.MASTER_ADMIN, account_status=AccountStatus.ACTIVE)


@pytest.fixture
def auth_headers(user):
    return headers_for(user)


@pytest.fixture
def other_headers(other_user):
    return headers_for(other_user)


@pytest.fixture
def admin_headers(admin_user):
    return headers_for(admin_user)


@pytest.fixture
def master_headers(master_admin):
    return headers_for(master_admin)


@pytest.fixture
def sample_client(db_session, user):
    """A client owned by `user`."""
    record = Client(user_id=user.id, name="Acme Corp", email="contact@acme.com", company="Acme")
    db_session.add(record)
    db_session.commit()
    db_session.refresh(record)
    return record
