"""Shared pytest fixtures for test suite"""
import os
import sys
from pathlib import Path
from typing import Generator
from unittest.mock import patch

import pytest
import fakeredis
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Point the app at throwaway stores before app.core.config is imported
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["ENVIRONMENT"] = "development"

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from app.main import app
from app.db.session import get_db
from app.models import Base
from app.models.user import User
from app.services.auth_service import create_user
from app.db import redis as redis_module

TEST_PASSWORD = "TestPassword123!"

# SQLite in-memory database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"

# Create test engine with StaticPool for in-memory database
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Create test session factory
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh SQLite in-memory database session for each test"""
    Base.metadata.create_all(bind=test_engine)
    session = TestSessionLocal()
    
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def mock_redis():
    """Swap the lazily created Redis client for fakeredis"""
    fake_redis = fakeredis.FakeStrictRedis(decode_responses=True)
    with patch.object(redis_module, "_client", fake_redis):
        yield fake_redis


@pytest.fixture(scope="function")
def client(db_session: Session, mock_redis) -> Generator[TestClient, None, None]:
    """FastAPI test client with test database and mocked Redis"""
    
    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Closed by the db_session fixture
    
    app.dependency_overrides[get_db] = override_get_db
    
    try:
        # Disable OpenTelemetry in tests
        with patch("app.main.initialize_otel", return_value=False):
            with patch("app.main.setup_otel_logging", return_value=False):
                with patch("app.main.instrument_sqlalchemy"):
                    with TestClient(app) as test_client:
                        yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def test_user(db_session: Session) -> User:
    """A regular user who has just signed up (balance = signup bonus)"""
    return create_user(
        email="listener@frequencyfactory.app",
        password=TEST_PASSWORD,
        db=db_session,
        name="Listener"
    )


@pytest.fixture(scope="function")
def test_user_2(db_session: Session) -> User:
    """A second regular user"""
    return create_user(
        email="producer@frequencyfactory.app",
        password=TEST_PASSWORD,
        db=db_session,
        name="Producer"
    )


@pytest.fixture(scope="function")
def admin_user(db_session: Session) -> User:
    return create_user(
        email="admin@frequencyfactory.app",
        password=TEST_PASSWORD,
        db=db_session,
        name="Admin",
        is_admin=True
    )


def _sign_in(client: TestClient, user: User) -> TestClient:
    login_response = client.post(
        "/api/auth/login",
        json={"email": user.email, "password": TEST_PASSWORD}
    )
    assert login_response.status_code == 200
    
    csrf_response = client.get("/api/auth/csrf")
    assert csrf_response.status_code == 200
    client.headers.update({"X-CSRF-Token": csrf_response.json()["csrfToken"]})
    return client


@pytest.fixture(scope="function")
def authenticated_client(client: TestClient, test_user: User) -> TestClient:
    """Client with authenticated user session and CSRF token"""
    return _sign_in(client, test_user)


@pytest.fixture(scope="function")
def admin_client(client: TestClient, admin_user: User) -> TestClient:
    """Client signed in as an admin, with CSRF token"""
    return _sign_in(client, admin_user)


@pytest.fixture(scope="function")
def csrf_token(authenticated_client: TestClient) -> str:
    token = authenticated_client.headers.get("X-CSRF-Token")
    assert token is not None, "CSRF token should be available"
    return token
