"""
Pytest fixtures shared across the unit suites.

Environment is pinned before any plankalink module is imported, since settings
are read at import time.
"""
from __future__ import annotations

import os
import tempfile

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing-only-32-chars")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="plankalink-logs-"))
os.environ.setdefault("RATE_LIMITING_ENABLED", "false")

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

import plankalink.models  # noqa: F401  registers tables
from plankalink.core.config import settings
from plankalink.core.database import get_session
from plankalink.core.encryption import reset_key_cache
from plankalink.core.security import create_access_token
from plankalink.main import app
from plankalink.services.user_service import UserService
from tests.lib import FakePlanka, PLANKA_BASE_URL


@pytest.fixture
def session():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as db_session:
        yield db_session
    engine.dispose()


@pytest.fixture(autouse=True)
def _fresh_encryption_key():
    reset_key_cache()
    yield
    reset_key_cache()


@pytest.fixture
def planka_enabled(monkeypatch):
    """Turn the Planka integration on, pointing at the fake server URL."""
    monkeypatch.setattr(settings, "planka_base_url", PLANKA_BASE_URL)
    monkeypatch.setattr(settings, "planka_integration_enabled", True)
    return settings


@pytest.fixture
def planka_disabled(monkeypatch):
    monkeypatch.setattr(settings, "planka_base_url", None)
    monkeypatch.setattr(settings, "planka_integration_enabled", False)
    return settings


@pytest.fixture
def fake_planka():
    """Serve Planka calls from an in-process fake instead of the network."""
    fake = FakePlanka()
    with patch(
        "plankalink.integrations.planka.get_http_client",
        new_callable=AsyncMock,
        return_value=fake.client(),
    ):
        yield fake


@pytest.fixture
def local_user(session):
    return UserService(session).create_user(
        email="bob@example.com",
        name="Bob",
        password="bob-local-password",
    )


@pytest.fixture
def auth_headers(local_user):
    token = create_access_token({"sub": str(local_user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(session):
    """TestClient bound to the per-test database."""
    app.dependency_overrides[get_session] = lambda: session
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
