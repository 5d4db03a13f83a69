# tests/api/conftest.py
import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock

from mcare.backend.main import app
from mcare.backend.api import auth
from mcare.backend.api.dependencies import (
    get_attendance_service,
    get_db_client,
    get_duty_service,
    get_group_service,
    get_redis_client,
    get_user_service,
)
from mcare.backend.api.utilities.limiter import limiter
from mcare.backend.config.config import settings
from tests.factories import make_user


@pytest.fixture(autouse=True)
def api_settings(monkeypatch):
    monkeypatch.setattr(settings, "SECRET_KEY", "test-secret")
    monkeypatch.setattr(limiter, "enabled", False)


def _returning(value):
    # Overrides take no parameters, FastAPI would read them as query params.
    def override():
        return value
    return override


@pytest.fixture
def services():
    """Mocked services and stores wired into the app instead of the real pools."""
    mocks = {
        get_user_service: AsyncMock(),
        get_group_service: AsyncMock(),
        get_duty_service: AsyncMock(),
        get_attendance_service: AsyncMock(),
        get_db_client: AsyncMock(),
        get_redis_client: AsyncMock(),
    }
    for dependency, mock in mocks.items():
        app.dependency_overrides[dependency] = _returning(mock)
    yield mocks
    app.dependency_overrides.clear()


@pytest.fixture
def client(services):
    # No context manager: the lifespan would open real database connections.
    return TestClient(app)


@pytest.fixture
def admin():
    return make_user("A001", "Admin One", role="admin")


@pytest.fixture
def student():
    return make_user("S001", "Ana Cruz")


@pytest.fixture
def login_as(services):
    """Makes every guarded route see `user` as the caller."""
    def _login_as(user):
        app.dependency_overrides[auth.get_current_user] = lambda: user
        return user
    return _login_as
