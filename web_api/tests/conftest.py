# web_api/tests/conftest.py
"""Pytest fixtures for web API tests.

Builds an app with the check-in and booking routers and mocked services on
app.state, so route tests run without a database or notification providers.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from facility.config import Settings
from web_api.auth import require_staff
from web_api.rate_limit import self_check_in_limiter
from web_api.routes.bookings import router as bookings_router
from web_api.routes.checkins import router as checkins_router

STAFF_USER = {"sub": "5", "role": "staff", "user_id": 5}


@pytest.fixture
def app():
    app = FastAPI()
    app.include_router(checkins_router)
    app.include_router(bookings_router)
    app.state.settings = Settings()
    app.state.ledger = AsyncMock()
    app.state.dispatcher = MagicMock()
    return app


@pytest.fixture
def client(app):
    """Unauthenticated client."""
    self_check_in_limiter._requests.clear()
    yield TestClient(app)
    self_check_in_limiter._requests.clear()


@pytest.fixture
def staff_client(app):
    """Client whose requests pass require_staff as user 5."""
    app.dependency_overrides[require_staff] = lambda: STAFF_USER
    yield TestClient(app)
    app.dependency_overrides.clear()
