"""Shared test fixtures."""

import os

# Settings() requires JWT_SECRET at import time
os.environ.setdefault("JWT_SECRET", "test-secret-do-not-use")
os.environ.setdefault("PAYMENT_WEBHOOK_SECRET", "test-webhook-hash")

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from src.main import app  # noqa: E402
from tests.fakes import World, make_world  # noqa: E402


@pytest.fixture
def world() -> World:
    """Engines wired to in-memory repositories sharing one FakeStore."""
    return make_world()


@pytest.fixture
async def client() -> AsyncClient:
    """Async HTTP client for testing FastAPI endpoints."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
