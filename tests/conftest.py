"""
pytest configuration and shared fixtures for the Terrimap tests.

Key concern: tests must not require a live MongoDB or network access.
We achieve this by:
  1. Patching connect_to_mongo / close_mongo_connection to no-ops so
     FastAPI's lifespan doesn't try to reach a real database.
  2. Setting db_client.client = None (disconnected) so the health check
     correctly reports "disconnected" — a valid test-mode state.
  3. Injecting in-memory fakes (tests/fakes.py) through
     app.dependency_overrides in the route tests.
"""

import os
from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

# Set env vars BEFORE importing the app so Settings picks them up correctly
os.environ.setdefault("ENVIRONMENT", "test")


@pytest.fixture(autouse=True)
async def mock_db():
    """
    Patch the MongoDB lifecycle for every test.

    - connect_to_mongo → no-op AsyncMock (startup doesn't attempt real connection)
    - close_mongo_connection → no-op AsyncMock
    - db_client.client / db_client.db → None
    """
    with (
        patch("terrimap.core.database.connect_to_mongo", new_callable=AsyncMock),
        patch("terrimap.core.database.close_mongo_connection", new_callable=AsyncMock),
    ):
        import terrimap.core.database as db_module

        original_client = db_module.db_client.client
        original_db = db_module.db_client.db

        db_module.db_client.client = None
        db_module.db_client.db = None

        yield

        db_module.db_client.client = original_client
        db_module.db_client.db = original_db


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    """slowapi keeps hit counters in memory across tests."""
    from terrimap.core.rate_limit import limiter

    try:
        limiter._limiter.storage.reset()
    except Exception:
        pass
    yield


@pytest.fixture()
async def client(mock_db):  # noqa: ARG001 (mock_db must run first)
    """HTTPX async test client wired to the FastAPI app."""
    from terrimap.main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
