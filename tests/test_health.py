"""
test_health.py — Health check endpoint.

Run:
    pytest tests/test_health.py -v
"""

from unittest.mock import AsyncMock, MagicMock

import terrimap.core.database as db_module


class TestHealthEndpoint:

    async def test_health_returns_200(self, client):
        response = await client.get("/health")
        assert response.status_code == 200

    async def test_health_schema(self, client):
        data = (await client.get("/health")).json()
        assert data["status"] == "ok"
        assert data["version"] == "0.1.0"
        assert data["environment"] == "test"

    async def test_health_reports_disconnected_db(self, client):
        data = (await client.get("/health")).json()
        assert data["database"] == "disconnected"

    async def test_health_reports_connected_db(self, client):
        fake_client = MagicMock()
        fake_client.admin.command = AsyncMock(return_value={"ok": 1})
        db_module.db_client.client = fake_client

        data = (await client.get("/health")).json()
        assert data["database"] == "connected"

    async def test_health_survives_failed_ping(self, client):
        fake_client = MagicMock()
        fake_client.admin.command = AsyncMock(side_effect=RuntimeError("no primary"))
        db_module.db_client.client = fake_client

        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["database"] == "disconnected"


class TestRootEndpoint:

    async def test_root(self, client):
        data = (await client.get("/")).json()
        assert data["name"] == "Terrimap API"
        assert data["status"] == "running"
