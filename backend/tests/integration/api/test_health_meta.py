"""
Integration tests for health and metadata endpoints.

WHY: Load balancers poll /api/health without credentials and must see a
503 as soon as the database is unreachable.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError

from helpdesk.db.session import get_db
from helpdesk.main import app


class TestHealth:
    @pytest.mark.asyncio
    async def test_healthy(self, client: AsyncClient):
        response = await client.get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "helpdesk-mini"
        assert data["version"] == "1.0.0"
        assert data["database"] == "connected"
        assert data["timestamp"].endswith("Z")

    @pytest.mark.asyncio
    async def test_database_down(self, client: AsyncClient):
        broken = MagicMock()
        broken.execute = AsyncMock(side_effect=OperationalError("SELECT 1", {}, Exception("gone")))
        broken.rollback = AsyncMock()

        async def broken_db():
            yield broken

        app.dependency_overrides[get_db] = broken_db

        response = await client.get("/api/health")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"
        assert response.json()["database"] == "unavailable"
        broken.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_carries_request_id(self, client: AsyncClient):
        response = await client.get("/api/health", headers={"X-Request-ID": "probe-1"})

        assert response.headers["X-Request-ID"] == "probe-1"


class TestMeta:
    @pytest.mark.asyncio
    async def test_meta(self, client: AsyncClient):
        response = await client.get("/api/_meta")

        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "helpdesk-mini"
        assert data["api_prefix"] == "/api"
        assert "idempotent-creation" in data["features"]
        assert data["sla_hours"] == {"critical": 4, "high": 24, "medium": 48, "low": 72}

    @pytest.mark.asyncio
    async def test_root(self, client: AsyncClient):
        response = await client.get("/")

        assert response.json()["docs"] == "/api/docs"
