"""Tests for health check endpoints."""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from app.core.database import get_db
from app.main import app


@pytest.mark.asyncio
async def test_health_check_returns_ok(client):
    """Health endpoint should return status ok."""
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_health_check_uses_provided_request_id(client):
    """Health endpoint should echo back provided X-Request-ID."""
    custom_id = "test-request-id-12345"
    response = await client.get("/health", headers={"X-Request-ID": custom_id})

    assert response.headers["X-Request-ID"] == custom_id


@pytest.mark.asyncio
async def test_readiness_degraded_when_worker_stopped(client):
    """Database up but worker not started (no lifespan) reports degraded."""
    session = AsyncMock()

    async def override_get_db():
        yield session

    app.dependency_overrides[get_db] = override_get_db

    response = await client.get("/health/ready")

    assert response.status_code == 200
    data = response.json()
    assert data["database"] == "connected"
    assert data["worker"] == "stopped"
    assert data["status"] == "degraded"


@pytest.mark.asyncio
async def test_readiness_unhealthy_when_database_down(client):
    """Database failure reports unhealthy."""
    session = AsyncMock()
    session.execute.side_effect = OperationalError("SELECT 1", {}, Exception("refused"))

    async def override_get_db():
        yield session

    app.dependency_overrides[get_db] = override_get_db

    response = await client.get("/health/ready")

    assert response.status_code == 200
    assert response.json()["status"] == "unhealthy"
    assert response.json()["database"] == "disconnected"
