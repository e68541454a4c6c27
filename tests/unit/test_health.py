"""
Unit tests for health endpoints.
"""

import pytest
import structlog
from httpx import AsyncClient

from pm_tracker.api.deps import ServiceContainer


@pytest.mark.asyncio
async def test_health_check(async_client: AsyncClient) -> None:
    """Test basic health check endpoint."""
    response = await async_client.get("/api/v1/health")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "healthy"
    assert "timestamp" in data


@pytest.mark.asyncio
async def test_readiness_check(async_client: AsyncClient) -> None:
    """Test readiness check endpoint."""
    response = await async_client.get("/api/v1/health/ready")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "ready"
    assert data["checks"] == {"app": True, "services": True, "llm_configured": True}


@pytest.mark.asyncio
async def test_readiness_check_after_shutdown(
    async_client: AsyncClient, container: ServiceContainer
) -> None:
    await container.close()

    response = await async_client.get("/api/v1/health/ready")

    data = response.json()
    assert data["status"] == "not_ready"
    assert data["checks"]["services"] is False


@pytest.mark.asyncio
async def test_liveness_check(async_client: AsyncClient) -> None:
    """Test liveness check endpoint."""
    response = await async_client.get("/api/v1/health/live")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "alive"


@pytest.mark.asyncio
async def test_root_endpoint(async_client: AsyncClient) -> None:
    """Test root endpoint."""
    response = await async_client.get("/")
    assert response.status_code == 200

    data = response.json()
    assert "name" in data
    assert "version" in data


@pytest.mark.asyncio
async def test_closed_container_rejects_ai_requests(
    async_client: AsyncClient, container: ServiceContainer
) -> None:
    await container.close()

    response = await async_client.get("/api/v1/ai/metrics")

    assert response.status_code == 500
    assert response.json()["error"]["code"] == "CONFIGURATION_ERROR"


@pytest.mark.asyncio
async def test_request_id_is_echoed(async_client: AsyncClient) -> None:
    response = await async_client.get("/api/v1/health", headers={"X-Request-ID": "req-abc"})

    assert response.headers["X-Request-ID"] == "req-abc"


@pytest.mark.asyncio
async def test_request_id_is_generated(async_client: AsyncClient) -> None:
    first = await async_client.get("/api/v1/health/live")
    second = await async_client.get("/api/v1/health/live")

    assert first.headers["X-Request-ID"].startswith("req_")
    assert first.headers["X-Request-ID"] != second.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_request_context_is_released(async_client: AsyncClient) -> None:
    await async_client.get("/api/v1/health")

    context = structlog.contextvars.get_contextvars()
    assert "request_id" not in context
    assert "path" not in context
