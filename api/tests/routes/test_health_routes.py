"""Unit tests for health check routes."""

import pytest
from httpx import AsyncClient

from routes.health_routes import health


@pytest.mark.unit
class TestHealthEndpoint:
    """Tests for GET /health."""

    async def test_health_returns_healthy(self):
        result = await health()
        assert result.status == "healthy"
        assert result.service == "certificate-export-api"

    async def test_health_over_http(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy",
            "service": "certificate-export-api",
        }
        assert "x-request-duration-ms" in response.headers

    def test_wide_event_version_matches_app(self):
        import core.middleware
        from main import app

        assert core.middleware.SERVICE_VERSION == app.version == "1.0.0"
