"""
Tests for health, config and root endpoints.
"""

from fastapi.testclient import TestClient

from mock_ota import __version__


class TestHealthEndpoint:
    """Tests for /health endpoint."""

    def test_health_returns_200(self, api_client: TestClient) -> None:
        """Health endpoint should return 200 OK."""
        response = api_client.get("/health")
        assert response.status_code == 200

    def test_health_returns_status_and_version(self, api_client: TestClient) -> None:
        data = api_client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["version"] == __version__
        assert data["environment"] == "test"

    def test_health_returns_uptime(self, api_client: TestClient) -> None:
        """Health endpoint should return uptime."""
        data = api_client.get("/health").json()
        assert isinstance(data["uptime_seconds"], (int, float))
        assert data["uptime_seconds"] >= 0
        assert "T" in data["time"]

    def test_health_summarises_services(self, api_client: TestClient) -> None:
        services = api_client.get("/health").json()["services"]
        assert services["websocket"]["isInitialized"] is True
        assert services["websocket"]["connectedClients"] == 0
        assert services["webhooks"]["total"] == 0
        assert services["data"]["properties"] == 0
        assert services["rateLimits"]["enabled"] is True
        assert services["rateLimits"]["general"]["max_requests"] == 1000


class TestDetailedHealth:
    """Tests for /api/health routes."""

    def test_liveness(self, api_client: TestClient) -> None:
        response = api_client.get("/api/health/liveness")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "alive"
        assert data["pid"] > 0

    def test_readiness_requires_traffic(self, api_client: TestClient) -> None:
        """Without traffic the throughput floor fails readiness."""
        response = api_client.get("/api/health/readiness")
        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "not_ready"
        assert data["services"] == {"websocket": True, "performance": False}

    def test_readiness_with_traffic(self, api_client: TestClient) -> None:
        for _ in range(10):
            api_client.get("/health")

        response = api_client.get("/api/health/readiness")
        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    def test_detailed_health(self, api_client: TestClient) -> None:
        for _ in range(10):
            api_client.get("/health")

        data = api_client.get("/api/health/detailed").json()
        assert data["status"] == "healthy"
        assert data["version"] == __version__
        assert set(data["services"]) == {"websocket", "performance", "webhooks", "data"}

    def test_services_envelope(self, api_client: TestClient) -> None:
        body = api_client.get("/api/health/services").json()
        assert body["success"] is True
        assert body["data"]["websocket"]["connectedClients"] == 0
        assert "timestamp" in body


class TestConfigEndpoint:
    """Tests for /config endpoint."""

    def test_config_returns_rates(self, api_client: TestClient) -> None:
        response = api_client.get("/config")
        assert response.status_code == 200
        data = response.json()
        assert data["simulation_enabled"] is False
        assert "timeout_rate" in data

    def test_config_does_not_expose_secrets(self, api_client: TestClient) -> None:
        """Config endpoint should not expose sensitive values."""
        data = api_client.get("/config").json()
        assert "password" not in str(data).lower()
        assert "secret" not in str(data).lower()


class TestRootEndpoint:
    """Tests for / endpoint."""

    def test_root_returns_api_info(self, api_client: TestClient) -> None:
        """Root endpoint should return API information."""
        data = api_client.get("/").json()
        assert data["name"] == "Mock OTA Gateway"
        assert data["version"] == __version__
        assert set(data["providers"]) == {"airbnb", "booking", "expedia", "agoda", "vrbo"}
