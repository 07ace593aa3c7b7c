"""
Tests for per-client rate limiting.

Tests:
- Fixed-window counting, rejection and window roll-over
- Progressive slow-down
- 429 envelopes on the provider and webhook APIs
- Trusted clients and the master switch
"""

from collections.abc import Generator
from typing import Any

import pytest
from fastapi.testclient import TestClient

from mock_ota.api.rate_limit import APIRateLimiter, RateLimits, SpeedLimiter
from mock_ota.errors import RateLimitExceeded
from mock_ota.main import create_app
from mock_ota.services import build_services
from tests.api_fixtures import FakeClock, RecordingSleep, make_settings


class TestAPIRateLimiter:
    """Window counting."""

    def test_allows_up_to_limit(self) -> None:
        limiter = APIRateLimiter(max_requests=3, window_s=60, clock=FakeClock(100.0))
        remaining = [limiter.check("1.2.3.4")["RateLimit-Remaining"] for _ in range(3)]
        assert remaining == ["2", "1", "0"]

    def test_rejects_over_limit(self) -> None:
        clock = FakeClock(100.0)
        limiter = APIRateLimiter(max_requests=2, window_s=60, name="API", clock=clock)
        limiter.check("1.2.3.4")
        clock.advance(15)
        limiter.check("1.2.3.4")

        with pytest.raises(RateLimitExceeded) as exc_info:
            limiter.check("1.2.3.4")

        error = exc_info.value
        assert error.status_code == 429
        assert error.code == "RATE_LIMIT_EXCEEDED"
        assert error.headers["Retry-After"] == "45"
        assert error.details == {"limit": 2, "retryAfter": 45}
        assert limiter.get_stats()["rejected_requests"] == 1

    def test_clients_are_independent(self) -> None:
        limiter = APIRateLimiter(max_requests=1, window_s=60, clock=FakeClock(0.0))
        limiter.check("10.0.0.1")
        limiter.check("10.0.0.2")
        assert limiter.get_stats()["active_clients"] == 2

    def test_window_rolls_over(self) -> None:
        clock = FakeClock(0.0)
        limiter = APIRateLimiter(max_requests=1, window_s=60, clock=clock)
        limiter.check("1.2.3.4")
        with pytest.raises(RateLimitExceeded):
            limiter.check("1.2.3.4")

        clock.advance(60)
        assert limiter.check("1.2.3.4")["RateLimit-Remaining"] == "0"


class TestSpeedLimiter:
    """Progressive slow-down."""

    @pytest.mark.asyncio
    async def test_delay_grows_after_allowance_and_is_capped(self) -> None:
        sleep = RecordingSleep()
        limiter = SpeedLimiter(
            delay_after=2,
            delay_ms=200,
            max_delay_ms=500,
            window_s=60,
            clock=FakeClock(0.0),
            sleep=sleep,
        )

        delays = [await limiter.throttle("1.2.3.4") for _ in range(6)]

        assert delays == [0.0, 0.0, 200, 400, 500, 500]
        assert sleep.calls == [0.2, 0.4, 0.5, 0.5]


def limited_client(**overrides: Any) -> Generator[TestClient, None, None]:
    settings = make_settings(**overrides)
    services = build_services(settings)
    limits = RateLimits.from_settings(settings, sleep=RecordingSleep())
    app = create_app(settings, services, limits)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def small_limit_client() -> Generator[TestClient, None, None]:
    yield from limited_client(rate_limit_max_requests=3, webhook_rate_limit_max_requests=2)


class TestRateLimitedRoutes:
    """Limits enforced on the provider and webhook routers."""

    def test_provider_requests_over_limit_get_429(self, small_limit_client: TestClient) -> None:
        for _ in range(3):
            response = small_limit_client.get("/api/airbnb/properties")
            assert response.status_code == 200
        assert response.headers["RateLimit-Remaining"] == "0"

        response = small_limit_client.get("/api/expedia/properties")

        assert response.status_code == 429
        assert int(response.headers["Retry-After"]) >= 1
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "RATE_LIMIT_EXCEEDED"
        assert body["path"] == "/api/expedia/properties"

    def test_rejections_count_as_failures(self, small_limit_client: TestClient) -> None:
        for _ in range(4):
            small_limit_client.get("/api/vrbo/properties")

        data = small_limit_client.get("/api/metrics/performance").json()["data"]
        assert data["failedRequests"] == 1

    def test_webhook_limit_is_stricter(self, small_limit_client: TestClient) -> None:
        payload = {"event_type": "booking.created", "data": {"bookingId": "b1"}}
        assert small_limit_client.post("/api/webhooks/agoda", json=payload).status_code == 200
        assert small_limit_client.post("/api/webhooks/agoda", json=payload).status_code == 200

        response = small_limit_client.post("/api/webhooks/agoda", json=payload)

        assert response.status_code == 429
        assert response.json()["error"]["code"] == "RATE_LIMIT_EXCEEDED"
        assert "webhook" in response.json()["error"]["message"]

    def test_forwarded_clients_counted_separately(self, small_limit_client: TestClient) -> None:
        for _ in range(3):
            small_limit_client.get("/api/airbnb/properties", headers={"X-Forwarded-For": "10.0.0.1"})

        response = small_limit_client.get(
            "/api/airbnb/properties", headers={"X-Forwarded-For": "10.0.0.2"}
        )
        assert response.status_code == 200

    def test_operational_endpoints_not_limited(self, small_limit_client: TestClient) -> None:
        for _ in range(5):
            assert small_limit_client.get("/health").status_code == 200

    def test_trusted_client_bypasses_limit(self) -> None:
        for client in limited_client(rate_limit_max_requests=1, rate_limit_trusted_ips=["testclient"]):
            for _ in range(3):
                assert client.get("/api/airbnb/properties").status_code == 200

    def test_disabled_limits(self) -> None:
        for client in limited_client(rate_limit_max_requests=1, rate_limit_enabled=False):
            for _ in range(3):
                response = client.get("/api/airbnb/properties")
                assert response.status_code == 200
                assert "RateLimit-Limit" not in response.headers
