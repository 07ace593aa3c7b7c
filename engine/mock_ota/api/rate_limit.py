"""
API rate limiting.

Provides:
- Fixed-window per-client request limits with 429 responses
- Progressive slow-down for clients that keep calling within a window
- Trusted client addresses that bypass both
"""

import asyncio
import math
import time
from collections import defaultdict
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any

from fastapi import Request, Response

from mock_ota.config import Settings
from mock_ota.errors import RateLimitExceeded
from mock_ota.logging import get_logger

logger = get_logger(__name__)

SleepFn = Callable[[float], Awaitable[Any]]


@dataclass
class RateLimitState:
    """Request count for one client in its current window."""

    window_start: float | None = None
    request_count: int = 0


def get_client_id(request: Request) -> str:
    """Get client ID from request (IP-based)."""
    # Use X-Forwarded-For if behind proxy
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class _WindowCounter:
    """Per-client fixed-window counters shared by the limiters."""

    def __init__(self, window_s: float, clock: Callable[[], float]):
        self._window_s = window_s
        self._clock = clock
        self._clients: dict[str, RateLimitState] = defaultdict(RateLimitState)

    def hit(self, client_id: str) -> RateLimitState:
        """Count one request and return the client's window state."""
        now = self._clock()
        state = self._clients[client_id]
        if state.window_start is None or now - state.window_start >= self._window_s:
            state.window_start = now
            state.request_count = 0
        state.request_count += 1
        return state

    def reset_in(self, state: RateLimitState) -> float:
        start = state.window_start if state.window_start is not None else self._clock()
        return max(0.0, start + self._window_s - self._clock())

    def clear(self) -> None:
        self._clients.clear()

    def __len__(self) -> int:
        return len(self._clients)


class APIRateLimiter:
    """
    API rate limiter with per-client limiting.

    Each client may make ``max_requests`` requests per window. The
    request that goes over the limit is rejected with 429 and a
    ``Retry-After`` header until the window rolls over.
    """

    def __init__(
        self,
        max_requests: int,
        window_s: float,
        name: str = "api",
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize rate limiter.

        Args:
            max_requests: Requests allowed per client per window
            window_s: Window length in seconds
            name: Name for logging
            clock: Monotonic clock in seconds, replaced in tests
        """
        self._max_requests = max_requests
        self._window_s = window_s
        self._name = name
        self._counter = _WindowCounter(window_s, clock)

        # Stats
        self._total_requests = 0
        self._rejected_requests = 0

    def check(self, client_id: str) -> dict[str, str]:
        """
        Count a request, raise 429 if the client is over its limit.

        Args:
            client_id: Client identifier (e.g., IP address)

        Returns:
            Standard ``RateLimit-*`` headers describing the client's quota

        Raises:
            RateLimitExceeded: 429 if rate limit exceeded
        """
        self._total_requests += 1
        state = self._counter.hit(client_id)
        reset_s = math.ceil(self._counter.reset_in(state))
        headers = {
            "RateLimit-Limit": str(self._max_requests),
            "RateLimit-Remaining": str(max(0, self._max_requests - state.request_count)),
            "RateLimit-Reset": str(reset_s),
        }

        if state.request_count > self._max_requests:
            self._rejected_requests += 1
            logger.warning(
                "%s rate limit exceeded for %s (retry after %ds)",
                self._name,
                client_id,
                reset_s,
            )
            raise RateLimitExceeded(
                f"Too many {self._name} requests from this client, "
                f"please try again in {reset_s} seconds",
                details={"limit": self._max_requests, "retryAfter": reset_s},
                headers={**headers, "Retry-After": str(max(1, reset_s))},
            )

        return headers

    def reset(self) -> None:
        """Forget every client's window."""
        self._counter.clear()

    def get_stats(self) -> dict[str, Any]:
        """Get rate limiter statistics."""
        return {
            "name": self._name,
            "max_requests": self._max_requests,
            "window_s": self._window_s,
            "total_requests": self._total_requests,
            "rejected_requests": self._rejected_requests,
            "rejection_rate": (
                self._rejected_requests / self._total_requests * 100
                if self._total_requests > 0
                else 0
            ),
            "active_clients": len(self._counter),
        }


class SpeedLimiter:
    """
    Progressive slow-down.

    The first ``delay_after`` requests of a client's window run at full
    speed; each one after that waits ``delay_ms`` longer than the last,
    up to ``max_delay_ms``.
    """

    def __init__(
        self,
        delay_after: int,
        delay_ms: float,
        max_delay_ms: float,
        window_s: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: SleepFn = asyncio.sleep,
    ):
        self._delay_after = delay_after
        self._delay_ms = delay_ms
        self._max_delay_ms = max_delay_ms
        self._counter = _WindowCounter(window_s, clock)
        self._sleep = sleep

    def delay_for(self, client_id: str) -> float:
        """Count a request and return the delay it should wait, in ms."""
        state = self._counter.hit(client_id)
        over = state.request_count - self._delay_after
        if over <= 0:
            return 0.0
        return min(over * self._delay_ms, self._max_delay_ms)

    async def throttle(self, client_id: str) -> float:
        delay_ms = self.delay_for(client_id)
        if delay_ms > 0:
            logger.debug("Slowing %s down by %.0fms", client_id, delay_ms)
            await self._sleep(delay_ms / 1000.0)
        return delay_ms

    def reset(self) -> None:
        self._counter.clear()


class RateLimits:
    """The limiters guarding the provider and webhook APIs."""

    def __init__(
        self,
        general: APIRateLimiter,
        webhook: APIRateLimiter,
        speed: SpeedLimiter,
        trusted: Iterable[str] = (),
        enabled: bool = True,
    ):
        self.general = general
        self.webhook = webhook
        self.speed = speed
        self.trusted = frozenset(trusted)
        self.enabled = enabled

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        clock: Callable[[], float] = time.monotonic,
        sleep: SleepFn = asyncio.sleep,
    ) -> "RateLimits":
        return cls(
            general=APIRateLimiter(
                settings.rate_limit_max_requests,
                settings.rate_limit_window_ms / 1000,
                name="API",
                clock=clock,
            ),
            webhook=APIRateLimiter(
                settings.webhook_rate_limit_max_requests,
                settings.webhook_rate_limit_window_ms / 1000,
                name="webhook",
                clock=clock,
            ),
            speed=SpeedLimiter(
                settings.speed_limit_delay_after,
                settings.speed_limit_delay_ms,
                settings.speed_limit_max_delay_ms,
                settings.speed_limit_window_ms / 1000,
                clock=clock,
                sleep=sleep,
            ),
            trusted=settings.rate_limit_trusted_ips,
            enabled=settings.rate_limit_enabled,
        )

    async def enforce(self, request: Request, response: Response, webhook: bool = False) -> None:
        """
        Apply the general limit, the webhook limit when asked, then slow-down.

        Quota headers of the strictest limit checked are set on the response.

        Raises:
            RateLimitExceeded: The client is over a limit
        """
        if not self.enabled:
            return
        client_id = get_client_id(request)
        if client_id in self.trusted:
            return

        headers = self.general.check(client_id)
        if webhook:
            headers = self.webhook.check(client_id)
        response.headers.update(headers)

        await self.speed.throttle(client_id)

    def get_stats(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "general": self.general.get_stats(),
            "webhook": self.webhook.get_stats(),
        }
