"""
Performance metrics aggregator.

Process-wide request statistics:
- Monotonic counters (total / successful / failed)
- Bounded ring buffers of response times and request timestamps
- Windowed request rates and response-time percentiles
- Health verdict against fixed thresholds

All mutation happens under a single lock so counters and buffers stay
consistent when requests are recorded from many tasks or threads.
"""

import asyncio
import math
import os
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Any

from mock_ota.errors import ValidationError
from mock_ota.logging import get_logger
from mock_ota.simulation.random_source import RandomSource, create_random_source

logger = get_logger(__name__)

MAX_ERROR_RATE = 10.0  # percent
MAX_RESPONSE_TIME_MS = 2000.0
MIN_REQUESTS_PER_SECOND = 0.1

ONE_MINUTE_S = 60.0
FIVE_MINUTES_S = 300.0
ONE_HOUR_S = 3600.0


def percentile(values: list[float], pct: float) -> float:
    """
    Nearest-rank percentile.

    Sorts a copy of ``values`` and selects index ``ceil(pct/100 * n) - 1``.
    Returns 0 for an empty list.
    """
    if not values:
        return 0.0
    ordered = sorted(values)
    index = max(0, math.ceil(pct / 100 * len(ordered)) - 1)
    return ordered[index]


@dataclass
class MetricsSnapshot:
    """Counters and derived statistics at a point in time."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    average_response_time: float = 0.0
    requests_per_second: float = 0.0
    error_rate: float = 0.0
    last_updated: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalRequests": self.total_requests,
            "successfulRequests": self.successful_requests,
            "failedRequests": self.failed_requests,
            "averageResponseTime": self.average_response_time,
            "requestsPerSecond": self.requests_per_second,
            "errorRate": self.error_rate,
            "lastUpdated": self.last_updated.isoformat() if self.last_updated else None,
        }


@dataclass
class LoadSimulation:
    """Handle describing a running synthetic load."""

    duration_ms: float
    requests_per_second: float
    estimated_total_requests: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": "Load simulation started",
            "duration": self.duration_ms,
            "requestsPerSecond": self.requests_per_second,
            "estimatedTotalRequests": self.estimated_total_requests,
        }


class MetricsAggregator:
    """
    Thread-safe request metrics.

    Derived statistics are recomputed on every recorded request.
    """

    def __init__(
        self,
        response_time_capacity: int = 1000,
        timestamp_capacity: int = 10000,
        max_load_duration_ms: float = 300000,
        max_load_rps: float = 100,
        clock: Callable[[], float] = time.time,
        rng: RandomSource | None = None,
    ) -> None:
        """
        Initialize aggregator.

        Args:
            response_time_capacity: Response-time samples retained
            timestamp_capacity: Request timestamps retained
            max_load_duration_ms: Upper bound accepted by simulate_load
            max_load_rps: Upper bound accepted by simulate_load
            clock: Wall clock in seconds, replaced in tests
            rng: Random source for synthetic load
        """
        self._lock = threading.Lock()
        self._clock = clock
        self._rng = rng or create_random_source()
        self._max_load_duration_ms = max_load_duration_ms
        self._max_load_rps = max_load_rps
        self._started_at = time.monotonic()

        self._response_times: deque[float] = deque(maxlen=response_time_capacity)
        self._timestamps: deque[float] = deque(maxlen=timestamp_capacity)
        self._metrics = MetricsSnapshot(last_updated=datetime.now(UTC))

        self._load_tasks: set[asyncio.Task[None]] = set()

    # -------------------------------------------------------------------------
    # Recording
    # -------------------------------------------------------------------------

    def record_request(self, success: bool, elapsed_ms: float) -> None:
        """Record the outcome of one request."""
        with self._lock:
            self._metrics.total_requests += 1
            if success:
                self._metrics.successful_requests += 1
            else:
                self._metrics.failed_requests += 1

            self._response_times.append(elapsed_ms)
            self._timestamps.append(self._clock())
            self._recompute()

    def _recompute(self) -> None:
        # Caller holds the lock
        m = self._metrics
        if self._response_times:
            m.average_response_time = sum(self._response_times) / len(self._response_times)
        else:
            m.average_response_time = 0.0

        m.requests_per_second = self._count_since(self._clock() - ONE_MINUTE_S) / 60

        if m.total_requests > 0:
            m.error_rate = m.failed_requests / m.total_requests * 100
        else:
            m.error_rate = 0.0

        m.last_updated = datetime.now(UTC)

    def _count_since(self, cutoff: float) -> int:
        return sum(1 for ts in self._timestamps if ts > cutoff)

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    def snapshot(self) -> MetricsSnapshot:
        """Copy of the current counters and derived statistics."""
        with self._lock:
            return self._current()

    def _current(self) -> MetricsSnapshot:
        # Caller holds the lock; the rate is refreshed on the copy only
        return replace(
            self._metrics,
            requests_per_second=self._count_since(self._clock() - ONE_MINUTE_S) / 60,
        )

    def response_times(self) -> list[float]:
        """Retained response-time samples, oldest first."""
        with self._lock:
            return list(self._response_times)

    def request_timestamps(self) -> list[float]:
        """Retained request timestamps, oldest first."""
        with self._lock:
            return list(self._timestamps)

    def detailed_snapshot(self) -> dict[str, Any]:
        """
        Snapshot plus windowed counts and response-time distribution.
        """
        with self._lock:
            now = self._clock()
            samples = list(self._response_times)
            current = self._current()
            base = current.to_dict()

            detailed = {
                "requestsPerMinute": self._count_since(now - ONE_MINUTE_S),
                "requestsPerFiveMinutes": self._count_since(now - FIVE_MINUTES_S),
                "requestsPerHour": self._count_since(now - ONE_HOUR_S),
            }
            average = self._metrics.average_response_time

        detailed["responseTimeStats"] = {
            "min": min(samples) if samples else 0,
            "max": max(samples) if samples else 0,
            "average": average,
            "p50": percentile(samples, 50),
            "p95": percentile(samples, 95),
            "p99": percentile(samples, 99),
        }
        detailed["uptime"] = time.monotonic() - self._started_at
        detailed["pid"] = os.getpid()

        return {**base, "detailed": detailed}

    def health_status(self) -> dict[str, Any]:
        """Health verdict against error-rate, latency and throughput thresholds."""
        metrics = self.snapshot()
        is_healthy = (
            metrics.error_rate <= MAX_ERROR_RATE
            and metrics.average_response_time <= MAX_RESPONSE_TIME_MS
            and metrics.requests_per_second >= MIN_REQUESTS_PER_SECOND
        )
        return {
            "isHealthy": is_healthy,
            "status": "healthy" if is_healthy else "unhealthy",
            "metrics": metrics.to_dict(),
            "thresholds": {
                "maxErrorRate": MAX_ERROR_RATE,
                "maxResponseTime": MAX_RESPONSE_TIME_MS,
                "minRequestsPerSecond": MIN_REQUESTS_PER_SECOND,
            },
            "timestamp": datetime.now(UTC).isoformat(),
        }

    def reset(self) -> None:
        """Zero all counters and clear both buffers."""
        with self._lock:
            self._metrics = MetricsSnapshot(last_updated=datetime.now(UTC))
            self._response_times.clear()
            self._timestamps.clear()
        logger.info("Performance metrics reset")

    # -------------------------------------------------------------------------
    # Synthetic load
    # -------------------------------------------------------------------------

    def simulate_load(self, duration_ms: float, requests_per_second: float) -> LoadSimulation:
        """
        Record synthetic requests in the background.

        Each synthetic request succeeds with 90% probability and takes
        100-1100ms. Must be called from a running event loop; returns
        immediately.

        Raises:
            ValidationError: Duration or rate missing, non-positive or too large
        """
        if duration_ms is None or requests_per_second is None:
            raise ValidationError("Duration and requestsPerSecond are required")
        if duration_ms <= 0 or requests_per_second <= 0:
            raise ValidationError(
                "Duration and requestsPerSecond must be positive numbers",
                details={"duration": duration_ms, "requestsPerSecond": requests_per_second},
            )
        if duration_ms > self._max_load_duration_ms:
            raise ValidationError(
                f"Duration cannot exceed {int(self._max_load_duration_ms)}ms",
                details={"duration": duration_ms, "max": self._max_load_duration_ms},
            )
        if requests_per_second > self._max_load_rps:
            raise ValidationError(
                f"Requests per second cannot exceed {self._max_load_rps:g}",
                details={"requestsPerSecond": requests_per_second, "max": self._max_load_rps},
            )

        task = asyncio.get_running_loop().create_task(
            self._run_load(duration_ms, requests_per_second)
        )
        self._load_tasks.add(task)
        task.add_done_callback(self._load_tasks.discard)

        logger.info(
            "Simulating load: %.1f requests/second for %.0fms",
            requests_per_second,
            duration_ms,
        )
        return LoadSimulation(
            duration_ms=duration_ms,
            requests_per_second=requests_per_second,
            estimated_total_requests=math.floor(duration_ms / 1000 * requests_per_second),
        )

    async def _run_load(self, duration_ms: float, requests_per_second: float) -> None:
        interval = 1.0 / requests_per_second
        deadline = time.monotonic() + duration_ms / 1000.0

        while time.monotonic() < deadline:
            success = self._rng.random() > 0.1
            elapsed_ms = self._rng.random() * 1000 + 100
            self.record_request(success, elapsed_ms)
            await asyncio.sleep(interval)

        logger.info("Load simulation completed")

    @property
    def active_load_simulations(self) -> int:
        return len(self._load_tasks)

    async def aclose(self) -> None:
        """Cancel any running load simulations."""
        tasks = list(self._load_tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._load_tasks.clear()
