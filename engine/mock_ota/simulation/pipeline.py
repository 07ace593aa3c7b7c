"""
Request simulation pipeline.

Degrades or fails requests before the business handler runs. Each stage
is a decision function over the request context and a random source; the
pipeline applies the decisions in a fixed order:

1. Header injection (api version, request id, cache headers)
2. Rate-limit headers
3. Network latency
4. Provider (or generic) delay
5. Timeout (request hangs until the transport bound)
6. Connectivity failure
7. Random generic error
8. Provider error
9. Webhook delivery failure (webhook paths only)
10. Data inconsistency

Only the first stage that decides to terminate has effect; headers
collected before it are still attached to the error response.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from fastapi import Request, Response

from mock_ota.config import Settings
from mock_ota.domain.provider import DelayWindow, Provider, delay_window_for
from mock_ota.errors import SimulatedFailure, SimulatedTimeout
from mock_ota.logging import get_logger
from mock_ota.simulation.catalog import (
    CONNECTIVITY_FAILURE,
    DATA_INCONSISTENCY,
    ErrorDescriptor,
    ErrorSelector,
)
from mock_ota.simulation.random_source import (
    RandomSource,
    bernoulli,
    create_random_source,
    random_token,
)

logger = get_logger(__name__)

API_VERSION = "1.0.0"

SleepFn = Callable[[float], Awaitable[Any]]


class StageAction(str, Enum):
    """What the pipeline should do after a stage decides."""

    PASS = "pass"
    DELAY = "delay"
    TERMINATE = "terminate"
    HANG = "hang"


@dataclass(frozen=True)
class RequestContext:
    """The parts of a request the stages look at."""

    method: str
    path: str
    provider: Provider | None = None

    @property
    def is_webhook(self) -> bool:
        return "/webhook" in self.path


@dataclass
class StageDecision:
    """Outcome of a single stage."""

    action: StageAction = StageAction.PASS
    delay_ms: float = 0.0
    headers: dict[str, str] = field(default_factory=dict)
    error: ErrorDescriptor | None = None

    def __post_init__(self) -> None:
        if self.action == StageAction.TERMINATE and self.error is None:
            raise ValueError("A terminating decision needs an error descriptor")

    @classmethod
    def passthrough(cls, headers: dict[str, str] | None = None) -> "StageDecision":
        return cls(headers=dict(headers or {}))

    @classmethod
    def delay(cls, delay_ms: float) -> "StageDecision":
        return cls(action=StageAction.DELAY, delay_ms=delay_ms)

    @classmethod
    def terminate(cls, error: ErrorDescriptor) -> "StageDecision":
        return cls(action=StageAction.TERMINATE, error=error)

    @classmethod
    def hang(cls) -> "StageDecision":
        return cls(action=StageAction.HANG)


class PipelineStage(ABC):
    """A single probabilistic decision unit."""

    name: str = "stage"

    @abstractmethod
    def decide(self, ctx: RequestContext, rng: RandomSource) -> StageDecision:
        """Decide what happens to this request."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class HeaderInjectionStage(PipelineStage):
    """Attach informational API headers. Never blocks."""

    name = "headers"

    def __init__(self, api_version: str = API_VERSION) -> None:
        self.api_version = api_version

    def decide(self, ctx: RequestContext, rng: RandomSource) -> StageDecision:
        return StageDecision.passthrough(
            {
                "X-API-Version": self.api_version,
                "X-Request-ID": random_token(rng),
                "Cache-Control": "no-cache, no-store, must-revalidate",
                "Pragma": "no-cache",
                "Expires": "0",
            }
        )


class RateLimitHeaderStage(PipelineStage):
    """Attach a synthetic rate-limit quota."""

    name = "rate_limit_headers"

    def __init__(
        self,
        limit: int = 1000,
        reset_window_s: int = 15 * 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.limit = limit
        self.reset_window_s = reset_window_s
        self._clock = clock

    def decide(self, ctx: RequestContext, rng: RandomSource) -> StageDecision:
        return StageDecision.passthrough(
            {
                "X-RateLimit-Limit": str(self.limit),
                "X-RateLimit-Remaining": str(rng.randrange(self.limit)),
                "X-RateLimit-Reset": str(int(self._clock() + self.reset_window_s)),
            }
        )


class NetworkLatencyStage(PipelineStage):
    """Base latency plus uniform jitter."""

    name = "network_latency"

    def __init__(self, base_ms: float = 50.0, jitter_ms: float = 100.0) -> None:
        self.base_ms = base_ms
        self.jitter_ms = jitter_ms

    def decide(self, ctx: RequestContext, rng: RandomSource) -> StageDecision:
        return StageDecision.delay(self.base_ms + rng.random() * self.jitter_ms)


class ProviderDelayStage(PipelineStage):
    """Uniform delay within a provider's window."""

    name = "provider_delay"

    def __init__(self, window: DelayWindow) -> None:
        self.window = window

    def decide(self, ctx: RequestContext, rng: RandomSource) -> StageDecision:
        return StageDecision.delay(rng.uniform(self.window.min_ms, self.window.max_ms))


class _RateStage(PipelineStage):
    """Stage firing with a percentage probability."""

    def __init__(self, rate: float) -> None:
        self.rate = rate

    def __repr__(self) -> str:
        return f"{type(self).__name__}(rate={self.rate})"


class TimeoutStage(_RateStage):
    """Leave the request hanging; nothing downstream runs."""

    name = "timeout"

    def decide(self, ctx: RequestContext, rng: RandomSource) -> StageDecision:
        if bernoulli(rng, self.rate):
            return StageDecision.hang()
        return StageDecision.passthrough()


class ConnectivityFailureStage(_RateStage):
    name = "connectivity_failure"

    def decide(self, ctx: RequestContext, rng: RandomSource) -> StageDecision:
        if bernoulli(rng, self.rate):
            return StageDecision.terminate(CONNECTIVITY_FAILURE)
        return StageDecision.passthrough()


class RandomErrorStage(_RateStage):
    """Fail with a uniformly chosen generic catalog error."""

    name = "random_error"

    def __init__(self, rate: float, selector: ErrorSelector) -> None:
        super().__init__(rate)
        self.selector = selector

    def decide(self, ctx: RequestContext, rng: RandomSource) -> StageDecision:
        if bernoulli(rng, self.rate):
            return StageDecision.terminate(self.selector.random_error())
        return StageDecision.passthrough()


class ProviderErrorStage(_RateStage):
    """Fail with the provider's dedicated error, or a generic one."""

    name = "provider_error"

    def __init__(
        self,
        rate: float,
        selector: ErrorSelector,
        provider: Provider | None = None,
    ) -> None:
        super().__init__(rate)
        self.selector = selector
        self.provider = provider

    def decide(self, ctx: RequestContext, rng: RandomSource) -> StageDecision:
        if bernoulli(rng, self.rate):
            target = ctx.provider or self.provider
            return StageDecision.terminate(self.selector.provider_error(target))
        return StageDecision.passthrough()


class WebhookFailureStage(_RateStage):
    """Fail webhook deliveries; other paths always pass."""

    name = "webhook_failure"

    def __init__(self, rate: float, max_attempt: int = 3, retry_after_s: int = 30) -> None:
        super().__init__(rate)
        self.max_attempt = max_attempt
        self.retry_after_s = retry_after_s

    def decide(self, ctx: RequestContext, rng: RandomSource) -> StageDecision:
        if not ctx.is_webhook or not bernoulli(rng, self.rate):
            return StageDecision.passthrough()
        return StageDecision.terminate(
            ErrorDescriptor(
                code="WEBHOOK_DELIVERY_FAILED",
                message="Webhook delivery failed",
                status_code=500,
                details={
                    "reason": "endpoint_unavailable",
                    "retryAfter": self.retry_after_s,
                    "attempt": rng.randrange(self.max_attempt) + 1,
                },
            )
        )


class DataInconsistencyStage(_RateStage):
    name = "data_inconsistency"

    def decide(self, ctx: RequestContext, rng: RandomSource) -> StageDecision:
        if bernoulli(rng, self.rate):
            return StageDecision.terminate(DATA_INCONSISTENCY)
        return StageDecision.passthrough()


class SpecificErrorStage(_RateStage):
    """Fail with a named error kind (authentication, conflict, ...)."""

    name = "specific_error"

    def __init__(self, kind: str, rate: float, selector: ErrorSelector) -> None:
        super().__init__(rate)
        self.kind = kind
        self.selector = selector

    def decide(self, ctx: RequestContext, rng: RandomSource) -> StageDecision:
        if bernoulli(rng, self.rate):
            return StageDecision.terminate(self.selector.specific_error(self.kind))
        return StageDecision.passthrough()

    def __repr__(self) -> str:
        return f"SpecificErrorStage(kind={self.kind!r}, rate={self.rate})"


class SimulationPipeline:
    """
    Ordered stages applied to one request.

    Delays suspend only the calling task. A terminating stage raises
    SimulatedFailure; a hanging stage sleeps for the transport bound and
    then raises SimulatedTimeout.
    """

    def __init__(
        self,
        stages: Sequence[PipelineStage],
        rng: RandomSource,
        provider: Provider | None = None,
        sleep: SleepFn = asyncio.sleep,
        hang_s: float = 120.0,
    ) -> None:
        self.stages = list(stages)
        self.provider = provider
        self._rng = rng
        self._sleep = sleep
        self._hang_s = hang_s

    async def run(self, ctx: RequestContext) -> dict[str, str]:
        """
        Apply every stage in order.

        Returns:
            Headers collected from the stages

        Raises:
            SimulatedFailure: A stage terminated the request
            SimulatedTimeout: A stage left the request hanging
        """
        headers: dict[str, str] = {}

        for stage in self.stages:
            decision = stage.decide(ctx, self._rng)
            headers.update(decision.headers)

            if decision.action == StageAction.DELAY:
                logger.debug(
                    "Simulating %.1fms %s for %s %s",
                    decision.delay_ms,
                    stage.name,
                    ctx.method,
                    ctx.path,
                )
                await self._sleep(decision.delay_ms / 1000.0)

            elif decision.action == StageAction.TERMINATE:
                error = decision.error
                if error is None:
                    raise ValueError(f"Stage {stage.name} terminated without an error descriptor")
                logger.warning(
                    "Simulated %s for %s %s (stage=%s, status=%d)",
                    error.code,
                    ctx.method,
                    ctx.path,
                    stage.name,
                    error.status_code,
                )
                raise SimulatedFailure(
                    status_code=error.status_code,
                    code=error.code,
                    message=error.message,
                    details=error.details_dict(),
                    headers=headers,
                )

            elif decision.action == StageAction.HANG:
                logger.warning("Simulating timeout for %s %s", ctx.method, ctx.path)
                await self._sleep(self._hang_s)
                raise SimulatedTimeout(self._hang_s, headers)

        return headers

    async def apply(self, request: Request, response: Response) -> dict[str, str]:
        """Run the pipeline for an HTTP request and copy headers onto the response."""
        ctx = RequestContext(
            method=request.method,
            path=request.url.path,
            provider=self.provider,
        )
        headers = await self.run(ctx)
        for name, value in headers.items():
            response.headers[name] = value
        return headers


def simulation_pipeline(
    provider: Provider | str | None = None,
    *,
    settings: Settings,
    selector: ErrorSelector | None = None,
    rng: RandomSource | None = None,
    sleep: SleepFn = asyncio.sleep,
    realism: bool = False,
) -> SimulationPipeline:
    """
    Build the standard pipeline for a provider (or no provider).

    Args:
        provider: Target provider; None uses the generic delay window
        settings: Rates and transport bound
        selector: Error selector (defaults to one sharing ``rng``)
        rng: Random source (defaults to one seeded from settings)
        sleep: Awaitable sleep, replaced in tests
        realism: Use the fixed realism provider error rate

    Returns:
        Pipeline whose ``stages`` lists the stages in execution order
    """
    parsed = Provider.parse(provider)
    rng = rng or create_random_source(settings.simulation_seed)
    selector = selector or ErrorSelector(rng)

    stages: list[PipelineStage] = [HeaderInjectionStage(), RateLimitHeaderStage()]

    if settings.simulation_enabled:
        provider_rate = (
            settings.realism_provider_error_rate
            if realism
            else settings.effective_provider_error_rate
        )
        stages.extend(
            [
                NetworkLatencyStage(),
                ProviderDelayStage(delay_window_for(parsed)),
                TimeoutStage(settings.timeout_rate),
                ConnectivityFailureStage(settings.connectivity_failure_rate),
                RandomErrorStage(settings.error_simulation_rate, selector),
                ProviderErrorStage(provider_rate, selector, parsed),
                WebhookFailureStage(settings.webhook_failure_rate),
                DataInconsistencyStage(settings.inconsistency_rate),
            ]
        )

    return SimulationPipeline(
        stages,
        rng=rng,
        provider=parsed,
        sleep=sleep,
        hang_s=settings.timeout_hang_s,
    )


def webhook_intake_pipeline(
    *,
    settings: Settings,
    rng: RandomSource | None = None,
    sleep: SleepFn = asyncio.sleep,
) -> SimulationPipeline:
    """Headers plus delivery-failure injection for webhook intake endpoints."""
    rng = rng or create_random_source(settings.simulation_seed)
    stages: list[PipelineStage] = [HeaderInjectionStage(), RateLimitHeaderStage()]
    if settings.simulation_enabled:
        stages.append(WebhookFailureStage(settings.webhook_failure_rate))
    return SimulationPipeline(stages, rng=rng, sleep=sleep, hang_s=settings.timeout_hang_s)
