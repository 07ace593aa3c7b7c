"""
Shared fixtures and test doubles for the gateway tests.
"""

import random
from collections.abc import Generator, Sequence
from typing import Any, TypeVar

import pytest
from fastapi.testclient import TestClient

from mock_ota.config import AppEnvironment, Settings
from mock_ota.domain.provider import Provider
from mock_ota.main import create_app
from mock_ota.services import Services, build_services
from mock_ota.simulation.pipeline import simulation_pipeline, webhook_intake_pipeline

T = TypeVar("T")


class ScriptedRandom:
    """
    RandomSource whose ``random()`` values are scripted.

    Scripted values are consumed first, then ``fallback`` is returned
    forever. A fallback of 0.0 makes every non-zero rate fire; 0.999
    keeps every rate below 100 silent. ``uniform``, ``choice`` and
    ``randrange`` come from a seeded generator.
    """

    def __init__(self, values: Sequence[float] = (), fallback: float = 0.999, seed: int = 7):
        self._values = list(values)
        self.fallback = fallback
        self._rng = random.Random(seed)
        self.calls = 0

    def random(self) -> float:
        self.calls += 1
        if self._values:
            return self._values.pop(0)
        return self.fallback

    def uniform(self, a: float, b: float) -> float:
        return self._rng.uniform(a, b)

    def choice(self, seq: Sequence[T]) -> T:
        return self._rng.choice(seq)

    def randrange(self, stop: int) -> int:
        return self._rng.randrange(stop)


class FakeClock:
    """Manually advanced clock (works for floats and datetimes)."""

    def __init__(self, start: Any):
        self.now = start

    def __call__(self) -> Any:
        return self.now

    def advance(self, delta: Any) -> None:
        self.now = self.now + delta


class RecordingSleep:
    """Awaitable sleep that records requested durations and returns at once."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def make_settings(**overrides: Any) -> Settings:
    """Quiet, deterministic settings; simulation disabled unless overridden."""
    values: dict[str, Any] = {
        "env": AppEnvironment.TEST,
        "log_level": "WARNING",
        "simulation_enabled": False,
        "simulation_seed": 1234,
        "seed_on_startup": False,
        "webhook_processing_delay_ms": 0,
        "webhook_processing_failure_rate": 0.0,
    }
    values.update(overrides)
    return Settings(**values)


def instant_pipelines(services: Services, sleep: RecordingSleep | None = None) -> RecordingSleep:
    """Rebuild every pipeline on ``services`` with a sleep that never waits."""
    sleep = sleep or RecordingSleep()
    for provider in Provider:
        services.pipelines[provider] = simulation_pipeline(
            provider,
            settings=services.settings,
            selector=services.selector,
            rng=services.rng,
            sleep=sleep,
            realism=True,
        )
    services.webhook_pipeline = webhook_intake_pipeline(
        settings=services.settings,
        rng=services.rng,
        sleep=sleep,
    )
    return sleep


@pytest.fixture
def test_settings() -> Settings:
    """Settings with simulation and seeding disabled."""
    return make_settings()


@pytest.fixture
def services(test_settings: Settings) -> Services:
    """Isolated service container."""
    return build_services(test_settings)


@pytest.fixture
def api_client(services: Services) -> Generator[TestClient, None, None]:
    """TestClient running the full lifespan against isolated services."""
    app = create_app(services.settings, services)
    with TestClient(app) as client:
        yield client
