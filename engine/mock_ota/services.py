"""
Process-scoped service container.

Built once by the application factory and stored on ``app.state``;
tests build isolated instances the same way.
"""

import time
from dataclasses import dataclass, field

from mock_ota.broadcast.hub import BroadcastHub
from mock_ota.config import Settings
from mock_ota.domain.provider import Provider
from mock_ota.metrics.aggregator import MetricsAggregator
from mock_ota.simulation.catalog import ErrorSelector
from mock_ota.simulation.pipeline import (
    SimulationPipeline,
    simulation_pipeline,
    webhook_intake_pipeline,
)
from mock_ota.simulation.random_source import RandomSource, create_random_source
from mock_ota.store.record_store import RecordStore
from mock_ota.webhooks.queue import WebhookQueue


@dataclass
class Services:
    """Everything a request handler may need."""

    settings: Settings
    rng: RandomSource
    metrics: MetricsAggregator
    selector: ErrorSelector
    hub: BroadcastHub
    webhooks: WebhookQueue
    store: RecordStore
    pipelines: dict[Provider, SimulationPipeline]
    webhook_pipeline: SimulationPipeline
    started_at: float = field(default_factory=time.monotonic)

    @property
    def uptime_s(self) -> float:
        return time.monotonic() - self.started_at


def build_services(settings: Settings, rng: RandomSource | None = None) -> Services:
    """Construct every service from settings."""
    rng = rng or create_random_source(settings.simulation_seed)
    selector = ErrorSelector(rng)
    hub = BroadcastHub()

    metrics = MetricsAggregator(
        response_time_capacity=settings.metrics_response_time_capacity,
        timestamp_capacity=settings.metrics_timestamp_capacity,
        max_load_duration_ms=settings.load_max_duration_ms,
        max_load_rps=settings.load_max_rps,
        rng=rng,
    )

    pipelines = {
        provider: simulation_pipeline(
            provider,
            settings=settings,
            selector=selector,
            rng=rng,
            realism=True,
        )
        for provider in Provider
    }

    return Services(
        settings=settings,
        rng=rng,
        metrics=metrics,
        selector=selector,
        hub=hub,
        webhooks=WebhookQueue.from_settings(settings, hub=hub, rng=rng),
        store=RecordStore(),
        pipelines=pipelines,
        webhook_pipeline=webhook_intake_pipeline(settings=settings, rng=rng),
    )
