"""
FastAPI dependencies resolving services from application state.
"""

from collections.abc import Awaitable, Callable

from fastapi import Request, Response

from mock_ota.api.rate_limit import RateLimits
from mock_ota.broadcast.hub import BroadcastHub
from mock_ota.domain.provider import Provider
from mock_ota.metrics.aggregator import MetricsAggregator
from mock_ota.services import Services
from mock_ota.store.record_store import RecordStore
from mock_ota.webhooks.queue import WebhookQueue


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_metrics(request: Request) -> MetricsAggregator:
    return get_services(request).metrics


def get_hub(request: Request) -> BroadcastHub:
    return get_services(request).hub


def get_webhooks(request: Request) -> WebhookQueue:
    return get_services(request).webhooks


def get_store(request: Request) -> RecordStore:
    return get_services(request).store


def provider_simulation(
    provider: Provider,
) -> Callable[[Request, Response], Awaitable[dict[str, str]]]:
    """Dependency running the provider's simulation pipeline before the handler."""

    async def run_provider_simulation(request: Request, response: Response) -> dict[str, str]:
        pipeline = get_services(request).pipelines[provider]
        return await pipeline.apply(request, response)

    return run_provider_simulation


async def webhook_simulation(request: Request, response: Response) -> dict[str, str]:
    """Dependency running the webhook intake pipeline."""
    return await get_services(request).webhook_pipeline.apply(request, response)


def get_rate_limits(request: Request) -> RateLimits:
    return request.app.state.rate_limits


async def api_rate_limit(request: Request, response: Response) -> None:
    """Dependency enforcing the per-client API limit and slow-down."""
    await get_rate_limits(request).enforce(request, response)


async def webhook_rate_limit(request: Request, response: Response) -> None:
    """Dependency enforcing the API limit plus the stricter webhook limit."""
    await get_rate_limits(request).enforce(request, response, webhook=True)
