"""
Performance metrics API routes.

Provides:
- Counter snapshot and detailed rolling statistics
- Health verdict against fixed thresholds
- Reset and synthetic load generation
"""

from typing import Any

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel, ConfigDict, Field

from mock_ota.api.deps import get_metrics
from mock_ota.errors import success_envelope, utc_now_iso
from mock_ota.logging import get_logger
from mock_ota.metrics.aggregator import MetricsAggregator

router = APIRouter(prefix="/api/metrics", tags=["Metrics"])
logger = get_logger(__name__)


class SimulateLoadRequest(BaseModel):
    """Synthetic load parameters."""

    model_config = ConfigDict(populate_by_name=True)

    duration: float = Field(default=60000, description="Load duration in milliseconds")
    requests_per_second: float = Field(
        default=10,
        alias="requestsPerSecond",
        description="Synthetic requests recorded per second",
    )


@router.get("/performance")
async def get_performance_metrics(
    metrics: MetricsAggregator = Depends(get_metrics),
) -> dict[str, Any]:
    """Current counters and derived statistics."""
    return success_envelope(metrics.snapshot().to_dict())


@router.get("/detailed")
async def get_detailed_metrics(
    metrics: MetricsAggregator = Depends(get_metrics),
) -> dict[str, Any]:
    """Counters plus windowed request counts and response-time percentiles."""
    return success_envelope(metrics.detailed_snapshot())


@router.get("/health")
async def get_metrics_health(
    metrics: MetricsAggregator = Depends(get_metrics),
) -> dict[str, Any]:
    return success_envelope(metrics.health_status())


@router.post("/reset")
async def reset_metrics(
    metrics: MetricsAggregator = Depends(get_metrics),
) -> dict[str, Any]:
    metrics.reset()
    return success_envelope(
        {"message": "Performance metrics reset successfully", "timestamp": utc_now_iso()}
    )


@router.post("/simulate-load")
async def simulate_load(
    body: SimulateLoadRequest | None = Body(default=None),
    metrics: MetricsAggregator = Depends(get_metrics),
) -> dict[str, Any]:
    """
    Start recording synthetic requests in the background.

    Duration is capped at 5 minutes and the rate at 100 requests/second;
    anything outside the bounds is rejected with VALIDATION_ERROR.
    """
    params = body or SimulateLoadRequest()
    handle = metrics.simulate_load(params.duration, params.requests_per_second)
    return success_envelope(handle.to_dict())
