"""
Health API routes.

Provides:
- Detailed health across broadcast, metrics, webhooks and data
- Readiness (503 until the broadcast hub is up and metrics are healthy)
- Liveness
- Per-service health summary
"""

import os
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from mock_ota import __version__
from mock_ota.api.deps import get_services
from mock_ota.errors import success_envelope, utc_now_iso
from mock_ota.logging import get_logger
from mock_ota.services import Services

router = APIRouter(prefix="/api/health", tags=["Health"])
logger = get_logger(__name__)


# =============================================================================
# Response Models
# =============================================================================


class DetailedHealthResponse(BaseModel):
    """Overall health with per-service detail."""

    status: str
    timestamp: str
    uptime: float
    version: str
    environment: str
    services: dict[str, Any] = Field(default_factory=dict)


class ReadinessResponse(BaseModel):
    """Readiness verdict."""

    status: str  # "ready" or "not_ready"
    timestamp: str
    reason: str | None = None
    services: dict[str, bool] = Field(default_factory=dict)


class LivenessResponse(BaseModel):
    """Process liveness."""

    status: str = "alive"
    timestamp: str
    uptime: float
    pid: int


# =============================================================================
# Helpers
# =============================================================================


def services_health(services: Services) -> dict[str, Any]:
    """Health of every service plus store counts."""
    return {
        "websocket": services.hub.health_status(),
        "performance": services.metrics.health_status(),
        "webhooks": services.webhooks.stats(),
        "data": services.store.counts(),
    }


# =============================================================================
# Routes
# =============================================================================


@router.get("/detailed", response_model=DetailedHealthResponse)
async def get_detailed_health(
    services: Services = Depends(get_services),
) -> DetailedHealthResponse:
    """
    Detailed health check.

    Healthy when the broadcast hub is initialized and request metrics
    are within thresholds.
    """
    detail = services_health(services)
    is_healthy = detail["websocket"]["isInitialized"] and detail["performance"]["isHealthy"]
    status = "healthy" if is_healthy else "unhealthy"

    logger.info("Detailed health check completed: %s", status)
    return DetailedHealthResponse(
        status=status,
        timestamp=utc_now_iso(),
        uptime=round(services.uptime_s, 2),
        version=__version__,
        environment=services.settings.env.value,
        services=detail,
    )


@router.get("/readiness", response_model=ReadinessResponse)
async def get_readiness(services: Services = Depends(get_services)) -> Any:
    websocket_ready = services.hub.is_initialized
    performance_ready = services.metrics.health_status()["isHealthy"]
    checks = {"websocket": websocket_ready, "performance": performance_ready}

    if websocket_ready and performance_ready:
        return ReadinessResponse(status="ready", timestamp=utc_now_iso(), services=checks)

    body = ReadinessResponse(
        status="not_ready",
        timestamp=utc_now_iso(),
        reason="One or more services are not ready",
        services=checks,
    )
    return JSONResponse(status_code=503, content=body.model_dump())


@router.get("/liveness", response_model=LivenessResponse)
async def get_liveness(services: Services = Depends(get_services)) -> LivenessResponse:
    return LivenessResponse(
        timestamp=utc_now_iso(),
        uptime=round(services.uptime_s, 2),
        pid=os.getpid(),
    )


@router.get("/services")
async def get_services_health(services: Services = Depends(get_services)) -> dict[str, Any]:
    return success_envelope(services_health(services))
