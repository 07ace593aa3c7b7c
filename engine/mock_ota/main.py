"""
Mock OTA Gateway - FastAPI Application

Composition root: builds the services once, wires routes, middleware,
exception handlers and the live-update WebSocket.
"""

import json
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from mock_ota import __version__
from mock_ota.api.deps import get_services
from mock_ota.api.error_handlers import register_exception_handlers
from mock_ota.api.health_routes import router as health_router
from mock_ota.api.metrics_routes import router as metrics_router
from mock_ota.api.provider_routes import routers as provider_routers
from mock_ota.api.rate_limit import RateLimits
from mock_ota.api.webhook_routes import router as webhook_router
from mock_ota.config import Settings, get_settings
from mock_ota.errors import utc_now_iso
from mock_ota.logging import clear_request_id, get_logger, set_request_id, setup_logging
from mock_ota.services import Services, build_services
from mock_ota.store.seed import seed_store

logger = get_logger(__name__)


# =============================================================================
# Response Models
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    time: str
    uptime_seconds: float
    environment: str
    services: dict[str, Any] = {}


# =============================================================================
# Application Factory
# =============================================================================


def create_app(
    settings: Settings | None = None,
    services: Services | None = None,
    rate_limits: RateLimits | None = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Settings to use (defaults to the cached environment settings)
        services: Prebuilt services (defaults to ones built from settings)
        rate_limits: Per-client limiters (defaults to ones built from settings)

    Returns:
        Configured FastAPI application with services on ``app.state.services``
    """
    settings = settings or get_settings()
    services = services or build_services(settings)
    rate_limits = rate_limits or RateLimits.from_settings(settings)
    setup_logging(level=settings.log_level, json_output=settings.log_json)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting Mock OTA Gateway v%s (%s)", __version__, settings.env.value)
        logger.info("Configuration: %s", settings.get_redacted_config())

        if settings.seed_on_startup:
            seed_store(
                services.store,
                properties=settings.seed_properties,
                bookings=settings.seed_bookings,
                calendars=settings.seed_calendars,
                seed=settings.simulation_seed,
            )

        services.hub.start()
        services.webhooks.start()

        yield

        logger.info("Shutting down Mock OTA Gateway")
        await services.webhooks.stop()
        await services.metrics.aclose()
        await services.hub.shutdown()

    app = FastAPI(
        title="Mock OTA Gateway",
        description="Simulated travel-booking provider APIs with realistic failures",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = services
    app.state.rate_limits = rate_limits

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def record_request_metrics(request: Request, call_next):
        """Time every request and record its outcome exactly once."""
        set_request_id(request.headers.get("X-Correlation-ID") or uuid.uuid4().hex[:12])
        start = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers["X-Response-Time"] = f"{(time.perf_counter() - start) * 1000:.0f}ms"
            return response
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            services.metrics.record_request(200 <= status_code < 400, elapsed_ms)
            clear_request_id()

    register_exception_handlers(app)

    for router in provider_routers.values():
        app.include_router(router)
    app.include_router(webhook_router)
    app.include_router(health_router)
    app.include_router(metrics_router)

    # -------------------------------------------------------------------------
    # REST Endpoints
    # -------------------------------------------------------------------------

    @app.get("/health", response_model=HealthResponse)
    async def health(svc: Services = Depends(get_services)) -> HealthResponse:
        """Basic status, version, uptime and a services summary."""
        return HealthResponse(
            status="healthy",
            version=__version__,
            time=utc_now_iso(),
            uptime_seconds=round(svc.uptime_s, 2),
            environment=svc.settings.env.value,
            services={
                "websocket": {
                    "isInitialized": svc.hub.is_initialized,
                    "connectedClients": svc.hub.connection_count,
                },
                "performance": svc.metrics.health_status()["status"],
                "webhooks": svc.webhooks.stats(),
                "data": svc.store.counts(),
                "rateLimits": rate_limits.get_stats(),
            },
        )

    @app.get("/config")
    async def config(svc: Services = Depends(get_services)) -> dict[str, Any]:
        """Current configuration (redacted)."""
        return svc.settings.get_redacted_config()

    @app.get("/")
    async def root() -> dict[str, Any]:
        """Root endpoint with API info."""
        return {
            "name": "Mock OTA Gateway",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
            "websocket": "/ws",
            "providers": [p.value for p in provider_routers],
        }

    # -------------------------------------------------------------------------
    # WebSocket Endpoint
    # -------------------------------------------------------------------------

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        """
        Live updates.

        Clients send ``subscribe`` / ``unsubscribe`` with a channel and
        eventType, or ``ping``; they receive updates for their subscriptions
        plus every global update.
        """
        hub = services.hub
        await websocket.accept()
        connection_id = await hub.on_connect(websocket)
        reason = "client closed"

        try:
            while True:
                try:
                    data = await websocket.receive_json()
                except WebSocketDisconnect:
                    break
                except json.JSONDecodeError:
                    await websocket.send_json(
                        {"event": "error", "data": {"message": "Messages must be JSON objects"}}
                    )
                    continue
                await hub.handle_message(connection_id, data)
        except Exception as e:
            reason = f"error: {e}"
            logger.warning("WebSocket %s failed: %s", connection_id, e)
        finally:
            await hub.on_disconnect(connection_id, reason)

    return app


app = create_app()


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """Run the server."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "mock_ota.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level=settings.log_level.lower(),
        timeout_keep_alive=5,
    )


if __name__ == "__main__":
    main()
