"""
FastAPI route modules for the mock OTA gateway.
"""

from mock_ota.api.health_routes import router as health_router
from mock_ota.api.metrics_routes import router as metrics_router
from mock_ota.api.provider_routes import routers as provider_routers
from mock_ota.api.webhook_routes import router as webhook_router

__all__ = ["health_router", "metrics_router", "provider_routers", "webhook_router"]
