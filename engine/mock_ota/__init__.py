"""
Mock OTA Gateway

A stand-in for travel-booking provider APIs used in integration testing:
- Realistic latency, timeouts and provider-specific failures
- Live performance metrics with health thresholds
- Webhook intake with background processing and retry
- Subscription-filtered live updates over WebSocket
"""

__version__ = "1.0.0"

from mock_ota.config import Settings, get_settings

__all__ = ["__version__", "Settings", "get_settings"]
