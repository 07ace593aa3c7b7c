"""
Domain models for the mock OTA gateway.

- Provider: simulated booking platform (channel)
- DelayWindow: per-provider latency profile
"""

from mock_ota.domain.provider import (
    DEFAULT_PROVIDER_DELAY,
    GENERIC_DELAY,
    PROVIDER_DELAY_WINDOWS,
    DelayWindow,
    Provider,
    delay_window_for,
)

__all__ = [
    "DEFAULT_PROVIDER_DELAY",
    "GENERIC_DELAY",
    "PROVIDER_DELAY_WINDOWS",
    "DelayWindow",
    "Provider",
    "delay_window_for",
]
