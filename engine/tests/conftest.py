"""
Pytest configuration and shared fixtures.
"""

import os

import pytest

# Set test environment variables before importing app modules
os.environ.setdefault("MOCK_OTA_ENV", "test")
os.environ.setdefault("MOCK_OTA_SEED_ON_STARTUP", "false")

# Import shared fixtures from api_fixtures
from tests.api_fixtures import *  # noqa: E402, F403


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure local simulation overrides don't leak into tests."""
    for var in list(os.environ):
        if var.startswith("MOCK_OTA_") and var not in ("MOCK_OTA_ENV", "MOCK_OTA_SEED_ON_STARTUP"):
            monkeypatch.delenv(var, raising=False)
    monkeypatch.delenv("ERROR_SIMULATION_RATE", raising=False)


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Clear the cached settings between tests."""
    yield

    from mock_ota.config import get_settings

    get_settings.cache_clear()
