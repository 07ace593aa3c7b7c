"""
Tests for settings and logging helpers.
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from mock_ota.config import AppEnvironment, Settings, get_settings
from mock_ota.logging import redact_sensitive


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self) -> None:
        settings = Settings(_env_file=None)
        assert settings.port == 3001
        assert settings.simulation_enabled is True
        assert settings.error_simulation_rate == 5.0
        assert settings.timeout_rate == 0.1
        assert settings.connectivity_failure_rate == 0.05
        assert settings.webhook_failure_rate == 2.0
        assert settings.inconsistency_rate == 1.0
        assert settings.realism_provider_error_rate == 3.0

    def test_rate_limit_defaults(self) -> None:
        settings = Settings(_env_file=None)
        assert settings.rate_limit_enabled is True
        assert settings.rate_limit_window_ms == 900000
        assert settings.rate_limit_max_requests == 1000
        assert settings.webhook_rate_limit_window_ms == 60000
        assert settings.webhook_rate_limit_max_requests == 100
        assert settings.speed_limit_delay_after == 100
        assert settings.rate_limit_trusted_ips == []

    def test_legacy_error_rate_variable(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ERROR_SIMULATION_RATE", "12.5")
        settings = Settings(_env_file=None)
        assert settings.error_simulation_rate == 12.5
        assert settings.effective_provider_error_rate == pytest.approx(7.5)

    def test_prefixed_variables(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MOCK_OTA_TIMEOUT_RATE", "0")
        monkeypatch.setenv("MOCK_OTA_ENV", "staging")
        settings = Settings(_env_file=None)
        assert settings.timeout_rate == 0
        assert settings.env == AppEnvironment.STAGING

    def test_explicit_provider_rate_wins(self) -> None:
        settings = Settings(_env_file=None, error_simulation_rate=10, provider_error_rate=1)
        assert settings.effective_provider_error_rate == 1

    def test_rates_are_percentages(self) -> None:
        with pytest.raises(PydanticValidationError):
            Settings(_env_file=None, timeout_rate=150)

    def test_log_level_normalised(self) -> None:
        assert Settings(_env_file=None, log_level="debug").log_level == "DEBUG"
        with pytest.raises(PydanticValidationError):
            Settings(_env_file=None, log_level="chatty")

    def test_redacted_config(self) -> None:
        config = Settings(_env_file=None).get_redacted_config()
        assert config["provider_error_rate"] == pytest.approx(3.0)
        assert config["simulation_enabled"] is True

    def test_get_settings_is_cached(self) -> None:
        assert get_settings() is get_settings()


class TestRedaction:
    """Tests for redact_sensitive."""

    def test_nested_fields_redacted(self) -> None:
        payload = {
            "guest": {"name": "Ana", "card_number": "4111"},
            "auth": [{"api_key": "k", "note": "ok"}],
            "password": "hunter2",
        }
        redacted = redact_sensitive(payload)
        assert redacted["guest"] == {"name": "Ana", "card_number": "[REDACTED]"}
        assert redacted["auth"] == [{"api_key": "[REDACTED]", "note": "ok"}]
        assert redacted["password"] == "[REDACTED]"
        assert payload["password"] == "hunter2"

    def test_scalars_pass_through(self) -> None:
        assert redact_sensitive("plain") == "plain"
        assert redact_sensitive(None) is None
