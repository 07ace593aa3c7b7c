"""
Configuration management for the mock OTA gateway.

Uses pydantic-settings for type-safe environment variable handling.
All simulation rates are percentages (0-100) applied per request.
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppEnvironment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Every field can be overridden with a ``MOCK_OTA_`` prefixed variable;
    the error rate also honours the legacy ``ERROR_SIMULATION_RATE`` name.
    """

    model_config = SettingsConfigDict(
        env_prefix="MOCK_OTA_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    env: AppEnvironment = Field(
        default=AppEnvironment.DEVELOPMENT,
        description="Application environment",
    )

    # Server configuration
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=3001, ge=1024, le=65535, description="Server port")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_json: bool = Field(default=False, description="Emit JSON formatted logs")

    # Simulation pipeline
    simulation_enabled: bool = Field(
        default=True,
        description="Master switch for latency and failure injection",
    )
    simulation_seed: int | None = Field(
        default=None,
        description="Seed for the simulation random source (None = nondeterministic)",
    )
    error_simulation_rate: float = Field(
        default=5.0,
        alias="ERROR_SIMULATION_RATE",
        description="Percent of requests answered with a generic catalog error",
        ge=0,
        le=100,
    )
    provider_error_rate: float | None = Field(
        default=None,
        description="Percent of requests answered with the provider error (None = 60% of error rate)",
        ge=0,
        le=100,
    )
    realism_provider_error_rate: float = Field(
        default=3.0,
        description="Provider error percent used by the always-on realism wrapper",
        ge=0,
        le=100,
    )
    timeout_rate: float = Field(
        default=0.1,
        description="Percent of requests left hanging without a response",
        ge=0,
        le=100,
    )
    connectivity_failure_rate: float = Field(
        default=0.05,
        description="Percent of requests failed with 503 SERVICE_UNAVAILABLE",
        ge=0,
        le=100,
    )
    webhook_failure_rate: float = Field(
        default=2.0,
        description="Percent of webhook-path requests failed with WEBHOOK_DELIVERY_FAILED",
        ge=0,
        le=100,
    )
    inconsistency_rate: float = Field(
        default=1.0,
        description="Percent of requests failed with 409 DATA_INCONSISTENCY",
        ge=0,
        le=100,
    )
    timeout_hang_s: float = Field(
        default=120.0,
        description="Transport bound for a simulated hung request before it is aborted",
        gt=0,
        le=3600,
    )

    # Webhook queue
    webhook_processing_delay_ms: int = Field(
        default=100,
        description="Simulated processing time per webhook attempt",
        ge=0,
        le=10000,
    )
    webhook_processing_failure_rate: float = Field(
        default=5.0,
        description="Percent of webhook processing attempts that fail",
        ge=0,
        le=100,
    )
    webhook_retry_delay_s: float = Field(
        default=60.0,
        description="Delay before a failed webhook becomes eligible for retry",
        ge=0,
    )
    webhook_retry_sweep_interval_s: float = Field(
        default=5.0,
        description="How often the retry sweeper looks for due webhooks",
        gt=0,
        le=600,
    )
    webhook_default_max_attempts: int = Field(
        default=3,
        description="Processing attempts for provider webhooks",
        ge=1,
        le=20,
    )

    # Per-client rate limiting
    rate_limit_enabled: bool = Field(default=True, description="Enforce per-client request limits")
    rate_limit_window_ms: int = Field(
        default=900000,
        description="Window for the general request limit",
        gt=0,
    )
    rate_limit_max_requests: int = Field(
        default=1000,
        description="Requests per client per window across the provider and webhook APIs",
        ge=1,
    )
    webhook_rate_limit_window_ms: int = Field(
        default=60000,
        description="Window for the webhook intake limit",
        gt=0,
    )
    webhook_rate_limit_max_requests: int = Field(
        default=100,
        description="Webhook requests per client per window",
        ge=1,
    )
    speed_limit_window_ms: int = Field(
        default=900000,
        description="Window for the progressive slow-down",
        gt=0,
    )
    speed_limit_delay_after: int = Field(
        default=100,
        description="Requests per window served at full speed",
        ge=0,
    )
    speed_limit_delay_ms: int = Field(
        default=200,
        description="Extra delay added per request above the free allowance",
        ge=0,
    )
    speed_limit_max_delay_ms: int = Field(
        default=10000,
        description="Cap on the slow-down delay",
        ge=0,
    )
    rate_limit_trusted_ips: list[str] = Field(
        default_factory=list,
        description="Client addresses exempt from limits and slow-down",
    )

    # Metrics
    metrics_response_time_capacity: int = Field(
        default=1000,
        description="Response-time samples kept for averages and percentiles",
        ge=1,
    )
    metrics_timestamp_capacity: int = Field(
        default=10000,
        description="Request timestamps kept for windowed rates",
        ge=1,
    )
    load_max_duration_ms: int = Field(
        default=300000,
        description="Upper bound for simulate-load duration",
        gt=0,
    )
    load_max_rps: float = Field(
        default=100.0,
        description="Upper bound for simulate-load requests per second",
        gt=0,
    )

    # Record store seeding
    seed_on_startup: bool = Field(default=True, description="Generate mock records on startup")
    seed_properties: int = Field(default=50, ge=0, le=10000, description="Seeded properties")
    seed_bookings: int = Field(default=200, ge=0, le=100000, description="Seeded bookings")
    seed_calendars: int = Field(default=1000, ge=0, le=100000, description="Seeded calendar entries")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return upper_v

    @property
    def effective_provider_error_rate(self) -> float:
        """Provider error percent, derived from the generic rate when unset."""
        if self.provider_error_rate is not None:
            return self.provider_error_rate
        return self.error_simulation_rate * 0.6

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.env == AppEnvironment.DEVELOPMENT

    def get_redacted_config(self) -> dict[str, str | int | float | bool]:
        """
        Get configuration dict safe for logging and API responses.
        """
        return {
            "env": self.env.value,
            "host": self.host,
            "port": self.port,
            "log_level": self.log_level,
            "simulation_enabled": self.simulation_enabled,
            "error_simulation_rate": self.error_simulation_rate,
            "provider_error_rate": self.effective_provider_error_rate,
            "timeout_rate": self.timeout_rate,
            "connectivity_failure_rate": self.connectivity_failure_rate,
            "webhook_failure_rate": self.webhook_failure_rate,
            "inconsistency_rate": self.inconsistency_rate,
            "rate_limit_enabled": self.rate_limit_enabled,
            "rate_limit_max_requests": self.rate_limit_max_requests,
            "webhook_rate_limit_max_requests": self.webhook_rate_limit_max_requests,
        }


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure single instance throughout application.
    """
    return Settings()
