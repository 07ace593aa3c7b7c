"""
Structured logging configuration for the mock OTA gateway.

Provides consistent logging format across all modules with:
- JSON structured output for production
- Human-readable output for development
- Automatic redaction of sensitive fields
- Request ID tracking across async handlers
"""

import logging
import sys
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

# Context variable for correlating log lines with the request being served
current_request_id: ContextVar[str | None] = ContextVar("current_request_id", default=None)

# Fields that should be redacted in logs
REDACTED_FIELDS = {
    "password",
    "api_key",
    "apikey",
    "secret",
    "token",
    "authorization",
    "credential",
    "private_key",
    "card_number",
}


def redact_sensitive(data: Any, depth: int = 0) -> Any:
    """
    Recursively redact sensitive fields from data structures.

    Args:
        data: Data to redact (dict, list, or scalar)
        depth: Current recursion depth (prevents infinite recursion)

    Returns:
        Data with sensitive fields replaced with "[REDACTED]"
    """
    if depth > 10:
        return data

    if isinstance(data, dict):
        return {
            k: (
                "[REDACTED]"
                if any(redact in str(k).lower() for redact in REDACTED_FIELDS)
                else redact_sensitive(v, depth + 1)
            )
            for k, v in data.items()
        }
    elif isinstance(data, list):
        return [redact_sensitive(item, depth + 1) for item in data]
    return data


class GatewayFormatter(logging.Formatter):
    """
    Formatter adding an ISO timestamp and the current request id.
    """

    def format(self, record: logging.LogRecord) -> str:
        record.timestamp = datetime.now(UTC).isoformat()

        request_id = current_request_id.get()
        record.request_id = f"[{request_id}] " if request_id else ""

        return super().format(record)


def setup_logging(level: str = "INFO", json_output: bool = False) -> logging.Logger:
    """
    Configure logging for the gateway.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: If True, output JSON format (for production)

    Returns:
        Configured root logger
    """
    root = logging.getLogger()
    root.handlers.clear()

    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root.setLevel(numeric_level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)

    if json_output:
        fmt = (
            '{"timestamp": "%(timestamp)s", "level": "%(levelname)s", '
            '"module": "%(name)s", "request_id": "%(request_id)s", "message": "%(message)s"}'
        )
    else:
        fmt = "%(timestamp)s | %(levelname)-8s | %(name)s | %(request_id)s%(message)s"

    handler.setFormatter(GatewayFormatter(fmt))
    root.addHandler(handler)

    # Suppress noisy third-party loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("faker").setLevel(logging.WARNING)

    return root


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a specific module."""
    return logging.getLogger(name)


def set_request_id(request_id: str) -> None:
    """Set the current request ID for log correlation."""
    current_request_id.set(request_id)


def clear_request_id() -> None:
    """Clear the current request ID."""
    current_request_id.set(None)
