"""
Error taxonomy and response envelopes.

Every failure that reaches the wire, synthetic or real, is rendered as:

    {"success": false, "error": {"code", "message", "details"}, "timestamp", "path"}

Successful responses use:

    {"success": true, "data", "meta"?: {"total", "page", "limit", "hasMore"}, "timestamp"}
"""

from datetime import UTC, datetime
from typing import Any


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 string."""
    return datetime.now(UTC).isoformat()


def error_envelope(
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
    path: str | None = None,
) -> dict[str, Any]:
    """Build the standard error envelope."""
    return {
        "success": False,
        "error": {
            "code": code,
            "message": message,
            "details": details or {},
        },
        "timestamp": utc_now_iso(),
        "path": path,
    }


def success_envelope(data: Any = None, meta: dict[str, Any] | None = None) -> dict[str, Any]:
    """Build the standard success envelope."""
    body: dict[str, Any] = {"success": True, "data": data}
    if meta is not None:
        body["meta"] = meta
    body["timestamp"] = utc_now_iso()
    return body


def page_meta(total: int, page: int, limit: int) -> dict[str, Any]:
    """Pagination metadata for list responses."""
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "hasMore": page * limit < total,
    }


class MockAPIError(Exception):
    """
    Base class for errors rendered as an error envelope.

    Raised by handlers and pipeline stages; converted to a JSON response
    by the exception handlers registered in ``mock_ota.main``.
    """

    status_code: int = 500
    code: str = "MOCK_API_ERROR"
    default_message: str = "Mock API error"

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.details = details or {}
        self.headers = dict(headers or {})
        super().__init__(self.message)

    def to_envelope(self, path: str | None = None) -> dict[str, Any]:
        """Render the error envelope for this error."""
        return error_envelope(self.code, self.message, self.details, path)


class ValidationError(MockAPIError):
    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Validation failed"


class NotFoundError(MockAPIError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"


class ConflictError(MockAPIError):
    status_code = 409
    code = "CONFLICT"
    default_message = "Resource conflict"


class RateLimitExceeded(MockAPIError):
    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"
    default_message = "Too many requests"


class SimulatedFailure(MockAPIError):
    """
    A failure injected by the simulation pipeline.

    Carries an arbitrary status/code pair taken from an error descriptor
    plus the informational headers collected before the failing stage.
    """

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message, details, headers)
        self.status_code = status_code
        self.code = code


class SimulatedTimeout(Exception):
    """
    Raised once a simulated hung request reaches its transport bound.

    Rendered as an empty-body 504 so no envelope is ever written for it.
    """

    def __init__(self, waited_s: float, headers: dict[str, str] | None = None) -> None:
        super().__init__(f"Simulated timeout after {waited_s:.1f}s")
        self.waited_s = waited_s
        self.headers = dict(headers or {})
