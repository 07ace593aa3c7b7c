"""
Error catalog and selector.

Static error descriptors drawn by the simulation pipeline:
- Generic catalog: five provider-agnostic failures
- Provider catalog: exactly one dedicated failure per provider
- Named catalog: targeted failures by kind (authentication, conflict, ...)

Descriptors are immutable; per-draw values such as synthetic request ids
are filled into a fresh copy by the ErrorSelector.
"""

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Mapping

from mock_ota.domain.provider import Provider
from mock_ota.simulation.random_source import RandomSource, random_token

# Placeholder in descriptor details replaced by a fresh token on each draw
REQUEST_ID_PLACEHOLDER = "<generated>"


@dataclass(frozen=True)
class ErrorDescriptor:
    """A synthetic error: stable code, human message, HTTP status and details."""

    code: str
    message: str
    status_code: int
    details: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "details", MappingProxyType(dict(self.details)))

    def details_dict(self) -> dict[str, Any]:
        """Mutable copy of the details, safe to serialise."""
        return dict(self.details)


GENERIC_ERRORS: tuple[ErrorDescriptor, ...] = (
    ErrorDescriptor(
        code="TEMPORARY_UNAVAILABLE",
        message="Service temporarily unavailable",
        status_code=503,
        details={"retryAfter": 30},
    ),
    ErrorDescriptor(
        code="INVALID_REQUEST",
        message="Invalid request parameters",
        status_code=400,
        details={"field": "unknown"},
    ),
    ErrorDescriptor(
        code="AUTHENTICATION_FAILED",
        message="Invalid API credentials",
        status_code=401,
        details={"reason": "expired_token"},
    ),
    ErrorDescriptor(
        code="RATE_LIMIT_EXCEEDED",
        message="Too many requests",
        status_code=429,
        details={"retryAfter": 60},
    ),
    ErrorDescriptor(
        code="INTERNAL_ERROR",
        message="Internal server error",
        status_code=500,
        details={"requestId": REQUEST_ID_PLACEHOLDER},
    ),
)

PROVIDER_ERRORS: dict[Provider, ErrorDescriptor] = {
    Provider.AIRBNB: ErrorDescriptor(
        code="AIRBNB_API_ERROR",
        message="Airbnb API temporarily unavailable",
        status_code=503,
        details={"retryAfter": 120, "errorCode": "API_MAINTENANCE"},
    ),
    Provider.BOOKING: ErrorDescriptor(
        code="BOOKING_API_ERROR",
        message="Booking.com API rate limit exceeded",
        status_code=429,
        details={"retryAfter": 300, "errorCode": "RATE_LIMIT"},
    ),
    Provider.EXPEDIA: ErrorDescriptor(
        code="EXPEDIA_API_ERROR",
        message="Expedia API authentication failed",
        status_code=401,
        details={"errorCode": "AUTH_FAILED", "reason": "invalid_credentials"},
    ),
    Provider.AGODA: ErrorDescriptor(
        code="AGODA_API_ERROR",
        message="Agoda API validation error",
        status_code=400,
        details={"errorCode": "VALIDATION_ERROR", "field": "checkin_date"},
    ),
    Provider.VRBO: ErrorDescriptor(
        code="VRBO_API_ERROR",
        message="Vrbo API service unavailable",
        status_code=503,
        details={"retryAfter": 60, "errorCode": "SERVICE_DOWN"},
    ),
}

NAMED_ERRORS: dict[str, ErrorDescriptor] = {
    "authentication": ErrorDescriptor(
        code="AUTHENTICATION_FAILED",
        message="Invalid API credentials",
        status_code=401,
        details={"reason": "expired_token"},
    ),
    "authorization": ErrorDescriptor(
        code="AUTHORIZATION_FAILED",
        message="Insufficient permissions",
        status_code=403,
        details={"required": "admin_access"},
    ),
    "validation": ErrorDescriptor(
        code="VALIDATION_ERROR",
        message="Invalid request parameters",
        status_code=400,
        details={"field": "propertyId", "reason": "invalid_format"},
    ),
    "notFound": ErrorDescriptor(
        code="NOT_FOUND",
        message="Resource not found",
        status_code=404,
        details={"resource": "property"},
    ),
    "conflict": ErrorDescriptor(
        code="CONFLICT",
        message="Resource conflict",
        status_code=409,
        details={"reason": "duplicate_booking"},
    ),
    "rateLimit": ErrorDescriptor(
        code="RATE_LIMIT_EXCEEDED",
        message="Too many requests",
        status_code=429,
        details={"retryAfter": 60},
    ),
    "serverError": ErrorDescriptor(
        code="INTERNAL_SERVER_ERROR",
        message="Internal server error",
        status_code=500,
        details={"requestId": REQUEST_ID_PLACEHOLDER},
    ),
    "serviceUnavailable": ErrorDescriptor(
        code="SERVICE_UNAVAILABLE",
        message="Service temporarily unavailable",
        status_code=503,
        details={"retryAfter": 30},
    ),
}

CONNECTIVITY_FAILURE = ErrorDescriptor(
    code="SERVICE_UNAVAILABLE",
    message="Service temporarily unavailable due to connectivity issues",
    status_code=503,
    details={"retryAfter": 30},
)

DATA_INCONSISTENCY = ErrorDescriptor(
    code="DATA_INCONSISTENCY",
    message="Data inconsistency detected",
    status_code=409,
    details={
        "reason": "concurrent_modification",
        "conflictingFields": ["price", "availability"],
        "suggestedAction": "retry_request",
    },
)


class ErrorSelector:
    """
    Chooses error descriptors using an injected random source.

    Generic draws are uniform over the generic catalog. Provider draws
    return the provider's dedicated descriptor, falling back to a generic
    draw for unknown providers.
    """

    def __init__(self, rng: RandomSource) -> None:
        self._rng = rng

    def random_error(self) -> ErrorDescriptor:
        """Uniformly chosen generic error."""
        return self._materialise(self._rng.choice(GENERIC_ERRORS))

    def provider_error(self, provider: Provider | str | None) -> ErrorDescriptor:
        """Dedicated error for the provider, or a generic error if unknown."""
        parsed = Provider.parse(provider)
        if parsed is None or parsed not in PROVIDER_ERRORS:
            return self.random_error()
        return self._materialise(PROVIDER_ERRORS[parsed])

    def specific_error(self, kind: str) -> ErrorDescriptor:
        """Named error by kind, or a generic error if the kind is unknown."""
        descriptor = NAMED_ERRORS.get(kind)
        if descriptor is None:
            return self.random_error()
        return self._materialise(descriptor)

    def _materialise(self, descriptor: ErrorDescriptor) -> ErrorDescriptor:
        """Fill per-draw placeholders in a copy of the descriptor."""
        if REQUEST_ID_PLACEHOLDER not in descriptor.details.values():
            return descriptor
        details = {
            key: (random_token(self._rng, 7) if value == REQUEST_ID_PLACEHOLDER else value)
            for key, value in descriptor.details.items()
        }
        return replace(descriptor, details=details)
