"""
Provider domain model.

A provider (also called a channel) is one of the simulated travel-booking
platforms whose API this gateway stands in for.
"""

from dataclasses import dataclass
from enum import Enum


class Provider(str, Enum):
    """Simulated OTA platforms."""

    AIRBNB = "airbnb"
    BOOKING = "booking"
    EXPEDIA = "expedia"
    AGODA = "agoda"
    VRBO = "vrbo"

    @classmethod
    def parse(cls, value: "str | Provider | None") -> "Provider | None":
        """Return the matching provider, or None for unknown channel names."""
        if value is None:
            return None
        if isinstance(value, Provider):
            return value
        try:
            return cls(value.lower())
        except ValueError:
            return None


@dataclass(frozen=True)
class DelayWindow:
    """Uniform response delay window in milliseconds."""

    min_ms: int
    max_ms: int


PROVIDER_DELAY_WINDOWS: dict[Provider, DelayWindow] = {
    Provider.AIRBNB: DelayWindow(100, 300),
    Provider.BOOKING: DelayWindow(150, 400),
    Provider.EXPEDIA: DelayWindow(200, 500),
    Provider.AGODA: DelayWindow(120, 350),
    Provider.VRBO: DelayWindow(180, 450),
}

# Providers without a configured window
DEFAULT_PROVIDER_DELAY = DelayWindow(100, 300)

# Delay applied when a pipeline is not bound to any provider
GENERIC_DELAY = DelayWindow(50, 500)


def delay_window_for(provider: Provider | None) -> DelayWindow:
    """Get the delay window for a provider."""
    if provider is None:
        return GENERIC_DELAY
    return PROVIDER_DELAY_WINDOWS.get(provider, DEFAULT_PROVIDER_DELAY)
