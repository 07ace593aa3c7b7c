"""
Pluggable randomness for the simulation layer.

Every probabilistic decision (pipeline trials, jitter, catalog draws,
webhook outcomes, load generation) goes through a RandomSource so tests
can force outcomes deterministically.
"""

import random
import string
from collections.abc import Sequence
from typing import Protocol, TypeVar

T = TypeVar("T")

_TOKEN_ALPHABET = string.ascii_lowercase + string.digits


class RandomSource(Protocol):
    """Subset of ``random.Random`` the simulation depends on."""

    def random(self) -> float: ...

    def uniform(self, a: float, b: float) -> float: ...

    def choice(self, seq: Sequence[T]) -> T: ...

    def randrange(self, stop: int) -> int: ...


def create_random_source(seed: int | None = None) -> RandomSource:
    """Create the default random source, optionally seeded."""
    return random.Random(seed)


def bernoulli(rng: RandomSource, rate_pct: float) -> bool:
    """
    Single Bernoulli trial with a percentage probability.

    A rate of 0 never fires; a rate of 100 always fires.
    """
    if rate_pct <= 0:
        return False
    return rng.random() * 100 < rate_pct


def random_token(rng: RandomSource, length: int = 6) -> str:
    """Short lowercase alphanumeric token for synthetic ids."""
    return "".join(rng.choice(_TOKEN_ALPHABET) for _ in range(length))
