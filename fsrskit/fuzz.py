from __future__ import annotations

import math
import random
from typing import Callable, Optional

DEFAULT_MAX_INTERVAL = 36500

# Intervals at or below this many days are never fuzzed.
FUZZ_MIN_INTERVAL = 2.0
FUZZ_FACTOR = 0.05


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def default_rng() -> Callable[[], float]:
    return random.Random().random


def fuzz_span(interval: float) -> int:
    """Half-width of the fuzz window: 5% of the interval, at least one day."""
    return max(1, _round_half_up(interval * FUZZ_FACTOR))


def constrained_fuzz_bounds(
    interval: float, minimum: int, maximum: int
) -> tuple[int, int]:
    """
    Window of whole days around the raw `interval`, within [minimum, maximum].

    A fuzzed interval never drops below FUZZ_MIN_INTERVAL days unless
    `maximum` forces it.
    """
    minimum = min(minimum, maximum)
    interval = max(float(minimum), min(float(maximum), interval))
    span = fuzz_span(interval)
    lower = max(minimum, int(FUZZ_MIN_INTERVAL), _round_half_up(interval - span))
    lower = min(lower, maximum)
    upper = max(lower, min(maximum, _round_half_up(interval + span)))
    return lower, upper


def with_review_fuzz(
    rng: Optional[Callable[[], float]],
    interval: float,
    minimum: int,
    maximum: int,
) -> int:
    """
    Round and clamp `interval` to [minimum, maximum]; when `rng` is given and the
    clamped interval exceeds FUZZ_MIN_INTERVAL, pick uniformly from the fuzz window.

    `rng` must return floats in [0, 1).
    """
    clamped = max(float(minimum), min(float(maximum), interval))
    if rng is None or clamped <= FUZZ_MIN_INTERVAL:
        return max(minimum, min(maximum, _round_half_up(clamped)))
    lower, upper = constrained_fuzz_bounds(clamped, minimum, maximum)
    fuzz_factor = min(max(float(rng()), 0.0), math.nextafter(1.0, 0.0))
    return int(math.floor(lower + fuzz_factor * (1 + upper - lower)))


__all__ = [
    "DEFAULT_MAX_INTERVAL",
    "FUZZ_FACTOR",
    "FUZZ_MIN_INTERVAL",
    "constrained_fuzz_bounds",
    "default_rng",
    "fuzz_span",
    "with_review_fuzz",
]
