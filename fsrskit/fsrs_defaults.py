from __future__ import annotations

import math
from typing import Sequence

from fsrskit.core import ValidationError

PARAMETER_COUNT = 21

DEFAULT_PARAMETERS: tuple[float, ...] = (
    0.212,
    1.2931,
    2.3065,
    8.2956,
    6.4133,
    0.8334,
    3.0194,
    0.001,
    1.8722,
    0.1666,
    0.796,
    1.4835,
    0.0614,
    0.2629,
    1.6483,
    0.6014,
    1.8729,
    0.5425,
    0.0912,
    0.0658,
    0.1542,
)

S_MIN = 0.001
S_MAX = 36500.0
INIT_S_MAX = 100.0

# Projection box applied after every optimizer step.
PARAMETER_BOUNDS: tuple[tuple[float, float], ...] = (
    (S_MIN, INIT_S_MAX),
    (S_MIN, INIT_S_MAX),
    (S_MIN, INIT_S_MAX),
    (S_MIN, INIT_S_MAX),
    (1.0, 10.0),
    (0.001, 4.0),
    (0.001, 4.0),
    (0.001, 0.75),
    (0.0, 4.5),
    (0.0, 0.8),
    (0.001, 3.5),
    (0.001, 5.0),
    (0.001, 0.25),
    (0.001, 0.9),
    (0.0, 4.0),
    (0.0, 1.0),
    (1.0, 6.0),
    (0.0, 2.0),
    (0.0, 2.0),
    (0.0, 0.8),
    (0.1, 0.8),
)

# Spread of per-user fitted values; scales the pull toward the defaults.
PARAMETER_STDDEV: tuple[float, ...] = (
    6.43,
    9.66,
    17.58,
    27.85,
    0.57,
    0.28,
    0.6,
    0.12,
    0.39,
    0.18,
    0.33,
    0.3,
    0.09,
    0.16,
    0.57,
    0.25,
    1.03,
    0.31,
    0.32,
    0.14,
    0.27,
)

INITIAL_STABILITY_SLOTS = (0, 1, 2, 3)
SHORT_TERM_SLOTS = (17, 18, 19)


def resolve_parameters(params: Sequence[float] | None) -> tuple[float, ...]:
    if params is None:
        return DEFAULT_PARAMETERS
    try:
        vector = tuple(float(x) for x in params)
    except (TypeError, ValueError):
        raise ValidationError("params must be a sequence of numbers.") from None
    if len(vector) != PARAMETER_COUNT:
        raise ValidationError(
            f"params must have exactly {PARAMETER_COUNT} values, got {len(vector)}."
        )
    if not all(math.isfinite(x) for x in vector):
        raise ValidationError("params must contain only finite values.")
    return vector


def clip_parameters(params: Sequence[float]) -> tuple[float, ...]:
    return tuple(
        max(low, min(high, float(value)))
        for value, (low, high) in zip(params, PARAMETER_BOUNDS)
    )


__all__ = [
    "DEFAULT_PARAMETERS",
    "INIT_S_MAX",
    "INITIAL_STABILITY_SLOTS",
    "PARAMETER_BOUNDS",
    "PARAMETER_COUNT",
    "PARAMETER_STDDEV",
    "S_MAX",
    "S_MIN",
    "SHORT_TERM_SLOTS",
    "clip_parameters",
    "resolve_parameters",
]
