from __future__ import annotations

from typing import Callable, Optional, Sequence

from fsrskit.core import ValidationError
from fsrskit.fuzz import DEFAULT_MAX_INTERVAL, default_rng, with_review_fuzz
from fsrskit.math.fsrs import elapsed_days_for_retention
from fsrskit.fsrs_defaults import resolve_parameters


def next_interval(
    stability: float,
    desired_retention: float,
    params: Sequence[float] | None = None,
    maximum_interval: int = DEFAULT_MAX_INTERVAL,
    fuzz_enabled: bool = False,
    rng: Optional[Callable[[], float]] = None,
) -> int:
    """
    Whole days until retrievability decays to `desired_retention`.

    The raw interval is clamped to [1, maximum_interval]. With fuzzing enabled,
    intervals above two days are moved by up to +/-5% (at least one day) and
    clamped again. `rng` returns floats in [0, 1); a fresh generator is used
    when fuzzing is enabled and none is supplied.
    """
    weights = resolve_parameters(params)
    maximum = int(maximum_interval)
    if maximum < 1:
        raise ValidationError(
            f"maximum_interval must be at least 1, got {maximum_interval}."
        )
    raw = elapsed_days_for_retention(stability, desired_retention, decay=-weights[20])
    if fuzz_enabled and rng is None:
        rng = default_rng()
    return with_review_fuzz(rng if fuzz_enabled else None, raw, 1, maximum)


__all__ = ["next_interval"]
