from __future__ import annotations

import math
from typing import Callable, Optional, Sequence

from fsrskit.core import (
    ItemOutcome,
    MemoryState,
    NextStates,
    Rating,
    ValidationError,
)
from fsrskit.fuzz import DEFAULT_MAX_INTERVAL
from fsrskit.intervals import next_interval
from fsrskit.math.fsrs import (
    FSRS6Params,
    _clamp_d,
    _clamp_s,
    fsrs6_forgetting_curve,
    fsrs6_init_state,
    fsrs6_next_d,
    fsrs6_stability_after_failure,
    fsrs6_stability_after_success,
    fsrs6_stability_short_term,
)

# Reviews closer together than this are treated as same-day re-reviews.
SHORT_TERM_THRESHOLD_DAYS = 1.0


def _params(params: Sequence[float] | FSRS6Params | None) -> FSRS6Params:
    if isinstance(params, FSRS6Params):
        return params
    return FSRS6Params(params)


def _check_elapsed(elapsed_days: float) -> float:
    elapsed_days = float(elapsed_days)
    if math.isnan(elapsed_days) or elapsed_days < 0:
        raise ValidationError(
            f"elapsed_days must be non-negative, got {elapsed_days}."
        )
    return elapsed_days


def initial_state(
    rating: Rating | int, params: Sequence[float] | FSRS6Params | None = None
) -> MemoryState:
    """Memory state after the very first review of an item."""
    rating = Rating.parse(rating)
    p = _params(params)
    s, d = fsrs6_init_state(p, int(rating))
    return MemoryState(stability=s, difficulty=d)


def next_state(
    previous: MemoryState,
    rating: Rating | int,
    elapsed_days: float,
    params: Sequence[float] | FSRS6Params | None = None,
) -> MemoryState:
    """
    Memory state after reviewing an item `elapsed_days` after its last review.

    Same-day reviews (below SHORT_TERM_THRESHOLD_DAYS) use the short-term
    stability rule; otherwise success grows stability and a lapse replaces it
    with the post-lapse stability, which never exceeds the prior value.
    """
    rating = Rating.parse(rating)
    elapsed_days = _check_elapsed(elapsed_days)
    p = _params(params)
    s = _clamp_s(p.bounds, previous.stability)
    d = _clamp_d(p.bounds, previous.difficulty)
    r = fsrs6_forgetting_curve(p, elapsed_days, s)
    if elapsed_days < SHORT_TERM_THRESHOLD_DAYS:
        new_s = fsrs6_stability_short_term(p, s, int(rating))
    elif rating.is_success:
        new_s = fsrs6_stability_after_success(p, s, r, d, int(rating))
    else:
        new_s = fsrs6_stability_after_failure(p, s, r, d)
    new_d = fsrs6_next_d(p, d, int(rating))
    return MemoryState(stability=_clamp_s(p.bounds, new_s), difficulty=new_d)


def step(
    previous: Optional[MemoryState],
    rating: Rating | int,
    elapsed_days: float,
    params: Sequence[float] | FSRS6Params | None = None,
) -> MemoryState:
    if previous is None:
        return initial_state(rating, params)
    return next_state(previous, rating, elapsed_days, params)


def repeat_all(
    previous: Optional[MemoryState],
    elapsed_days: float,
    desired_retention: float,
    params: Sequence[float] | FSRS6Params | None = None,
    *,
    maximum_interval: int = DEFAULT_MAX_INTERVAL,
    fuzz_enabled: bool = False,
    rng: Optional[Callable[[], float]] = None,
) -> NextStates:
    """Outcome of each of the four ratings, leaving `previous` untouched."""
    p = _params(params)
    elapsed_days = _check_elapsed(elapsed_days)

    def outcome(rating: Rating) -> ItemOutcome:
        memory = step(previous, rating, elapsed_days, p)
        interval = next_interval(
            memory.stability,
            desired_retention,
            p.weights,
            maximum_interval=maximum_interval,
            fuzz_enabled=fuzz_enabled,
            rng=rng,
        )
        return ItemOutcome(memory=memory, interval=interval)

    return NextStates(
        again=outcome(Rating.AGAIN),
        hard=outcome(Rating.HARD),
        good=outcome(Rating.GOOD),
        easy=outcome(Rating.EASY),
    )


__all__ = [
    "SHORT_TERM_THRESHOLD_DAYS",
    "initial_state",
    "next_state",
    "repeat_all",
    "step",
]
