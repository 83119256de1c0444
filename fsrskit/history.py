from __future__ import annotations

import math
from typing import Any, Optional, Sequence

from fsrskit.core import MemoryState, ReviewEvent, ValidationError
from fsrskit.corpus import as_event
from fsrskit.engine import _params, step
from fsrskit.math.fsrs import FSRS6Params, _clamp_d, _clamp_s


def memory_state_from_history(
    events: Sequence[ReviewEvent | Sequence[Any]],
    params: Sequence[float] | FSRS6Params | None = None,
    initial: Optional[MemoryState] = None,
) -> MemoryState:
    """
    Fold a chronological review history into the current memory state.

    Without `initial`, the first event is treated as the item's first review;
    with it, every event is applied on top of the given state.
    """
    if not events:
        raise ValidationError("Review history must contain at least one event.")
    p = _params(params)
    first, *rest = [as_event(event) for event in events]
    state = step(initial, first.rating, first.elapsed_days, p)
    for event in rest:
        state = step(state, event.rating, event.elapsed_days, p)
    return state


def memory_state_from_sm2(
    ease_factor: float,
    interval: float,
    sm2_retention: float,
    params: Sequence[float] | FSRS6Params | None = None,
) -> MemoryState:
    """
    Convert an SM-2 card (ease factor, current interval) into a memory state.

    `sm2_retention` is the recall rate the SM-2 schedule actually achieved; the
    stability is chosen so that the forgetting curve passes through it at
    `interval`, and difficulty is recovered by inverting the success-growth
    rule for a stability multiplier of `ease_factor`.
    """
    ease_factor = float(ease_factor)
    interval = float(interval)
    sm2_retention = float(sm2_retention)
    if not math.isfinite(ease_factor) or ease_factor <= 1.0:
        raise ValidationError(f"ease_factor must be greater than 1, got {ease_factor}.")
    if not math.isfinite(interval) or interval <= 0:
        raise ValidationError(f"interval must be positive, got {interval}.")
    if not 0.0 < sm2_retention < 1.0:
        raise ValidationError(
            f"sm2_retention must be strictly between 0 and 1, got {sm2_retention}."
        )
    p = _params(params)
    w = p.weights
    stability = _clamp_s(
        p.bounds,
        max(interval, p.bounds.s_min)
        * p.factor
        / (sm2_retention ** (1.0 / p.decay) - 1.0),
    )
    growth = (
        math.exp(w[8])
        * stability ** (-w[9])
        * math.expm1((1.0 - sm2_retention) * w[10])
    )
    if growth <= 0:
        difficulty = p.bounds.d_max
    else:
        difficulty = 11.0 - (ease_factor - 1.0) / growth
    return MemoryState(stability=stability, difficulty=_clamp_d(p.bounds, difficulty))


__all__ = ["memory_state_from_history", "memory_state_from_sm2"]
