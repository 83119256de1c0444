from __future__ import annotations

import dataclasses
import math
from typing import Sequence, Tuple

import numpy as np

from fsrskit.core import ValidationError
from fsrskit.fsrs_defaults import S_MAX, S_MIN, resolve_parameters

# Parameter-free curve: R(S) = 0.9 with DECAY = -0.5.
DECAY = -0.5
FACTOR = 19.0 / 81.0


@dataclasses.dataclass(frozen=True)
class Bounds:
    s_min: float = S_MIN
    s_max: float = S_MAX
    d_min: float = 1.0
    d_max: float = 10.0


@dataclasses.dataclass(frozen=True)
class FSRS6Params:
    weights: Tuple[float, ...]
    bounds: Bounds = Bounds()

    def __post_init__(self) -> None:
        object.__setattr__(self, "weights", resolve_parameters(self.weights))

    @property
    def decay(self) -> float:
        return -self.weights[20]

    @property
    def factor(self) -> float:
        return curve_factor(self.decay)


# --------------------------- forgetting curve --------------------------- #


def curve_factor(decay: float) -> float:
    return 0.9 ** (1.0 / decay) - 1.0


def _check_stability(stability: float) -> float:
    stability = float(stability)
    if not math.isfinite(stability) or stability <= 0:
        raise ValidationError(f"stability must be positive, got {stability}.")
    return stability


def _check_elapsed(elapsed_days: float) -> float:
    elapsed_days = float(elapsed_days)
    if math.isnan(elapsed_days) or elapsed_days < 0:
        raise ValidationError(
            f"elapsed_days must be non-negative, got {elapsed_days}."
        )
    return elapsed_days


def _check_retention(target: float, name: str = "desired_retention") -> float:
    target = float(target)
    if not 0.0 < target < 1.0:
        raise ValidationError(f"{name} must be strictly between 0 and 1, got {target}.")
    return target


def retrievability(
    stability: float, elapsed_days: float, decay: float = DECAY
) -> float:
    """
    Probability of recall after `elapsed_days` for an item of the given stability.

    The curve is normalised so that `retrievability(s, s) == 0.9` for any decay.
    """
    stability = _check_stability(stability)
    elapsed_days = _check_elapsed(elapsed_days)
    factor = curve_factor(decay)
    return (1.0 + factor * elapsed_days / stability) ** decay


def retrievability_many(
    stability: Sequence[float], elapsed_days: Sequence[float], decay: float = DECAY
) -> np.ndarray:
    s = np.asarray(stability, dtype=np.float64)
    t = np.asarray(elapsed_days, dtype=np.float64)
    if s.shape != t.shape:
        raise ValidationError(
            f"stability and elapsed_days must have the same shape, got {s.shape} and {t.shape}."
        )
    if np.any(~np.isfinite(s)) or np.any(s <= 0):
        raise ValidationError("stability values must be positive.")
    if np.any(np.isnan(t)) or np.any(t < 0):
        raise ValidationError("elapsed_days values must be non-negative.")
    return np.power(1.0 + curve_factor(decay) * t / s, decay)


def elapsed_days_for_retention(
    stability: float, target_retention: float, decay: float = DECAY
) -> float:
    stability = _check_stability(stability)
    target_retention = _check_retention(target_retention, "target_retention")
    return stability / curve_factor(decay) * (target_retention ** (1.0 / decay) - 1.0)


def fsrs6_forgetting_curve(p: FSRS6Params, t: float, s: float) -> float:
    return (1.0 + p.factor * t / max(s, p.bounds.s_min)) ** p.decay


# --------------------------- FSRS6 helpers --------------------------- #


def fsrs6_init_state(p: FSRS6Params, rating: int) -> Tuple[float, float]:
    s = _clamp_s(p.bounds, p.weights[rating - 1])
    d = fsrs6_init_difficulty(p, rating)
    return s, d


def fsrs6_init_difficulty(p: FSRS6Params, rating: int) -> float:
    return _clamp_d(
        p.bounds, p.weights[4] - math.exp(p.weights[5] * (rating - 1)) + 1.0
    )


def fsrs6_next_d(p: FSRS6Params, d: float, rating: int) -> float:
    delta_d = -p.weights[6] * (rating - 3.0)
    new_d = d + _linear_damping(delta_d, d)
    new_d = _mean_reversion(p.weights[7], fsrs6_init_difficulty(p, 4), new_d)
    return _clamp_d(p.bounds, new_d)


def fsrs6_stability_short_term(p: FSRS6Params, s: float, rating: int) -> float:
    sinc = math.exp(p.weights[17] * (rating - 3 + p.weights[18])) * (
        s ** (-p.weights[19])
    )
    return s * (max(1.0, sinc) if rating >= 3 else sinc)


def fsrs6_stability_after_success(
    p: FSRS6Params, s: float, r: float, d: float, rating: int
) -> float:
    hard_penalty = p.weights[15] if rating == 2 else 1.0
    easy_bonus = p.weights[16] if rating == 4 else 1.0
    inc = (
        math.exp(p.weights[8])
        * (11.0 - d)
        * (s ** (-p.weights[9]))
        * (math.exp((1.0 - r) * p.weights[10]) - 1.0)
    )
    return s * (1.0 + inc * hard_penalty * easy_bonus)


def fsrs6_stability_after_failure(
    p: FSRS6Params, s: float, r: float, d: float
) -> float:
    new_s = (
        p.weights[11]
        * (d ** (-p.weights[12]))
        * ((s + 1.0) ** p.weights[13] - 1.0)
        * math.exp((1.0 - r) * p.weights[14])
    )
    new_min = s / math.exp(p.weights[17] * p.weights[18])
    return min(new_s, new_min)


# --------------------------- shared helpers --------------------------- #


def _linear_damping(delta_d: float, old_d: float) -> float:
    return delta_d * (10.0 - old_d) / 9.0


def _mean_reversion(weight: float, init: float, current: float) -> float:
    return weight * init + (1.0 - weight) * current


def _clamp_s(bounds: Bounds, s: float) -> float:
    return max(bounds.s_min, min(s, bounds.s_max))


def _clamp_d(bounds: Bounds, d: float) -> float:
    return max(bounds.d_min, min(d, bounds.d_max))
