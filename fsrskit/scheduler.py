from __future__ import annotations

import json
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from fsrskit.card import Card, ReviewLog, _utcnow, due_after, elapsed_days_between
from fsrskit.core import CardState, MemoryState, Rating, ValidationError
from fsrskit.engine import initial_state, next_state
from fsrskit.fuzz import DEFAULT_MAX_INTERVAL
from fsrskit.intervals import next_interval
from fsrskit.lifecycle import next_card_state
from fsrskit.math.fsrs import FSRS6Params, retrievability


class Scheduler:
    """
    Schedules Card values with FSRS-6 memory states.

    `rng` returns floats in [0, 1) and is only consulted when fuzzing is on.
    """

    def __init__(
        self,
        parameters: Sequence[float] | None = None,
        desired_retention: float = 0.9,
        maximum_interval: int = DEFAULT_MAX_INTERVAL,
        enable_fuzzing: bool = False,
        rng: Optional[Callable[[], float]] = None,
    ):
        desired_retention = float(desired_retention)
        if not 0.0 < desired_retention < 1.0:
            raise ValidationError(
                f"desired_retention must be in (0, 1), got {desired_retention}."
            )
        if int(maximum_interval) < 1:
            raise ValidationError(
                f"maximum_interval must be at least 1, got {maximum_interval}."
            )
        self.params = FSRS6Params(parameters)
        self.desired_retention = desired_retention
        self.maximum_interval = int(maximum_interval)
        self.enable_fuzzing = bool(enable_fuzzing)
        self.rng = rng

    @property
    def parameters(self) -> Tuple[float, ...]:
        return self.params.weights

    def _memory_after(
        self, card: Card, rating: Rating, elapsed_days: float
    ) -> MemoryState:
        previous = card.memory_state
        if previous is None:
            return initial_state(rating, self.params)
        return next_state(previous, rating, elapsed_days, self.params)

    def _interval(self, memory: MemoryState) -> int:
        return next_interval(
            memory.stability,
            self.desired_retention,
            self.params.weights,
            maximum_interval=self.maximum_interval,
            fuzz_enabled=self.enable_fuzzing,
            rng=self.rng,
        )

    def _elapsed(self, card: Card, now: datetime) -> float:
        if card.state is CardState.NEW or card.last_review is None:
            return 0.0
        return elapsed_days_between(card.last_review, now)

    def review_card(
        self, card: Card, rating: Rating | int, now: Optional[datetime] = None
    ) -> Tuple[Card, ReviewLog]:
        rating = Rating.parse(rating)
        now = now or _utcnow()
        elapsed = self._elapsed(card, now)
        memory = self._memory_after(card, rating, elapsed)
        transition = next_card_state(card.state, rating)
        interval = self._interval(memory)
        updated = replace(
            card.with_memory(memory),
            due=due_after(now, interval),
            elapsed_days=elapsed,
            scheduled_days=interval,
            reps=card.reps + 1,
            lapses=card.lapses + (1 if transition.lapsed else 0),
            state=transition.state,
            last_review=now,
        )
        log = ReviewLog(
            rating=rating,
            scheduled_days=card.scheduled_days,
            elapsed_days=elapsed,
            review_datetime=now,
            state=card.state,
        )
        return updated, log

    def preview_card(
        self, card: Card, now: Optional[datetime] = None
    ) -> Dict[Rating, Card]:
        """The card each rating would produce, without committing any of them."""
        now = now or _utcnow()
        return {rating: self.review_card(card, rating, now)[0] for rating in Rating}

    def card_retrievability(
        self, card: Card, now: Optional[datetime] = None
    ) -> float:
        if card.memory_state is None or card.last_review is None:
            return 1.0
        elapsed = elapsed_days_between(card.last_review, now or _utcnow())
        return retrievability(card.stability, elapsed, self.params.decay)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "parameters": list(self.params.weights),
            "desired_retention": self.desired_retention,
            "maximum_interval": self.maximum_interval,
            "enable_fuzzing": self.enable_fuzzing,
        }

    @classmethod
    def from_dict(
        cls, data: Dict[str, Any], rng: Optional[Callable[[], float]] = None
    ) -> "Scheduler":
        return cls(
            parameters=data.get("parameters"),
            desired_retention=data.get("desired_retention", 0.9),
            maximum_interval=data.get("maximum_interval", DEFAULT_MAX_INTERVAL),
            enable_fuzzing=data.get("enable_fuzzing", False),
            rng=rng,
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(
        cls, payload: str, rng: Optional[Callable[[], float]] = None
    ) -> "Scheduler":
        data = json.loads(payload)
        if not isinstance(data, dict):
            raise ValidationError("Scheduler JSON must contain an object.")
        return cls.from_dict(data, rng=rng)


@dataclass(frozen=True, slots=True)
class SimulatedReview:
    review: int
    rating: Rating
    elapsed_days: float
    retrievability: float
    stability: float
    difficulty: float
    interval: int


def simulate_reviews(
    ratings: Iterable[Rating | int],
    params: Sequence[float] | None = None,
    desired_retention: float = 0.9,
    maximum_interval: int = DEFAULT_MAX_INTERVAL,
) -> List[SimulatedReview]:
    """
    Replay `ratings`, each given exactly when the previous review scheduled it.

    `retrievability` is the predicted recall probability at the moment of each
    review (1.0 for the first one).
    """
    p = FSRS6Params(params)
    rows: List[SimulatedReview] = []
    memory: Optional[MemoryState] = None
    interval = 0
    for index, value in enumerate(ratings):
        rating = Rating.parse(value)
        if memory is None:
            r = 1.0
            elapsed = 0.0
            memory = initial_state(rating, p)
        else:
            elapsed = float(interval)
            r = retrievability(memory.stability, elapsed, p.decay)
            memory = next_state(memory, rating, elapsed, p)
        interval = next_interval(
            memory.stability,
            desired_retention,
            p.weights,
            maximum_interval=maximum_interval,
        )
        rows.append(
            SimulatedReview(
                review=index,
                rating=rating,
                elapsed_days=elapsed,
                retrievability=r,
                stability=memory.stability,
                difficulty=memory.difficulty,
                interval=interval,
            )
        )
    return rows


__all__ = ["Scheduler", "SimulatedReview", "simulate_reviews"]
