from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any, Dict, Iterator, Mapping, Sequence, Tuple


class ValidationError(ValueError):
    """Raised when an input is rejected before any computation happens."""


class Rating(IntEnum):
    """Learner's self-reported recall quality, ordered Again < Hard < Good < Easy."""

    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4

    @classmethod
    def parse(cls, value: Any) -> "Rating":
        if isinstance(value, Rating):
            return value
        if isinstance(value, bool):
            raise ValidationError(f"Invalid rating {value!r}; expected 1-4.")
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        try:
            return cls(value)
        except (TypeError, ValueError):
            raise ValidationError(
                f"Invalid rating {value!r}; expected 1 (Again), 2 (Hard), "
                "3 (Good) or 4 (Easy)."
            ) from None

    @property
    def is_success(self) -> bool:
        return self is not Rating.AGAIN


class CardState(Enum):
    NEW = 0
    LEARNING = 1
    REVIEW = 2
    RELEARNING = 3


@dataclass(frozen=True, slots=True)
class MemoryState:
    """Stability (days until R falls to 90%) and difficulty in [1, 10]."""

    stability: float
    difficulty: float

    def __post_init__(self) -> None:
        if not math.isfinite(self.stability) or self.stability <= 0:
            raise ValidationError(
                f"stability must be a positive finite number, got {self.stability}."
            )
        if not math.isfinite(self.difficulty) or not 1.0 <= self.difficulty <= 10.0:
            raise ValidationError(
                f"difficulty must be between 1 and 10, got {self.difficulty}."
            )

    def to_dict(self) -> Dict[str, float]:
        return {"stability": self.stability, "difficulty": self.difficulty}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MemoryState":
        try:
            stability = float(data["stability"])
            difficulty = float(data["difficulty"])
        except KeyError as exc:
            raise ValidationError(f"Memory state missing field {exc}.") from None
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid memory state {dict(data)!r}.") from None
        return cls(stability, difficulty)


@dataclass(frozen=True, slots=True)
class ReviewEvent:
    rating: Rating
    elapsed_days: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "rating", Rating.parse(self.rating))
        try:
            elapsed = float(self.elapsed_days)
        except (TypeError, ValueError):
            raise ValidationError(
                f"elapsed_days must be a number, got {self.elapsed_days!r}."
            ) from None
        if not math.isfinite(elapsed) or elapsed < 0:
            raise ValidationError(
                f"elapsed_days must be non-negative, got {self.elapsed_days}."
            )
        object.__setattr__(self, "elapsed_days", elapsed)


@dataclass(frozen=True, slots=True)
class ItemOutcome:
    """Memory state and interval that a single rating would produce."""

    memory: MemoryState
    interval: int


@dataclass(frozen=True, slots=True)
class NextStates:
    again: ItemOutcome
    hard: ItemOutcome
    good: ItemOutcome
    easy: ItemOutcome

    def __getitem__(self, rating: Rating | int) -> ItemOutcome:
        rating = Rating.parse(rating)
        if rating is Rating.AGAIN:
            return self.again
        if rating is Rating.HARD:
            return self.hard
        if rating is Rating.GOOD:
            return self.good
        return self.easy

    def __iter__(self) -> Iterator[Tuple[Rating, ItemOutcome]]:
        yield Rating.AGAIN, self.again
        yield Rating.HARD, self.hard
        yield Rating.GOOD, self.good
        yield Rating.EASY, self.easy


# item identifier -> chronologically ordered reviews of that item
ReviewCorpus = Mapping[Any, Sequence[ReviewEvent]]


@dataclass(frozen=True, slots=True)
class OptimizationResult:
    success: bool
    parameters: Tuple[float, ...] | None = None
    error: str | None = None
    item_count: int = 0
    review_count: int = 0
    loss: float | None = None
    epochs: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "parameters": list(self.parameters) if self.parameters else None,
            "error": self.error,
            "item_count": self.item_count,
            "review_count": self.review_count,
            "loss": self.loss,
            "epochs": self.epochs,
        }


@dataclass(frozen=True, slots=True)
class EvaluationResult:
    log_loss: float
    rmse_bins: float
    success: bool
    review_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "log_loss": self.log_loss,
            "rmse_bins": self.rmse_bins,
            "success": self.success,
            "review_count": self.review_count,
        }


__all__ = [
    "CardState",
    "EvaluationResult",
    "ItemOutcome",
    "MemoryState",
    "NextStates",
    "OptimizationResult",
    "Rating",
    "ReviewCorpus",
    "ReviewEvent",
    "ValidationError",
]
