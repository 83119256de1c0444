from __future__ import annotations

import json
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fsrskit.core import CardState, MemoryState, Rating, ValidationError

SECONDS_PER_DAY = 86_400.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid timestamp {value!r}.") from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def elapsed_days_between(earlier: datetime, later: datetime) -> float:
    return max(0.0, (later - earlier).total_seconds() / SECONDS_PER_DAY)


@dataclass(frozen=True, slots=True)
class Card:
    """
    Scheduling record for one item. Updates return a new Card.

    `stability`/`difficulty` are None until the first review.
    """

    due: datetime
    stability: Optional[float] = None
    difficulty: Optional[float] = None
    elapsed_days: float = 0.0
    scheduled_days: int = 0
    reps: int = 0
    lapses: int = 0
    state: CardState = CardState.NEW
    last_review: Optional[datetime] = None

    @classmethod
    def new(cls, due: Optional[datetime] = None) -> "Card":
        return cls(due=due or _utcnow())

    @property
    def memory_state(self) -> Optional[MemoryState]:
        if self.state is CardState.NEW or self.stability is None or self.difficulty is None:
            return None
        return MemoryState(stability=self.stability, difficulty=self.difficulty)

    def with_memory(self, memory: MemoryState) -> "Card":
        return replace(self, stability=memory.stability, difficulty=memory.difficulty)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "due": _format_datetime(self.due),
            "stability": self.stability,
            "difficulty": self.difficulty,
            "elapsed_days": self.elapsed_days,
            "scheduled_days": self.scheduled_days,
            "reps": self.reps,
            "lapses": self.lapses,
            "state": self.state.value,
            "last_review": _format_datetime(self.last_review),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Card":
        if "due" not in data:
            raise ValidationError("Card record missing field 'due'.")
        due = _parse_datetime(data["due"])
        try:
            state = CardState(int(data.get("state", CardState.NEW.value)))
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid card state {data.get('state')!r}.") from None
        stability = data.get("stability")
        difficulty = data.get("difficulty")
        return cls(
            due=due,
            stability=float(stability) if stability is not None else None,
            difficulty=float(difficulty) if difficulty is not None else None,
            elapsed_days=float(data.get("elapsed_days", 0.0)),
            scheduled_days=int(data.get("scheduled_days", 0)),
            reps=int(data.get("reps", 0)),
            lapses=int(data.get("lapses", 0)),
            state=state,
            last_review=_parse_datetime(data.get("last_review")),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, payload: str) -> "Card":
        data = json.loads(payload)
        if not isinstance(data, dict):
            raise ValidationError("Card JSON must contain an object.")
        return cls.from_dict(data)


@dataclass(frozen=True, slots=True)
class ReviewLog:
    """What happened at a review; `state` is the card state before it."""

    rating: Rating
    scheduled_days: int
    elapsed_days: float
    review_datetime: datetime
    state: CardState

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rating": int(self.rating),
            "scheduled_days": self.scheduled_days,
            "elapsed_days": self.elapsed_days,
            "review_datetime": _format_datetime(self.review_datetime),
            "state": self.state.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReviewLog":
        try:
            return cls(
                rating=Rating.parse(data["rating"]),
                scheduled_days=int(data["scheduled_days"]),
                elapsed_days=float(data["elapsed_days"]),
                review_datetime=_parse_datetime(data["review_datetime"]),
                state=CardState(int(data["state"])),
            )
        except KeyError as exc:
            raise ValidationError(f"Review log missing field {exc}.") from None
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid review log: {exc}") from None

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, payload: str) -> "ReviewLog":
        return cls.from_dict(json.loads(payload))


def memory_state_to_json(memory: MemoryState) -> str:
    return json.dumps(memory.to_dict())


def memory_state_from_json(payload: str) -> MemoryState:
    data = json.loads(payload)
    if not isinstance(data, dict):
        raise ValidationError("Memory state JSON must contain an object.")
    return MemoryState.from_dict(data)


def due_after(review_datetime: datetime, days: int) -> datetime:
    return review_datetime + timedelta(days=days)


__all__ = [
    "Card",
    "ReviewLog",
    "due_after",
    "elapsed_days_between",
    "memory_state_from_json",
    "memory_state_to_json",
]
