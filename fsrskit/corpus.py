from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Hashable, Iterable, List, Sequence, Tuple

import torch

from fsrskit.core import Rating, ReviewCorpus, ReviewEvent, ValidationError


def as_event(value: ReviewEvent | Sequence[Any]) -> ReviewEvent:
    if isinstance(value, ReviewEvent):
        return value
    try:
        rating, elapsed_days = value
    except (TypeError, ValueError):
        raise ValidationError(
            f"Expected a ReviewEvent or (rating, elapsed_days) pair, got {value!r}."
        ) from None
    return ReviewEvent(rating, elapsed_days)


def corpus_from_rows(
    rows: Iterable[Tuple[Hashable, Any, Any]],
) -> Dict[Hashable, List[ReviewEvent]]:
    """
    Group `(item_id, rating, delta_t)` rows into a corpus.

    Row order within an item is kept as the chronological order.
    """
    corpus: Dict[Hashable, List[ReviewEvent]] = {}
    for index, row in enumerate(rows):
        try:
            item_id, rating, delta_t = row
        except (TypeError, ValueError):
            raise ValidationError(
                f"Row {index} must be (item_id, rating, delta_t), got {row!r}."
            ) from None
        corpus.setdefault(item_id, []).append(ReviewEvent(rating, delta_t))
    return corpus


def validate_corpus(corpus: ReviewCorpus) -> Dict[Any, List[ReviewEvent]]:
    """Coerce every event, raising ValidationError naming the offending item."""
    if not hasattr(corpus, "items"):
        raise ValidationError("corpus must be a mapping of item id to review events.")
    checked: Dict[Any, List[ReviewEvent]] = {}
    for item_id, events in corpus.items():
        try:
            checked[item_id] = [as_event(event) for event in events]
        except ValidationError as exc:
            raise ValidationError(f"Item {item_id!r}: {exc}") from None
        except TypeError:
            raise ValidationError(
                f"Item {item_id!r}: events must be a sequence, got {type(events).__name__}."
            ) from None
        if not checked[item_id]:
            raise ValidationError(f"Item {item_id!r} has no review events.")
    return checked


def review_count(corpus: ReviewCorpus) -> int:
    return sum(len(events) for events in corpus.values())


def qualifying_items(corpus: ReviewCorpus) -> int:
    """Number of items with at least one transition (two or more events)."""
    return sum(1 for events in corpus.values() if len(events) >= 2)


def is_scored(events: Sequence[ReviewEvent], index: int) -> bool:
    """Whether the review at `index` contributes a prediction to the loss."""
    return index >= 1 and events[index].elapsed_days > 0


@dataclass
class PackedBatch:
    """Padded [items, steps] tensors for batched replay; padding has mask False."""

    ratings: torch.Tensor
    elapsed: torch.Tensor
    mask: torch.Tensor

    @property
    def size(self) -> int:
        return int(self.ratings.shape[0])

    @property
    def scored(self) -> torch.Tensor:
        scored = self.mask & (self.elapsed > 0)
        scored[:, 0] = False
        return scored


def pack_sequences(
    sequences: Sequence[Sequence[ReviewEvent]], *, dtype: torch.dtype
) -> PackedBatch:
    if not sequences:
        raise ValidationError("Cannot pack an empty list of sequences.")
    steps = max(len(seq) for seq in sequences)
    ratings = torch.full((len(sequences), steps), int(Rating.GOOD), dtype=torch.int64)
    elapsed = torch.zeros((len(sequences), steps), dtype=dtype)
    mask = torch.zeros((len(sequences), steps), dtype=torch.bool)
    for row, seq in enumerate(sequences):
        n = len(seq)
        ratings[row, :n] = torch.tensor([int(e.rating) for e in seq], dtype=torch.int64)
        elapsed[row, :n] = torch.tensor([e.elapsed_days for e in seq], dtype=dtype)
        mask[row, :n] = True
    return PackedBatch(ratings=ratings, elapsed=elapsed, mask=mask)


def length_batches(
    sequences: Sequence[Sequence[ReviewEvent]],
    batch_size: int,
    *,
    dtype: torch.dtype,
) -> List[PackedBatch]:
    """Pack sequences into batches of similar length to keep padding small."""
    if batch_size < 1:
        raise ValidationError(f"batch_size must be positive, got {batch_size}.")
    ordered = sorted(sequences, key=len)
    return [
        pack_sequences(ordered[start : start + batch_size], dtype=dtype)
        for start in range(0, len(ordered), batch_size)
    ]


def first_long_term_reviews(
    sequences: Iterable[Sequence[ReviewEvent]],
) -> Dict[Rating, List[Tuple[float, float]]]:
    """
    For items whose first long-term review directly follows the first rating,
    collect `(elapsed_days, recalled)` grouped by the first rating.
    """
    grouped: Dict[Rating, List[Tuple[float, float]]] = {r: [] for r in Rating}
    for seq in sequences:
        if len(seq) < 2:
            continue
        second = seq[1]
        if second.elapsed_days <= 0 or not math.isfinite(second.elapsed_days):
            continue
        grouped[seq[0].rating].append(
            (second.elapsed_days, 1.0 if second.rating.is_success else 0.0)
        )
    return grouped


__all__ = [
    "PackedBatch",
    "as_event",
    "corpus_from_rows",
    "first_long_term_reviews",
    "is_scored",
    "length_batches",
    "pack_sequences",
    "qualifying_items",
    "review_count",
    "validate_corpus",
]
