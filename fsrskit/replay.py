from __future__ import annotations

from typing import Iterable, Tuple

import torch

from fsrskit.corpus import PackedBatch
from fsrskit.engine import SHORT_TERM_THRESHOLD_DAYS
from fsrskit.math import fsrs_batch
from fsrskit.math.fsrs import Bounds

EPS = 1e-7


def replay(
    weights: torch.Tensor,
    batch: PackedBatch,
    *,
    bounds: Bounds = Bounds(),
) -> Tuple[torch.Tensor, torch.Tensor]:
    """
    Run every item of `batch` through the state-update rules in lockstep.

    Returns the predicted retrievability just before each scored review and
    the observed outcome (1.0 unless the rating was Again), both flattened.
    """
    ratings = batch.ratings
    elapsed = batch.elapsed.to(dtype=weights.dtype)
    steps = ratings.shape[1]
    first = ratings[:, 0]
    s = torch.clamp(
        fsrs_batch.init_stability(weights, first), bounds.s_min, bounds.s_max
    )
    d = fsrs_batch.init_difficulty(weights, first, bounds.d_min, bounds.d_max)
    if steps < 2:
        empty = weights.new_zeros(0)
        return empty, empty

    predictions = []
    for t in range(1, steps):
        rating = ratings[:, t]
        delta = elapsed[:, t]
        active = batch.mask[:, t]
        r = fsrs_batch.forgetting_curve(weights, delta, s, bounds.s_min)
        predictions.append(r)

        short_term = delta < SHORT_TERM_THRESHOLD_DAYS
        success = rating > 1
        new_s = torch.where(
            success,
            fsrs_batch.stability_after_success(weights, s, r, d, rating),
            fsrs_batch.stability_after_failure(weights, s, r, d),
        )
        new_s = torch.where(
            short_term, fsrs_batch.stability_short_term(weights, s, rating), new_s
        )
        new_s = torch.clamp(new_s, bounds.s_min, bounds.s_max)
        new_d = fsrs_batch.next_d(weights, d, rating, bounds.d_min, bounds.d_max)
        s = torch.where(active, new_s, s)
        d = torch.where(active, new_d, d)

    predicted = torch.stack(predictions, dim=1)
    scored = batch.scored[:, 1:]
    labels = (ratings[:, 1:] > 1).to(dtype=weights.dtype)
    return predicted[scored], labels[scored]


def log_loss_terms(predicted: torch.Tensor, labels: torch.Tensor) -> torch.Tensor:
    p = torch.clamp(predicted, EPS, 1.0 - EPS)
    return -(labels * torch.log(p) + (1.0 - labels) * torch.log(1.0 - p))


def collect_predictions(
    weights: torch.Tensor, batches: Iterable[PackedBatch]
) -> Tuple[torch.Tensor, torch.Tensor]:
    """Predictions and outcomes for every scored review, without gradients."""
    preds = []
    labels = []
    with torch.no_grad():
        for batch in batches:
            p, y = replay(weights, batch)
            preds.append(p)
            labels.append(y)
    if not preds:
        empty = weights.new_zeros(0)
        return empty, empty
    return torch.cat(preds), torch.cat(labels)


def mean_log_loss(weights: torch.Tensor, batches: Iterable[PackedBatch]) -> float:
    preds, labels = collect_predictions(weights, batches)
    if preds.numel() == 0:
        return float("nan")
    return float(log_loss_terms(preds, labels).mean().item())


__all__ = ["EPS", "collect_predictions", "log_loss_terms", "mean_log_loss", "replay"]
