from __future__ import annotations

import logging
import math
from typing import Sequence

import numpy as np
import torch

from fsrskit.core import EvaluationResult, ReviewCorpus, ValidationError
from fsrskit.corpus import length_batches, validate_corpus
from fsrskit.fsrs_defaults import resolve_parameters
from fsrskit.replay import collect_predictions, log_loss_terms

DEFAULT_BIN_WIDTH = 0.1


def calibration_rmse(
    predicted: np.ndarray,
    observed: np.ndarray,
    *,
    bin_width: float = DEFAULT_BIN_WIDTH,
    min_bin_count: int = 1,
) -> float:
    """
    Count-weighted RMSE between mean prediction and recall rate per probability bin.

    Bins holding fewer than `min_bin_count` reviews are ignored.
    """
    if not 0.0 < bin_width <= 1.0:
        raise ValidationError(f"bin_width must be in (0, 1], got {bin_width}.")
    if predicted.size == 0:
        return float("nan")
    n_bins = int(math.ceil(1.0 / bin_width))
    index = np.minimum((predicted / bin_width).astype(np.int64), n_bins - 1)
    counts = np.bincount(index, minlength=n_bins)
    sum_pred = np.bincount(index, weights=predicted, minlength=n_bins)
    sum_obs = np.bincount(index, weights=observed, minlength=n_bins)
    keep = counts >= max(1, min_bin_count)
    if not np.any(keep):
        return float("nan")
    kept = counts[keep].astype(np.float64)
    error = sum_pred[keep] / kept - sum_obs[keep] / kept
    return float(np.sqrt(np.sum(kept * error**2) / np.sum(kept)))


def evaluate(
    corpus: ReviewCorpus,
    params: Sequence[float] | None = None,
    *,
    bin_width: float = DEFAULT_BIN_WIDTH,
    min_bin_count: int = 1,
    batch_size: int = 512,
) -> EvaluationResult:
    """
    Score a parameter vector against a review corpus without fitting anything.

    Raises ValidationError for a malformed parameter vector or corpus; an empty
    corpus, or one with no reviews after a positive elapsed time, gives
    `success=False` and a NaN log-loss.
    """
    weights = resolve_parameters(params)
    checked = validate_corpus(corpus)
    sequences = [events for events in checked.values() if len(events) >= 2]
    if not sequences:
        logging.warning("Nothing to evaluate: corpus has no repeated reviews.")
        return EvaluationResult(log_loss=float("nan"), rmse_bins=float("nan"), success=False)

    w = torch.tensor(weights, dtype=torch.float64)
    batches = length_batches(sequences, batch_size, dtype=torch.float64)
    predicted, observed = collect_predictions(w, batches)
    if predicted.numel() == 0:
        logging.warning("Nothing to evaluate: no reviews after a positive interval.")
        return EvaluationResult(log_loss=float("nan"), rmse_bins=float("nan"), success=False)

    log_loss = float(log_loss_terms(predicted, observed).mean().item())
    rmse = calibration_rmse(
        predicted.numpy(),
        observed.numpy(),
        bin_width=bin_width,
        min_bin_count=min_bin_count,
    )
    success = math.isfinite(log_loss)
    return EvaluationResult(
        log_loss=log_loss if success else float("nan"),
        rmse_bins=rmse,
        success=success,
        review_count=int(predicted.numel()),
    )


__all__ = ["DEFAULT_BIN_WIDTH", "calibration_rmse", "evaluate"]
