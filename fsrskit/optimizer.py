from __future__ import annotations

import logging
import math
import sys
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
import torch
from tqdm import tqdm

from fsrskit.core import (
    OptimizationResult,
    ReviewCorpus,
    ReviewEvent,
    ValidationError,
)
from fsrskit.corpus import (
    PackedBatch,
    first_long_term_reviews,
    is_scored,
    length_batches,
    qualifying_items,
    review_count,
    validate_corpus,
)
from fsrskit.fsrs_defaults import (
    DEFAULT_PARAMETERS,
    INIT_S_MAX,
    INITIAL_STABILITY_SLOTS,
    PARAMETER_BOUNDS,
    PARAMETER_COUNT,
    PARAMETER_STDDEV,
    S_MIN,
    SHORT_TERM_SLOTS,
    clip_parameters,
    resolve_parameters,
)
from fsrskit.math.fsrs import curve_factor
from fsrskit.replay import EPS, log_loss_terms, mean_log_loss, replay


@dataclass(frozen=True)
class OptimizerConfig:
    learning_rate: float = 4e-2
    epochs: int = 5
    batch_size: int = 512
    min_items: int = 5
    regularization: float = 1.0
    validation_split: float = 0.0
    patience: Optional[int] = None
    seed: int = 42
    timeout: Optional[float] = None
    progress: bool = False
    dtype: torch.dtype = torch.float64

    def __post_init__(self) -> None:
        if self.epochs < 1:
            raise ValidationError(f"epochs must be positive, got {self.epochs}.")
        if self.batch_size < 1:
            raise ValidationError(
                f"batch_size must be positive, got {self.batch_size}."
            )
        if not 0.0 <= self.validation_split < 1.0:
            raise ValidationError(
                f"validation_split must be in [0, 1), got {self.validation_split}."
            )
        if self.learning_rate <= 0:
            raise ValidationError(
                f"learning_rate must be positive, got {self.learning_rate}."
            )


class OptimizationCancelled(Exception):
    pass


# Grid and prior strength used when fitting initial stabilities.
PRETRAIN_GRID = np.exp(np.linspace(math.log(0.01), math.log(INIT_S_MAX), 600))
PRETRAIN_PRIOR = 1.0
# Minimum ratio between successive initial stabilities.
INIT_S_RATIO = 1.05


def pretrain_initial_stability(
    sequences: Sequence[Sequence[ReviewEvent]],
    start: Sequence[float] = DEFAULT_PARAMETERS,
) -> Tuple[float, float, float, float]:
    """
    Fit S0 for each first rating from the outcome of the following review.

    Each rating's stability minimises the log-loss of its first long-term
    reviews plus a log-space pull toward `start`. Ratings without data keep
    their starting value; the result is made strictly increasing in rating.
    """
    decay = -start[20]
    factor = curve_factor(decay)
    grouped = first_long_term_reviews(sequences)
    fitted = [float(start[i]) for i in INITIAL_STABILITY_SLOTS]
    log_grid = np.log(PRETRAIN_GRID)
    for rating, samples in grouped.items():
        if not samples:
            continue
        data = np.asarray(samples, dtype=np.float64)
        t = data[:, 0]
        y = data[:, 1]
        r = np.power(1.0 + factor * t[None, :] / PRETRAIN_GRID[:, None], decay)
        r = np.clip(r, EPS, 1.0 - EPS)
        nll = -(y * np.log(r) + (1.0 - y) * np.log(1.0 - r)).sum(axis=1)
        default = max(fitted[int(rating) - 1], S_MIN)
        prior = PRETRAIN_PRIOR * (log_grid - math.log(default)) ** 2
        fitted[int(rating) - 1] = float(PRETRAIN_GRID[int(np.argmin(nll + prior))])
    return _monotonic_initial_stability(fitted)


def _monotonic_initial_stability(values: List[float]) -> Tuple[float, float, float, float]:
    values = [max(S_MIN, min(INIT_S_MAX, v)) for v in values]
    for i in range(1, 4):
        if values[i] <= values[i - 1] * INIT_S_RATIO:
            values[i] = min(INIT_S_MAX, values[i - 1] * INIT_S_RATIO)
    for i in range(2, -1, -1):
        if values[i] >= values[i + 1]:
            values[i] = values[i + 1] / INIT_S_RATIO
    return values[0], values[1], values[2], values[3]


def _failure(
    error: str, corpus_items: int = 0, corpus_reviews: int = 0
) -> OptimizationResult:
    logging.warning("Optimization failed: %s", error)
    return OptimizationResult(
        success=False,
        parameters=None,
        error=error,
        item_count=corpus_items,
        review_count=corpus_reviews,
    )


def _split(
    sequences: List[List[ReviewEvent]], fraction: float, generator: torch.Generator
) -> Tuple[List[List[ReviewEvent]], List[List[ReviewEvent]]]:
    n_val = int(len(sequences) * fraction)
    if n_val <= 0 or n_val >= len(sequences):
        return sequences, []
    order = torch.randperm(len(sequences), generator=generator).tolist()
    val = [sequences[i] for i in order[:n_val]]
    train = [sequences[i] for i in order[n_val:]]
    return train, val


def _scored_count(sequences: Sequence[Sequence[ReviewEvent]]) -> int:
    return sum(
        1 for seq in sequences for index in range(len(seq)) if is_scored(seq, index)
    )


def optimize(
    corpus: ReviewCorpus,
    enable_short_term: bool = True,
    params: Sequence[float] | None = None,
    *,
    config: OptimizerConfig | None = None,
    should_stop: Optional[Callable[[], bool]] = None,
) -> OptimizationResult:
    """
    Fit the 21 parameters to a review corpus by minimising prediction log-loss.

    Never raises for bad data: validation problems, cancellation and numerical
    failures all come back as `success=False` with an error description.
    """
    config = config or OptimizerConfig()
    try:
        checked = validate_corpus(corpus)
        start = resolve_parameters(params)
    except ValidationError as exc:
        return _failure(str(exc))

    n_items = len(checked)
    n_reviews = review_count(checked)
    qualifying = qualifying_items(checked)
    if qualifying < config.min_items:
        return _failure(
            f"Need at least {config.min_items} items with two or more reviews, "
            f"got {qualifying}.",
            n_items,
            n_reviews,
        )
    sequences = [events for events in checked.values() if len(events) >= 2]
    logging.info(
        "Optimizing FSRS parameters: %d items (%d usable), %d reviews",
        n_items,
        len(sequences),
        n_reviews,
    )

    try:
        weights, loss, epochs = _fit(
            sequences,
            start,
            enable_short_term=enable_short_term,
            config=config,
            should_stop=should_stop,
        )
    except OptimizationCancelled as exc:
        return _failure(str(exc), n_items, n_reviews)
    except ValidationError as exc:
        return _failure(str(exc), n_items, n_reviews)

    if not all(math.isfinite(w) for w in weights):
        return _failure("optimization produced non-finite parameters", n_items, n_reviews)
    logging.info("Optimization complete after %d epochs (loss %.5f)", epochs, loss)
    return OptimizationResult(
        success=True,
        parameters=weights,
        error=None,
        item_count=n_items,
        review_count=n_reviews,
        loss=loss,
        epochs=epochs,
    )


def _fit(
    sequences: List[List[ReviewEvent]],
    start: Tuple[float, ...],
    *,
    enable_short_term: bool,
    config: OptimizerConfig,
    should_stop: Optional[Callable[[], bool]],
) -> Tuple[Tuple[float, ...], float, int]:
    deadline = (
        time.monotonic() + config.timeout if config.timeout is not None else None
    )

    def check_cancel() -> None:
        if should_stop is not None and should_stop():
            raise OptimizationCancelled("optimization cancelled")
        if deadline is not None and time.monotonic() > deadline:
            raise OptimizationCancelled("optimization timed out")

    generator = torch.Generator().manual_seed(config.seed)
    train_seqs, val_seqs = _split(sequences, config.validation_split, generator)
    scored_total = _scored_count(train_seqs)
    if scored_total == 0:
        raise ValidationError(
            "No reviews with a positive elapsed time to fit; "
            "insufficient data after filtering."
        )

    initial = list(clip_parameters(start))
    initial[0:4] = pretrain_initial_stability(train_seqs, initial)
    frozen = torch.zeros(PARAMETER_COUNT, dtype=torch.bool)
    frozen[list(INITIAL_STABILITY_SLOTS)] = True
    prior_values = list(DEFAULT_PARAMETERS)
    if not enable_short_term:
        for slot in SHORT_TERM_SLOTS:
            initial[slot] = 0.0
            prior_values[slot] = 0.0
        frozen[list(SHORT_TERM_SLOTS)] = True

    dtype = config.dtype
    anchor = torch.tensor(initial, dtype=dtype)
    prior = torch.tensor(prior_values, dtype=dtype)
    stddev = torch.tensor(PARAMETER_STDDEV, dtype=dtype)
    lower = torch.tensor([low for low, _ in PARAMETER_BOUNDS], dtype=dtype)
    upper = torch.tensor([high for _, high in PARAMETER_BOUNDS], dtype=dtype)
    weights = anchor.clone().requires_grad_(True)

    train_batches = length_batches(train_seqs, config.batch_size, dtype=dtype)
    val_batches = (
        length_batches(val_seqs, config.batch_size, dtype=dtype) if val_seqs else []
    )
    monitor_batches = val_batches or train_batches

    optimizer = torch.optim.Adam([weights], lr=config.learning_rate)
    lr_schedule = torch.optim.lr_scheduler.CosineAnnealingLR(
        optimizer, T_max=config.epochs * len(train_batches)
    )

    best_loss = mean_log_loss(weights.detach(), monitor_batches)
    if not math.isfinite(best_loss):
        raise ValidationError("initial loss is not finite")
    best_weights = tuple(float(w) for w in weights.detach().tolist())
    train_loss = best_loss
    stale_epochs = 0
    completed = 0

    epochs_iter = tqdm(
        range(config.epochs),
        desc="optimize",
        unit="epoch",
        file=sys.stderr,
        ascii=True,
        disable=not config.progress,
    )
    for epoch in epochs_iter:
        check_cancel()
        order = torch.randperm(len(train_batches), generator=generator).tolist()
        diverged = False
        for index in order:
            check_cancel()
            loss = _train_step(
                weights,
                train_batches[index],
                optimizer=optimizer,
                prior=prior,
                stddev=stddev,
                regularization=config.regularization,
                scored_total=scored_total,
                frozen=frozen,
            )
            if loss is None:
                continue
            if not math.isfinite(loss):
                diverged = True
                break
            lr_schedule.step()
            with torch.no_grad():
                weights.copy_(torch.maximum(torch.minimum(weights, upper), lower))
                weights[frozen] = anchor[frozen]
        if diverged:
            logging.warning(
                "Non-finite loss in epoch %d; keeping best parameters so far.",
                epoch + 1,
            )
            break

        completed = epoch + 1
        monitored = mean_log_loss(weights.detach(), monitor_batches)
        if val_batches:
            train_loss = mean_log_loss(weights.detach(), train_batches)
        else:
            train_loss = monitored
        logging.info(
            "Epoch %d/%d: train loss %.5f%s",
            completed,
            config.epochs,
            train_loss,
            f", validation loss {monitored:.5f}" if val_batches else "",
        )
        epochs_iter.set_postfix(loss=f"{monitored:.4f}")
        if math.isfinite(monitored) and monitored < best_loss:
            best_loss = monitored
            best_weights = tuple(float(w) for w in weights.detach().tolist())
            stale_epochs = 0
        else:
            stale_epochs += 1
            if config.patience is not None and stale_epochs >= config.patience:
                logging.info("Stopping early after %d epochs without improvement.", stale_epochs)
                break
    epochs_iter.close()
    return best_weights, best_loss, completed


def _train_step(
    weights: torch.Tensor,
    batch: PackedBatch,
    *,
    optimizer: torch.optim.Optimizer,
    prior: torch.Tensor,
    stddev: torch.Tensor,
    regularization: float,
    scored_total: int,
    frozen: torch.Tensor,
) -> Optional[float]:
    predicted, labels = replay(weights, batch)
    count = predicted.numel()
    if count == 0:
        return None
    nll = log_loss_terms(predicted, labels).sum()
    penalty = (
        regularization
        * torch.sum(((weights - prior) / stddev) ** 2)
        * count
        / scored_total
    )
    loss = (nll + penalty) / count
    if not torch.isfinite(loss):
        return float("nan")
    optimizer.zero_grad()
    loss.backward()
    if weights.grad is not None:
        weights.grad[frozen] = 0.0
        if not torch.all(torch.isfinite(weights.grad)):
            return float("nan")
    optimizer.step()
    return float(loss.item())


__all__ = [
    "OptimizationCancelled",
    "OptimizerConfig",
    "optimize",
    "pretrain_initial_stability",
]
