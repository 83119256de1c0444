from __future__ import annotations

import torch

# Tensor forms of the FSRS-6 formulas. `weights` is a 1-D tensor of 21 slots
# shared by every item in the batch; state tensors are shaped [items].


def forgetting_curve(
    weights: torch.Tensor, t: torch.Tensor, s: torch.Tensor, s_min: float
) -> torch.Tensor:
    decay = -weights[20]
    factor = torch.pow(0.9, 1.0 / decay) - 1.0
    return torch.pow(1.0 + factor * t / torch.clamp(s, min=s_min), decay)


def init_stability(weights: torch.Tensor, rating: torch.Tensor) -> torch.Tensor:
    return weights[:4][rating - 1]


def init_difficulty(
    weights: torch.Tensor, rating: torch.Tensor, d_min: float, d_max: float
) -> torch.Tensor:
    rating_f = rating.to(dtype=weights.dtype)
    d = weights[4] - torch.exp(weights[5] * (rating_f - 1.0)) + 1.0
    return torch.clamp(d, d_min, d_max)


def next_d(
    weights: torch.Tensor,
    d: torch.Tensor,
    rating: torch.Tensor,
    d_min: float,
    d_max: float,
) -> torch.Tensor:
    rating_f = rating.to(dtype=weights.dtype)
    init_d = torch.clamp(weights[4] - torch.exp(weights[5] * 3.0) + 1.0, d_min, d_max)
    delta_d = -weights[6] * (rating_f - 3.0)
    new_d = d + delta_d * (10.0 - d) / 9.0
    new_d = weights[7] * init_d + (1.0 - weights[7]) * new_d
    return torch.clamp(new_d, d_min, d_max)


def stability_short_term(
    weights: torch.Tensor, s: torch.Tensor, rating: torch.Tensor
) -> torch.Tensor:
    rating_f = rating.to(dtype=weights.dtype)
    sinc = torch.exp(weights[17] * (rating_f - 3.0 + weights[18])) * torch.pow(
        s, -weights[19]
    )
    scale = torch.where(rating >= 3, torch.clamp(sinc, min=1.0), sinc)
    return s * scale


def stability_after_success(
    weights: torch.Tensor,
    s: torch.Tensor,
    r: torch.Tensor,
    d: torch.Tensor,
    rating: torch.Tensor,
) -> torch.Tensor:
    hard_penalty = torch.where(rating == 2, weights[15], 1.0)
    easy_bonus = torch.where(rating == 4, weights[16], 1.0)
    inc = (
        torch.exp(weights[8])
        * (11.0 - d)
        * torch.pow(s, -weights[9])
        * (torch.exp((1.0 - r) * weights[10]) - 1.0)
    )
    return s * (1.0 + inc * hard_penalty * easy_bonus)


def stability_after_failure(
    weights: torch.Tensor, s: torch.Tensor, r: torch.Tensor, d: torch.Tensor
) -> torch.Tensor:
    new_s = (
        weights[11]
        * torch.pow(d, -weights[12])
        * (torch.pow(s + 1.0, weights[13]) - 1.0)
        * torch.exp((1.0 - r) * weights[14])
    )
    new_min = s / torch.exp(weights[17] * weights[18])
    return torch.minimum(new_s, new_min)
