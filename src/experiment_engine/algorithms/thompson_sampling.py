"""
Thompson Sampling over Beta-Bernoulli posteriors.

Each call draws one theta per variant from Beta(successes + prior_alpha,
failures + prior_beta) and serves the variant with the largest draw.
Exploration comes from posterior width alone: a variant with no
observations samples from the prior and can still win a draw.
"""

from typing import Sequence

import numpy as np

from ..config import DEFAULT_PRIOR_ALPHA, DEFAULT_PRIOR_BETA
from ..stats.bayesian import probability_to_be_best
from ..stats.sampling import RandomSource, sample_posteriors

__all__ = ["select_thompson_sampling", "probability_to_be_best"]


def select_thompson_sampling(
    variants: Sequence,
    prior_alpha: float = DEFAULT_PRIOR_ALPHA,
    prior_beta: float = DEFAULT_PRIOR_BETA,
    rng: RandomSource = None,
):
    """
    Pick a variant by Thompson Sampling.

    Args:
        variants: Candidate variants (stats snapshot)
        prior_alpha: Beta prior alpha, must be > 0
        prior_beta: Beta prior beta, must be > 0
        rng: Random source

    Returns:
        The variant with the largest posterior draw; ties go to the earlier variant
    """
    if not variants:
        raise ValueError("At least one variant is required")
    if prior_alpha <= 0 or prior_beta <= 0:
        raise ValueError("Prior parameters must be positive")
    draws = sample_posteriors([v.stats for v in variants], prior_alpha, prior_beta, 1, rng)[0]
    return variants[int(np.argmax(draws))]
