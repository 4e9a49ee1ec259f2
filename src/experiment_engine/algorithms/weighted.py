"""Fixed-allocation selection by static variant weight (A/B and Bayesian A/B)."""

from typing import Sequence

import numpy as np

from ..stats.sampling import RandomSource, as_generator


def select_by_weight(variants: Sequence, rng: RandomSource = None):
    """
    Pick a variant with probability proportional to its weight.

    Variants without a weight share the allocation equally.
    """
    if not variants:
        raise ValueError("At least one variant is required")
    weights = np.array(
        [1.0 if v.weight is None else float(v.weight) for v in variants]
    )
    if np.any(weights < 0) or weights.sum() <= 0:
        raise ValueError("Weights must be non-negative with a positive sum")
    gen = as_generator(rng)
    index = gen.choice(len(variants), p=weights / weights.sum())
    return variants[int(index)]
