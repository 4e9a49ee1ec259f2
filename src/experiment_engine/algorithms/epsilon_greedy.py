"""
Epsilon-Greedy selection.

With probability epsilon serve a uniformly random variant, otherwise the one
with the best observed mean (first maximum wins; variants without
observations are skipped unless no variant has any). epsilon=0 never draws from
the random source for the explore decision and always exploits.
"""

from typing import Sequence

import numpy as np

from ..config import DEFAULT_EPSILON
from ..stats.sampling import RandomSource, as_generator


def select_epsilon_greedy(
    variants: Sequence,
    epsilon: float = DEFAULT_EPSILON,
    rng: RandomSource = None,
):
    """
    Pick a variant by Epsilon-Greedy.

    Args:
        variants: Candidate variants (stats snapshot)
        epsilon: Exploration probability in [0, 1]
        rng: Random source

    Returns:
        Selected variant
    """
    if not variants:
        raise ValueError("At least one variant is required")
    if not 0 <= epsilon <= 1:
        raise ValueError("epsilon must be in [0, 1]")

    if epsilon > 0:
        gen = as_generator(rng)
        # random() is in [0, 1), so epsilon=1 always explores
        if gen.random() < epsilon:
            return variants[int(gen.integers(len(variants)))]

    # unexplored variants only win when nothing has been observed yet
    means = [v.stats.mean if v.stats.observations > 0 else -np.inf for v in variants]
    return variants[int(np.argmax(means))]
