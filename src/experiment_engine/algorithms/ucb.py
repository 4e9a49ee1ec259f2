"""
UCB1 (Upper Confidence Bound).

Deterministic: unexplored variants are served first, in input order; after
that the score is mean + c * sqrt(2 * ln(N) / n). No randomness and no clock,
so identical statistics always yield the identical choice.
"""

import math
from typing import List, Sequence

import numpy as np

from ..config import DEFAULT_UCB_C


def ucb_scores(variants: Sequence, c: float = DEFAULT_UCB_C) -> List[float]:
    """UCB1 score per variant; unexplored variants score +inf."""
    if c < 0:
        raise ValueError("c must be non-negative")
    total = sum(v.stats.observations for v in variants)
    log_total = math.log(total) if total > 0 else 0.0
    scores = []
    for v in variants:
        n = v.stats.observations
        if n == 0:
            scores.append(math.inf)
        else:
            scores.append(v.stats.mean + c * math.sqrt(2 * log_total / n))
    return scores


def select_ucb(variants: Sequence, c: float = DEFAULT_UCB_C):
    """
    Pick the variant with the highest UCB1 score.

    Args:
        variants: Candidate variants (stats snapshot)
        c: Exploration weight; 0 is pure exploitation

    Returns:
        Selected variant (first unexplored variant if any exist)
    """
    if not variants:
        raise ValueError("At least one variant is required")
    scores = ucb_scores(variants, c)
    # np.argmax returns the first maximum, which also covers the all-inf case
    return variants[int(np.argmax(scores))]
