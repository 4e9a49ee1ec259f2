"""
Sample Ratio Mismatch (SRM) chi-square test.

Detects if the actual assignment counts deviate significantly from the
configured variant weights. Only meaningful for fixed-allocation strategies;
bandits shift traffic on purpose.
"""

from typing import Sequence, Tuple

import numpy as np
from scipy import stats


def srm_chi_square(
    counts: Sequence[int],
    weights: Sequence[float],
) -> Tuple[float, float]:
    """
    Chi-square goodness-of-fit test for sample ratio mismatch.

    H0: assignment counts follow the configured weights
    H1: they do not

    Args:
        counts: Assignments per variant
        weights: Configured weight per variant (normalised internally)

    Returns:
        Tuple of (chi2_statistic, p_value)
    """
    observed = np.asarray(counts, dtype=float)
    w = np.asarray(weights, dtype=float)
    n_total = observed.sum()
    if n_total == 0 or len(observed) < 2:
        return 0.0, 1.0

    expected = n_total * w / w.sum()
    # Avoid division by zero
    expected = np.where(expected == 0, 1e-10, expected)

    chi2 = np.sum((observed - expected) ** 2 / expected)
    p_value = 1 - stats.chi2.cdf(chi2, df=len(observed) - 1)

    return float(chi2), float(p_value)


def check_srm(
    counts: Sequence[int],
    weights: Sequence[float],
    alpha: float = 0.01,
) -> Tuple[bool, float, float]:
    """
    Check for sample ratio mismatch.

    Args:
        counts: Assignments per variant
        weights: Configured weight per variant
        alpha: Significance threshold (default 0.01)

    Returns:
        Tuple of (srm_passed, chi2_statistic, p_value)
    """
    chi2, p_value = srm_chi_square(counts, weights)
    srm_passed = p_value >= alpha
    return srm_passed, chi2, p_value
