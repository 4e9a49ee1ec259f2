"""
Frequentist companion tests computed from variant sufficient statistics.

Z-test for proportions (binary metrics), Welch t-test for continuous metrics.
Both work directly on counts / running moments, so no raw observations are
needed.
"""

from typing import Tuple

import numpy as np
from scipy import stats


def proportions_z_test(
    n1: int,
    x1: int,
    n2: int,
    x2: int,
    ci_level: float = 0.95,
) -> Tuple[float, float, float, float, float]:
    """
    Two-proportion z-test (e.g., conversion rate control vs treatment).

    Args:
        n1: Control sample size
        x1: Control successes
        n2: Treatment sample size
        x2: Treatment successes
        ci_level: Confidence level

    Returns:
        Tuple of (lift, lift_pct, p_value, ci_low, ci_high)
    """
    p1 = x1 / n1 if n1 > 0 else 0
    p2 = x2 / n2 if n2 > 0 else 0

    p_pool = (x1 + x2) / (n1 + n2) if (n1 + n2) > 0 else 0
    se = np.sqrt(p_pool * (1 - p_pool) * (1 / n1 + 1 / n2)) if (n1 and n2) else 0.0

    lift = p2 - p1
    lift_pct = (p2 - p1) / p1 * 100 if p1 > 0 else 0

    z = (p2 - p1) / se if se > 0 else 0
    p_value = 2 * (1 - stats.norm.cdf(abs(z)))

    z_crit = stats.norm.ppf((1 + ci_level) / 2)
    ci_low = lift - z_crit * se
    ci_high = lift + z_crit * se

    return float(lift), float(lift_pct), float(p_value), float(ci_low), float(ci_high)


def welch_t_test(
    control,
    treatment,
    ci_level: float = 0.95,
) -> Tuple[float, float, float, float, float]:
    """
    Welch two-sample t-test from VariantStats snapshots.

    Args:
        control: Control VariantStats
        treatment: Treatment VariantStats
        ci_level: Confidence level

    Returns:
        Tuple of (lift, lift_pct, p_value, ci_low, ci_high). With fewer than two
        observations in either arm the test is undefined and p_value is 1.0.
    """
    n_c = control.observations
    n_t = treatment.observations
    m_c = control.mean if n_c else 0.0
    m_t = treatment.mean if n_t else 0.0

    lift = m_t - m_c
    lift_pct = (m_t - m_c) / m_c * 100 if m_c != 0 else 0

    if n_c < 2 or n_t < 2:
        return float(lift), float(lift_pct), 1.0, float(lift), float(lift)

    var_c = control.variance / n_c
    var_t = treatment.variance / n_t
    se = np.sqrt(var_c + var_t)
    if se == 0:
        p_value = 1.0 if lift == 0 else 0.0
        return float(lift), float(lift_pct), p_value, float(lift), float(lift)

    _, p_value = stats.ttest_ind_from_stats(
        m_t, treatment.std, n_t,
        m_c, control.std, n_c,
        equal_var=False,
    )
    # Welch-Satterthwaite degrees of freedom
    dof = (var_c + var_t) ** 2 / (var_c ** 2 / (n_c - 1) + var_t ** 2 / (n_t - 1))
    t_crit = stats.t.ppf((1 + ci_level) / 2, dof)
    ci_low = lift - t_crit * se
    ci_high = lift + t_crit * se

    return float(lift), float(lift_pct), float(p_value), float(ci_low), float(ci_high)
