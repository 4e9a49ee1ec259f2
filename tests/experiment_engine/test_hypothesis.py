"""Tests for z-test and Welch t-test."""
import numpy as np
from experiment_engine.schema import VariantStats
from experiment_engine.stats.hypothesis_tests import proportions_z_test, welch_t_test


def _stats_from(values):
    values = np.asarray(values, dtype=float)
    n = len(values)
    return VariantStats(
        observations=n,
        mean=float(values.mean()),
        m2=float(((values - values.mean()) ** 2).sum()),
        total=float(values.sum()),
    )


def test_proportions_z_test_known():
    """Known case: 10/100 vs 20/100 -> treatment better."""
    lift, lift_pct, p_val, ci_lo, ci_hi = proportions_z_test(100, 10, 100, 20)
    assert lift > 0
    assert abs(lift_pct - 100.0) < 1e-9
    assert p_val < 0.1
    assert ci_lo <= lift <= ci_hi


def test_proportions_z_test_equal():
    """Equal proportions -> high p-value."""
    lift, _, p_val, _, _ = proportions_z_test(100, 30, 100, 30)
    assert abs(lift) < 0.01
    assert p_val > 0.9


def test_proportions_z_test_empty_arm():
    lift, _, p_val, _, _ = proportions_z_test(0, 0, 100, 30)
    assert p_val == 1.0


def test_welch_t_test_matches_scipy():
    from scipy import stats

    rng = np.random.default_rng(0)
    ctrl = rng.normal(5.0, 1.0, 200)
    treat = rng.normal(5.4, 2.0, 150)
    lift, _, p_val, ci_lo, ci_hi = welch_t_test(_stats_from(ctrl), _stats_from(treat))
    expected = stats.ttest_ind(treat, ctrl, equal_var=False)
    assert abs(p_val - expected.pvalue) < 1e-8
    assert abs(lift - (treat.mean() - ctrl.mean())) < 1e-9
    assert ci_lo <= lift <= ci_hi


def test_welch_t_test_undefined_below_two_observations():
    lift, _, p_val, ci_lo, ci_hi = welch_t_test(_stats_from([1.0]), _stats_from([2.0, 3.0]))
    assert p_val == 1.0
    assert ci_lo == ci_hi == lift
