"""Tests for SRM chi-square."""
from experiment_engine.stats.srm import check_srm, srm_chi_square


def test_srm_perfect_balance():
    """500/500 should pass SRM."""
    passed, _, p = check_srm([500, 500], [0.5, 0.5])
    assert passed
    assert p > 0.9


def test_srm_extreme_imbalance():
    """900/100 should fail SRM."""
    passed, _, p = check_srm([900, 100], [0.5, 0.5])
    assert not passed
    assert p < 0.01


def test_srm_uneven_weights():
    """Counts that follow 80/20 weights pass; weights need not sum to one."""
    passed, _, _ = check_srm([802, 198], [4, 1])
    assert passed
    passed, _, _ = check_srm([500, 500], [0.8, 0.2])
    assert not passed


def test_srm_three_variants():
    passed, _, _ = check_srm([340, 330, 330], [1, 1, 1])
    assert passed


def test_srm_chi_square_output():
    """Chi-square returns (stat, pvalue)."""
    chi2, p = srm_chi_square([50, 50], [1, 1])
    assert chi2 >= 0
    assert 0 <= p <= 1


def test_srm_no_traffic():
    assert srm_chi_square([0, 0], [1, 1]) == (0.0, 1.0)
