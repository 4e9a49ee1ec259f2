"""Experiment statistics module."""

from .sampling import as_generator, sample_beta, sample_normal_posteriors, sample_posteriors
from .bayesian import (
    posterior_mean,
    probabilities_to_be_best,
    probability_to_be_best,
    normal_probabilities_to_be_best,
    credible_interval,
    expected_loss,
    run_bayesian_ab_test,
)
from .srm import srm_chi_square, check_srm
from .hypothesis_tests import proportions_z_test, welch_t_test

__all__ = [
    "as_generator",
    "sample_beta",
    "sample_posteriors",
    "sample_normal_posteriors",
    "posterior_mean",
    "probabilities_to_be_best",
    "probability_to_be_best",
    "normal_probabilities_to_be_best",
    "credible_interval",
    "expected_loss",
    "run_bayesian_ab_test",
    "srm_chi_square",
    "check_srm",
    "proportions_z_test",
    "welch_t_test",
]
