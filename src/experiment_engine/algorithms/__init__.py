"""
Variant selection strategies.

All strategies map a stats snapshot of an experiment's variants to one
variant. ``select_variant`` dispatches on the configured strategy name and
pulls strategy parameters from ``ExperimentConfig.parameters``.
"""

from typing import Any, Dict, Sequence

from ..config import DEFAULT_EPSILON, DEFAULT_PRIOR_ALPHA, DEFAULT_PRIOR_BETA, DEFAULT_UCB_C
from ..errors import ConfigurationError
from ..schema import MetricType, SelectionStrategy
from ..stats.sampling import RandomSource
from .epsilon_greedy import select_epsilon_greedy
from .thompson_sampling import select_thompson_sampling
from .ucb import select_ucb, ucb_scores
from .weighted import select_by_weight

BETA_BERNOULLI_STRATEGIES = (SelectionStrategy.THOMPSON_SAMPLING, SelectionStrategy.BAYESIAN_AB)
FIXED_ALLOCATION_STRATEGIES = (SelectionStrategy.BAYESIAN_AB, SelectionStrategy.AB_TEST)


def prior_parameters(parameters: Dict[str, Any]):
    """(prior_alpha, prior_beta) from strategy parameters, with defaults."""
    return (
        float(parameters.get("prior_alpha", DEFAULT_PRIOR_ALPHA)),
        float(parameters.get("prior_beta", DEFAULT_PRIOR_BETA)),
    )


def validate_parameters(
    strategy: SelectionStrategy,
    parameters: Dict[str, Any],
    metric_type: MetricType = MetricType.BINARY,
) -> None:
    """Reject strategy parameters the selection routines cannot work with."""
    try:
        prior_alpha, prior_beta = prior_parameters(parameters)
        c = float(parameters.get("c", DEFAULT_UCB_C))
        epsilon = float(parameters.get("epsilon", DEFAULT_EPSILON))
    except (TypeError, ValueError):
        raise ConfigurationError(f"Strategy parameters must be numeric: {parameters}")

    if prior_alpha <= 0 or prior_beta <= 0:
        raise ConfigurationError("prior_alpha and prior_beta must be positive")
    if strategy == SelectionStrategy.UCB and c < 0:
        raise ConfigurationError("UCB exploration weight c must be non-negative")
    if strategy == SelectionStrategy.EPSILON_GREEDY and not 0 <= epsilon <= 1:
        raise ConfigurationError("epsilon must be in [0, 1]")
    if strategy in BETA_BERNOULLI_STRATEGIES and metric_type != MetricType.BINARY:
        raise ConfigurationError(
            f"Strategy {strategy.value} requires a binary primary metric"
        )


def select_variant(
    strategy: SelectionStrategy,
    variants: Sequence,
    parameters: Dict[str, Any],
    rng: RandomSource = None,
):
    """
    Select a variant with the named strategy.

    Args:
        strategy: Configured selection strategy
        variants: Stats snapshot of the experiment's variants
        parameters: Strategy-specific parameters
        rng: Random source (ignored by UCB)

    Returns:
        Selected variant
    """
    strategy = SelectionStrategy(strategy)
    if strategy == SelectionStrategy.THOMPSON_SAMPLING:
        prior_alpha, prior_beta = prior_parameters(parameters)
        return select_thompson_sampling(variants, prior_alpha, prior_beta, rng)
    if strategy == SelectionStrategy.UCB:
        return select_ucb(variants, float(parameters.get("c", DEFAULT_UCB_C)))
    if strategy == SelectionStrategy.EPSILON_GREEDY:
        return select_epsilon_greedy(
            variants, float(parameters.get("epsilon", DEFAULT_EPSILON)), rng
        )
    return select_by_weight(variants, rng)


__all__ = [
    "BETA_BERNOULLI_STRATEGIES",
    "FIXED_ALLOCATION_STRATEGIES",
    "prior_parameters",
    "validate_parameters",
    "select_variant",
    "select_thompson_sampling",
    "select_ucb",
    "ucb_scores",
    "select_epsilon_greedy",
    "select_by_weight",
]
