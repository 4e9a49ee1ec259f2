"""
Bayesian inference for binary metrics (Beta-Bernoulli model).

Posterior per variant: Beta(successes + prior_alpha, failures + prior_beta).
Probability-to-be-best, credible intervals, expected loss and lift are Monte
Carlo estimates over joint posterior draws. All functions are pure over the
statistics they are given; randomness comes only from the ``rng`` argument.
Zero-observation variants sample straight from the prior.
"""

from typing import Optional, Sequence, Tuple

import numpy as np
from scipy import stats as sp_stats

from ..config import (
    DEFAULT_INTERVAL_SEED,
    DEFAULT_PRIOR_ALPHA,
    DEFAULT_PRIOR_BETA,
    DEFAULT_SAMPLE_COUNT,
    LIFT_FLOOR,
)
from ..schema import ComparisonResult
from .sampling import (
    RandomSource,
    as_generator,
    sample_normal_posteriors,
    sample_posteriors,
    stats_of,
)


def _check_priors(prior_alpha: float, prior_beta: float) -> None:
    if prior_alpha <= 0 or prior_beta <= 0:
        raise ValueError("Prior parameters must be positive")


def posterior_mean(
    variant,
    prior_alpha: float = DEFAULT_PRIOR_ALPHA,
    prior_beta: float = DEFAULT_PRIOR_BETA,
) -> float:
    """Expected conversion rate under the posterior."""
    _check_priors(prior_alpha, prior_beta)
    a, b = stats_of(variant).posterior(prior_alpha, prior_beta)
    return float(a / (a + b))


def probabilities_to_be_best(
    variants: Sequence,
    prior_alpha: float = DEFAULT_PRIOR_ALPHA,
    prior_beta: float = DEFAULT_PRIOR_BETA,
    sample_count: int = DEFAULT_SAMPLE_COUNT,
    rng: RandomSource = None,
) -> np.ndarray:
    """
    Probability that each variant has the highest true rate.

    Args:
        variants: Variants (or VariantStats) to compare
        prior_alpha: Beta prior alpha
        prior_beta: Beta prior beta
        sample_count: Joint posterior draws
        rng: Random source

    Returns:
        Array of probabilities aligned with ``variants``; sums to 1
    """
    if not variants:
        raise ValueError("At least one variant is required")
    _check_priors(prior_alpha, prior_beta)
    draws = sample_posteriors(
        [stats_of(v) for v in variants], prior_alpha, prior_beta, sample_count, rng
    )
    winners = np.argmax(draws, axis=1)
    counts = np.bincount(winners, minlength=len(variants))
    return counts / sample_count


def probability_to_be_best(
    variant,
    all_variants: Sequence,
    sample_count: int = DEFAULT_SAMPLE_COUNT,
    prior_alpha: float = DEFAULT_PRIOR_ALPHA,
    prior_beta: float = DEFAULT_PRIOR_BETA,
    rng: RandomSource = None,
) -> float:
    """Fraction of joint posterior draws in which ``variant`` has the largest draw."""
    index = _index_of(variant, all_variants)
    probs = probabilities_to_be_best(all_variants, prior_alpha, prior_beta, sample_count, rng)
    return float(probs[index])


def normal_probabilities_to_be_best(
    variants: Sequence,
    sample_count: int = DEFAULT_SAMPLE_COUNT,
    rng: RandomSource = None,
) -> np.ndarray:
    """
    Probability that each variant has the highest true mean (continuous metrics).

    Variants with fewer than two observations get probability 0, and at least
    two variants must have two or more.
    """
    stats = [stats_of(v) for v in variants]
    if sum(1 for s in stats if s.observations >= 2) < 2:
        raise ValueError("At least two variants need two or more observations")
    draws = sample_normal_posteriors(stats, sample_count, rng)
    winners = np.argmax(draws, axis=1)
    return np.bincount(winners, minlength=len(stats)) / sample_count


def _index_of(variant, variants: Sequence) -> int:
    for i, v in enumerate(variants):
        if v is variant:
            return i
    variant_id = getattr(variant, "variant_id", None)
    if variant_id is not None:
        for i, v in enumerate(variants):
            if getattr(v, "variant_id", None) == variant_id:
                return i
    raise ValueError("variant is not one of all_variants")


def credible_interval(
    variant,
    confidence: float = 0.95,
    prior_alpha: float = DEFAULT_PRIOR_ALPHA,
    prior_beta: float = DEFAULT_PRIOR_BETA,
    sample_count: int = DEFAULT_SAMPLE_COUNT,
    method: str = "sampling",
    rng: RandomSource = None,
) -> Tuple[float, float]:
    """
    Equal-tailed credible interval for a variant's conversion rate.

    Args:
        variant: Variant or VariantStats
        confidence: Posterior mass inside the interval, in (0, 1)
        prior_alpha: Beta prior alpha
        prior_beta: Beta prior beta
        sample_count: Posterior draws (``method="sampling"`` only)
        method: 'sampling' (empirical quantiles) or 'exact' (Beta quantile function)
        rng: Random source; defaults to a fixed seed so that, for one
            posterior, every confidence level reads the same draws and the
            intervals nest

    Returns:
        Tuple of (low, high)
    """
    if not 0 < confidence < 1:
        raise ValueError("confidence must be in (0, 1)")
    _check_priors(prior_alpha, prior_beta)
    tail = (1 - confidence) / 2
    a, b = stats_of(variant).posterior(prior_alpha, prior_beta)

    if method == "exact":
        low, high = sp_stats.beta.ppf([tail, 1 - tail], a, b)
    elif method == "sampling":
        if rng is None:
            rng = DEFAULT_INTERVAL_SEED
        draws = sample_posteriors([stats_of(variant)], prior_alpha, prior_beta, sample_count, rng)[:, 0]
        low, high = np.quantile(draws, [tail, 1 - tail])
    else:
        raise ValueError(f"Unknown credible interval method: {method!r}")
    return float(low), float(high)


def expected_loss(
    control,
    treatment,
    prior_alpha: float = DEFAULT_PRIOR_ALPHA,
    prior_beta: float = DEFAULT_PRIOR_BETA,
    sample_count: int = DEFAULT_SAMPLE_COUNT,
    rng: RandomSource = None,
) -> float:
    """
    Expected loss of choosing treatment: E[max(0, theta_control - theta_treatment)].

    Near zero when the variants are indistinguishable and large samples have
    been collected; approaches the true rate gap as control's lead becomes
    certain.
    """
    _check_priors(prior_alpha, prior_beta)
    draws = sample_posteriors(
        [stats_of(control), stats_of(treatment)], prior_alpha, prior_beta, sample_count, rng
    )
    return float(np.maximum(0.0, draws[:, 0] - draws[:, 1]).mean())


def run_bayesian_ab_test(
    control,
    treatment,
    threshold: float = 0.95,
    prior_alpha: float = DEFAULT_PRIOR_ALPHA,
    prior_beta: float = DEFAULT_PRIOR_BETA,
    sample_count: int = DEFAULT_SAMPLE_COUNT,
    confidence: Optional[float] = None,
    two_sided: bool = False,
    rng: RandomSource = None,
) -> ComparisonResult:
    """
    Bayesian A/B test of treatment against control.

    Draws paired posterior samples (theta_c, theta_t). The treatment's
    probability to be best is the share of draws with theta_t > theta_c;
    lift per draw is (theta_t - theta_c) / theta_c.

    Args:
        control: Control variant (or VariantStats)
        treatment: Treatment variant (or VariantStats)
        threshold: Posterior probability required for significance
        prior_alpha: Beta prior alpha
        prior_beta: Beta prior beta
        sample_count: Paired posterior draws
        confidence: Level of the lift credible interval (defaults to ``threshold``)
        two_sided: Also flag a clearly worse treatment (probability <= 1 - threshold)
        rng: Random source

    Returns:
        ComparisonResult with probability, significance, lift mean/interval and
        the expected loss of choosing treatment
    """
    if not 0 < threshold < 1:
        raise ValueError("threshold must be in (0, 1)")
    _check_priors(prior_alpha, prior_beta)
    level = threshold if confidence is None else confidence
    if not 0 < level < 1:
        raise ValueError("confidence must be in (0, 1)")

    gen = as_generator(rng)
    draws = sample_posteriors(
        [stats_of(control), stats_of(treatment)], prior_alpha, prior_beta, sample_count, gen
    )
    theta_c = draws[:, 0]
    theta_t = draws[:, 1]

    prob_treatment_better = float((theta_t > theta_c).mean())
    lift = (theta_t - theta_c) / np.maximum(theta_c, LIFT_FLOOR)
    tail = (1 - level) / 2
    lift_low, lift_high = np.quantile(lift, [tail, 1 - tail])
    loss = float(np.maximum(0.0, theta_c - theta_t).mean())

    is_significant = prob_treatment_better >= threshold
    if two_sided:
        is_significant = is_significant or prob_treatment_better <= 1 - threshold

    return ComparisonResult(
        control_variant_id=getattr(control, "variant_id", "control"),
        treatment_variant_id=getattr(treatment, "variant_id", "treatment"),
        probability_to_be_best=prob_treatment_better,
        is_significant=bool(is_significant),
        lift_mean=float(lift.mean()),
        lift_credible_interval=(float(lift_low), float(lift_high)),
        expected_loss=loss,
    )
