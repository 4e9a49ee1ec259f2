"""
Experiment analysis.

Input: an experiment snapshot (variants with current stats) and, optionally,
its observation log for secondary metrics.
Output: ExperimentResults with per-variant reports, treatment-vs-control
comparisons, SRM check and the recommended action.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy import stats

from .algorithms import FIXED_ALLOCATION_STRATEGIES, prior_parameters
from .config import EngineSettings
from .schema import (
    ComparisonResult,
    Experiment,
    ExperimentResults,
    MetricType,
    Observation,
    RecommendedAction,
    VariantReport,
    VariantStats,
    utcnow,
)
from .stats import (
    check_srm,
    credible_interval,
    normal_probabilities_to_be_best,
    posterior_mean,
    probabilities_to_be_best,
    proportions_z_test,
    run_bayesian_ab_test,
    sample_normal_posteriors,
    welch_t_test,
)
from .stats.sampling import RandomSource, as_generator

logger = logging.getLogger(__name__)


def summarize_secondary_metrics(
    observations: Sequence[Observation],
    metrics: Sequence[str],
) -> Dict[str, Dict[str, Dict[str, float]]]:
    """
    Count / mean / sum per (variant, secondary metric).

    Returns:
        Nested dict variant_id -> metric -> {"count", "mean", "sum"}
    """
    rows = [
        {"variant_id": o.variant_id, "metric": o.metric, "value": o.value}
        for o in observations
        if o.metric in metrics
    ]
    if not rows:
        return {}
    df = pd.DataFrame(rows)
    grouped = df.groupby(["variant_id", "metric"])["value"].agg(["count", "mean", "sum"])

    summary: Dict[str, Dict[str, Dict[str, float]]] = {}
    for (variant_id, metric), row in grouped.iterrows():
        summary.setdefault(variant_id, {})[metric] = {
            "count": int(row["count"]),
            "mean": float(row["mean"]),
            "sum": float(row["sum"]),
        }
    return summary


def _mean_confidence_interval(s: VariantStats, ci_level: float) -> Optional[Tuple[float, float]]:
    """t-based interval for a continuous mean; degenerate below two observations."""
    if s.observations == 0:
        return None
    if s.observations < 2 or s.std == 0:
        return s.mean, s.mean
    se = s.std / np.sqrt(s.observations)
    t_crit = stats.t.ppf((1 + ci_level) / 2, s.observations - 1)
    return float(s.mean - t_crit * se), float(s.mean + t_crit * se)


def _duration_seconds(experiment: Experiment, now: datetime) -> float:
    if experiment.started_at is None:
        return 0.0
    end = experiment.concluded_at or now
    return max(0.0, (end - experiment.started_at).total_seconds())


def _binary_analysis(
    experiment: Experiment,
    reports: List[VariantReport],
    settings: EngineSettings,
    gen,
) -> Tuple[List[ComparisonResult], Optional[int], float]:
    config = experiment.config
    prior_alpha, prior_beta = prior_parameters(config.parameters)
    variants = experiment.variants

    for v, r in zip(variants, reports):
        r.posterior_mean = posterior_mean(v, prior_alpha, prior_beta)
        r.credible_interval = credible_interval(
            v, settings.credible_level, prior_alpha, prior_beta,
            sample_count=settings.sample_count,
        )

    control = experiment.control
    comparisons = []
    for treatment in experiment.treatments:
        result = run_bayesian_ab_test(
            control,
            treatment,
            threshold=config.significance_threshold,
            prior_alpha=prior_alpha,
            prior_beta=prior_beta,
            sample_count=settings.sample_count,
            confidence=settings.credible_level,
            two_sided=settings.two_sided_significance,
            rng=gen,
        )
        _, _, p_value, _, _ = proportions_z_test(
            control.stats.observations, control.stats.successes,
            treatment.stats.observations, treatment.stats.successes,
        )
        result.p_value = p_value
        comparisons.append(result)

    observed = [v for v in variants if v.stats.observations > 0]
    if len(observed) < 2:
        return comparisons, None, 0.0

    probs = probabilities_to_be_best(
        variants, prior_alpha, prior_beta, sample_count=settings.sample_count, rng=gen
    )
    for r, p in zip(reports, probs):
        r.probability_to_be_best = float(p)
    best = int(np.argmax(probs))
    return comparisons, best, float(probs[best])


def _continuous_analysis(
    experiment: Experiment,
    reports: List[VariantReport],
    settings: EngineSettings,
    gen,
) -> Tuple[List[ComparisonResult], Optional[int], float]:
    config = experiment.config
    variants = experiment.variants
    threshold = config.significance_threshold

    for v, r in zip(variants, reports):
        if v.stats.observations:
            r.posterior_mean = v.stats.mean
        r.credible_interval = _mean_confidence_interval(v.stats, settings.credible_level)

    control = experiment.control
    comparisons = []
    for treatment in experiment.treatments:
        lift, _, p_value, ci_low, ci_high = welch_t_test(
            control.stats, treatment.stats, settings.credible_level
        )
        prob = None
        loss = None
        is_significant = False
        if control.stats.observations >= 2 and treatment.stats.observations >= 2:
            draws = sample_normal_posteriors(
                [control.stats, treatment.stats], settings.sample_count, gen
            )
            prob = float((draws[:, 1] > draws[:, 0]).mean())
            loss = float(np.maximum(0.0, draws[:, 0] - draws[:, 1]).mean())
            is_significant = prob >= threshold
            if settings.two_sided_significance:
                is_significant = is_significant or prob <= 1 - threshold
        comparisons.append(ComparisonResult(
            control_variant_id=control.variant_id,
            treatment_variant_id=treatment.variant_id,
            probability_to_be_best=prob,
            is_significant=is_significant,
            lift_mean=lift,
            lift_credible_interval=(ci_low, ci_high),
            expected_loss=loss,
            p_value=p_value,
        ))

    # Normal posteriors need a variance estimate
    eligible = [v for v in variants if v.stats.observations >= 2]
    if len(eligible) < 2:
        return comparisons, None, 0.0

    probs = normal_probabilities_to_be_best(variants, settings.sample_count, gen)
    for r, p in zip(reports, probs):
        r.probability_to_be_best = float(p)
    best = int(np.argmax(probs))
    return comparisons, best, float(probs[best])


def analyze_experiment(
    experiment: Experiment,
    observations: Optional[Sequence[Observation]] = None,
    settings: Optional[EngineSettings] = None,
    rng: RandomSource = None,
    now: Optional[datetime] = None,
) -> ExperimentResults:
    """
    Run full experiment analysis on a snapshot.

    Args:
        experiment: Experiment with current variant stats
        observations: Observation log, used for secondary metric summaries
        settings: Engine settings (sample count, credible level, SRM alpha)
        rng: Random source for Monte Carlo estimates
        now: Clock override for the duration calculation

    Returns:
        ExperimentResults
    """
    settings = settings or EngineSettings()
    now = now or utcnow()
    config = experiment.config
    variants = experiment.variants
    gen = as_generator(rng)

    secondary = summarize_secondary_metrics(observations or [], config.secondary_metrics)
    reports = [
        VariantReport(
            variant_id=v.variant_id,
            name=v.name,
            is_control=v.is_control,
            stats=v.stats,
            secondary_metrics=secondary.get(v.variant_id, {}),
        )
        for v in variants
    ]

    if config.metric_type == MetricType.BINARY:
        comparisons, best, confidence = _binary_analysis(experiment, reports, settings, gen)
    else:
        comparisons, best, confidence = _continuous_analysis(experiment, reports, settings, gen)

    total_assignments = sum(v.stats.assignments for v in variants)
    total_observations = sum(v.stats.observations for v in variants)
    sample_size_reached = total_observations > config.min_sample_size

    # Recommendation logic
    winner_variant_id = None
    recommended_action = RecommendedAction.CONTINUE
    if best is not None and confidence > config.significance_threshold and sample_size_reached:
        winner_variant_id = variants[best].variant_id
        recommended_action = RecommendedAction.CONCLUDE_WINNER

    srm_passed = None
    srm_p = None
    if config.strategy in FIXED_ALLOCATION_STRATEGIES and total_assignments > 0:
        weights = [1.0 if v.weight is None else v.weight for v in variants]
        srm_passed, _, srm_p = check_srm(
            [v.stats.assignments for v in variants], weights, alpha=settings.srm_alpha
        )
        if not srm_passed:
            logger.warning(
                f"SRM detected for experiment {experiment.experiment_id} (p={srm_p:.4g}): "
                "assignment counts deviate from configured weights"
            )

    result = ExperimentResults(
        experiment_id=experiment.experiment_id,
        status=experiment.status,
        primary_metric=config.primary_metric,
        variants=reports,
        comparisons=comparisons,
        winner_variant_id=winner_variant_id,
        confidence=confidence,
        total_assignments=total_assignments,
        total_observations=total_observations,
        duration_seconds=_duration_seconds(experiment, now),
        recommended_action=recommended_action,
        sample_size_reached=sample_size_reached,
        srm_passed=srm_passed,
        srm_p_value=srm_p,
        generated_at=now,
    )
    logger.debug(
        f"Analysis for {experiment.experiment_id}: action={recommended_action.value}, "
        f"confidence={confidence:.4f}, observations={total_observations}"
    )
    return result
