"""
Observation write path.

Folds one metric event into exactly one variant's statistics. Binary metrics
count successes/failures; all metrics keep a running mean and M2 via
Welford's algorithm, so variance never needs a pass over raw values.
"""

import logging
import math
import uuid
from dataclasses import replace
from typing import Any, Dict, Optional, Tuple

from .errors import ConfigurationError, StateConflictError
from .schema import ExperimentStatus, MetricType, Observation, VariantStats
from .store import ExperimentStore

logger = logging.getLogger(__name__)


def apply_observation(stats: VariantStats, metric_type: MetricType, value: float) -> VariantStats:
    """
    Return new stats with one observation folded in.

    Args:
        stats: Current snapshot
        metric_type: BINARY counts value > 0 as a success; CONTINUOUS uses the raw value
        value: Observed metric value

    Returns:
        New VariantStats; the input is not modified
    """
    n = stats.observations + 1
    successes = stats.successes
    failures = stats.failures

    if metric_type == MetricType.BINARY:
        if value > 0:
            x = 1.0
            successes += 1
        else:
            x = 0.0
            failures += 1
    else:
        x = float(value)

    delta = x - stats.mean
    mean = stats.mean + delta / n
    m2 = stats.m2 + delta * (x - mean)

    return replace(
        stats,
        observations=n,
        successes=successes,
        failures=failures,
        mean=mean,
        m2=m2,
        total=stats.total + x,
    )


def record_assignment(stats: VariantStats) -> VariantStats:
    return replace(stats, assignments=stats.assignments + 1)


def reset_stats(stats: VariantStats) -> VariantStats:
    """Clear outcome statistics. Assignment counts stay, since assignments stay sticky."""
    return VariantStats(assignments=stats.assignments)


def _check_value(value: Any) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Observation value must be numeric, got {value!r}")
    if not math.isfinite(v):
        raise ConfigurationError(f"Observation value must be finite, got {value!r}")
    return v


class ObservationAccumulator:
    """Records observations against assignments through the store."""

    def __init__(self, store: ExperimentStore):
        self.store = store

    def record(
        self,
        assignment_id: str,
        metric: str,
        value: float,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Tuple[Observation, Optional[VariantStats]]:
        """
        Record one observation.

        Validation happens before anything is written; the observation log and
        the variant stats are updated together under the experiment lock.

        Args:
            assignment_id: Assignment the observation belongs to
            metric: Metric name (primary or declared secondary)
            value: Metric value
            metadata: Optional extra fields stored with the observation

        Returns:
            Tuple of (observation, new primary-metric stats or None for secondary metrics)
        """
        v = _check_value(value)
        assignment = self.store.get_assignment(assignment_id)
        experiment_id = assignment.experiment_id

        with self.store.lock(experiment_id):
            experiment = self.store.get_experiment(experiment_id)
            if experiment.status != ExperimentStatus.RUNNING:
                raise StateConflictError(
                    f"Experiment {experiment_id} is not running (status: {experiment.status.value})",
                    current_status=experiment.status.value,
                )
            config = experiment.config
            is_primary = metric == config.primary_metric
            if not is_primary and metric not in config.secondary_metrics:
                raise ConfigurationError(
                    f"Metric {metric!r} is not configured for experiment {experiment_id}"
                )

            variant = experiment.get_variant(assignment.variant_id)
            new_stats = None
            if is_primary:
                new_stats = apply_observation(variant.stats, config.metric_type, v)

            observation = Observation(
                observation_id=str(uuid.uuid4()),
                assignment_id=assignment_id,
                experiment_id=experiment_id,
                variant_id=variant.variant_id,
                metric=metric,
                value=v,
                metadata=dict(metadata or {}),
            )
            self.store.append_observation(observation)
            if new_stats is not None:
                self.store.put_variant_stats(experiment_id, variant.variant_id, new_stats)

        logger.debug(
            f"Observation {metric}={v} recorded for variant {variant.name} "
            f"of experiment {experiment_id}"
        )
        return observation, new_stats
