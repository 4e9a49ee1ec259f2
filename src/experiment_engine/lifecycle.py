"""
Experiment lifecycle: draft -> running -> completed.

``ExperimentLifecycle`` is the engine's operation surface. It validates
configuration, moves experiments through their states, and delegates the
assignment and observation write paths to AssignmentStore and
ObservationAccumulator. Every operation is all-or-nothing: validation runs
before any write.
"""

import logging
import math
import uuid
from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence, Union

from .accumulator import ObservationAccumulator, reset_stats
from .algorithms import validate_parameters
from .analyze import analyze_experiment
from .assignment import AssignmentStore
from .config import EngineSettings
from .errors import ConfigurationError, StateConflictError
from .event_store import EventSink, NullEventSink
from .schema import (
    AnalyticsEvent,
    Assignment,
    AssignmentContext,
    Excluded,
    Experiment,
    ExperimentConfig,
    ExperimentResults,
    ExperimentStatus,
    Observation,
    RecommendedAction,
    Variant,
    VariantConfig,
    VariantStats,
    utcnow,
)
from .stats.sampling import RandomSource, RandomStream
from .store import ExperimentStore, InMemoryExperimentStore

logger = logging.getLogger(__name__)


def validate_config(config: ExperimentConfig, variants: Sequence[VariantConfig]) -> None:
    """Raise ConfigurationError unless the experiment can be created as given."""
    if not config.name:
        raise ConfigurationError("Experiment name is required")
    if len(variants) < 2:
        raise ConfigurationError(f"At least 2 variants are required, got {len(variants)}")

    allocation = config.traffic_allocation
    if not isinstance(allocation, (int, float)) or not math.isfinite(allocation) or not 0 <= allocation <= 1:
        raise ConfigurationError(f"traffic_allocation must be in [0, 1], got {allocation!r}")
    if not 0 < config.significance_threshold < 1:
        raise ConfigurationError("significance_threshold must be in (0, 1)")
    if config.min_sample_size < 0:
        raise ConfigurationError("min_sample_size must be non-negative")
    if not config.primary_metric:
        raise ConfigurationError("primary_metric is required")
    if config.primary_metric in config.secondary_metrics:
        raise ConfigurationError("primary_metric cannot also be a secondary metric")

    validate_parameters(config.strategy, config.parameters, config.metric_type)

    names = [v.name for v in variants]
    if any(not n for n in names):
        raise ConfigurationError("Every variant needs a name")
    if len(set(names)) != len(names):
        raise ConfigurationError(f"Variant names must be unique: {names}")
    if sum(1 for v in variants if v.is_control) > 1:
        raise ConfigurationError("At most one variant can be the control")

    weights = [v.weight for v in variants if v.weight is not None]
    if any(w < 0 for w in weights):
        raise ConfigurationError("Variant weights must be non-negative")
    if weights and len(weights) == len(variants) and sum(weights) <= 0:
        raise ConfigurationError("Variant weights must have a positive sum")


def _coerce_context(context: Union[AssignmentContext, Dict[str, Any], str]) -> AssignmentContext:
    if isinstance(context, AssignmentContext):
        return context
    if isinstance(context, str):
        return AssignmentContext(subject_id=context)
    if isinstance(context, dict) and context.get("subject_id"):
        return AssignmentContext(
            subject_id=str(context["subject_id"]),
            session_id=context.get("session_id"),
            attributes=dict(context.get("attributes", {})),
        )
    raise ConfigurationError("Assignment context needs a subject_id")


class ExperimentLifecycle:
    """Experimentation engine: create, start, assign, observe, analyze, conclude."""

    def __init__(
        self,
        store: Optional[ExperimentStore] = None,
        event_sink: Optional[EventSink] = None,
        settings: Optional[EngineSettings] = None,
        rng: RandomSource = None,
    ):
        self.store = store or InMemoryExperimentStore()
        self.event_sink = event_sink or NullEventSink()
        self.settings = settings or EngineSettings()
        self._random = RandomStream(rng)
        self.assignments = AssignmentStore(self.store, self._random)
        self.accumulator = ObservationAccumulator(self.store)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def create_experiment(
        self,
        config: ExperimentConfig,
        variants: Sequence[VariantConfig],
    ) -> Experiment:
        """
        Create an experiment in draft.

        The first variant becomes the control unless one is flagged; variants
        without a weight get 1 / len(variants).
        """
        validate_config(config, variants)

        experiment_id = str(uuid.uuid4())
        has_control = any(v.is_control for v in variants)
        default_weight = 1 / len(variants)
        experiment_variants = [
            Variant(
                variant_id=str(uuid.uuid4()),
                experiment_id=experiment_id,
                name=v.name,
                is_control=v.is_control or (not has_control and index == 0),
                weight=default_weight if v.weight is None else float(v.weight),
                payload=dict(v.payload),
                description=v.description,
                stats=VariantStats(),
            )
            for index, v in enumerate(variants)
        ]
        if sum(v.weight for v in experiment_variants) <= 0:
            raise ConfigurationError("Variant weights must have a positive sum")

        now = utcnow()
        experiment = Experiment(
            experiment_id=experiment_id,
            config=config,
            variants=experiment_variants,
            status=ExperimentStatus.DRAFT,
            created_at=now,
            updated_at=now,
        )
        self.store.insert_experiment(experiment)

        logger.info(
            f"Created experiment {experiment_id} ({config.name}, {config.strategy.value}) "
            f"with {len(experiment_variants)} variants"
        )
        self._emit(AnalyticsEvent(
            event_type="experiment_created",
            experiment_id=experiment_id,
            attributes={
                "strategy": config.strategy.value,
                "primary_metric": config.primary_metric,
                "n_variants": len(experiment_variants),
            },
        ))
        return self.store.get_experiment(experiment_id)

    def start_experiment(self, experiment_id: str) -> Experiment:
        """Move a draft experiment to running."""
        with self.store.lock(experiment_id):
            experiment = self.store.get_experiment(experiment_id)
            if experiment.status != ExperimentStatus.DRAFT:
                raise StateConflictError(
                    f"Experiment {experiment_id} cannot start from status {experiment.status.value}",
                    current_status=experiment.status.value,
                )
            now = utcnow()
            experiment = replace(
                experiment, status=ExperimentStatus.RUNNING, started_at=now, updated_at=now
            )
            self.store.save_experiment(experiment)

        logger.info(f"Started experiment {experiment_id}")
        self._emit(AnalyticsEvent(event_type="experiment_started", experiment_id=experiment_id))
        return experiment

    def conclude_experiment(
        self,
        experiment_id: str,
        winner_variant_id: Optional[str] = None,
    ) -> Experiment:
        """
        Move a running experiment to completed.

        Args:
            experiment_id: Experiment identifier
            winner_variant_id: Winner to record; when omitted, the analysis
                winner is used if the analysis recommends concluding

        Returns:
            The completed experiment
        """
        snapshot = self.store.get_experiment(experiment_id)
        _require_status(snapshot, ExperimentStatus.RUNNING, "conclude")
        if winner_variant_id is not None:
            snapshot.get_variant(winner_variant_id)
        else:
            results = self._analyze(snapshot)
            if results.recommended_action == RecommendedAction.CONCLUDE_WINNER:
                winner_variant_id = results.winner_variant_id

        with self.store.lock(experiment_id):
            experiment = self.store.get_experiment(experiment_id)
            _require_status(experiment, ExperimentStatus.RUNNING, "conclude")
            now = utcnow()
            experiment = replace(
                experiment,
                status=ExperimentStatus.COMPLETED,
                concluded_at=now,
                updated_at=now,
                winner_variant_id=winner_variant_id,
            )
            self.store.save_experiment(experiment)

        logger.info(f"Concluded experiment {experiment_id} (winner: {winner_variant_id or 'none'})")
        self._emit(AnalyticsEvent(
            event_type="experiment_concluded",
            experiment_id=experiment_id,
            variant_id=winner_variant_id,
        ))
        return experiment

    # ------------------------------------------------------------------
    # Serving path
    # ------------------------------------------------------------------

    def assign_variant(
        self,
        experiment_id: str,
        context: Union[AssignmentContext, Dict[str, Any], str],
    ) -> Union[Assignment, Excluded]:
        """Sticky assignment of a subject; Excluded when outside traffic allocation."""
        ctx = _coerce_context(context)
        result, created = self.assignments.assign(experiment_id, ctx)

        if isinstance(result, Excluded):
            self._emit(AnalyticsEvent(
                event_type="subject_excluded",
                experiment_id=experiment_id,
                subject_id=ctx.subject_id,
                value=result.hash_value,
            ))
        elif created:
            self._emit(AnalyticsEvent(
                event_type="variant_assigned",
                experiment_id=experiment_id,
                variant_id=result.variant_id,
                subject_id=ctx.subject_id,
                attributes={"variant_name": result.variant_name},
            ))
        return result

    def record_observation(
        self,
        assignment_id: str,
        metric: str,
        value: float,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Observation:
        """Record a metric value for an assignment. Not idempotent."""
        observation, new_stats = self.accumulator.record(assignment_id, metric, value, metadata)

        self._emit(AnalyticsEvent(
            event_type="observation_recorded",
            experiment_id=observation.experiment_id,
            variant_id=observation.variant_id,
            metric=metric,
            value=observation.value,
        ))
        if new_stats is not None:
            self._maybe_auto_promote(observation.experiment_id)
        return observation

    # ------------------------------------------------------------------
    # Reads and maintenance
    # ------------------------------------------------------------------

    def get_experiment(self, experiment_id: str) -> Experiment:
        return self.store.get_experiment(experiment_id)

    def list_observations(self, experiment_id: str) -> List[Observation]:
        return self.store.list_observations(experiment_id)

    def get_experiment_stats(self, experiment_id: str) -> ExperimentResults:
        """Current statistics and recommendation; valid in any state."""
        return self._analyze(self.store.get_experiment(experiment_id))

    def reset_variant_stats(self, experiment_id: str, variant_id: str) -> Variant:
        """Clear a variant's outcome statistics. Valid in draft or running."""
        with self.store.lock(experiment_id):
            experiment = self.store.get_experiment(experiment_id)
            if experiment.status == ExperimentStatus.COMPLETED:
                raise StateConflictError(
                    f"Experiment {experiment_id} is completed; stats are frozen",
                    current_status=experiment.status.value,
                )
            variant = experiment.get_variant(variant_id)
            new_stats = reset_stats(variant.stats)
            self.store.put_variant_stats(experiment_id, variant_id, new_stats)

        logger.info(f"Reset stats for variant {variant.name} of experiment {experiment_id}")
        return replace(variant, stats=new_stats)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _analyze(self, experiment: Experiment) -> ExperimentResults:
        observations = None
        if experiment.config.secondary_metrics:
            observations = self.store.list_observations(experiment.experiment_id)
        return analyze_experiment(
            experiment,
            observations=observations,
            settings=self.settings,
            rng=self._random.next(),
        )

    def _maybe_auto_promote(self, experiment_id: str) -> None:
        experiment = self.store.get_experiment(experiment_id)
        if not experiment.config.auto_promote_winner or experiment.status != ExperimentStatus.RUNNING:
            return
        total = sum(v.stats.observations for v in experiment.variants)
        if total % self.settings.auto_promote_check_every != 0:
            return

        results = self._analyze(experiment)
        if results.recommended_action != RecommendedAction.CONCLUDE_WINNER:
            return
        try:
            self.conclude_experiment(experiment_id, results.winner_variant_id)
        except StateConflictError:
            # concluded by a concurrent caller
            return
        logger.info(
            f"Auto-promoted variant {results.winner_variant_id} in experiment {experiment_id} "
            f"(confidence={results.confidence:.4f})"
        )

    def _emit(self, event: AnalyticsEvent) -> None:
        try:
            self.event_sink.emit(event)
        except Exception as e:
            logger.warning(f"Event sink failed for {event.event_type} on {event.experiment_id}: {e}")


def _require_status(experiment: Experiment, status: ExperimentStatus, action: str) -> None:
    if experiment.status != status:
        raise StateConflictError(
            f"Cannot {action} experiment {experiment.experiment_id} in status {experiment.status.value}",
            current_status=experiment.status.value,
        )
