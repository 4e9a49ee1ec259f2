"""
Experiment data models for the experimentation engine.

Dataclass schemas for experiment configuration, variants and their sufficient
statistics, sticky assignments, observations, analytics events and analysis
results.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .errors import ConfigurationError, NotFoundError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class ExperimentStatus(str, Enum):
    """Experiment lifecycle state."""
    DRAFT = "draft"
    RUNNING = "running"
    COMPLETED = "completed"


class SelectionStrategy(str, Enum):
    """Variant selection strategy."""
    THOMPSON_SAMPLING = "thompson_sampling"
    UCB = "ucb"
    EPSILON_GREEDY = "epsilon_greedy"
    BAYESIAN_AB = "bayesian_ab"  # fixed allocation, Bayesian analysis
    AB_TEST = "ab_test"  # fixed allocation


class MetricType(str, Enum):
    """Metric type for the primary metric."""
    BINARY = "binary"  # e.g., click, conversion
    CONTINUOUS = "continuous"  # e.g., revenue, dwell time


class RecommendedAction(str, Enum):
    CONTINUE = "continue"
    CONCLUDE_WINNER = "conclude_winner"


@dataclass
class ExperimentConfig:
    """Configuration for an experiment."""
    name: str
    strategy: SelectionStrategy = SelectionStrategy.THOMPSON_SAMPLING
    primary_metric: str = "conversion"
    metric_type: MetricType = MetricType.BINARY
    secondary_metrics: List[str] = field(default_factory=list)
    traffic_allocation: float = 1.0  # fraction of subjects entering the experiment
    min_sample_size: int = 1000
    significance_threshold: float = 0.95
    auto_promote_winner: bool = False
    parameters: Dict[str, Any] = field(default_factory=dict)  # strategy-specific
    description: str = ""

    def __post_init__(self):
        try:
            self.strategy = SelectionStrategy(self.strategy)
        except ValueError:
            raise ConfigurationError(f"Unknown selection strategy: {self.strategy!r}")
        try:
            self.metric_type = MetricType(self.metric_type)
        except ValueError:
            raise ConfigurationError(f"Unknown metric type: {self.metric_type!r}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "strategy": self.strategy.value,
            "primary_metric": self.primary_metric,
            "metric_type": self.metric_type.value,
            "secondary_metrics": list(self.secondary_metrics),
            "traffic_allocation": self.traffic_allocation,
            "min_sample_size": self.min_sample_size,
            "significance_threshold": self.significance_threshold,
            "auto_promote_winner": self.auto_promote_winner,
            "parameters": dict(self.parameters),
            "description": self.description,
        }


@dataclass
class VariantConfig:
    """Caller-supplied definition of a variant at creation time."""
    name: str
    is_control: bool = False
    weight: Optional[float] = None
    payload: Dict[str, Any] = field(default_factory=dict)  # opaque to the engine
    description: str = ""


@dataclass(frozen=True)
class VariantStats:
    """
    Sufficient statistics for one variant's primary metric.

    Snapshots are immutable; the accumulator produces a new instance per
    observation. ``mean`` and ``m2`` follow Welford's online algorithm, so for
    binary metrics ``mean == successes / observations``. ``mean`` carries no
    meaning while ``observations == 0``.
    """
    assignments: int = 0
    observations: int = 0
    successes: int = 0
    failures: int = 0
    mean: float = 0.0
    m2: float = 0.0  # sum of squared deviations from the running mean
    total: float = 0.0

    @property
    def variance(self) -> float:
        """Sample variance (n - 1 denominator); 0.0 below two observations."""
        if self.observations < 2:
            return 0.0
        return self.m2 / (self.observations - 1)

    @property
    def std(self) -> float:
        return math.sqrt(self.variance)

    @property
    def conversion_rate(self) -> Optional[float]:
        if self.observations == 0:
            return None
        return self.successes / self.observations

    def posterior(self, prior_alpha: float = 1.0, prior_beta: float = 1.0) -> Tuple[float, float]:
        """Beta posterior parameters under a Beta(prior_alpha, prior_beta) prior."""
        return self.successes + prior_alpha, self.failures + prior_beta

    def to_dict(self) -> Dict[str, Any]:
        return {
            "assignments": self.assignments,
            "observations": self.observations,
            "successes": self.successes,
            "failures": self.failures,
            "mean": self.mean if self.observations > 0 else None,
            "variance": self.variance,
            "std": self.std,
            "total": self.total,
        }


@dataclass
class Variant:
    """One arm of an experiment."""
    variant_id: str
    experiment_id: str
    name: str
    is_control: bool = False
    weight: Optional[float] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    description: str = ""
    stats: VariantStats = field(default_factory=VariantStats)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "variant_id": self.variant_id,
            "experiment_id": self.experiment_id,
            "name": self.name,
            "is_control": self.is_control,
            "weight": self.weight,
            "payload": dict(self.payload),
            "description": self.description,
            "stats": self.stats.to_dict(),
        }


@dataclass
class Experiment:
    """An experiment and the variants it owns."""
    experiment_id: str
    config: ExperimentConfig
    variants: List[Variant]
    status: ExperimentStatus = ExperimentStatus.DRAFT
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    concluded_at: Optional[datetime] = None
    winner_variant_id: Optional[str] = None

    def get_variant(self, variant_id: str) -> Variant:
        for v in self.variants:
            if v.variant_id == variant_id:
                return v
        raise NotFoundError("variant", variant_id)

    @property
    def control(self) -> Variant:
        for v in self.variants:
            if v.is_control:
                return v
        return self.variants[0]

    @property
    def treatments(self) -> List[Variant]:
        control_id = self.control.variant_id
        return [v for v in self.variants if v.variant_id != control_id]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "experiment_id": self.experiment_id,
            "config": self.config.to_dict(),
            "variants": [v.to_dict() for v in self.variants],
            "status": self.status.value,
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
            "started_at": _isoformat(self.started_at),
            "concluded_at": _isoformat(self.concluded_at),
            "winner_variant_id": self.winner_variant_id,
        }


@dataclass
class AssignmentContext:
    """Who is asking for a variant, and anything else known about the request."""
    subject_id: str  # user or session identity used for stickiness
    session_id: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subject_id": self.subject_id,
            "session_id": self.session_id,
            "attributes": dict(self.attributes),
        }


@dataclass(frozen=True)
class Assignment:
    """Sticky assignment of one subject to one variant. Immutable once created."""
    assignment_id: str
    experiment_id: str
    variant_id: str
    variant_name: str
    subject_id: str
    assigned_at: datetime = field(default_factory=utcnow)
    session_id: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)
    payload: Dict[str, Any] = field(default_factory=dict)

    excluded = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "assignment_id": self.assignment_id,
            "experiment_id": self.experiment_id,
            "variant_id": self.variant_id,
            "variant_name": self.variant_name,
            "subject_id": self.subject_id,
            "session_id": self.session_id,
            "assigned_at": _isoformat(self.assigned_at),
            "context": dict(self.context),
            "payload": dict(self.payload),
            "excluded": False,
        }


@dataclass(frozen=True)
class Excluded:
    """Subject fell outside the experiment's traffic allocation."""
    experiment_id: str
    subject_id: str
    hash_value: float
    traffic_allocation: float
    reason: str = "traffic_allocation"

    excluded = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "experiment_id": self.experiment_id,
            "subject_id": self.subject_id,
            "hash_value": self.hash_value,
            "traffic_allocation": self.traffic_allocation,
            "reason": self.reason,
            "excluded": True,
        }


@dataclass(frozen=True)
class Observation:
    """A single metric event for an assignment. Append-only."""
    observation_id: str
    assignment_id: str
    experiment_id: str
    variant_id: str
    metric: str
    value: float
    recorded_at: datetime = field(default_factory=utcnow)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "observation_id": self.observation_id,
            "assignment_id": self.assignment_id,
            "experiment_id": self.experiment_id,
            "variant_id": self.variant_id,
            "metric": self.metric,
            "value": self.value,
            "recorded_at": _isoformat(self.recorded_at),
            "metadata": dict(self.metadata),
        }


@dataclass
class AnalyticsEvent:
    """Outbound event for downstream analytics."""
    event_type: str
    experiment_id: str
    occurred_at: datetime = field(default_factory=utcnow)
    variant_id: Optional[str] = None
    subject_id: Optional[str] = None
    metric: Optional[str] = None
    value: Optional[float] = None
    attributes: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ComparisonResult:
    """Treatment-versus-control comparison."""
    control_variant_id: str
    treatment_variant_id: str
    probability_to_be_best: Optional[float]  # P(treatment > control)
    is_significant: bool
    lift_mean: float
    lift_credible_interval: Tuple[float, float]
    expected_loss: Optional[float] = None  # cost of choosing treatment
    p_value: Optional[float] = None  # frequentist companion test

    def to_dict(self) -> Dict[str, Any]:
        return {
            "control_variant_id": self.control_variant_id,
            "treatment_variant_id": self.treatment_variant_id,
            "probability_to_be_best": self.probability_to_be_best,
            "is_significant": self.is_significant,
            "lift_mean": self.lift_mean,
            "lift_credible_interval": list(self.lift_credible_interval),
            "expected_loss": self.expected_loss,
            "p_value": self.p_value,
        }


@dataclass
class VariantReport:
    """Per-variant section of ExperimentResults."""
    variant_id: str
    name: str
    is_control: bool
    stats: VariantStats
    posterior_mean: Optional[float] = None
    credible_interval: Optional[Tuple[float, float]] = None
    probability_to_be_best: Optional[float] = None
    secondary_metrics: Dict[str, Dict[str, float]] = field(default_factory=dict)


@dataclass
class ExperimentResults:
    """Complete statistics snapshot for an experiment."""
    experiment_id: str
    status: ExperimentStatus
    primary_metric: str
    variants: List[VariantReport] = field(default_factory=list)
    comparisons: List[ComparisonResult] = field(default_factory=list)
    winner_variant_id: Optional[str] = None
    confidence: float = 0.0
    total_assignments: int = 0
    total_observations: int = 0
    duration_seconds: float = 0.0
    recommended_action: RecommendedAction = RecommendedAction.CONTINUE
    sample_size_reached: bool = False

    # SRM (fixed-allocation strategies only)
    srm_passed: Optional[bool] = None
    srm_p_value: Optional[float] = None

    generated_at: datetime = field(default_factory=utcnow)

    def get_variant(self, variant_id: str) -> VariantReport:
        for r in self.variants:
            if r.variant_id == variant_id:
                return r
        raise NotFoundError("variant", variant_id)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "experiment_id": self.experiment_id,
            "status": self.status.value,
            "primary_metric": self.primary_metric,
            "variants": [
                {
                    "variant_id": r.variant_id,
                    "name": r.name,
                    "is_control": r.is_control,
                    "stats": r.stats.to_dict(),
                    "posterior_mean": r.posterior_mean,
                    "credible_interval": list(r.credible_interval) if r.credible_interval else None,
                    "probability_to_be_best": r.probability_to_be_best,
                    "secondary_metrics": r.secondary_metrics,
                }
                for r in self.variants
            ],
            "comparisons": [c.to_dict() for c in self.comparisons],
            "winner_variant_id": self.winner_variant_id,
            "confidence": self.confidence,
            "total_assignments": self.total_assignments,
            "total_observations": self.total_observations,
            "duration_seconds": self.duration_seconds,
            "recommended_action": self.recommended_action.value,
            "sample_size_reached": self.sample_size_reached,
            "srm_passed": self.srm_passed,
            "srm_p_value": self.srm_p_value,
            "generated_at": _isoformat(self.generated_at),
        }
