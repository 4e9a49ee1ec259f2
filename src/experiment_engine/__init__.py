"""Experimentation engine: multi-armed bandits, Bayesian A/B testing and sticky assignment."""

from .schema import (
    ExperimentConfig,
    VariantConfig,
    VariantStats,
    Variant,
    Experiment,
    ExperimentStatus,
    SelectionStrategy,
    MetricType,
    RecommendedAction,
    AssignmentContext,
    Assignment,
    Excluded,
    Observation,
    ComparisonResult,
    ExperimentResults,
)
from .errors import ExperimentError, ConfigurationError, StateConflictError, NotFoundError
from .config import EngineSettings
from .store import ExperimentStore, InMemoryExperimentStore
from .event_store import EventSink, NullEventSink, MemoryEventSink, FileEventSink, read_events
from .lifecycle import ExperimentLifecycle
from .analyze import analyze_experiment
from .simulate import run_campaign_simulation

__all__ = [
    "ExperimentConfig",
    "VariantConfig",
    "VariantStats",
    "Variant",
    "Experiment",
    "ExperimentStatus",
    "SelectionStrategy",
    "MetricType",
    "RecommendedAction",
    "AssignmentContext",
    "Assignment",
    "Excluded",
    "Observation",
    "ComparisonResult",
    "ExperimentResults",
    "ExperimentError",
    "ConfigurationError",
    "StateConflictError",
    "NotFoundError",
    "EngineSettings",
    "ExperimentStore",
    "InMemoryExperimentStore",
    "EventSink",
    "NullEventSink",
    "MemoryEventSink",
    "FileEventSink",
    "read_events",
    "ExperimentLifecycle",
    "analyze_experiment",
    "run_campaign_simulation",
]
