"""
Deterministic, sticky experiment assignment.

Uses hashing of (experiment_id, subject_id) to decide traffic inclusion, then
runs the experiment's selection strategy once per subject. The first
assignment stored for a subject is the only one it ever gets.
"""

import hashlib
import logging
import uuid
from typing import Optional, Tuple, Union

from .accumulator import record_assignment
from .algorithms import select_variant
from .errors import StateConflictError
from .schema import Assignment, AssignmentContext, Excluded, ExperimentStatus
from .stats.sampling import RandomStream
from .store import ExperimentStore

logger = logging.getLogger(__name__)

_HASH_SPACE = float(16 ** 8)


def hash_fraction(experiment_id: str, subject_id: str, salt: str = "") -> float:
    """
    Deterministic hash to [0, 1).

    Same subject + experiment_id always maps to the same value.
    """
    key = f"{subject_id}:{experiment_id}:{salt}"
    h = hashlib.sha256(key.encode()).hexdigest()
    return int(h[:8], 16) / _HASH_SPACE


def in_traffic(experiment_id: str, subject_id: str, traffic_allocation: float) -> Tuple[bool, float]:
    """
    Whether a subject enters the experiment.

    Returns:
        Tuple of (included, hash_value)
    """
    h = hash_fraction(experiment_id, subject_id)
    return h < traffic_allocation, h


class AssignmentStore:
    """Maps (experiment, subject) to exactly one variant."""

    def __init__(self, store: ExperimentStore, random_stream: Optional[RandomStream] = None):
        self.store = store
        self.random_stream = random_stream or RandomStream()

    def lookup(self, experiment_id: str, subject_id: str) -> Optional[Assignment]:
        return self.store.find_assignment(experiment_id, subject_id)

    def assign(
        self,
        experiment_id: str,
        context: AssignmentContext,
    ) -> Tuple[Union[Assignment, Excluded], bool]:
        """
        Assign a subject to a variant, or exclude it.

        Selection runs on a stats snapshot without holding the experiment
        lock; only the insert is serialized. If another request stored an
        assignment for the same subject first, that one is returned.

        Args:
            experiment_id: Experiment identifier
            context: Subject identity and request context

        Returns:
            Tuple of (Assignment or Excluded, created) where ``created`` is True
            only for a newly stored assignment
        """
        experiment = self.store.get_experiment(experiment_id)
        _require_running(experiment_id, experiment.status)

        existing = self.store.find_assignment(experiment_id, context.subject_id)
        if existing is not None:
            return existing, False

        included, h = in_traffic(experiment_id, context.subject_id, experiment.config.traffic_allocation)
        if not included:
            logger.debug(f"Subject {context.subject_id} excluded from {experiment_id} (hash={h:.4f})")
            return Excluded(
                experiment_id=experiment_id,
                subject_id=context.subject_id,
                hash_value=h,
                traffic_allocation=experiment.config.traffic_allocation,
            ), False

        variant = select_variant(
            experiment.config.strategy,
            experiment.variants,
            experiment.config.parameters,
            rng=self.random_stream.next(),
        )
        candidate = Assignment(
            assignment_id=str(uuid.uuid4()),
            experiment_id=experiment_id,
            variant_id=variant.variant_id,
            variant_name=variant.name,
            subject_id=context.subject_id,
            session_id=context.session_id,
            context=context.to_dict(),
            payload=dict(variant.payload),
        )

        with self.store.lock(experiment_id):
            current = self.store.get_experiment(experiment_id)
            stored = self.store.find_assignment(experiment_id, context.subject_id)
            if stored is not None:
                return stored, False
            _require_running(experiment_id, current.status)
            stored = self.store.insert_assignment(candidate)
            stats = self.store.get_variant_stats(experiment_id)[variant.variant_id]
            self.store.put_variant_stats(experiment_id, variant.variant_id, record_assignment(stats))

        logger.debug(f"Subject {context.subject_id} assigned to {variant.name} in {experiment_id}")
        return stored, True


def _require_running(experiment_id: str, status: ExperimentStatus) -> None:
    if status != ExperimentStatus.RUNNING:
        raise StateConflictError(
            f"Experiment {experiment_id} is not running (status: {status.value})",
            current_status=status.value,
        )
