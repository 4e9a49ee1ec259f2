"""
State store for experiments, variant statistics, assignments and observations.

``ExperimentStore`` is the boundary to durable persistence: get a snapshot,
apply a delta. Writers for one experiment serialize on ``lock(experiment_id)``;
readers never take it. ``InMemoryExperimentStore`` keeps one partition per
experiment so writers on different experiments never contend.
"""

import copy
import logging
import threading
from abc import ABC, abstractmethod
from typing import ContextManager, Dict, List, Optional

from .errors import NotFoundError
from .schema import Assignment, Experiment, Observation, VariantStats

logger = logging.getLogger(__name__)


class ExperimentStore(ABC):
    """Persistence interface used by the engine.

    Methods documented as "caller holds lock" must only be called inside
    ``with store.lock(experiment_id):``.
    """

    @abstractmethod
    def lock(self, experiment_id: str) -> ContextManager:
        """Single-writer serialization point for one experiment."""

    @abstractmethod
    def insert_experiment(self, experiment: Experiment) -> None:
        """Persist a new experiment together with its variants."""

    @abstractmethod
    def get_experiment(self, experiment_id: str) -> Experiment:
        """Snapshot of the experiment with current variant stats."""

    @abstractmethod
    def save_experiment(self, experiment: Experiment) -> None:
        """Replace the experiment record (status, timestamps, winner). Caller holds lock."""

    @abstractmethod
    def get_variant_stats(self, experiment_id: str) -> Dict[str, VariantStats]:
        """Current stats per variant id."""

    @abstractmethod
    def put_variant_stats(self, experiment_id: str, variant_id: str, stats: VariantStats) -> None:
        """Replace one variant's stats. Caller holds lock."""

    @abstractmethod
    def find_assignment(self, experiment_id: str, subject_id: str) -> Optional[Assignment]:
        """Existing assignment for a subject, if any."""

    @abstractmethod
    def get_assignment(self, assignment_id: str) -> Assignment:
        """Assignment by id; raises NotFoundError."""

    @abstractmethod
    def insert_assignment(self, assignment: Assignment) -> Assignment:
        """
        Insert unless the subject already has an assignment. Caller holds lock.

        Returns the stored assignment: the new one, or the one that won an
        earlier race.
        """

    @abstractmethod
    def append_observation(self, observation: Observation) -> None:
        """Append-only observation log. Caller holds lock."""

    @abstractmethod
    def list_observations(self, experiment_id: str) -> List[Observation]:
        """All observations recorded for an experiment, in arrival order."""


class _Partition:
    """Everything owned by one experiment."""

    def __init__(self, experiment: Experiment):
        self.lock = threading.RLock()
        self.experiment = experiment
        self.stats: Dict[str, VariantStats] = {v.variant_id: v.stats for v in experiment.variants}
        self.assignments_by_subject: Dict[str, Assignment] = {}
        self.observations: List[Observation] = []


class InMemoryExperimentStore(ExperimentStore):
    """Process-local store. Suitable for tests, simulations and single-node serving."""

    def __init__(self):
        self._partitions: Dict[str, _Partition] = {}
        self._assignments: Dict[str, Assignment] = {}
        self._registry_lock = threading.Lock()

    def _partition(self, experiment_id: str) -> _Partition:
        partition = self._partitions.get(experiment_id)
        if partition is None:
            raise NotFoundError("experiment", experiment_id)
        return partition

    def lock(self, experiment_id: str) -> ContextManager:
        return self._partition(experiment_id).lock

    def insert_experiment(self, experiment: Experiment) -> None:
        record = copy.deepcopy(experiment)
        with self._registry_lock:
            if experiment.experiment_id in self._partitions:
                raise ValueError(f"Experiment {experiment.experiment_id} already exists")
            self._partitions[experiment.experiment_id] = _Partition(record)
        logger.debug(f"Stored experiment {experiment.experiment_id}")

    def get_experiment(self, experiment_id: str) -> Experiment:
        partition = self._partition(experiment_id)
        stats = dict(partition.stats)
        snapshot = copy.deepcopy(partition.experiment)
        for v in snapshot.variants:
            v.stats = stats[v.variant_id]
        return snapshot

    def save_experiment(self, experiment: Experiment) -> None:
        partition = self._partition(experiment.experiment_id)
        partition.experiment = copy.deepcopy(experiment)

    def get_variant_stats(self, experiment_id: str) -> Dict[str, VariantStats]:
        return dict(self._partition(experiment_id).stats)

    def put_variant_stats(self, experiment_id: str, variant_id: str, stats: VariantStats) -> None:
        partition = self._partition(experiment_id)
        if variant_id not in partition.stats:
            raise NotFoundError("variant", variant_id)
        partition.stats[variant_id] = stats

    def find_assignment(self, experiment_id: str, subject_id: str) -> Optional[Assignment]:
        return self._partition(experiment_id).assignments_by_subject.get(subject_id)

    def get_assignment(self, assignment_id: str) -> Assignment:
        assignment = self._assignments.get(assignment_id)
        if assignment is None:
            raise NotFoundError("assignment", assignment_id)
        return assignment

    def insert_assignment(self, assignment: Assignment) -> Assignment:
        partition = self._partition(assignment.experiment_id)
        existing = partition.assignments_by_subject.get(assignment.subject_id)
        if existing is not None:
            return existing
        self._assignments[assignment.assignment_id] = assignment
        partition.assignments_by_subject[assignment.subject_id] = assignment
        return assignment

    def append_observation(self, observation: Observation) -> None:
        self._partition(observation.experiment_id).observations.append(observation)

    def list_observations(self, experiment_id: str) -> List[Observation]:
        return list(self._partition(experiment_id).observations)
