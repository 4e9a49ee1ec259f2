"""Tests for deterministic, sticky assignment."""
import threading

import numpy as np
import pytest
from experiment_engine.assignment import hash_fraction, in_traffic
from experiment_engine.errors import StateConflictError
from experiment_engine.lifecycle import ExperimentLifecycle
from experiment_engine.schema import (
    AssignmentContext,
    Excluded,
    ExperimentConfig,
    SelectionStrategy,
    VariantConfig,
)


def _running_experiment(engine, **config_kwargs):
    config = ExperimentConfig(name="Assignment test", primary_metric="click", **config_kwargs)
    exp = engine.create_experiment(config, [VariantConfig(name="a"), VariantConfig(name="b")])
    engine.start_experiment(exp.experiment_id)
    return exp.experiment_id


def test_hash_fraction_deterministic():
    """Same subject + experiment always hashes to the same value."""
    h1 = hash_fraction("exp_1", "user_001")
    h2 = hash_fraction("exp_1", "user_001")
    assert h1 == h2
    assert 0 <= h1 < 1


def test_hash_fraction_differs_across_experiments():
    values = {hash_fraction(f"exp_{i}", "user_001") for i in range(20)}
    assert len(values) > 1


def test_in_traffic_boundaries():
    """At 0 allocation nobody enters; at 1 everybody does."""
    assert in_traffic("e", "x", 0.0)[0] is False
    assert in_traffic("e", "x", 1.0)[0] is True


def test_exclusion_rate_matches_allocation():
    """Excluded share approximates 1 - traffic_allocation."""
    engine = ExperimentLifecycle(rng=1)
    exp_id = _running_experiment(engine, traffic_allocation=0.3)
    results = [engine.assign_variant(exp_id, f"user_{i}") for i in range(4000)]
    excluded = sum(1 for r in results if isinstance(r, Excluded))
    assert 0.66 <= excluded / 4000 <= 0.74


def test_excluded_is_not_an_error():
    engine = ExperimentLifecycle(rng=1)
    exp_id = _running_experiment(engine, traffic_allocation=0.0)
    result = engine.assign_variant(exp_id, AssignmentContext(subject_id="u1"))
    assert result.excluded
    assert result.reason == "traffic_allocation"
    assert engine.get_experiment(exp_id).variants[0].stats.assignments == 0


def test_assignment_is_sticky_across_stat_changes():
    """Second call returns the same assignment even after observations shift the stats."""
    engine = ExperimentLifecycle(rng=7)
    exp_id = _running_experiment(engine, strategy=SelectionStrategy.THOMPSON_SAMPLING)
    first = engine.assign_variant(exp_id, AssignmentContext(subject_id="sticky_user"))

    for i in range(200):
        other = engine.assign_variant(exp_id, f"user_{i}")
        value = 1.0 if other.variant_id != first.variant_id else 0.0
        engine.record_observation(other.assignment_id, "click", value)

    second = engine.assign_variant(exp_id, AssignmentContext(subject_id="sticky_user"))
    assert second.assignment_id == first.assignment_id
    assert second.variant_id == first.variant_id


def test_assignment_counts_increment_once_per_subject():
    engine = ExperimentLifecycle(rng=3)
    exp_id = _running_experiment(engine)
    for _ in range(5):
        engine.assign_variant(exp_id, "same_user")
    total = sum(v.stats.assignments for v in engine.get_experiment(exp_id).variants)
    assert total == 1


def test_assignment_carries_payload_and_context():
    engine = ExperimentLifecycle(rng=3)
    config = ExperimentConfig(name="Payload", primary_metric="click")
    exp = engine.create_experiment(config, [
        VariantConfig(name="a", payload={"headline": "A"}),
        VariantConfig(name="b", payload={"headline": "B"}),
    ])
    engine.start_experiment(exp.experiment_id)
    ctx = AssignmentContext(subject_id="u1", session_id="s1", attributes={"country": "DE"})
    a = engine.assign_variant(exp.experiment_id, ctx)
    assert a.payload["headline"] in ("A", "B")
    assert a.payload["headline"] == a.variant_name.upper()
    assert a.session_id == "s1"
    assert a.context["attributes"] == {"country": "DE"}


def test_assign_requires_running():
    engine = ExperimentLifecycle(rng=3)
    config = ExperimentConfig(name="Draft", primary_metric="click")
    exp = engine.create_experiment(config, [VariantConfig(name="a"), VariantConfig(name="b")])
    with pytest.raises(StateConflictError):
        engine.assign_variant(exp.experiment_id, "u1")


def test_concurrent_assign_creates_single_assignment():
    """Racing requests for one new subject all observe the same stored assignment."""
    engine = ExperimentLifecycle(rng=np.random.default_rng(11))
    exp_id = _running_experiment(engine, strategy=SelectionStrategy.EPSILON_GREEDY,
                                 parameters={"epsilon": 1.0})
    barrier = threading.Barrier(16)
    results = []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        a = engine.assign_variant(exp_id, "racer")
        with lock:
            results.append(a)

    threads = [threading.Thread(target=worker) for _ in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len({a.assignment_id for a in results}) == 1
    assert len({a.variant_id for a in results}) == 1
    total = sum(v.stats.assignments for v in engine.get_experiment(exp_id).variants)
    assert total == 1
