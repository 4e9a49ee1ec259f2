"""End-to-end: simulate -> analyze -> events on disk."""
from datetime import timedelta

import pandas as pd
import pytest
from experiment_engine import (
    EngineSettings,
    ExperimentConfig,
    FileEventSink,
    MetricType,
    SelectionStrategy,
    VariantConfig,
    read_events,
    run_campaign_simulation,
)
from experiment_engine.event_store import get_event_summary
from experiment_engine.schema import utcnow

TRUE_RATES = {"control": 0.05, "treatment": 0.15}


def _variants():
    return [VariantConfig(name=name) for name in TRUE_RATES]


@pytest.mark.parametrize("strategy", list(SelectionStrategy))
def test_simulation_finds_better_variant(strategy):
    config = ExperimentConfig(name=f"e2e {strategy.value}", strategy=strategy, min_sample_size=500)
    summary = run_campaign_simulation(
        config,
        _variants(),
        TRUE_RATES,
        n_subjects=3000,
        settings=EngineSettings(sample_count=4000),
    )
    df = summary["variant_summary"]
    assert isinstance(df, pd.DataFrame)
    assert set(df["variant"]) == set(TRUE_RATES)
    assert df["assignments"].sum() == summary["n_assigned"]
    assert summary["n_excluded"] == 0
    assert summary["winner_name"] == "treatment"
    assert summary["recommended_action"] == "conclude_winner"


def test_bandits_shift_traffic_to_better_variant():
    config = ExperimentConfig(name="e2e traffic", strategy=SelectionStrategy.THOMPSON_SAMPLING)
    summary = run_campaign_simulation(
        config, _variants(), TRUE_RATES, n_subjects=3000, settings=EngineSettings(sample_count=2000)
    )
    shares = summary["variant_summary"].set_index("variant")["traffic_share"]
    assert shares["treatment"] > 0.7


def test_simulation_continuous_metric():
    config = ExperimentConfig(
        name="e2e revenue",
        strategy=SelectionStrategy.AB_TEST,
        primary_metric="revenue",
        metric_type=MetricType.CONTINUOUS,
        min_sample_size=100,
    )
    summary = run_campaign_simulation(
        config, _variants(), {"control": 10.0, "treatment": 11.0}, n_subjects=1000, noise_std=2.0
    )
    assert summary["winner_name"] == "treatment"


def test_simulation_conclude_and_auto_promote():
    config = ExperimentConfig(
        name="e2e promote",
        strategy=SelectionStrategy.BAYESIAN_AB,
        min_sample_size=200,
        auto_promote_winner=True,
    )
    summary = run_campaign_simulation(
        config, _variants(), {"control": 0.05, "treatment": 0.4}, n_subjects=3000,
        settings=EngineSettings(sample_count=2000, auto_promote_check_every=100),
    )
    assert summary["status"] == "completed"
    assert summary["winner_name"] == "treatment"
    assert summary["n_assigned"] < 3000


def test_simulation_requires_all_true_rates():
    config = ExperimentConfig(name="e2e missing")
    with pytest.raises(ValueError):
        run_campaign_simulation(config, _variants(), {"control": 0.1})


def test_events_written_to_disk(tmp_path):
    settings = EngineSettings(event_dir=str(tmp_path), event_flush_every=100, sample_count=2000)
    sink = FileEventSink.from_settings(settings)
    config = ExperimentConfig(name="e2e events", strategy=SelectionStrategy.UCB, traffic_allocation=0.8)
    summary = run_campaign_simulation(
        config, _variants(), TRUE_RATES, n_subjects=500, conclude=True,
        event_sink=sink, settings=settings,
    )
    sink.close()
    exp_id = summary["experiment_id"]

    assert summary["status"] == "completed"
    counts = get_event_summary(exp_id, base_dir=str(tmp_path))
    assert counts["experiment_created"] == 1
    assert counts["experiment_started"] == 1
    assert counts["experiment_concluded"] == 1
    assert counts["variant_assigned"] == summary["n_assigned"]
    assert counts["subject_excluded"] == summary["n_excluded"]
    assert counts["observation_recorded"] == summary["n_assigned"]

    assigned = read_events(exp_id, event_type="variant_assigned", base_dir=str(tmp_path))
    assert len(assigned) == summary["n_assigned"]
    assert assigned["subject_id"].is_unique

    future = read_events(exp_id, start_date=utcnow() + timedelta(days=1), base_dir=str(tmp_path))
    assert future.empty


def test_read_events_missing_experiment(tmp_path):
    assert read_events("nope", base_dir=str(tmp_path)).empty
    assert get_event_summary("nope", base_dir=str(tmp_path)) == {"n_events": 0}
