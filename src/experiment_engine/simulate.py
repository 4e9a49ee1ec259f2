"""
Campaign simulator.

Drives an experiment end to end with synthetic subjects whose outcomes come
from known true rates per variant:
- create + start the experiment
- assign each synthetic subject (sticky, traffic-allocated)
- draw a binary outcome (or a normal continuous one) from the variant's true rate
- record observations and read back the analysis

Returns a run summary; the per-variant breakdown is a pandas DataFrame.
"""

import logging
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from .config import EngineSettings
from .event_store import EventSink
from .lifecycle import ExperimentLifecycle
from .schema import (
    AssignmentContext,
    ExperimentConfig,
    ExperimentStatus,
    MetricType,
    VariantConfig,
)

logger = logging.getLogger(__name__)

SIMULATOR_SEED = 42


def run_campaign_simulation(
    config: ExperimentConfig,
    variants: Sequence[VariantConfig],
    true_rates: Dict[str, float],
    n_subjects: int = 2000,
    noise_std: float = 1.0,
    conclude: bool = False,
    engine: Optional[ExperimentLifecycle] = None,
    event_sink: Optional[EventSink] = None,
    settings: Optional[EngineSettings] = None,
    random_seed: int = SIMULATOR_SEED,
) -> Dict:
    """
    Run a synthetic campaign against the engine.

    Args:
        config: Experiment configuration
        variants: Variant definitions
        true_rates: True conversion rate (binary) or true mean (continuous) per variant name
        n_subjects: Number of synthetic subjects requesting a variant
        noise_std: Std of continuous outcomes around the true mean
        conclude: Conclude the experiment at the end (if still running)
        engine: Existing engine; a fresh in-memory engine is built otherwise
        event_sink: Event sink for a freshly built engine
        settings: Engine settings for a freshly built engine
        random_seed: Seed for both the engine and the outcome draws

    Returns:
        Dict with experiment_id, n_assigned, n_excluded, variant_summary (DataFrame),
        recommended_action, winner_variant_id, winner_name, status
    """
    missing = [v.name for v in variants if v.name not in true_rates]
    if missing:
        raise ValueError(f"true_rates missing for variants: {missing}")

    outcome_rng = np.random.default_rng(random_seed)
    if engine is None:
        engine = ExperimentLifecycle(
            event_sink=event_sink,
            settings=settings,
            rng=np.random.default_rng(random_seed + 1),
        )

    experiment = engine.create_experiment(config, variants)
    experiment_id = experiment.experiment_id
    engine.start_experiment(experiment_id)

    n_excluded = 0
    n_assigned = 0
    for i in range(n_subjects):
        # auto-promotion may conclude the experiment mid-run
        if engine.get_experiment(experiment_id).status != ExperimentStatus.RUNNING:
            break
        result = engine.assign_variant(experiment_id, AssignmentContext(subject_id=f"subject_{i}"))
        if result.excluded:
            n_excluded += 1
            continue
        n_assigned += 1

        rate = true_rates[result.variant_name]
        if config.metric_type == MetricType.BINARY:
            value = 1.0 if outcome_rng.random() < rate else 0.0
        else:
            value = float(outcome_rng.normal(rate, noise_std))

        engine.record_observation(result.assignment_id, config.primary_metric, value)

    results = engine.get_experiment_stats(experiment_id)
    if conclude and engine.get_experiment(experiment_id).status == ExperimentStatus.RUNNING:
        engine.conclude_experiment(experiment_id)

    rows: List[dict] = []
    for r in results.variants:
        rows.append({
            "variant": r.name,
            "is_control": r.is_control,
            "true_rate": true_rates[r.name],
            "assignments": r.stats.assignments,
            "observations": r.stats.observations,
            "observed_mean": r.stats.mean if r.stats.observations else np.nan,
            "probability_to_be_best": r.probability_to_be_best,
        })
    variant_summary = pd.DataFrame(rows)
    total = variant_summary["assignments"].sum()
    variant_summary["traffic_share"] = variant_summary["assignments"] / total if total else 0.0

    final = engine.get_experiment(experiment_id)
    winner_name = None
    if final.winner_variant_id:
        winner_name = final.get_variant(final.winner_variant_id).name
    elif results.winner_variant_id:
        winner_name = final.get_variant(results.winner_variant_id).name

    summary = {
        "experiment_id": experiment_id,
        "strategy": config.strategy.value,
        "n_subjects": n_subjects,
        "n_assigned": n_assigned,
        "n_excluded": n_excluded,
        "variant_summary": variant_summary,
        "recommended_action": results.recommended_action.value,
        "winner_variant_id": final.winner_variant_id or results.winner_variant_id,
        "winner_name": winner_name,
        "status": final.status.value,
        "random_seed": random_seed,
    }

    logger.info(
        f"Simulation complete: {experiment_id} assigned={n_assigned} excluded={n_excluded} "
        f"action={summary['recommended_action']} winner={winner_name}"
    )
    return summary
