#!/usr/bin/env python3
"""
Run full experiment demo: simulate campaigns for every strategy -> analyze -> report.

Writes analytics events to data/experiments/<id>/events-*.(parquet|csv) and prints
the per-variant breakdown and recommendation for each strategy.
"""

import logging
import sys
from pathlib import Path

ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT / "src"))


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    from experiment_engine import (
        EngineSettings,
        ExperimentConfig,
        FileEventSink,
        SelectionStrategy,
        VariantConfig,
        run_campaign_simulation,
    )
    from experiment_engine.event_store import get_event_summary

    data_dir = ROOT / "data" / "experiments"
    data_dir.mkdir(parents=True, exist_ok=True)
    settings = EngineSettings(event_dir=str(data_dir), sample_count=5000)

    true_rates = {"control": 0.04, "headline_b": 0.05, "headline_c": 0.07}
    variants = [VariantConfig(name=name) for name in true_rates]

    for step, strategy in enumerate(SelectionStrategy, start=1):
        print(f"{step}. Simulating {strategy.value}...")
        sink = FileEventSink.from_settings(settings)
        config = ExperimentConfig(
            name=f"Headline test ({strategy.value})",
            strategy=strategy,
            primary_metric="click",
            traffic_allocation=0.9,
            min_sample_size=2000,
        )
        summary = run_campaign_simulation(
            config,
            variants,
            true_rates,
            n_subjects=6000,
            conclude=True,
            event_sink=sink,
            settings=settings,
        )
        sink.close()

        print(summary["variant_summary"].to_string(index=False))
        print(
            f"   excluded={summary['n_excluded']} action={summary['recommended_action']} "
            f"winner={summary['winner_name']} status={summary['status']}"
        )
        print(f"   events: {get_event_summary(summary['experiment_id'], base_dir=str(data_dir))}")

    print(f"\n[OK] Demo complete. Events in {data_dir}")


if __name__ == "__main__":
    main()
