"""
Engine-wide settings.

Per-experiment knobs live on schema.ExperimentConfig; these apply to every
experiment an engine instance serves.
"""

from dataclasses import dataclass

DEFAULT_SAMPLE_COUNT = 10000
DEFAULT_INTERVAL_SEED = 20240601  # common random numbers for credible intervals
DEFAULT_CREDIBLE_LEVEL = 0.95
DEFAULT_SRM_ALPHA = 0.01
DEFAULT_EVENT_DIR = "data/experiments"

DEFAULT_PRIOR_ALPHA = 1.0
DEFAULT_PRIOR_BETA = 1.0
DEFAULT_UCB_C = 2.0
DEFAULT_EPSILON = 0.1

# Control draws below this are treated as this value when computing relative
# lift, which caps a single draw's lift at 1e12.
LIFT_FLOOR = 1e-12


@dataclass
class EngineSettings:
    """Settings shared by all experiments served by one engine."""
    sample_count: int = DEFAULT_SAMPLE_COUNT  # Monte Carlo draws per analysis
    credible_level: float = DEFAULT_CREDIBLE_LEVEL
    srm_alpha: float = DEFAULT_SRM_ALPHA
    two_sided_significance: bool = False
    auto_promote_check_every: int = 100  # primary observations between checks
    event_flush_every: int = 500
    event_dir: str = DEFAULT_EVENT_DIR

    def __post_init__(self):
        if self.sample_count <= 0:
            raise ValueError("sample_count must be positive")
        if not 0 < self.credible_level < 1:
            raise ValueError("credible_level must be in (0, 1)")
        if self.auto_promote_check_every <= 0:
            raise ValueError("auto_promote_check_every must be positive")
