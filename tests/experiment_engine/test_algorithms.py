"""Tests for Thompson Sampling, UCB1, Epsilon-Greedy and weighted selection."""
from collections import Counter

import numpy as np
import pytest
from experiment_engine.algorithms import (
    select_by_weight,
    select_epsilon_greedy,
    select_thompson_sampling,
    select_ucb,
    select_variant,
    ucb_scores,
)
from experiment_engine.schema import SelectionStrategy, Variant, VariantStats


def _variant(name, n=0, successes=0, mean=None, weight=None):
    if mean is None:
        mean = successes / n if n else 0.0
    stats = VariantStats(
        observations=n,
        successes=successes,
        failures=n - successes,
        mean=mean,
    )
    return Variant(variant_id=name, experiment_id="exp", name=name, weight=weight, stats=stats)


def test_thompson_prefers_better_variant():
    """10/100 vs 50/100: B wins the large majority of 1000 draws."""
    variants = [_variant("a", 100, 10), _variant("b", 100, 50)]
    rng = np.random.default_rng(42)
    picks = Counter(select_thompson_sampling(variants, rng=rng).name for _ in range(1000))
    assert picks["b"] > 700


def test_thompson_explores_unobserved_variant():
    """A zero-observation variant draws from the prior and is sometimes chosen."""
    variants = [_variant("seen", 50, 10), _variant("new")]
    rng = np.random.default_rng(0)
    picks = Counter(select_thompson_sampling(variants, rng=rng).name for _ in range(500))
    assert picks["new"] > 0
    assert picks["seen"] > 0


def test_thompson_reproducible_with_seed():
    variants = [_variant("a", 20, 5), _variant("b", 20, 6), _variant("c", 20, 7)]
    run1 = [select_thompson_sampling(variants, rng=np.random.default_rng(5)).name for _ in range(3)]
    run2 = [select_thompson_sampling(variants, rng=np.random.default_rng(5)).name for _ in range(3)]
    assert run1 == run2


def test_thompson_rejects_bad_priors():
    with pytest.raises(ValueError):
        select_thompson_sampling([_variant("a"), _variant("b")], prior_alpha=0)


def test_ucb_zero_observation_first():
    """Unexplored variants win regardless of how good the others look."""
    variants = [_variant("great", 1000, 900), _variant("unseen_1"), _variant("unseen_2")]
    assert select_ucb(variants).name == "unseen_1"


def test_ucb_deterministic_with_large_counts():
    variants = [_variant("a", 5000, 500), _variant("b", 5000, 600), _variant("c", 4000, 390)]
    picks = {select_ucb(variants).name for _ in range(100)}
    assert picks == {"b"}


def test_ucb_c_zero_is_pure_exploitation():
    variants = [_variant("a", 10, 5), _variant("b", 1000, 450)]
    assert select_ucb(variants, c=0).name == "a"
    # with exploration, the rarely tried variant gets a bigger bonus
    scores = ucb_scores(variants, c=2.0)
    assert scores[0] - 0.5 > scores[1] - 0.45


def test_ucb_exploration_bonus_shrinks():
    small = ucb_scores([_variant("a", 10, 5), _variant("b", 10, 5)])
    large = ucb_scores([_variant("a", 10000, 5000), _variant("b", 10000, 5000)])
    assert large[0] - 0.5 < small[0] - 0.5


def test_ucb_continuous_means():
    variants = [_variant("a", 100, mean=12.0), _variant("b", 100, mean=30.0)]
    assert select_ucb(variants, c=0.5).name == "b"


def test_epsilon_zero_always_exploits():
    variants = [_variant("a", 100, 10), _variant("b", 100, 30), _variant("c", 100, 20)]
    rng = np.random.default_rng(1)
    picks = [select_epsilon_greedy(variants, epsilon=0.0, rng=rng).name for _ in range(100)]
    assert picks == ["b"] * 100


def test_epsilon_one_is_uniform():
    variants = [_variant("a", 100, 10), _variant("b", 100, 30), _variant("c", 100, 20)]
    rng = np.random.default_rng(2)
    picks = Counter(select_epsilon_greedy(variants, epsilon=1.0, rng=rng).name for _ in range(1000))
    for name in ("a", "b", "c"):
        assert 260 <= picks[name] <= 410


def test_epsilon_ties_go_to_first():
    variants = [_variant("a", 10, 5), _variant("b", 10, 5)]
    assert select_epsilon_greedy(variants, epsilon=0.0).name == "a"


def test_epsilon_out_of_range():
    with pytest.raises(ValueError):
        select_epsilon_greedy([_variant("a"), _variant("b")], epsilon=1.5)


def test_weighted_selection_follows_weights():
    variants = [_variant("a", weight=0.8), _variant("b", weight=0.2)]
    rng = np.random.default_rng(3)
    picks = Counter(select_by_weight(variants, rng=rng).name for _ in range(2000))
    assert 1500 <= picks["a"] <= 1700


def test_select_variant_dispatches_by_name():
    variants = [_variant("a", 100, 10), _variant("b", 100, 60)]
    chosen = select_variant(SelectionStrategy.EPSILON_GREEDY, variants, {"epsilon": 0.0})
    assert chosen.name == "b"
    chosen = select_variant("ucb", [_variant("a", 5, 1), _variant("b")], {})
    assert chosen.name == "b"


def test_epsilon_zero_skips_unexplored_with_negative_means():
    """An unexplored variant does not outrank explored ones whose means are negative."""
    variants = [_variant("a", 10, mean=-5.0), _variant("new"), _variant("b", 10, mean=-2.0)]
    assert select_epsilon_greedy(variants, epsilon=0.0).name == "b"


def test_epsilon_zero_without_observations_picks_first():
    variants = [_variant("a"), _variant("b")]
    assert select_epsilon_greedy(variants, epsilon=0.0).name == "a"
