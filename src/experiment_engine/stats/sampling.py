"""
Random sources and posterior sampling primitives.

Every sampling routine in the engine takes an explicit ``rng`` argument:
None (fresh OS entropy), an int seed, or a ``numpy.random.Generator``.
Beta draws are built from two Gamma(shape, 1) draws normalised to
X / (X + Y); numpy's Gamma sampler is Marsaglia-Tsang for shape >= 1 and
boosts smaller shapes with the usual U ** (1 / shape) correction, so any
strictly positive shape is safe.
"""

import threading
from typing import Optional, Sequence, Tuple, Union

import numpy as np

RandomSource = Union[None, int, np.random.Generator]


def as_generator(rng: RandomSource = None) -> np.random.Generator:
    """Normalise an rng argument; a Generator is returned unaltered."""
    return np.random.default_rng(rng)


class RandomStream:
    """
    Thread-safe source of per-call generators.

    Generators are not safe to share between threads, so each operation gets
    its own. Unseeded streams hand out fresh OS-entropy generators; seeded
    streams derive child seeds from the parent under a lock, which keeps
    single-threaded runs reproducible.
    """

    def __init__(self, rng: RandomSource = None):
        self._parent = None if rng is None else as_generator(rng)
        self._lock = threading.Lock()

    def next(self) -> np.random.Generator:
        if self._parent is None:
            return np.random.default_rng()
        with self._lock:
            seed = int(self._parent.integers(0, 2 ** 63 - 1))
        return np.random.default_rng(seed)


def _check_shapes(alpha: np.ndarray, beta: np.ndarray) -> None:
    if np.any(~np.isfinite(alpha)) or np.any(~np.isfinite(beta)):
        raise ValueError("Beta parameters must be finite")
    if np.any(alpha <= 0) or np.any(beta <= 0):
        raise ValueError("Beta parameters must be positive")


def sample_beta(
    alpha,
    beta,
    size: Optional[Union[int, Tuple[int, ...]]] = None,
    rng: RandomSource = None,
) -> np.ndarray:
    """
    Draw Beta(alpha, beta) samples via two Gamma draws.

    Args:
        alpha: Shape parameter(s), scalar or array (broadcast against ``size``)
        beta: Shape parameter(s), scalar or array
        size: Output shape; defaults to the broadcast shape of alpha/beta
        rng: Random source

    Returns:
        Array of samples in [0, 1]
    """
    a = np.asarray(alpha, dtype=float)
    b = np.asarray(beta, dtype=float)
    _check_shapes(a, b)
    gen = as_generator(rng)

    x = gen.gamma(a, 1.0, size)
    y = gen.gamma(b, 1.0, size)
    total = x + y
    # Both draws can underflow to 0 when shapes are tiny; fall back to the midpoint.
    safe_total = np.where(total > 0, total, 1.0)
    return np.where(total > 0, x / safe_total, 0.5)


def sample_posteriors(
    stats: Sequence,
    prior_alpha: float = 1.0,
    prior_beta: float = 1.0,
    sample_count: int = 1,
    rng: RandomSource = None,
) -> np.ndarray:
    """
    Joint posterior draws for several variants.

    Args:
        stats: VariantStats snapshots, one per variant
        prior_alpha: Beta prior alpha
        prior_beta: Beta prior beta
        sample_count: Number of joint draws
        rng: Random source

    Returns:
        Array of shape (sample_count, len(stats)); column j holds variant j's draws
    """
    if sample_count <= 0:
        raise ValueError("sample_count must be positive")
    alphas = np.array([s.successes + prior_alpha for s in stats], dtype=float)
    betas = np.array([s.failures + prior_beta for s in stats], dtype=float)
    return sample_beta(alphas, betas, size=(sample_count, len(alphas)), rng=rng)


def stats_of(obj):
    """Accept either a Variant or a bare VariantStats snapshot."""
    return getattr(obj, "stats", obj)


def sample_normal_posteriors(
    stats: Sequence,
    sample_count: int = 1,
    rng: RandomSource = None,
) -> np.ndarray:
    """
    Joint draws of each variant's true mean for a continuous metric.

    Variant j's mean is drawn from N(mean_j, variance_j / n_j), the flat-prior
    posterior built from its running moments. Variants with fewer than two
    observations have no variance estimate; their column is -inf so they never
    win a draw.

    Returns:
        Array of shape (sample_count, len(stats))
    """
    if sample_count <= 0:
        raise ValueError("sample_count must be positive")
    gen = as_generator(rng)
    draws = np.full((sample_count, len(stats)), -np.inf)
    for j, s in enumerate(stats):
        if s.observations >= 2:
            scale = np.sqrt(s.variance / s.observations)
            draws[:, j] = gen.normal(s.mean, scale, sample_count)
    return draws
