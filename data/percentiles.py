"""
Per-window percentile estimation and rank classification.

The estimator is recomputed independently for every aggregation window and
keeps no memory of earlier windows. The classifier maps a single value onto
the coarse 0-100 rank used to bucket the anomaly index.

Rank policy (binding): a value gets the label of the smallest breakpoint
strictly greater than it. The p99 and p99.5 bands both map to 99, the band
between p99.5 and p99.9 maps to 100, and anything at or above p99.9 is 100.

Example:
    >>> stats = compute_percentiles([10, 12, 15, 30, 600])
    >>> classify_rank(stats, 11)
    25
    >>> classify_rank(stats, 12)
    50
"""

from collections.abc import Sequence

import numpy as np

from config.constants import MAX_RANK, PERCENTILE_LEVELS, RANK_LABELS
from core.domain.entities import Percentiles

_FRACTIONS = np.array([p for _, p in PERCENTILE_LEVELS], dtype=np.float64)


def nearest_rank_indices(n: int) -> np.ndarray:
    """
    Zero-based indices selected for each percentile level in a sorted batch of ``n``.

    Index is ``round((n - 1) * p)`` with halves rounded away from zero.
    """
    if n <= 0:
        return np.zeros(len(_FRACTIONS), dtype=np.int64)
    positions = (n - 1) * _FRACTIONS
    floors = np.floor(positions)
    # np.round would round halves to even
    indices = floors + (positions - floors >= 0.5)
    return np.clip(indices.astype(np.int64), 0, n - 1)


def compute_percentiles(samples: Sequence[int] | np.ndarray) -> Percentiles:
    """
    Compute the fixed breakpoint set for one window.

    Args:
        samples: Durations in whole seconds (interval or latency samples)

    Returns:
        Percentiles; all zeros when ``samples`` is empty
    """
    values = np.asarray(samples, dtype=np.int64)
    if values.size == 0:
        return Percentiles()

    ordered = np.sort(values, kind="stable")
    picked = ordered[nearest_rank_indices(ordered.size)]
    return Percentiles.from_values(picked.astype(np.float64).tolist())


def classify_rank(stats: Percentiles, value: float) -> int:
    """
    Map ``value`` to a rank in {0, 25, 50, 75, 80, 85, 90, 95, 98, 99, 100}.

    A value equal to a breakpoint takes the next label up.
    """
    for breakpoint_value, label in zip(stats.as_tuple(), RANK_LABELS):
        if value < breakpoint_value:
            return label
    return MAX_RANK
