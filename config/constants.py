"""
Configuration constants for the transit feed latency monitor.

This module defines core constants used throughout the application including:
- Percentile levels computed for every aggregation window
- Rank labels produced by the rank classifier
- Saturation bounds for the on-disk record fields
- Default retention and query limits

Example:
    >>> from config.constants import PERCENTILE_LEVELS, U16_MAX
    >>> [name for name, _ in PERCENTILE_LEVELS][:3]
    ['p0', 'p25', 'p50']
"""

from typing import Final

PERCENTILE_LEVELS: Final[tuple[tuple[str, float], ...]] = (
    ("p0", 0.0),
    ("p25", 0.25),
    ("p50", 0.50),
    ("p75", 0.75),
    ("p80", 0.80),
    ("p85", 0.85),
    ("p90", 0.90),
    ("p95", 0.95),
    ("p98", 0.98),
    ("p99", 0.99),
    ("p99_5", 0.995),
    ("p99_9", 0.999),
)
"""
Breakpoints computed per window, in ascending order.

The names double as attribute names on ``Percentiles`` and the order is the
order of fields in the chunk binary format.
"""

RANK_LABELS: Final[tuple[int, ...]] = (0, 25, 50, 75, 80, 85, 90, 95, 98, 99, 99, 100)
"""
Rank returned when a value falls strictly below the matching breakpoint.

p99 and p99.5 share the label 99. Values at or above p99.9 rank 100.
"""

MAX_RANK: Final[int] = 100
"""Highest rank a record can carry."""

U16_MAX: Final[int] = 65_535
"""Saturation bound for ``Record.interval`` and ``Record.latency`` (~18.2 hours)."""

U64_MAX: Final[int] = 18_446_744_073_709_551_615
"""Largest timestamp the chunk format can hold; larger feed timestamps are ignored."""

DEFAULT_RETENTION_SECONDS: Final[int] = 48 * 3600
"""Rolling window kept both on disk and in the live index."""

DEFAULT_WINDOW_SECONDS: Final[int] = 60
"""Nominal aggregation window length."""

DEFAULT_MIN_RANK: Final[int] = 90
"""Default ``min_rank`` for the anomaly query."""

MAX_ANOMALY_RESULTS: Final[int] = 50
"""Cap on entities returned by the anomaly query."""

CHUNK_FILE_PREFIX: Final[str] = "chunk_"
CHUNK_FILE_SUFFIX: Final[str] = ".bin"
CHUNK_KEY_DIGITS: Final[int] = 20
"""Zero padding of the timestamp in chunk file names (covers the u64 range)."""

QUARANTINE_DIRNAME: Final[str] = "quarantine"
