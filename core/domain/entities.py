"""
Domain models for windowed feed measurements.

Records and statistics are created once per aggregation window and never
mutated afterwards.
"""

from dataclasses import dataclass, field, fields
from typing import Any

from config.constants import MAX_RANK, PERCENTILE_LEVELS, U16_MAX


def saturate_u16(value: int) -> int:
    """Clamp a non-negative duration into the 16-bit range (never wraps)."""
    if value < 0:
        return 0
    return min(int(value), U16_MAX)


@dataclass(frozen=True, slots=True)
class Record:
    """
    One accepted update for one vehicle within one window.

    Attributes:
        interval: Seconds since the previous update of this vehicle (u16, saturated)
        end_of_interval: Unix timestamp of this update
        latency: Seconds between this update and the feed publish time (u16, saturated)
        rank: Percentile rank of ``interval`` within its window (0-100)
    """

    interval: int
    end_of_interval: int
    latency: int
    rank: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.interval <= U16_MAX:
            raise ValueError(f"interval out of u16 range: {self.interval}")
        if not 0 <= self.latency <= U16_MAX:
            raise ValueError(f"latency out of u16 range: {self.latency}")
        if not 0 <= self.rank <= MAX_RANK:
            raise ValueError(f"rank out of range: {self.rank}")
        if self.end_of_interval < 0:
            raise ValueError(f"negative timestamp: {self.end_of_interval}")

    def with_rank(self, rank: int) -> "Record":
        """Return a copy carrying the given rank."""
        return Record(self.interval, self.end_of_interval, self.latency, rank)

    def to_dict(self) -> dict[str, int]:
        return {
            "interval": self.interval,
            "end_of_interval": self.end_of_interval,
            "latency": self.latency,
            "rank": self.rank,
        }


@dataclass(frozen=True, slots=True)
class Percentiles:
    """Distribution breakpoints for one window, in seconds."""

    p0: float = 0.0
    p25: float = 0.0
    p50: float = 0.0
    p75: float = 0.0
    p80: float = 0.0
    p85: float = 0.0
    p90: float = 0.0
    p95: float = 0.0
    p98: float = 0.0
    p99: float = 0.0
    p99_5: float = 0.0
    p99_9: float = 0.0

    @classmethod
    def from_values(cls, values: list[float] | tuple[float, ...]) -> "Percentiles":
        """Build from breakpoints listed in ``PERCENTILE_LEVELS`` order."""
        if len(values) != len(PERCENTILE_LEVELS):
            raise ValueError(
                f"expected {len(PERCENTILE_LEVELS)} breakpoints, got {len(values)}"
            )
        return cls(*(float(v) for v in values))

    def as_tuple(self) -> tuple[float, ...]:
        """Breakpoints in ``PERCENTILE_LEVELS`` order."""
        return tuple(getattr(self, f.name) for f in fields(self))

    def to_dict(self) -> dict[str, float]:
        return {name: value for (name, _), value in zip(PERCENTILE_LEVELS, self.as_tuple())}


@dataclass(frozen=True, slots=True)
class SystemStats:
    """
    Feed-wide statistics for one window.

    Attributes:
        timestamp: Window close time (unix seconds); also the chunk key
        interval_stats: Breakpoints of update intervals
        latency_stats: Breakpoints of feed latencies
        sample_count: Number of records produced in the window
    """

    timestamp: int
    interval_stats: Percentiles = field(default_factory=Percentiles)
    latency_stats: Percentiles = field(default_factory=Percentiles)
    sample_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "interval_stats": self.interval_stats.to_dict(),
            "latency_stats": self.latency_stats.to_dict(),
            "sample_count": self.sample_count,
        }


@dataclass(frozen=True)
class Chunk:
    """
    Immutable result of one aggregation window.

    ``records`` maps vehicle id to that vehicle's records for the window, in
    arrival order.
    """

    stats: SystemStats
    records: dict[str, tuple[Record, ...]] = field(default_factory=dict)

    @property
    def timestamp(self) -> int:
        return self.stats.timestamp

    def record_count(self) -> int:
        return sum(len(r) for r in self.records.values())


@dataclass(frozen=True, slots=True)
class VehicleUpdate:
    """Latest reported position timestamp of one vehicle in a feed snapshot."""

    entity_id: str
    timestamp: int


@dataclass(frozen=True)
class FeedSnapshot:
    """One fetch of the upstream feed."""

    dataset_timestamp: int
    vehicles: tuple[VehicleUpdate, ...] = ()
