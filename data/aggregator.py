"""
Window Aggregator.

Accumulates per-vehicle update deltas for one aggregation window and turns
them into an immutable Chunk when the window closes.

The aggregator handles:
1. Last-seen tracking per vehicle (persists across windows)
2. Interval/latency derivation with u16 saturation
3. Rejection of stale or out-of-order updates
4. Percentile computation and ranking at window close

It does no I/O and owns no timers: the ingestion loop decides when a window
closes and what to do with the resulting chunk.

Example:
    >>> agg = WindowAggregator()
    >>> agg.observe("4012", 1_700_000_000, dataset_timestamp=1_700_000_003)
    False
    >>> agg.observe("4012", 1_700_000_010, dataset_timestamp=1_700_000_012)
    True
    >>> chunk = agg.flush(close_timestamp=1_700_000_060)
    >>> chunk.records["4012"][0].interval
    10
"""

import logging
from dataclasses import dataclass

from config.logging_config import LogCategory
from core.domain.entities import (
    Chunk,
    FeedSnapshot,
    Record,
    SystemStats,
    saturate_u16,
)
from data.percentiles import classify_rank, compute_percentiles

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Sample:
    """One observed vehicle update, consumed immediately by the aggregator."""

    entity_id: str
    previous_timestamp: int
    timestamp: int
    dataset_timestamp: int


class WindowAggregator:
    """
    Collects provisional records during one window.

    Attributes:
        window_record_count: Records accepted in the current window
        stale_count: Updates discarded in the current window (t1 <= t0)
    """

    def __init__(self) -> None:
        self._last_seen: dict[str, int] = {}
        self._pending: dict[str, list[Record]] = {}
        self._interval_samples: list[int] = []
        self._latency_samples: list[int] = []
        self.stale_count = 0

    @property
    def window_record_count(self) -> int:
        return len(self._interval_samples)

    @property
    def tracked_entities(self) -> int:
        return len(self._last_seen)

    def last_seen(self, entity_id: str) -> int | None:
        return self._last_seen.get(entity_id)

    def observe(self, entity_id: str, timestamp: int, dataset_timestamp: int) -> bool:
        """
        Feed one vehicle update.

        Args:
            entity_id: Vehicle identifier
            timestamp: Vehicle-reported timestamp of this update
            dataset_timestamp: Feed publish timestamp

        Returns:
            True if a provisional record was produced
        """
        previous = self._last_seen.get(entity_id)
        if previous is None:
            # Nothing to delta against yet
            self._last_seen[entity_id] = timestamp
            return False

        if timestamp <= previous:
            self.stale_count += 1
            return False

        self.accept(Sample(entity_id, previous, timestamp, dataset_timestamp))
        self._last_seen[entity_id] = timestamp
        return True

    def accept(self, sample: Sample) -> Record:
        """Turn a validated sample (timestamp > previous) into a provisional record."""
        interval = saturate_u16(sample.timestamp - sample.previous_timestamp)
        latency = saturate_u16(max(0, sample.dataset_timestamp - sample.timestamp))
        record = Record(interval=interval, end_of_interval=sample.timestamp, latency=latency)

        self._pending.setdefault(sample.entity_id, []).append(record)
        self._interval_samples.append(interval)
        self._latency_samples.append(latency)
        return record

    def observe_feed(self, snapshot: FeedSnapshot) -> int:
        """
        Feed every vehicle of one fetched snapshot.

        Returns:
            Number of records produced
        """
        produced = 0
        for vehicle in snapshot.vehicles:
            if self.observe(vehicle.entity_id, vehicle.timestamp, snapshot.dataset_timestamp):
                produced += 1
        return produced

    def flush(self, close_timestamp: int) -> Chunk:
        """
        Close the current window.

        Computes interval and latency percentiles, ranks every provisional
        record against the interval percentiles and resets per-window state.
        Last-seen timestamps are kept.

        Args:
            close_timestamp: Window close time, used as the chunk key

        Returns:
            The completed Chunk (possibly with no records)
        """
        interval_stats = compute_percentiles(self._interval_samples)
        latency_stats = compute_percentiles(self._latency_samples)
        stats = SystemStats(
            timestamp=int(close_timestamp),
            interval_stats=interval_stats,
            latency_stats=latency_stats,
            sample_count=len(self._interval_samples),
        )

        records = {
            entity_id: tuple(r.with_rank(classify_rank(interval_stats, r.interval)) for r in pending)
            for entity_id, pending in self._pending.items()
        }
        chunk = Chunk(stats=stats, records=records)

        logger.debug(
            f"{LogCategory.WINDOW} Closed window ts={close_timestamp} "
            f"records={stats.sample_count} entities={len(records)} stale={self.stale_count}"
        )
        self.reset_window()
        return chunk

    def reset_window(self) -> None:
        """Drop per-window state (pending records, samples, counters)."""
        self._pending = {}
        self._interval_samples = []
        self._latency_samples = []
        self.stale_count = 0
