"""
Live Index - in-memory, query-serving view of the retained window.

Holds three time-ordered structures plus a watermark:

1. **history**: vehicle id -> records ascending by ``end_of_interval``
2. **stats history**: one SystemStats per merged chunk, ascending by timestamp
3. **anomaly index**: rank (0-100) -> ``(end_of_interval, vehicle id)`` entries
4. **watermark**: timestamp of the newest merged chunk (never decreases)

All structures are append-only ``TimeOrderedLog`` instances, so retention is
a front-only pop that stops at the first unexpired element.

Locking: one lock per structure, each held for a single structure
operation. Readers may observe a chunk in one structure before another
(torn read across structures); queries tolerate this. Writers are serialized
by a separate merge lock, so only one merge or prune runs at a time.

Example:
    >>> index = LiveIndex()
    >>> index.merge_from(chunk)
    True
    >>> index.merge_from(chunk)  # same timestamp, refused
    False
    >>> index.prune(cutoff=now - 48 * 3600)
"""

import logging
import threading
from collections import deque
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from typing import Generic, TypeVar

from config.constants import MAX_RANK
from config.logging_config import LogCategory
from core.domain.entities import Chunk, Record, SystemStats

logger = logging.getLogger(__name__)

T = TypeVar("T")


class OrderingError(ValueError):
    """Raised when a strict log is asked to append an element older than its tail."""


class TimeOrderedLog(Generic[T]):
    """
    Append-only sequence ordered by a timestamp key.

    There is no remove-by-value: elements enter near the tail and leave from
    the head. In strict mode an element older than the tail is rejected. In
    non-strict mode it is placed after the last element whose timestamp is not
    greater than its own, so the log stays sorted and front-only pruning
    removes exactly the expired elements. Late elements are expected to be
    close to the tail; the insertion point is found by scanning backwards.
    """

    def __init__(self, key: Callable[[T], int], strict: bool = True):
        self._key = key
        self._strict = strict
        self._entries: deque[tuple[int, T]] = deque()

    @property
    def tail_timestamp(self) -> int | None:
        return self._entries[-1][0] if self._entries else None

    @property
    def head_timestamp(self) -> int | None:
        return self._entries[0][0] if self._entries else None

    def append(self, item: T) -> None:
        ts = self._key(item)
        if not self._entries or ts >= self._entries[-1][0]:
            self._entries.append((ts, item))
            return
        if self._strict:
            raise OrderingError(f"timestamp {ts} precedes tail {self._entries[-1][0]}")

        position = len(self._entries) - 1
        while position > 0 and self._entries[position - 1][0] > ts:
            position -= 1
        self._entries.insert(position, (ts, item))

    def extend(self, items: Iterable[T]) -> None:
        for item in items:
            self.append(item)

    def prune_before(self, cutoff: int) -> int:
        """Pop from the head while the retention key is below ``cutoff``."""
        removed = 0
        while self._entries and self._entries[0][0] < cutoff:
            self._entries.popleft()
            removed += 1
        return removed

    def snapshot(self) -> list[T]:
        return [item for _, item in self._entries]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[T]:
        return (item for _, item in self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)


@dataclass(frozen=True)
class PruneResult:
    """Elements removed by one prune pass."""

    cutoff: int
    records: int = 0
    entities: int = 0
    stats: int = 0
    anomaly_entries: int = 0

    @property
    def total(self) -> int:
        return self.records + self.stats + self.anomaly_entries


def _record_ts(record: Record) -> int:
    return record.end_of_interval


def _stats_ts(stats: SystemStats) -> int:
    return stats.timestamp


def _entry_ts(entry: tuple[int, str]) -> int:
    return entry[0]


class LiveIndex:
    """
    Cohesive index over merged chunks.

    Only ``merge_from`` and ``prune`` mutate state. Readers receive copies
    and never hold a reference into the internal structures.
    """

    def __init__(self) -> None:
        self._history: dict[str, TimeOrderedLog[Record]] = {}
        self._stats: TimeOrderedLog[SystemStats] = TimeOrderedLog(_stats_ts, strict=True)
        self._anomalies: dict[int, TimeOrderedLog[tuple[int, str]]] = {}
        self._watermark = 0

        self._history_lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self._anomalies_lock = threading.Lock()
        self._watermark_lock = threading.Lock()
        self._merge_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------

    @property
    def watermark(self) -> int:
        with self._watermark_lock:
            return self._watermark

    def merge_from(self, chunk: Chunk) -> bool:
        """
        Merge one chunk into all three structures, then advance the watermark.

        A chunk whose timestamp is at or below the watermark is refused, so a
        chunk can contribute at most once. Callers must merge in ascending
        timestamp order.

        Records older than the vehicle's retained tail (possible after an
        ingester restart) are dropped from both history and the anomaly index
        before anything is mutated.

        Returns:
            True if the chunk was merged, False if it was refused
        """
        with self._merge_lock:
            ts = chunk.timestamp
            if ts <= self.watermark:
                logger.debug(f"{LogCategory.INDEX} Refusing chunk {ts} (watermark {self.watermark})")
                return False

            accepted, dropped = self._prepare(chunk)

            with self._history_lock:
                for entity_id, records in accepted.items():
                    log = self._history.get(entity_id)
                    if log is None:
                        log = self._history[entity_id] = TimeOrderedLog(_record_ts, strict=True)
                    log.extend(records)

            entries_by_rank: dict[int, list[tuple[int, str]]] = {}
            for entity_id, records in accepted.items():
                for record in records:
                    entries_by_rank.setdefault(record.rank, []).append(
                        (record.end_of_interval, entity_id)
                    )
            with self._anomalies_lock:
                for rank, entries in entries_by_rank.items():
                    log = self._anomalies.get(rank)
                    if log is None:
                        log = self._anomalies[rank] = TimeOrderedLog(_entry_ts, strict=False)
                    # Sorting keeps each vehicle's entries in history order
                    log.extend(sorted(entries))

            with self._stats_lock:
                self._stats.append(chunk.stats)

            with self._watermark_lock:
                self._watermark = max(self._watermark, ts)

        if dropped:
            logger.warning(
                f"{LogCategory.INDEX} Chunk {ts}: dropped {dropped} out-of-order records"
            )
        logger.info(
            f"{LogCategory.INDEX} Merged chunk {ts} "
            f"({chunk.record_count() - dropped} records, {len(accepted)} vehicles)"
        )
        return True

    def _prepare(self, chunk: Chunk) -> tuple[dict[str, list[Record]], int]:
        """Drop records older than their vehicle's history tail; returns the rest and the drop count."""
        with self._history_lock:
            tails = {
                entity_id: self._history[entity_id].tail_timestamp
                for entity_id in chunk.records
                if entity_id in self._history
            }

        accepted: dict[str, list[Record]] = {}
        dropped = 0
        for entity_id, records in chunk.records.items():
            tail = tails.get(entity_id)
            kept = []
            for record in records:
                if tail is not None and record.end_of_interval < tail:
                    dropped += 1
                    continue
                kept.append(record)
                tail = record.end_of_interval
            if kept:
                accepted[entity_id] = kept
        return accepted, dropped

    def prune(self, cutoff: int) -> PruneResult:
        """
        Remove everything older than ``cutoff`` from the front of each structure.

        Vehicles left with an empty history are removed.
        """
        with self._merge_lock:
            records = 0
            with self._history_lock:
                emptied = []
                for entity_id, log in self._history.items():
                    records += log.prune_before(cutoff)
                    if not log:
                        emptied.append(entity_id)
                for entity_id in emptied:
                    del self._history[entity_id]

            with self._stats_lock:
                stats = self._stats.prune_before(cutoff)

            anomaly_entries = 0
            with self._anomalies_lock:
                for log in self._anomalies.values():
                    anomaly_entries += log.prune_before(cutoff)

        result = PruneResult(
            cutoff=cutoff,
            records=records,
            entities=len(emptied),
            stats=stats,
            anomaly_entries=anomaly_entries,
        )
        if result.total:
            logger.info(
                f"{LogCategory.INDEX} Pruned before {cutoff}: records={records} "
                f"vehicles={len(emptied)} windows={stats} anomaly_entries={anomaly_entries}"
            )
        return result

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    def get_history(self, entity_id: str) -> list[Record]:
        """Retained records of one vehicle, oldest first. Empty if unknown."""
        with self._history_lock:
            log = self._history.get(entity_id)
            return log.snapshot() if log is not None else []

    def histories_for(self, entity_ids: Iterable[str]) -> dict[str, list[Record]]:
        """Retained records for several vehicles; unknown ids are omitted."""
        with self._history_lock:
            return {
                entity_id: self._history[entity_id].snapshot()
                for entity_id in entity_ids
                if entity_id in self._history
            }

    def get_stats(self) -> list[SystemStats]:
        """Retained window statistics, oldest first."""
        with self._stats_lock:
            return self._stats.snapshot()

    def anomaly_entities(self, min_rank: int) -> set[str]:
        """Vehicles with at least one indexed record ranked ``min_rank`` or above."""
        candidates: set[str] = set()
        with self._anomalies_lock:
            for rank in range(max(0, min_rank), MAX_RANK + 1):
                log = self._anomalies.get(rank)
                if log is not None:
                    candidates.update(entity_id for _, entity_id in log)
        return candidates

    def anomaly_entries(self, rank: int) -> list[tuple[int, str]]:
        with self._anomalies_lock:
            log = self._anomalies.get(rank)
            return log.snapshot() if log is not None else []

    def entity_count(self) -> int:
        with self._history_lock:
            return len(self._history)

    def summary(self) -> dict[str, int]:
        """Sizes of each structure, for health reporting."""
        with self._history_lock:
            entities = len(self._history)
            records = sum(len(log) for log in self._history.values())
        with self._stats_lock:
            windows = len(self._stats)
        with self._anomalies_lock:
            anomaly_entries = sum(len(log) for log in self._anomalies.values())
        return {
            "entities": entities,
            "records": records,
            "windows": windows,
            "anomaly_entries": anomaly_entries,
            "watermark": self.watermark,
        }
