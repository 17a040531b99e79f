"""
Index synchronization for the serving process.

Discovers chunks newer than the live index watermark, decodes them and merges
them in ascending timestamp order, then prunes the index against the
retention cutoff. This is the only writer of the LiveIndex.

Dead-letter policy:
- A chunk that fails to decode stops the pass, so the watermark never moves
  past an unmerged chunk. It is retried on the next pass.
- After ``max_decode_attempts`` consecutive failures the chunk is moved to the
  store's quarantine directory, remembered in an in-memory skip set and a
  CRITICAL alert is raised. The next pass continues past it.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from config.logging_config import LogCategory
from core.interfaces import IChunkStore
from data.chunk_codec import ChunkDecodeError
from data.live_index import LiveIndex, PruneResult
from observability.alerting import AlertLevel, AlertManager, get_alert_manager
from observability.metrics import MonitorMetrics, get_metrics
from utils.clock import now_unix, retention_cutoff

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Outcome of one discovery pass."""

    discovered: int = 0
    merged: list[str] = field(default_factory=list)
    failed: str | None = None
    quarantined: list[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return self.failed is None


class IndexSynchronizer:
    """
    Keeps a LiveIndex in step with a chunk store.

    Args:
        store: Chunk store shared with the ingestion process
        index: Live index to merge into
        retention_span: Seconds of history to keep
        max_decode_attempts: Failures tolerated before a chunk is quarantined
        alerts: Alert manager (process-wide one if omitted)
        metrics: Metrics collector (process-wide one if omitted)
    """

    def __init__(
        self,
        store: IChunkStore,
        index: LiveIndex,
        retention_span: int,
        max_decode_attempts: int = 3,
        alerts: AlertManager | None = None,
        metrics: MonitorMetrics | None = None,
    ):
        self.store = store
        self.index = index
        self.retention_span = retention_span
        self.max_decode_attempts = max(1, max_decode_attempts)
        self.alerts = alerts or get_alert_manager()
        self.metrics = metrics or get_metrics()

        self._failures: dict[str, int] = {}
        self._skipped: set[str] = set()

    @property
    def skipped(self) -> frozenset[str]:
        return frozenset(self._skipped)

    def decode_failures(self, key: str) -> int:
        return self._failures.get(key, 0)

    def sync_once(self) -> SyncResult:
        """Discover and merge every new chunk, oldest first."""
        keys = [k for k in self.store.list_since(self.index.watermark) if k not in self._skipped]
        result = SyncResult(discovered=len(keys))

        for key in keys:
            try:
                chunk = self.store.get(key)
            except FileNotFoundError:
                # Purged between listing and reading
                logger.debug(f"{LogCategory.CHUNK} {key} vanished before it could be read")
                continue
            except ChunkDecodeError as e:
                if self._record_failure(key, e):
                    result.quarantined.append(key)
                    continue
                result.failed = key
                break
            except OSError as e:
                logger.error(f"{LogCategory.CHUNK} Failed to read {key}: {e}")
                result.failed = key
                break

            if self._failures.pop(key, None):
                # Recovered; the next failure should alert straight away
                self.alerts.reset_suppression("chunk_decode_failed")
            if self.index.merge_from(chunk):
                result.merged.append(key)

        if result.merged or result.failed:
            logger.info(
                f"{LogCategory.INDEX} Sync pass: discovered={result.discovered} "
                f"merged={len(result.merged)} failed={result.failed} "
                f"watermark={self.index.watermark}"
            )
        self.metrics.record_sync(
            len(result.merged), self.index.watermark, self.index.entity_count()
        )
        return result

    def _record_failure(self, key: str, error: ChunkDecodeError) -> bool:
        """Count a decode failure; quarantine once the limit is reached. Returns True if quarantined."""
        attempts = self._failures.get(key, 0) + 1
        self._failures[key] = attempts
        self.metrics.record_decode_failure()
        logger.error(
            f"{LogCategory.CHUNK} Cannot decode {key} "
            f"(attempt {attempts}/{self.max_decode_attempts}): {error}"
        )
        if attempts < self.max_decode_attempts:
            # Repeats inside the suppression interval are dropped by the manager
            self.alerts.trigger(
                "chunk_decode_failed",
                f"Chunk {key} failed to decode, merging is blocked behind it",
                level=AlertLevel.WARNING,
                context={"key": key, "attempt": str(attempts), "error": str(error)},
            )
            return False

        self._skipped.add(key)
        self._failures.pop(key, None)
        self.metrics.record_quarantine()
        try:
            self.store.quarantine(key)
        except OSError as e:
            logger.error(f"{LogCategory.CHUNK} Could not move {key} to quarantine: {e}")

        self.alerts.trigger(
            "chunk_quarantined",
            f"Chunk {key} failed to decode {attempts} times and was quarantined",
            level=AlertLevel.CRITICAL,
            context={"key": key, "error": str(error)},
            force=True,
        )
        return True

    def prune(self, now: int | None = None) -> PruneResult:
        """Prune the index against ``now - retention_span``."""
        now = now_unix() if now is None else now
        return self.index.prune(retention_cutoff(now, self.retention_span))

    def sync_and_prune(self) -> SyncResult:
        result = self.sync_once()
        self.prune()
        return result

    async def run(self, interval: float, stop_event: asyncio.Event) -> None:
        """
        Merge-and-prune loop. Merge then prune, strictly sequential.

        Blocking work runs in a worker thread so queries keep being served.
        """
        logger.info(f"{LogCategory.INDEX} Sync task started (interval={interval}s)")

        while not stop_event.is_set():
            try:
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=interval)
                    break
                except asyncio.TimeoutError:
                    pass

                await asyncio.to_thread(self.sync_and_prune)

            except asyncio.CancelledError:
                logger.info(f"{LogCategory.INDEX} Sync task cancelled")
                raise
            except Exception as e:
                logger.exception(f"{LogCategory.INDEX} Sync pass failed: {e}")

        logger.info(f"{LogCategory.INDEX} Sync task exiting")
