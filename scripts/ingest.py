#!/usr/bin/env python3
"""
Ingestion process.

Samples the vehicle feed on a fixed tick and writes one chunk per
aggregation window:

1.  **Fetch**: `FeedClient` pulls a snapshot every `ingestion.tick_seconds`.
    A failed fetch is logged and the tick is skipped.
2.  **Aggregate**: `WindowAggregator` turns vehicle timestamps into records.
3.  **Flush**: an independent timer closes the window every
    `ingestion.window_seconds` on a fixed schedule, so slow fetches do not
    stretch windows. The chunk is written to the `FileChunkStore` and
    chunks older than the retention span are purged.
4.  **Shutdown**: SIGINT/SIGTERM stop both loops and the in-flight window is
    flushed before exit.

Usage:
    python -m scripts.ingest
    python -m scripts.ingest --data-dir ./data --window-seconds 60
"""

import asyncio
import logging
import sys
from collections.abc import Callable

from pydantic import ValidationError

from config.logging_config import LogCategory, setup_logging
from config.settings import Settings, load_settings
from core.interfaces import IChunkStore, IFeedClient
from data.aggregator import WindowAggregator
from data.chunk_store import FileChunkStore
from data.ingestion.client import FeedClient, FeedError
from observability.alerting import AlertLevel, AlertManager, get_alert_manager
from observability.metrics import MonitorMetrics, get_metrics, start_metrics_server
from scripts.cli import apply_overrides, parse_ingest_args
from scripts.shutdown import EXIT_ERROR, ShutdownHandler
from utils.clock import now_unix, retention_cutoff

logger = logging.getLogger(__name__)


async def _wait(stop_event: asyncio.Event, timeout: float) -> bool:
    """Sleep up to ``timeout`` seconds. Returns True if stop was requested."""
    if timeout <= 0:
        return stop_event.is_set()
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=timeout)
        return True
    except asyncio.TimeoutError:
        return False


class IngestionService:
    """
    Fetch loop and flush loop sharing one aggregator.

    Both loops run in the same event loop and the aggregator is only touched
    between awaits, so no locking is needed.
    """

    def __init__(
        self,
        settings: Settings,
        client: IFeedClient,
        store: IChunkStore,
        aggregator: WindowAggregator | None = None,
        alerts: AlertManager | None = None,
        metrics: MonitorMetrics | None = None,
        clock: Callable[[], int] = now_unix,
    ):
        self.settings = settings
        self.client = client
        self.store = store
        self.aggregator = aggregator or WindowAggregator()
        self.alerts = alerts or get_alert_manager()
        self.metrics = metrics or get_metrics()
        self.clock = clock

        self.tick_seconds = settings.ingestion.tick_seconds
        self.window_seconds = settings.ingestion.window_seconds
        self.retention_span = settings.retention.span_seconds

        self._last_close = 0

    async def fetch_once(self) -> int:
        """
        Fetch one snapshot and feed it to the aggregator.

        Returns:
            Records produced (0 when the fetch failed)
        """
        try:
            snapshot = await self.client.fetch()
        except FeedError as e:
            self.metrics.record_fetch_failure()
            logger.warning(f"{LogCategory.FEED} Fetch failed, skipping tick: {e}")
            return 0
        return self.aggregator.observe_feed(snapshot)

    def _close_timestamp(self) -> int:
        # Two flushes in the same second must not collide on the chunk key
        close_ts = max(self.clock(), self._last_close + 1)
        self._last_close = close_ts
        return close_ts

    async def flush_window(self) -> str | None:
        """
        Close the current window and persist it.

        A write failure loses the window (the aggregator has already reset)
        and raises a CRITICAL alert. This covers I/O errors and chunks that
        do not fit the binary format.

        Returns:
            The chunk key written, or None if the write failed
        """
        close_ts = self._close_timestamp()
        chunk = self.aggregator.flush(close_ts)
        records = chunk.record_count()

        try:
            key = await asyncio.to_thread(self.store.put, chunk)
        except (OSError, ValueError) as e:
            self.metrics.record_chunk_lost()
            logger.error(f"{LogCategory.CHUNK} Failed to write chunk {close_ts}: {e}")
            self.alerts.trigger(
                "chunk_write_failed",
                f"Window {close_ts} lost: {records} records could not be persisted",
                level=AlertLevel.CRITICAL,
                context={"timestamp": str(close_ts), "records": str(records), "error": str(e)},
                force=True,
            )
            return None

        self.metrics.record_chunk_written(records)
        logger.info(
            f"{LogCategory.WINDOW} Flushed {key} ({records} records, "
            f"{len(chunk.records)} vehicles)"
        )

        try:
            await asyncio.to_thread(
                self.store.purge_older_than, retention_cutoff(close_ts, self.retention_span)
            )
        except OSError as e:
            logger.error(f"{LogCategory.CHUNK} Purge failed: {e}")
        return key

    async def fetch_loop(self, stop_event: asyncio.Event) -> None:
        """Fetch on a fixed tick. Ticks missed during a slow fetch are skipped."""
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        while not stop_event.is_set():
            await self.fetch_once()
            next_tick += self.tick_seconds
            now = loop.time()
            if next_tick < now:
                skipped = int((now - next_tick) // self.tick_seconds) + 1
                next_tick += skipped * self.tick_seconds
            if await _wait(stop_event, next_tick - loop.time()):
                break

    async def flush_loop(self, stop_event: asyncio.Event) -> None:
        """Close a window every ``window_seconds`` on a fixed schedule."""
        loop = asyncio.get_running_loop()
        next_flush = loop.time() + self.window_seconds
        while not await _wait(stop_event, next_flush - loop.time()):
            await self.flush_window()
            logger.info(
                f"{LogCategory.HEARTBEAT} vehicles={self.aggregator.tracked_entities} "
                f"written={self.metrics.value('chunks_written'):.0f} "
                f"lost={self.metrics.value('chunks_lost'):.0f} "
                f"fetch_failures={self.metrics.value('fetch_failures'):.0f}"
            )
            next_flush += self.window_seconds
            # A flush that overran a whole period does not trigger a burst
            while next_flush <= loop.time():
                next_flush += self.window_seconds

    async def run(self, stop_event: asyncio.Event) -> None:
        """Run both loops until ``stop_event`` is set, then flush the in-flight window."""
        logger.info(
            f"{LogCategory.FEED} Ingesting {self.settings.feed.url} "
            f"(tick={self.tick_seconds}s, window={self.window_seconds}s)"
        )
        try:
            await asyncio.gather(self.fetch_loop(stop_event), self.flush_loop(stop_event))
        finally:
            if self.aggregator.window_record_count:
                logger.info(f"{LogCategory.WINDOW} Flushing in-flight window before exit")
                await self.flush_window()
            else:
                logger.info(f"{LogCategory.WINDOW} In-flight window is empty, nothing to flush")


async def _run(settings: Settings) -> int:
    handler = ShutdownHandler()
    handler.setup_signal_handlers()

    if settings.ingestion.metrics_port:
        start_metrics_server(settings.ingestion.metrics_port)

    store = FileChunkStore(settings.storage.data_dir)
    async with FeedClient(settings.feed) as client:
        service = IngestionService(settings, client, store)
        await service.run(handler.stop_event)

    return handler.exit_code


def main(argv: list[str] | None = None) -> int:
    args = parse_ingest_args(argv)
    try:
        settings = apply_overrides(load_settings(), args)
    except ValidationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return EXIT_ERROR

    setup_logging(
        level=settings.log_level, json_format=settings.log_json, log_file=settings.log_file
    )
    return asyncio.run(_run(settings))


if __name__ == "__main__":
    sys.exit(main())
