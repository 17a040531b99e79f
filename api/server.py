"""
Query API Server - READ-ONLY access to the live index.

Serves per-vehicle history, per-window statistics and the anomaly ranking
over the retained window. A background task merges newly written chunks and
prunes expired data; request handlers never write.

Usage:
    python -m scripts.serve --port 3000
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Query, Response
from fastapi.middleware.cors import CORSMiddleware

from api.models.responses import (
    HealthResponse,
    RecordOut,
    ScoredEntityOut,
    SystemStatsOut,
)
from config.constants import MAX_RANK
from config.settings import Settings
from data.anomaly_query import AnomalyQueryEngine
from data.chunk_store import FileChunkStore
from data.index_sync import IndexSynchronizer
from data.live_index import LiveIndex
from observability.metrics import CONTENT_TYPE_LATEST

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings,
    index: LiveIndex | None = None,
    synchronizer: IndexSynchronizer | None = None,
    run_background: bool = True,
) -> FastAPI:
    """
    Build the query API.

    Args:
        settings: Application settings
        index: Live index to serve (a new one if omitted)
        synchronizer: Writer for ``index`` (built over ``settings.storage.data_dir`` if omitted)
        run_background: Start the periodic merge-and-prune task
    """
    index = index or LiveIndex()
    if synchronizer is None:
        synchronizer = IndexSynchronizer(
            store=FileChunkStore(settings.storage.data_dir),
            index=index,
            retention_span=settings.retention.span_seconds,
            max_decode_attempts=settings.serving.max_decode_attempts,
        )
    engine = AnomalyQueryEngine(index, limit=settings.serving.max_anomaly_results)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Initial load, then start/stop the background sync task."""
        logger.info(f"Starting query API (data_dir={settings.storage.data_dir})")

        result = await asyncio.to_thread(synchronizer.sync_and_prune)
        logger.info(
            f"Initial load: merged {len(result.merged)} chunks, "
            f"{index.entity_count()} vehicles, watermark={index.watermark}"
        )

        stop_event = asyncio.Event()
        task = None
        if run_background:
            task = asyncio.create_task(
                synchronizer.run(settings.serving.merge_interval_seconds, stop_event)
            )
        yield

        stop_event.set()
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("Query API stopped.")

    app = FastAPI(
        title="Transit Feed Latency Monitor",
        description="Read-only API over the rolling window of vehicle update intervals",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.index = index
    app.state.synchronizer = synchronizer
    app.state.engine = engine

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    # =========================================================================
    # REST Endpoints
    # =========================================================================

    @app.get("/history/{entity_id}", response_model=list[RecordOut])
    def get_history(entity_id: str):
        """Retained records of one vehicle, oldest first. Unknown vehicles return []."""
        return index.get_history(entity_id)

    @app.get("/stats", response_model=list[SystemStatsOut])
    def get_stats():
        """Per-window statistics over the retained window, oldest first."""
        return index.get_stats()

    @app.get("/anomalies", response_model=list[ScoredEntityOut])
    def get_anomalies(
        min_rank: int = Query(settings.serving.default_min_rank, ge=0, le=MAX_RANK),
    ):
        """
        Vehicles ranked by summed interval seconds of records at or above ``min_rank``.

        Capped at ``serving.max_anomaly_results`` entries.
        """
        return engine.query(min_rank)

    @app.get("/health", response_model=HealthResponse)
    def health_check():
        summary = index.summary()
        return HealthResponse(
            status="healthy",
            timestamp=datetime.now(timezone.utc).isoformat(),
            watermark=summary["watermark"],
            entities=summary["entities"],
            windows=summary["windows"],
            quarantined=sorted(synchronizer.skipped),
        )

    @app.get("/metrics", include_in_schema=False)
    def metrics():
        """Prometheus exposition of the sync counters and index gauges."""
        return Response(synchronizer.metrics.render(), media_type=CONTENT_TYPE_LATEST)

    return app
