"""
Prometheus metrics for the latency monitor.

Tracks the operational events of both processes:
- Ingestion: failed fetches, chunks written, windows lost
- Serving: chunks merged, decode failures, quarantined chunks, index size

Usage:
    >>> from observability.metrics import get_metrics
    >>> metrics = get_metrics()
    >>> metrics.record_chunk_written(records=812)
    >>> metrics.export()  # Current values as a dict

Exposing the metrics:
    >>> start_metrics_server(port=9100)  # ingestion process
    >>> metrics.render()                 # serving process, /metrics route
"""

import logging
from datetime import datetime, timezone
from typing import Any

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    generate_latest,
    start_http_server,
)

logger = logging.getLogger(__name__)

METRIC_PREFIX = "latency_monitor"

__all__ = [
    "CONTENT_TYPE_LATEST",
    "MonitorMetrics",
    "get_metrics",
    "start_metrics_server",
]


class MonitorMetrics:
    """
    Metrics collector for ingestion and serving.

    Each instance registers its collectors on one registry. The process-wide
    instance (``get_metrics``) uses the default registry; tests pass their own
    ``CollectorRegistry`` so instances do not collide.
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry if registry is not None else REGISTRY
        self._sample_names: dict[str, str] = {}

        # Ingestion
        self.fetch_failures = self._counter(
            "fetch_failures", "feed_fetch_failures", "Feed fetches that failed and were skipped"
        )
        self.chunks_written = self._counter(
            "chunks_written", "chunks_written", "Chunks persisted by the ingester"
        )
        self.chunks_lost = self._counter(
            "chunks_lost", "chunks_lost", "Windows lost because their chunk could not be written"
        )
        self.records_written = self._counter(
            "records_written", "records_written", "Records contained in persisted chunks"
        )

        # Serving
        self.chunks_merged = self._counter(
            "chunks_merged", "chunks_merged", "Chunks merged into the live index"
        )
        self.decode_failures = self._counter(
            "decode_failures", "chunk_decode_failures", "Failed attempts to decode a stored chunk"
        )
        self.chunks_quarantined = self._counter(
            "chunks_quarantined", "chunks_quarantined", "Chunks moved to the quarantine directory"
        )
        self.index_watermark = self._gauge(
            "index_watermark",
            "index_watermark",
            "Timestamp of the newest chunk merged into the live index",
        )
        self.index_vehicles = self._gauge(
            "index_vehicles", "index_vehicles", "Vehicles with retained history in the live index"
        )

    def _counter(self, short: str, name: str, documentation: str) -> Counter:
        self._sample_names[short] = f"{METRIC_PREFIX}_{name}_total"
        return Counter(f"{METRIC_PREFIX}_{name}", documentation, registry=self.registry)

    def _gauge(self, short: str, name: str, documentation: str) -> Gauge:
        self._sample_names[short] = f"{METRIC_PREFIX}_{name}"
        return Gauge(f"{METRIC_PREFIX}_{name}", documentation, registry=self.registry)

    def record_fetch_failure(self) -> None:
        self.fetch_failures.inc()

    def record_chunk_written(self, records: int) -> None:
        self.chunks_written.inc()
        self.records_written.inc(records)

    def record_chunk_lost(self) -> None:
        self.chunks_lost.inc()

    def record_sync(self, merged: int, watermark: int, vehicles: int) -> None:
        """
        Record the outcome of one sync pass.

        Args:
            merged: Chunks merged in the pass
            watermark: Index watermark after the pass
            vehicles: Vehicles with retained history after the pass
        """
        if merged:
            self.chunks_merged.inc(merged)
        self.index_watermark.set(watermark)
        self.index_vehicles.set(vehicles)

    def record_decode_failure(self) -> None:
        self.decode_failures.inc()

    def record_quarantine(self) -> None:
        self.chunks_quarantined.inc()

    def value(self, name: str) -> float:
        """Current value of a metric by short name, e.g. ``"chunks_written"``."""
        return self.registry.get_sample_value(self._sample_names[name]) or 0.0

    def export(self) -> dict[str, Any]:
        """
        Export all metric values as a dictionary.

        Returns:
            Dict with every metric value keyed by short name
        """
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "metrics": {name: self.value(name) for name in self._sample_names},
        }

    def render(self) -> bytes:
        """Metrics in the Prometheus text exposition format."""
        return generate_latest(self.registry)


def start_metrics_server(port: int, metrics: MonitorMetrics | None = None) -> None:
    """
    Start a Prometheus HTTP server exposing ``/metrics``.

    Args:
        port: Port to listen on
        metrics: Collector whose registry is exposed (process-wide one if omitted)
    """
    metrics = metrics or get_metrics()
    start_http_server(port, registry=metrics.registry)
    logger.info(f"Prometheus metrics server started on port {port}")


_global_metrics: MonitorMetrics | None = None


def get_metrics() -> MonitorMetrics:
    """Get the process-wide metrics instance (creates if needed)."""
    global _global_metrics
    if _global_metrics is None:
        _global_metrics = MonitorMetrics()
    return _global_metrics
