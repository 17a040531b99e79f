"""
Pytest configuration and fixtures.
"""

import sys
from pathlib import Path

import pytest
from prometheus_client import CollectorRegistry

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from core.domain.entities import Chunk, Percentiles, Record, SystemStats  # noqa: E402
from data.chunk_store import FileChunkStore  # noqa: E402
from data.live_index import LiveIndex  # noqa: E402
from observability.alerting import AlertManager, MemoryAlertChannel  # noqa: E402
from observability.metrics import MonitorMetrics  # noqa: E402


def make_chunk(timestamp: int, records: dict[str, list[tuple]] | None = None) -> Chunk:
    """
    Build a chunk from ``{vehicle: [(interval, end_of_interval, latency, rank), ...]}``.
    """
    records = records or {}
    built = {
        entity_id: tuple(Record(*fields) for fields in rows)
        for entity_id, rows in records.items()
    }
    count = sum(len(r) for r in built.values())
    stats = SystemStats(
        timestamp=timestamp,
        interval_stats=Percentiles.from_values([float(i) for i in range(12)]),
        latency_stats=Percentiles(),
        sample_count=count,
    )
    return Chunk(stats=stats, records=built)


@pytest.fixture(scope="session")
def chunk_factory():
    """``make_chunk`` as a fixture."""
    return make_chunk


@pytest.fixture
def store(tmp_path):
    return FileChunkStore(tmp_path / "data")


@pytest.fixture
def index():
    return LiveIndex()


@pytest.fixture
def alert_channel():
    return MemoryAlertChannel()


@pytest.fixture
def alerts(alert_channel):
    manager = AlertManager(suppression_interval_sec=0.0)
    manager.add_channel(alert_channel)
    return manager


@pytest.fixture
def metrics():
    """Metrics on a private registry, so counts start at zero."""
    return MonitorMetrics(registry=CollectorRegistry())
