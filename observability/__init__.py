"""
Operational alerting and metrics for the latency monitor.

Usage:
    >>> from observability import AlertLevel, get_alert_manager, get_metrics
    >>> get_alert_manager().trigger("chunk_write_failed", "window lost", AlertLevel.CRITICAL)
    >>> get_metrics().record_chunk_lost()
"""

from observability.alerting import (
    Alert,
    AlertChannel,
    AlertLevel,
    AlertManager,
    LogAlertChannel,
    MemoryAlertChannel,
    get_alert_manager,
)
from observability.metrics import MonitorMetrics, get_metrics, start_metrics_server

__all__ = [
    "Alert",
    "AlertChannel",
    "AlertLevel",
    "AlertManager",
    "LogAlertChannel",
    "MemoryAlertChannel",
    "MonitorMetrics",
    "get_alert_manager",
    "get_metrics",
    "start_metrics_server",
]
