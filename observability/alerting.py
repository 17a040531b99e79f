"""
Alerting for the latency monitor.

Routes operational alerts (lost windows, quarantined chunks) to one or more
channels and throttles repeats of the same alert so a persistent failure
does not flood the logs.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum, auto

logger = logging.getLogger(__name__)


class AlertLevel(Enum):
    """Severity levels for alerts."""
    INFO = auto()
    WARNING = auto()   # Degraded but self-healing (e.g. repeated decode failures)
    CRITICAL = auto()  # Data loss (e.g. window could not be persisted)


@dataclass
class Alert:
    name: str
    message: str
    level: AlertLevel
    timestamp: float = field(default_factory=time.time)
    context: dict[str, str] = field(default_factory=dict)


class AlertChannel(ABC):
    """Destination for alerts."""

    @abstractmethod
    def send(self, alert: Alert) -> None:
        """Send the alert to this channel."""


class LogAlertChannel(AlertChannel):
    """Default channel that routes alerts to Python logging."""

    def send(self, alert: Alert) -> None:
        msg = f"ALERT [{alert.name}]: {alert.message} | Context: {alert.context}"
        if alert.level == AlertLevel.CRITICAL:
            logger.critical(msg)
        elif alert.level == AlertLevel.WARNING:
            logger.warning(msg)
        else:
            logger.info(msg)


class MemoryAlertChannel(AlertChannel):
    """Keeps the most recent alerts in memory, newest last."""

    def __init__(self, capacity: int = 100):
        self.capacity = capacity
        self.alerts: list[Alert] = []
        self._lock = threading.Lock()

    def send(self, alert: Alert) -> None:
        with self._lock:
            self.alerts.append(alert)
            if len(self.alerts) > self.capacity:
                del self.alerts[: len(self.alerts) - self.capacity]

    def recent(self) -> list[Alert]:
        with self._lock:
            return list(self.alerts)


class AlertManager:
    """
    Central manager for alert routing and suppression.

    An alert name is the deduplication key: a second alert with the same name
    inside ``suppression_interval_sec`` is dropped unless forced.
    """

    def __init__(self, suppression_interval_sec: float = 60.0):
        self.channels: list[AlertChannel] = [LogAlertChannel()]
        self._suppression_interval = suppression_interval_sec
        self._last_alert_times: dict[str, float] = defaultdict(float)
        self._lock = threading.Lock()

    def add_channel(self, channel: AlertChannel) -> None:
        with self._lock:
            self.channels.append(channel)

    def trigger(
        self,
        name: str,
        message: str,
        level: AlertLevel = AlertLevel.WARNING,
        context: dict[str, str] | None = None,
        force: bool = False,
    ) -> bool:
        """
        Trigger an alert.

        Args:
            name: Alert type, used as the deduplication key
            message: Human-readable message
            level: Severity level
            context: Additional key-value context
            force: Bypass suppression

        Returns:
            True if the alert was sent, False if suppressed
        """
        now = time.time()

        with self._lock:
            if not force:
                last_time = self._last_alert_times.get(name, 0.0)
                if last_time and now - last_time < self._suppression_interval:
                    return False
            self._last_alert_times[name] = now
            channels = list(self.channels)

        alert = Alert(name=name, message=message, level=level, timestamp=now, context=context or {})

        for channel in channels:
            try:
                channel.send(alert)
            except Exception as e:
                logger.error(f"Failed to send alert to channel {channel}: {e}")

        return True

    def reset_suppression(self, name: str) -> None:
        with self._lock:
            self._last_alert_times.pop(name, None)


_global_alert_manager: AlertManager | None = None


def get_alert_manager() -> AlertManager:
    """Get or create the process-wide alert manager."""
    global _global_alert_manager
    if _global_alert_manager is None:
        _global_alert_manager = AlertManager()
    return _global_alert_manager
