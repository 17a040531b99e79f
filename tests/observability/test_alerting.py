import time

from observability.alerting import (
    Alert,
    AlertChannel,
    AlertLevel,
    AlertManager,
    MemoryAlertChannel,
    get_alert_manager,
)


class MockChannel(AlertChannel):
    def __init__(self):
        self.alerts = []

    def send(self, alert: Alert) -> None:
        self.alerts.append(alert)


class BrokenChannel(AlertChannel):
    def send(self, alert: Alert) -> None:
        raise ConnectionError("webhook down")


class TestAlertManager:
    def test_alert_triggering(self):
        """Test basic alert triggering."""
        manager = AlertManager()
        channel = MockChannel()
        manager.add_channel(channel)

        manager.trigger("chunk_quarantined", "chunk moved aside", AlertLevel.WARNING)

        assert len(channel.alerts) == 1
        assert channel.alerts[0].name == "chunk_quarantined"
        assert channel.alerts[0].level == AlertLevel.WARNING
        assert channel.alerts[0].message == "chunk moved aside"

    def test_suppression(self):
        """Duplicate alerts inside the interval are suppressed."""
        manager = AlertManager(suppression_interval_sec=0.5)
        channel = MockChannel()
        manager.add_channel(channel)

        assert manager.trigger("dup", "First", AlertLevel.INFO) is True
        assert manager.trigger("dup", "Second", AlertLevel.INFO) is False
        assert len(channel.alerts) == 1

        time.sleep(0.6)
        assert manager.trigger("dup", "Third", AlertLevel.INFO) is True
        assert len(channel.alerts) == 2

    def test_force_override(self):
        manager = AlertManager(suppression_interval_sec=60.0)
        channel = MockChannel()
        manager.add_channel(channel)

        manager.trigger("chunk_write_failed", "First", AlertLevel.CRITICAL)
        assert manager.trigger("chunk_write_failed", "Second", AlertLevel.CRITICAL, force=True) is True
        assert len(channel.alerts) == 2

    def test_reset_suppression(self):
        manager = AlertManager(suppression_interval_sec=60.0)
        channel = MockChannel()
        manager.add_channel(channel)

        manager.trigger("a", "First")
        manager.reset_suppression("a")
        assert manager.trigger("a", "Second") is True

    def test_broken_channel_does_not_block_others(self):
        manager = AlertManager()
        manager.add_channel(BrokenChannel())
        channel = MockChannel()
        manager.add_channel(channel)

        assert manager.trigger("x", "still delivered", AlertLevel.CRITICAL) is True
        assert len(channel.alerts) == 1

    def test_context_passed_through(self):
        manager = AlertManager()
        channel = MockChannel()
        manager.add_channel(channel)

        manager.trigger("x", "msg", context={"key": "chunk_00000000000000000100.bin"})
        assert channel.alerts[0].context == {"key": "chunk_00000000000000000100.bin"}


class TestMemoryAlertChannel:
    def test_capacity(self):
        channel = MemoryAlertChannel(capacity=2)
        for i in range(3):
            channel.send(Alert(name=f"a{i}", message="", level=AlertLevel.INFO))

        assert [a.name for a in channel.recent()] == ["a1", "a2"]


def test_global_manager_is_singleton():
    assert get_alert_manager() is get_alert_manager()
