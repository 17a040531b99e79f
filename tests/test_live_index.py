"""
Tests for LiveIndex and TimeOrderedLog.

Covers:
- Watermark-guarded, idempotent merge
- Cross-structure consistency (history <-> anomaly index)
- Front-only pruning and removal of emptied vehicles
- Readers receive copies
"""

import threading

import pytest

from data.live_index import LiveIndex, OrderingError, TimeOrderedLog


class TestTimeOrderedLog:
    def test_append_and_snapshot(self):
        log = TimeOrderedLog(key=lambda x: x)
        log.extend([1, 2, 2, 5])
        assert log.snapshot() == [1, 2, 2, 5]
        assert log.head_timestamp == 1
        assert log.tail_timestamp == 5

    def test_strict_rejects_regression(self):
        log = TimeOrderedLog(key=lambda x: x)
        log.append(10)
        with pytest.raises(OrderingError):
            log.append(9)
        assert log.snapshot() == [10]

    def test_lenient_inserts_late_element_in_order(self):
        log = TimeOrderedLog(key=lambda x: x, strict=False)
        log.extend([10, 12, 8, 12, 11])

        assert log.snapshot() == [8, 10, 11, 12, 12]
        assert log.head_timestamp == 8
        assert log.prune_before(11) == 2
        assert log.snapshot() == [11, 12, 12]

    def test_lenient_keeps_equal_keys_in_arrival_order(self):
        log = TimeOrderedLog(key=lambda pair: pair[0], strict=False)
        log.extend([(5, "a"), (9, "b"), (5, "c")])

        assert log.snapshot() == [(5, "a"), (5, "c"), (9, "b")]

    def test_prune_stops_at_first_unexpired(self):
        log = TimeOrderedLog(key=lambda x: x)
        log.extend([1, 2, 3, 4])
        assert log.prune_before(3) == 2
        assert list(log) == [3, 4]

    def test_prune_empty(self):
        log = TimeOrderedLog(key=lambda x: x)
        assert log.prune_before(100) == 0
        assert not log


class TestMerge:
    def test_merge_populates_all_structures(self, index, chunk_factory):
        chunk = chunk_factory(100, {"A": [(10, 90, 0, 95), (20, 95, 0, 60)], "B": [(5, 92, 0, 95)]})

        assert index.merge_from(chunk) is True

        assert [r.interval for r in index.get_history("A")] == [10, 20]
        assert [r.interval for r in index.get_history("B")] == [5]
        assert [s.timestamp for s in index.get_stats()] == [100]
        assert index.anomaly_entries(95) == [(90, "A"), (92, "B")]
        assert index.anomaly_entries(60) == [(95, "A")]
        assert index.watermark == 100

    def test_same_timestamp_merged_once(self, index, chunk_factory):
        first = chunk_factory(100, {"A": [(10, 90, 0, 50)]})
        duplicate = chunk_factory(100, {"A": [(10, 91, 0, 50)]})

        assert index.merge_from(first) is True
        assert index.merge_from(duplicate) is False

        assert len(index.get_history("A")) == 1
        assert len(index.get_stats()) == 1

    def test_older_chunk_refused(self, index, chunk_factory):
        index.merge_from(chunk_factory(200))
        assert index.merge_from(chunk_factory(150, {"A": [(1, 140, 0, 0)]})) is False
        assert index.get_history("A") == []
        assert index.watermark == 200

    def test_history_appends_across_chunks(self, index, chunk_factory):
        index.merge_from(chunk_factory(100, {"A": [(10, 90, 0, 50)]}))
        index.merge_from(chunk_factory(160, {"A": [(60, 150, 0, 50)]}))

        assert [r.end_of_interval for r in index.get_history("A")] == [90, 150]

    def test_out_of_order_records_dropped_from_both_structures(self, index, chunk_factory):
        index.merge_from(chunk_factory(100, {"A": [(10, 90, 0, 95)]}))
        # Restarted ingester re-reports an older vehicle timestamp
        index.merge_from(chunk_factory(160, {"A": [(5, 80, 0, 95), (70, 150, 0, 95)]}))

        assert [r.end_of_interval for r in index.get_history("A")] == [90, 150]
        assert index.anomaly_entries(95) == [(90, "A"), (150, "A")]
        assert index.watermark == 160

    def test_anomaly_entries_follow_history_order(self, index, chunk_factory):
        index.merge_from(chunk_factory(100, {"B": [(1, 50, 0, 90)], "A": [(1, 40, 0, 90), (1, 60, 0, 90)]}))

        entries = index.anomaly_entries(90)
        assert [ts for ts, e in entries if e == "A"] == [40, 60]
        assert sorted(entries) == entries

    def test_unknown_entity(self, index):
        assert index.get_history("nope") == []
        assert index.histories_for(["nope"]) == {}

    def test_readers_get_copies(self, index, chunk_factory):
        index.merge_from(chunk_factory(100, {"A": [(10, 90, 0, 50)]}))

        index.get_history("A").clear()
        index.get_stats().clear()

        assert len(index.get_history("A")) == 1
        assert len(index.get_stats()) == 1


class TestPrune:
    def test_prune_all_structures(self, index, chunk_factory):
        index.merge_from(chunk_factory(100, {"A": [(10, 90, 0, 95)], "B": [(10, 95, 0, 50)]}))
        index.merge_from(chunk_factory(200, {"A": [(100, 190, 0, 95)]}))

        result = index.prune(150)

        assert result.records == 2
        assert result.entities == 1
        assert result.stats == 1
        assert result.anomaly_entries == 2
        assert index.get_history("B") == []
        assert index.histories_for(["A", "B"]).keys() == {"A"}
        assert [s.timestamp for s in index.get_stats()] == [200]
        assert index.anomaly_entries(95) == [(190, "A")]
        assert index.anomaly_entries(50) == []

    def test_late_entry_from_other_vehicle_is_pruned(self, index, chunk_factory):
        index.merge_from(chunk_factory(200, {"A": [(10, 150, 0, 95)]}))
        # B reports an older position in a later window
        index.merge_from(chunk_factory(260, {"B": [(10, 100, 0, 95)]}))

        assert index.anomaly_entries(95) == [(100, "B"), (150, "A")]

        result = index.prune(120)

        assert index.get_history("B") == []
        assert index.anomaly_entries(95) == [(150, "A")]
        assert result.anomaly_entries == 1

    def test_cutoff_is_exclusive(self, index, chunk_factory):
        index.merge_from(chunk_factory(100, {"A": [(10, 100, 0, 50)]}))
        index.prune(100)
        assert len(index.get_history("A")) == 1

    def test_prune_does_not_touch_watermark(self, index, chunk_factory):
        index.merge_from(chunk_factory(100, {"A": [(10, 90, 0, 50)]}))
        index.prune(10_000)

        assert index.watermark == 100
        assert index.merge_from(chunk_factory(100)) is False
        assert index.summary()["entities"] == 0


class TestConcurrency:
    def test_readers_during_merges(self, index, chunk_factory):
        """Readers never see a structure mid-mutation."""
        errors = []
        done = threading.Event()

        def reader():
            while not done.is_set():
                try:
                    index.get_history("A")
                    index.get_stats()
                    index.anomaly_entities(0)
                    index.summary()
                except Exception as e:  # pragma: no cover
                    errors.append(e)

        threads = [threading.Thread(target=reader) for _ in range(4)]
        for t in threads:
            t.start()
        for i in range(1, 300):
            index.merge_from(chunk_factory(i * 60, {"A": [(60, i * 60 - 1, 0, i % 101)]}))
            if i % 50 == 0:
                index.prune(i * 60 - 3000)
        done.set()
        for t in threads:
            t.join()

        assert errors == []
        assert index.watermark == 299 * 60
