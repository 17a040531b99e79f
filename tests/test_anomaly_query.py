"""
Tests for AnomalyQueryEngine.
"""

import pytest

from data.anomaly_query import AnomalyQueryEngine, score_history


class TestAnomalyQuery:
    def test_score_sums_intervals_at_or_above_min_rank(self, index, chunk_factory):
        index.merge_from(
            chunk_factory(100, {"A": [(10, 80, 0, 95), (20, 85, 0, 60), (30, 90, 0, 98)]})
        )

        (result,) = AnomalyQueryEngine(index).query(min_rank=90)

        assert result.entity_id == "A"
        assert result.score == 40
        assert len(result.history) == 3  # full retained history attached

    def test_candidates_without_qualifying_records_absent(self, index, chunk_factory):
        index.merge_from(chunk_factory(100, {"A": [(10, 80, 0, 95)], "B": [(500, 80, 0, 85)]}))

        results = AnomalyQueryEngine(index).query(min_rank=90)

        assert [r.entity_id for r in results] == ["A"]

    def test_sorted_by_score_then_id(self, index, chunk_factory):
        index.merge_from(
            chunk_factory(
                100,
                {
                    "c": [(10, 80, 0, 100)],
                    "b": [(50, 80, 0, 99)],
                    "a": [(10, 80, 0, 90)],
                },
            )
        )

        results = AnomalyQueryEngine(index).query(min_rank=90)

        assert [(r.entity_id, r.score) for r in results] == [("b", 50), ("a", 10), ("c", 10)]

    def test_capped(self, index, chunk_factory):
        index.merge_from(chunk_factory(100, {f"v{i:03d}": [(i + 1, 80, 0, 100)] for i in range(80)}))

        engine = AnomalyQueryEngine(index)
        results = engine.query()

        assert len(results) == 50
        assert results[0].entity_id == "v079"
        assert len(engine.query(limit=5)) == 5

    def test_zero_interval_score_dropped(self, index, chunk_factory):
        index.merge_from(chunk_factory(100, {"A": [(0, 80, 0, 100)]}))
        assert AnomalyQueryEngine(index).query(min_rank=90) == []

    def test_empty_index(self, index):
        assert AnomalyQueryEngine(index).query() == []

    def test_min_rank_zero_counts_everything(self, index, chunk_factory):
        index.merge_from(chunk_factory(100, {"A": [(10, 80, 0, 0), (20, 85, 0, 50)]}))
        (result,) = AnomalyQueryEngine(index).query(min_rank=0)
        assert result.score == 30

    @pytest.mark.parametrize("min_rank", [-1, 101])
    def test_invalid_min_rank(self, index, min_rank):
        with pytest.raises(ValueError):
            AnomalyQueryEngine(index).query(min_rank=min_rank)

    def test_pruned_history_no_longer_scores(self, index, chunk_factory):
        index.merge_from(chunk_factory(100, {"A": [(10, 80, 0, 95)]}))
        index.merge_from(chunk_factory(200, {"A": [(100, 180, 0, 50)]}))
        index.prune(150)

        assert AnomalyQueryEngine(index).query(min_rank=90) == []

    def test_to_dict(self, index, chunk_factory):
        index.merge_from(chunk_factory(100, {"A": [(10, 80, 1, 95)]}))
        (result,) = AnomalyQueryEngine(index).query()

        assert result.to_dict() == {
            "entity_id": "A",
            "score": 10,
            "history": [{"interval": 10, "end_of_interval": 80, "latency": 1, "rank": 95}],
        }


def test_score_history_empty():
    assert score_history([], 90) == 0
