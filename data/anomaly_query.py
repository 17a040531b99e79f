"""
Anomaly query over the live index.

Scoring: for each vehicle with at least one indexed record ranked
``min_rank`` or above, the score is the sum of ``interval`` over its retained
records with ``rank >= min_rank``. Scores are raw interval-seconds with no
normalization for how long a vehicle has been observed.

Results are sorted by score descending, then vehicle id ascending, and capped.
"""

import logging
from dataclasses import dataclass, field

from config.constants import DEFAULT_MIN_RANK, MAX_ANOMALY_RESULTS, MAX_RANK
from config.logging_config import LogCategory
from core.domain.entities import Record
from data.live_index import LiveIndex

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoredEntity:
    entity_id: str
    score: int
    history: list[Record] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "entity_id": self.entity_id,
            "score": self.score,
            "history": [r.to_dict() for r in self.history],
        }


def score_history(history: list[Record], min_rank: int) -> int:
    """Sum of intervals over records ranked at least ``min_rank``."""
    return sum(r.interval for r in history if r.rank >= min_rank)


class AnomalyQueryEngine:
    """Scores and ranks vehicles using a LiveIndex."""

    def __init__(self, index: LiveIndex, limit: int = MAX_ANOMALY_RESULTS):
        self.index = index
        self.limit = limit

    def query(self, min_rank: int = DEFAULT_MIN_RANK, limit: int | None = None) -> list[ScoredEntity]:
        """
        Top vehicles by anomaly score.

        Args:
            min_rank: Lowest rank that contributes to a score (0-100)
            limit: Result cap, defaults to the engine's limit

        Returns:
            Scored vehicles with their full retained history attached

        Raises:
            ValueError: If ``min_rank`` is outside 0-100
        """
        if not 0 <= min_rank <= MAX_RANK:
            raise ValueError(f"min_rank must be within 0..{MAX_RANK}, got {min_rank}")
        cap = self.limit if limit is None else limit

        candidates = self.index.anomaly_entities(min_rank)
        if not candidates:
            return []

        # A candidate may have been pruned from history since the anomaly
        # index was read; it then scores 0 and drops out.
        scored = []
        for entity_id, history in self.index.histories_for(candidates).items():
            score = score_history(history, min_rank)
            if score > 0:
                scored.append(ScoredEntity(entity_id, score, history))

        scored.sort(key=lambda s: (-s.score, s.entity_id))
        logger.debug(
            f"{LogCategory.QUERY} Anomalies min_rank={min_rank}: "
            f"{len(candidates)} candidates, {len(scored)} scored"
        )
        return scored[:cap]
