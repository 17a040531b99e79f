"""
Core interfaces for the latency monitor.
"""
from typing import Protocol

from core.domain.entities import Chunk, FeedSnapshot


class IChunkStore(Protocol):
    """Append-only persistence of chunks keyed by window-close timestamp."""

    def put(self, chunk: Chunk) -> str:
        ...

    def list_since(self, watermark: int) -> list[str]:
        ...

    def get(self, key: str) -> Chunk:
        ...

    def purge_older_than(self, cutoff: int) -> int:
        ...

    def quarantine(self, key: str) -> None:
        ...


class IFeedClient(Protocol):
    """Source of vehicle position snapshots."""

    async def fetch(self) -> FeedSnapshot:
        ...
