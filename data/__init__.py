"""
Data module for the transit feed latency monitor.

Pipeline, ingestion side:
    FeedClient -> WindowAggregator -> Chunk -> FileChunkStore

Pipeline, serving side:
    FileChunkStore -> IndexSynchronizer -> LiveIndex -> AnomalyQueryEngine

>>> from data import LiveIndex, AnomalyQueryEngine
>>> index = LiveIndex()
>>> AnomalyQueryEngine(index).query(min_rank=90)
[]
"""

from data.aggregator import Sample, WindowAggregator
from data.anomaly_query import AnomalyQueryEngine, ScoredEntity, score_history
from data.chunk_codec import ChunkDecodeError, decode_chunk, encode_chunk
from data.chunk_store import ChunkExistsError, FileChunkStore, chunk_key, key_timestamp
from data.index_sync import IndexSynchronizer, SyncResult
from data.live_index import LiveIndex, OrderingError, PruneResult, TimeOrderedLog
from data.percentiles import classify_rank, compute_percentiles

__all__ = [
    "AnomalyQueryEngine",
    "ChunkDecodeError",
    "ChunkExistsError",
    "FileChunkStore",
    "IndexSynchronizer",
    "LiveIndex",
    "OrderingError",
    "PruneResult",
    "Sample",
    "ScoredEntity",
    "SyncResult",
    "TimeOrderedLog",
    "WindowAggregator",
    "chunk_key",
    "classify_rank",
    "compute_percentiles",
    "decode_chunk",
    "encode_chunk",
    "key_timestamp",
    "score_history",
]
