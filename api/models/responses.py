"""
Pydantic response models for the query API.

These models define the structure of API responses. They read the frozen
domain dataclasses directly (``from_attributes``).
"""

from pydantic import BaseModel, ConfigDict, Field


class RecordOut(BaseModel):
    """One accepted vehicle update."""
    model_config = ConfigDict(from_attributes=True)

    interval: int = Field(description="Seconds since the vehicle's previous update")
    end_of_interval: int = Field(description="Unix timestamp of the update")
    latency: int = Field(description="Seconds between the update and the feed publish time")
    rank: int = Field(description="Percentile rank of the interval within its window (0-100)")


class PercentilesOut(BaseModel):
    """Distribution breakpoints in seconds."""
    model_config = ConfigDict(from_attributes=True)

    p0: float
    p25: float
    p50: float
    p75: float
    p80: float
    p85: float
    p90: float
    p95: float
    p98: float
    p99: float
    p99_5: float
    p99_9: float


class SystemStatsOut(BaseModel):
    """Feed-wide statistics for one window."""
    model_config = ConfigDict(from_attributes=True)

    timestamp: int = Field(description="Window close time (unix seconds)")
    interval_stats: PercentilesOut
    latency_stats: PercentilesOut
    sample_count: int


class ScoredEntityOut(BaseModel):
    """Vehicle returned by the anomaly query."""
    model_config = ConfigDict(from_attributes=True)

    entity_id: str
    score: int = Field(description="Summed interval seconds of records at or above min_rank")
    history: list[RecordOut]


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: str
    watermark: int = Field(description="Timestamp of the newest merged chunk")
    entities: int
    windows: int
    quarantined: list[str] = Field(default_factory=list)
