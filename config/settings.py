"""
Configuration management using Pydantic v2.

This module provides type-safe configuration for both the ingestion process
and the serving process. Configuration is loaded from environment variables
(and an optional ``.env`` file) and validated on initialization.

Environment variables use double underscore for nesting:
    FEED__URL=https://example.org/gtfs_rt?feed_type=vehicle&format=json
    INGESTION__WINDOW_SECONDS=60
    SERVING__PORT=3000
    RETENTION__SPAN_SECONDS=172800

Example:
    >>> from config.settings import load_settings
    >>> settings = load_settings()
    >>> print(settings.storage.data_dir)
"""

import logging
from pathlib import Path

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from config.constants import (
    DEFAULT_MIN_RANK,
    DEFAULT_RETENTION_SECONDS,
    DEFAULT_WINDOW_SECONDS,
    MAX_ANOMALY_RESULTS,
    MAX_RANK,
)

logger = logging.getLogger(__name__)

DEFAULT_FEED_URL = (
    "https://birch.catenarymaps.org/gtfs_rt"
    "?feed_id=f-metro~losangeles~bus~rt&feed_type=vehicle&format=json"
)


class FeedConfig(BaseModel):
    """Upstream vehicle-position feed.

    Attributes:
        url: GTFS-realtime vehicle positions endpoint returning JSON
        timeout_seconds: Per-request timeout; the only external timeout boundary
        user_agent: User-Agent header sent with every fetch
    """

    url: str = Field(default=DEFAULT_FEED_URL, description="Vehicle positions feed URL")
    timeout_seconds: float = Field(default=5.0, description="HTTP timeout", gt=0, le=60)
    user_agent: str = Field(default="transit-latency-monitor/1.0", description="User-Agent header")


class IngestionConfig(BaseModel):
    """Ingestion loop cadence.

    Attributes:
        tick_seconds: Period of the feed fetch timer
        window_seconds: Period of the independent flush timer
        metrics_port: Port of the Prometheus exporter; 0 disables it
    """

    tick_seconds: float = Field(default=1.0, description="Fetch tick period", gt=0, le=60)
    window_seconds: int = Field(
        default=DEFAULT_WINDOW_SECONDS, description="Aggregation window length", ge=1, le=3600
    )
    metrics_port: int = Field(
        default=0, description="Prometheus exporter port (0 disables)", ge=0, le=65535
    )


class ServingConfig(BaseModel):
    """Query server and background merge task.

    Attributes:
        host: Bind address
        port: Bind port
        merge_interval_seconds: Period of the merge-and-prune task
        max_decode_attempts: Consecutive decode failures before a chunk is quarantined
        max_anomaly_results: Cap on entities returned by /anomalies
        default_min_rank: min_rank used when /anomalies is called without one
    """

    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=3000, description="Bind port", ge=1, le=65535)
    merge_interval_seconds: float = Field(
        default=10.0, description="Merge-and-prune period", gt=0, le=3600
    )
    max_decode_attempts: int = Field(
        default=3, description="Decode failures before quarantine", ge=1, le=1000
    )
    max_anomaly_results: int = Field(
        default=MAX_ANOMALY_RESULTS, description="Anomaly result cap", ge=1, le=10_000
    )
    default_min_rank: int = Field(
        default=DEFAULT_MIN_RANK, description="Default anomaly rank floor", ge=0, le=MAX_RANK
    )


class StorageConfig(BaseModel):
    """Chunk storage location.

    Attributes:
        data_dir: Directory shared by the ingestion and serving processes
    """

    data_dir: Path = Field(default=Path("./data"), description="Chunk directory")


class RetentionConfig(BaseModel):
    """Retention applied uniformly to chunk files and the live index.

    Attributes:
        span_seconds: Rolling window length (48 hours by default)
    """

    span_seconds: int = Field(
        default=DEFAULT_RETENTION_SECONDS, description="Retention span", ge=60
    )


class Settings(BaseSettings):
    """
    Main application settings loaded from environment variables.

    Configuration is automatically loaded from .env file and environment
    variables. Use double underscore for nested configuration:
        SERVING__PORT=8080
        STORAGE__DATA_DIR=/var/lib/latency-monitor

    Attributes:
        feed: Upstream feed configuration
        ingestion: Fetch tick and window length
        serving: HTTP server and merge task configuration
        storage: Chunk directory
        retention: Retention span
        environment: Deployment environment (development/production)
        log_level: Root log level
        log_json: Emit JSON logs on the console
        log_file: Also write JSON logs to this rotating file
    """

    model_config = SettingsConfigDict(env_nested_delimiter="__", env_file=".env", extra="ignore")

    feed: FeedConfig = Field(default_factory=FeedConfig)
    ingestion: IngestionConfig = Field(default_factory=IngestionConfig)
    serving: ServingConfig = Field(default_factory=ServingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)

    environment: str = Field(default="development", description="Deployment environment")
    log_level: str = Field(default="INFO", description="Root log level")
    log_json: bool = Field(default=False, description="JSON console logs")
    log_file: Path | None = Field(default=None, description="Rotating JSON log file")

    @field_validator("log_level")
    @classmethod
    def valid_log_level(cls, v: str) -> str:
        """Accept only the standard logging level names."""
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level


def load_settings() -> Settings:
    """
    Load and validate settings from environment variables and .env file.

    Returns:
        Validated Settings instance

    Raises:
        ValidationError: If configuration is invalid
    """
    try:
        settings = Settings()
        logger.info(f"Settings loaded successfully. Environment: {settings.environment}")
        logger.debug(f"Data directory: {settings.storage.data_dir}")
        return settings
    except Exception as e:
        logger.error(f"Failed to load settings: {e}")
        raise
