"""
Configuration module for the transit feed latency monitor.

This module provides configuration management through Pydantic models
and application constants.

Public API:
    - Settings: Main configuration class
    - load_settings: Factory function to load settings from environment
    - Constants: PERCENTILE_LEVELS, RANK_LABELS, U16_MAX, DEFAULT_RETENTION_SECONDS
"""

from config.constants import (
    DEFAULT_MIN_RANK,
    DEFAULT_RETENTION_SECONDS,
    MAX_ANOMALY_RESULTS,
    MAX_RANK,
    PERCENTILE_LEVELS,
    RANK_LABELS,
    U16_MAX,
)
from config.settings import Settings, load_settings

__all__ = [
    "Settings",
    "load_settings",
    "PERCENTILE_LEVELS",
    "RANK_LABELS",
    "MAX_RANK",
    "U16_MAX",
    "DEFAULT_RETENTION_SECONDS",
    "DEFAULT_MIN_RANK",
    "MAX_ANOMALY_RESULTS",
]
