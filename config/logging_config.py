"""
Standardized logging configuration for the ingestion and serving processes.

Provides:
- Human-readable colored console logs for development
- JSON-formatted logs for production (machine-readable)
- Log categories used as message prefixes for filtering and alerting
- Optional rotating log file (always JSON)
- Redaction of credentials embedded in feed URLs

Usage:
    >>> from config.logging_config import setup_logging, LogCategory
    >>> setup_logging(level="INFO", log_file="logs/ingest.log")
    >>> logger = logging.getLogger(__name__)
    >>> logger.info(f"{LogCategory.WINDOW} Flushed chunk", extra={"records": 812})
"""

import json
import logging
import re
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path


class LogCategory:
    """Standard log categories for observability."""

    FEED = "[FEED]"  # Upstream fetches
    WINDOW = "[WINDOW]"  # Window aggregation and flush
    CHUNK = "[CHUNK]"  # Chunk persistence, discovery, purge
    INDEX = "[INDEX]"  # Live index merge and prune
    QUERY = "[QUERY]"  # Query surface
    HEARTBEAT = "[HEARTBEAT]"  # Periodic status


class UrlCredentialFilter(logging.Filter):
    """
    Masks credential query parameters in URLs before they reach a handler.

    Feed URLs for some agencies carry an API key in the query string, and
    httpx logs the full request URL at INFO.
    """

    _PATTERN = re.compile(r"([?&](?:api_key|apikey|key|token|auth)=)[^&\s\"']+", re.IGNORECASE)

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = self._PATTERN.sub(r"\1***", record.msg)
        if record.args:
            if isinstance(record.args, tuple):
                record.args = tuple(
                    self._PATTERN.sub(r"\1***", a) if isinstance(a, str) else a
                    for a in record.args
                )
        return True


class JsonFormatter(logging.Formatter):
    """
    JSON log formatter for structured logging.

    Example output:
        {"timestamp": "2026-01-01T12:00:00+00:00", "level": "INFO",
         "logger": "scripts.ingest", "message": "[WINDOW] Flushed chunk",
         "records": 812}
    """

    # Standard LogRecord attributes to exclude from extra fields
    _EXCLUDED_ATTRS = frozenset([
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "pathname", "process", "processName", "relativeCreated",
        "stack_info", "exc_info", "exc_text", "thread", "threadName",
        "message", "taskName",
    ])

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in self._EXCLUDED_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ColorFormatter(logging.Formatter):
    """
    Colored console formatter for human-readable output.

    Uses ANSI colors: DEBUG=gray, INFO=green, WARNING=yellow,
    ERROR=red, CRITICAL=bold red
    """

    COLORS = {
        "DEBUG": "\033[90m",
        "INFO": "\033[92m",
        "WARNING": "\033[93m",
        "ERROR": "\033[91m",
        "CRITICAL": "\033[1;91m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        # Copy so other handlers see the uncolored level name
        record = logging.makeLogRecord(record.__dict__)
        color = self.COLORS.get(record.levelname, self.RESET)
        record.levelname = f"{color}{record.levelname:8}{self.RESET}"
        return super().format(record)


def setup_logging(
    level: str = "INFO",
    json_format: bool = False,
    log_file: Path | str | None = None,
    max_bytes: int = 10_000_000,
    backup_count: int = 5,
) -> Path | None:
    """
    Configure logging for one process.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: If True, use JSON format for console output
        log_file: Path of a rotating JSON log file (None disables file logging)
        max_bytes: Max file size before rotation (default: 10MB)
        backup_count: Number of rotated files to keep (default: 5)

    Returns:
        Path to log file if file logging enabled, None otherwise
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers = []

    credential_filter = UrlCredentialFilter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.addFilter(credential_filter)
    if json_format:
        console_handler.setFormatter(JsonFormatter())
    else:
        console_handler.setFormatter(
            ColorFormatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
    root_logger.addHandler(console_handler)

    actual_log_file = Path(log_file) if log_file else None
    if actual_log_file:
        actual_log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            actual_log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        file_handler.addFilter(credential_filter)
        file_handler.setFormatter(JsonFormatter())
        root_logger.addHandler(file_handler)
        root_logger.info(f"Logging initialized. Writing to {actual_log_file}")

    # One line per fetch per second is noise at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return actual_log_file
