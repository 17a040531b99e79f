"""
CLI argument parsing for the ingestion and serving processes.

Parsing is kept apart from the process bodies so the arguments can be tested
without starting anything. Values given on the command line override the
corresponding settings (see ``apply_overrides``).
"""

import argparse
import logging
from pathlib import Path

from config.settings import Settings

logger = logging.getLogger(__name__)

_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

_EXIT_CODES = """
Exit codes:
  0   - Clean exit
  1   - Fatal error (e.g. invalid configuration)
  130 - SIGINT (Ctrl+C)
  143 - SIGTERM
"""


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--data-dir",
        type=str,
        default=None,
        help="Chunk directory (default: storage.data_dir, ./data)",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=_LOG_LEVELS,
        default=None,
        help="Log level (default: settings log_level)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit console logs as JSON lines",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Also write JSON logs to this file (rotated at 10MB)",
    )


def parse_ingest_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse CLI arguments for the ingestion process.

    Exit codes:
        2: Invalid arguments (argparse default)
    """
    parser = argparse.ArgumentParser(
        prog="python -m scripts.ingest",
        description="Sample the vehicle feed and write one chunk per window",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Examples:
  python -m scripts.ingest
  python -m scripts.ingest --data-dir /var/lib/monitor --window-seconds 30
  python -m scripts.ingest --metrics-port 9100 --log-file logs/ingest.log
{_EXIT_CODES}""",
    )
    _add_common_arguments(parser)
    parser.add_argument(
        "--feed-url",
        type=str,
        default=None,
        help="Vehicle positions feed URL (default: feed.url)",
    )
    parser.add_argument(
        "--window-seconds",
        type=int,
        default=None,
        help="Aggregation window length (default: ingestion.window_seconds, 60)",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Expose Prometheus metrics on this port (default: ingestion.metrics_port, off)",
    )

    args = parser.parse_args(argv)
    if args.window_seconds is not None and args.window_seconds <= 0:
        parser.error(f"--window-seconds must be positive, got {args.window_seconds}")
    if args.metrics_port is not None and not 1 <= args.metrics_port <= 65535:
        parser.error(f"--metrics-port must be within 1..65535, got {args.metrics_port}")
    return args


def parse_serve_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the query API process."""
    parser = argparse.ArgumentParser(
        prog="python -m scripts.serve",
        description="Serve history, window statistics and anomalies over HTTP",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Examples:
  python -m scripts.serve
  python -m scripts.serve --host 127.0.0.1 --port 8080
{_EXIT_CODES}""",
    )
    _add_common_arguments(parser)
    parser.add_argument("--host", type=str, default=None, help="Bind address (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=None, help="Bind port (default: 3000)")

    args = parser.parse_args(argv)
    if args.port is not None and not 1 <= args.port <= 65535:
        parser.error(f"--port must be within 1..65535, got {args.port}")
    return args


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """
    Return a copy of ``settings`` with CLI values applied.

    Only arguments that were actually given override settings.
    """
    updates: dict = {}
    if getattr(args, "data_dir", None):
        updates["storage"] = settings.storage.model_copy(update={"data_dir": Path(args.data_dir)})
    if getattr(args, "feed_url", None):
        updates["feed"] = settings.feed.model_copy(update={"url": args.feed_url})
    ingestion_updates = {}
    if getattr(args, "window_seconds", None):
        ingestion_updates["window_seconds"] = args.window_seconds
    if getattr(args, "metrics_port", None):
        ingestion_updates["metrics_port"] = args.metrics_port
    if ingestion_updates:
        updates["ingestion"] = settings.ingestion.model_copy(update=ingestion_updates)
    serving_updates = {}
    if getattr(args, "host", None):
        serving_updates["host"] = args.host
    if getattr(args, "port", None):
        serving_updates["port"] = args.port
    if serving_updates:
        updates["serving"] = settings.serving.model_copy(update=serving_updates)
    if getattr(args, "log_level", None):
        updates["log_level"] = args.log_level
    if getattr(args, "json_logs", False):
        updates["log_json"] = True
    if getattr(args, "log_file", None):
        updates["log_file"] = Path(args.log_file)

    if updates:
        logger.debug(f"CLI overrides: {sorted(updates)}")
    return settings.model_copy(update=updates)
