#!/usr/bin/env python3
"""
Query API process.

Loads every chunk in the data directory into a live index, then serves it
over HTTP while a background task merges new chunks and prunes expired data.

Usage:
    python -m scripts.serve
    python -m scripts.serve --port 3000 --data-dir ./data
"""

import logging
import sys

import uvicorn
from pydantic import ValidationError

from api.server import create_app
from config.logging_config import setup_logging
from config.settings import load_settings
from scripts.cli import apply_overrides, parse_serve_args
from scripts.shutdown import EXIT_ERROR, EXIT_SUCCESS

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    args = parse_serve_args(argv)
    try:
        settings = apply_overrides(load_settings(), args)
    except ValidationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return EXIT_ERROR

    setup_logging(
        level=settings.log_level, json_format=settings.log_json, log_file=settings.log_file
    )
    app = create_app(settings)

    logger.info(f"Serving on {settings.serving.host}:{settings.serving.port}")
    # uvicorn installs its own SIGINT/SIGTERM handling and runs the lifespan shutdown
    uvicorn.run(
        app,
        host=settings.serving.host,
        port=settings.serving.port,
        log_config=None,
    )
    return EXIT_SUCCESS


if __name__ == "__main__":
    sys.exit(main())
