"""
Tests for CLI argument parsing and settings overrides.
"""

from pathlib import Path

import pytest

from config.settings import Settings
from scripts.cli import apply_overrides, parse_ingest_args, parse_serve_args


class TestIngestArgs:
    def test_defaults_leave_settings_alone(self):
        args = parse_ingest_args([])
        settings = Settings()

        assert apply_overrides(settings, args) == settings

    def test_overrides(self):
        args = parse_ingest_args(
            ["--data-dir", "/tmp/chunks", "--feed-url", "https://feed.example/v", "--window-seconds", "30",
             "--log-level", "debug", "--json-logs"]
        )
        settings = apply_overrides(Settings(), args)

        assert settings.storage.data_dir == Path("/tmp/chunks")
        assert settings.feed.url == "https://feed.example/v"
        assert settings.ingestion.window_seconds == 30
        assert settings.log_level == "DEBUG"
        assert settings.log_json is True

    def test_log_file_and_metrics_port(self):
        args = parse_ingest_args(["--log-file", "logs/ingest.log", "--metrics-port", "9100"])
        settings = apply_overrides(Settings(), args)

        assert settings.log_file == Path("logs/ingest.log")
        assert settings.ingestion.metrics_port == 9100
        assert settings.ingestion.window_seconds == 60

    def test_rejects_bad_metrics_port(self):
        with pytest.raises(SystemExit):
            parse_ingest_args(["--metrics-port", "0"])

    def test_rejects_non_positive_window(self):
        with pytest.raises(SystemExit):
            parse_ingest_args(["--window-seconds", "0"])


class TestServeArgs:
    def test_overrides(self):
        args = parse_serve_args(["--host", "127.0.0.1", "--port", "8080"])
        settings = apply_overrides(Settings(), args)

        assert settings.serving.host == "127.0.0.1"
        assert settings.serving.port == 8080
        assert settings.serving.merge_interval_seconds == 10.0

    @pytest.mark.parametrize("port", ["0", "70000"])
    def test_rejects_bad_port(self, port):
        with pytest.raises(SystemExit):
            parse_serve_args(["--port", port])

    def test_rejects_unknown_log_level(self):
        with pytest.raises(SystemExit):
            parse_serve_args(["--log-level", "LOUD"])
