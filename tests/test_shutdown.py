"""
Tests for ShutdownHandler exit codes and stop event.
"""

import asyncio
import signal

import pytest

from scripts.shutdown import EXIT_SIGINT, EXIT_SIGTERM, EXIT_SUCCESS, ShutdownHandler


class TestShutdownHandler:
    @pytest.mark.asyncio
    async def test_request_sets_event(self):
        handler = ShutdownHandler()
        handler.request()

        assert handler.requested
        assert handler.exit_code == EXIT_SUCCESS

    @pytest.mark.asyncio
    async def test_exit_code_follows_signal(self):
        sigint = ShutdownHandler()
        sigint.request(signal.SIGINT)
        sigterm = ShutdownHandler()
        sigterm.request(signal.SIGTERM)

        assert sigint.exit_code == EXIT_SIGINT
        assert sigterm.exit_code == EXIT_SIGTERM

    @pytest.mark.asyncio
    async def test_second_signal_forces_exit(self):
        handler = ShutdownHandler()
        handler.request(signal.SIGTERM)

        with pytest.raises(SystemExit):
            handler.request(signal.SIGTERM)

    @pytest.mark.asyncio
    async def test_shared_event(self):
        event = asyncio.Event()
        ShutdownHandler(event).request()
        assert event.is_set()
