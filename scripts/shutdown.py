"""
ShutdownHandler - graceful shutdown with signal handling.

Signals set an asyncio.Event that the long-running loops watch; they finish
their current step, flush what they hold and return. Nothing is cancelled
from inside the signal handler.

Usage:
    handler = ShutdownHandler()
    handler.setup_signal_handlers()
    await run_until(handler.stop_event)
    return handler.exit_code
"""

import asyncio
import logging
import signal

logger = logging.getLogger(__name__)

# Exit codes following Unix conventions
EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_SIGINT = 130  # 128 + SIGINT (2)
EXIT_SIGTERM = 143  # 128 + SIGTERM (15)


class ShutdownHandler:
    """
    Turns SIGTERM and SIGINT into a stop event.

    A second signal while shutdown is in progress exits immediately.
    """

    def __init__(self, stop_event: asyncio.Event | None = None):
        self.stop_event = stop_event or asyncio.Event()
        self._received_signal: signal.Signals | None = None

    @property
    def requested(self) -> bool:
        return self.stop_event.is_set()

    def setup_signal_handlers(self) -> None:
        """
        Register handlers on the running loop.

        Must be called from within the event loop.
        """
        try:
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, self.request, sig)
            logger.info("Signal handlers registered for SIGTERM and SIGINT")
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            logger.warning("Signal handlers not supported on this platform")

    def request(self, sig: signal.Signals | None = None) -> None:
        """Ask the loops to stop. Called by the signal handler or directly."""
        if self.stop_event.is_set() and sig is not None:
            logger.warning(f"Received {sig.name} again, forcing immediate exit")
            raise SystemExit(EXIT_ERROR)

        if sig is not None:
            self._received_signal = sig
            logger.warning(f"Received {sig.name}, initiating graceful shutdown...")
        self.stop_event.set()

    @property
    def exit_code(self) -> int:
        """Exit code matching the signal that stopped the process."""
        if self._received_signal == signal.SIGINT:
            return EXIT_SIGINT
        if self._received_signal == signal.SIGTERM:
            return EXIT_SIGTERM
        return EXIT_SUCCESS
