"""
Wall-clock helpers shared by the ingestion and serving processes.

Both sides must derive the retention cutoff the same way, otherwise the
live index and the chunk directory drift apart.
"""

import time


def now_unix() -> int:
    """Current wall-clock time as whole unix seconds."""
    return int(time.time())


def retention_cutoff(now: int, span_seconds: int) -> int:
    """
    Oldest timestamp still retained at ``now``.

    Saturates at zero instead of going negative.
    """
    return max(0, int(now) - int(span_seconds))
