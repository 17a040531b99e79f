"""
Utility modules for the transit feed latency monitor.

Public API:
    - now_unix: Current wall-clock time in whole seconds
    - retention_cutoff: Oldest timestamp still retained for a given span
"""

from utils.clock import now_unix, retention_cutoff

__all__ = [
    "now_unix",
    "retention_cutoff",
]
