"""cronlock scheduling loop.

This module provides the minute-aligned tick loop that runs a locked
check cycle against a Store and dispatches handlers without blocking,
plus the bounded error sink it reports loop errors through.
"""

from .reporting import ErrorSink
from .service import ONE_MINUTE, Scheduler, next_minute, truncate_minute

__all__ = [
    "ONE_MINUTE",
    "ErrorSink",
    "Scheduler",
    "next_minute",
    "truncate_minute",
]
