"""cronlock: cron scheduling that fires each occurrence exactly once.

Several scheduler processes may share one store; a store-level lock around
every minute's check cycle keeps occurrences from firing twice.
"""

from cronlock.errors import (
    CronlockError,
    CronParseError,
    ErrorCategory,
    SchedulerError,
    StoreError,
    StoreInitializationError,
)
from cronlock.parser import STAR, Entry, compile_field, parse
from cronlock.scheduler import ErrorSink, Scheduler
from cronlock.storage import Database, Event, MemoryStore, SQLStore, Store

__version__ = "0.1.0"

__all__ = [
    "STAR",
    "CronParseError",
    "CronlockError",
    "Database",
    "Entry",
    "ErrorCategory",
    "ErrorSink",
    "Event",
    "MemoryStore",
    "SQLStore",
    "Scheduler",
    "SchedulerError",
    "Store",
    "StoreError",
    "StoreInitializationError",
    "__version__",
    "compile_field",
    "parse",
]
