"""cronlock storage layer.

This module provides the Store contract the scheduler runs against, an
in-memory reference store, and a durable SQLAlchemy store whose lock
serializes check cycles across processes.
"""

from .base import KEY_LAYOUT, Event, Store, minute_key
from .database import Database
from .memory import MemoryStore
from .models import Base, EntryRecord, EventRecord
from .repositories import EntryRepository, EventRepository
from .sql import SQLStore

__all__ = [
    "KEY_LAYOUT",
    "Base",
    "Database",
    "EntryRecord",
    "EntryRepository",
    "Event",
    "EventRecord",
    "EventRepository",
    "MemoryStore",
    "SQLStore",
    "Store",
    "minute_key",
]
