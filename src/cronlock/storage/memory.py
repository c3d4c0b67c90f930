"""In-memory reference store."""

from __future__ import annotations

import logging
import threading
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from .base import Event, Store

if TYPE_CHECKING:
    from cronlock.parser import Entry

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class MemoryStore(Store):
    """Volatile store guarded by a process-wide exclusive lock.

    Only schedulers within one process sharing the same instance are
    serialized; use :class:`~cronlock.storage.sql.SQLStore` across processes.
    The lock is not reentrant and data access does not take it, so callers
    coordinate through :meth:`lock`/:meth:`unlock` exactly as with a durable
    store.
    """

    def __init__(self) -> None:
        self._mutex = threading.Lock()
        self._entries: list[Entry] = []
        self._events: list[Event] = []

    @property
    def events(self) -> list[Event]:
        """Snapshot of every recorded event, in insertion order."""
        return list(self._events)

    def initialize(self) -> None:
        return None

    def lock(self) -> None:
        self._mutex.acquire()

    def unlock(self) -> None:
        self._mutex.release()

    def get_entries(self) -> list[Entry]:
        return list(self._entries)

    def add_entry(self, entry: Entry) -> None:
        self._entries = [e for e in self._entries if not e.same_definition(entry)]
        self._entries.append(entry)
        logger.debug(f"Added entry {entry}")

    def delete_entry(self, entry: Entry) -> None:
        self._entries = [e for e in self._entries if not e.same_definition(entry)]
        logger.debug(f"Deleted entry {entry}")

    def add_event(self, event: Event) -> None:
        self._events.append(event)

    def get_events(self, start: datetime, end: datetime) -> list[Event]:
        start, end = _as_utc(start), _as_utc(end)
        return [e for e in self._events if start <= _as_utc(e.time) < end]

    def delete_events(self, before: datetime) -> int:
        before = _as_utc(before)
        kept = [e for e in self._events if _as_utc(e.time) >= before]
        deleted = len(self._events) - len(kept)
        self._events = kept
        return deleted
