"""Store contract consumed by the scheduler."""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Generator

    from cronlock.parser import Entry

# Dedup keys are formatted at minute granularity
KEY_LAYOUT = "%Y-%m-%d-%H-%M"


def minute_key(name: str, time: datetime) -> str:
    """Build the dedup key for an entry name at a given minute.

    Args:
        name: Entry name.
        time: Timestamp; naive values are taken to be UTC.

    Returns:
        Key of the form ``"<name>|<YYYY-MM-DD-HH-MM>"`` in UTC.
    """
    if time.tzinfo is None:
        time = time.replace(tzinfo=UTC)
    return f"{name}|{time.astimezone(UTC).strftime(KEY_LAYOUT)}"


@dataclass(frozen=True)
class Event:
    """Record that an entry fired at a matched minute."""

    entry: Entry
    time: datetime

    @property
    def key(self) -> str:
        """Dedup key of this event."""
        return minute_key(self.entry.name, self.time)


class Store(ABC):
    """Durable or volatile catalog of entries and events.

    Implementations must make ``lock``/``unlock`` a mutual exclusion strong
    enough to serialize check cycles of every scheduler sharing the same
    backing data.
    """

    @abstractmethod
    def initialize(self) -> None:
        """Prepare backing structures. Must be idempotent."""

    @abstractmethod
    def lock(self) -> None:
        """Acquire exclusive access for one check cycle."""

    @abstractmethod
    def unlock(self) -> None:
        """Release the lock taken by :meth:`lock`."""

    @abstractmethod
    def get_entries(self) -> list[Entry]:
        """Return all active entries."""

    @abstractmethod
    def add_entry(self, entry: Entry) -> None:
        """Register an entry, replacing one with the same definition."""

    @abstractmethod
    def delete_entry(self, entry: Entry) -> None:
        """Delete entries matching the name and expression of ``entry``."""

    @abstractmethod
    def add_event(self, event: Event) -> None:
        """Record that an entry fired."""

    @abstractmethod
    def get_events(self, start: datetime, end: datetime) -> list[Event]:
        """Return events whose time lies in ``[start, end)``."""

    def delete_events(self, before: datetime) -> int:
        """Delete events older than ``before``.

        Retention pruning is optional; the default does nothing.

        Returns:
            Number of events deleted.
        """
        return 0

    @contextmanager
    def locked(self) -> Generator[Store, None, None]:
        """Hold the store lock for the duration of a block.

        Usage:
            with store.locked():
                store.add_entry(entry)
        """
        self.lock()
        try:
            yield self
        finally:
            self.unlock()
