"""Repository classes for durable store operations."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import select

from .models import EntryRecord, EventRecord

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy.orm import Session


class EntryRepository:
    """Repository for EntryRecord rows."""

    def __init__(self, session: Session) -> None:
        """Initialize the repository.

        Args:
            session: SQLAlchemy session for database operations.
        """
        self._session = session

    def upsert(self, record: EntryRecord) -> EntryRecord:
        """Insert an entry or replace the row with the same primary key.

        Args:
            record: The entry to store.

        Returns:
            The persistent record.
        """
        merged = self._session.merge(record)
        self._session.flush()
        return merged

    def get_active(self) -> list[EntryRecord]:
        """Get all active entries, ordered by name."""
        stmt = (
            select(EntryRecord)
            .where(EntryRecord.active == 1)
            .order_by(EntryRecord.name, EntryRecord.expression)
        )
        return list(self._session.scalars(stmt))

    def get_all(self) -> list[EntryRecord]:
        """Get every entry including deactivated ones."""
        stmt = select(EntryRecord).order_by(EntryRecord.name, EntryRecord.expression)
        return list(self._session.scalars(stmt))

    def delete(self, expression: str, name: str) -> int:
        """Delete entries by expression and name.

        Args:
            expression: Source expression of the entry.
            name: Entry name.

        Returns:
            Number of entries deleted.
        """
        stmt = select(EntryRecord).where(
            EntryRecord.expression == expression,
            EntryRecord.name == name,
        )
        records = list(self._session.scalars(stmt))
        for record in records:
            self._session.delete(record)

        self._session.flush()
        return len(records)

    def set_active(self, name: str, active: bool) -> int:
        """Activate or deactivate every entry with a name.

        Args:
            name: Entry name.
            active: New active flag.

        Returns:
            Number of entries updated.
        """
        stmt = select(EntryRecord).where(EntryRecord.name == name)
        records = list(self._session.scalars(stmt))
        for record in records:
            record.active = 1 if active else 0

        self._session.flush()
        return len(records)


class EventRepository:
    """Repository for EventRecord rows."""

    def __init__(self, session: Session) -> None:
        """Initialize the repository.

        Args:
            session: SQLAlchemy session for database operations.
        """
        self._session = session

    def create(self, record: EventRecord) -> EventRecord:
        """Record a firing, replacing an identical row.

        Args:
            record: The event to store.

        Returns:
            The persistent record.
        """
        merged = self._session.merge(record)
        self._session.flush()
        return merged

    def get_range(self, start: datetime, end: datetime) -> list[EventRecord]:
        """Get events triggered in ``[start, end)``.

        Args:
            start: Inclusive lower bound, naive UTC.
            end: Exclusive upper bound, naive UTC.

        Returns:
            List of events ordered by trigger time.
        """
        stmt = (
            select(EventRecord)
            .where(EventRecord.triggered_at >= start, EventRecord.triggered_at < end)
            .order_by(EventRecord.triggered_at, EventRecord.name)
        )
        return list(self._session.scalars(stmt))

    def cleanup_before(self, cutoff: datetime) -> int:
        """Delete events triggered before a cutoff.

        Args:
            cutoff: Naive UTC cutoff. Older events are deleted.

        Returns:
            Number of events deleted.
        """
        stmt = select(EventRecord).where(EventRecord.triggered_at < cutoff)
        old_events = list(self._session.scalars(stmt))
        count = len(old_events)

        for record in old_events:
            self._session.delete(record)

        self._session.flush()
        return count
