"""SQL-backed store with cross-process locking."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from cronlock.errors import CronParseError, StoreError, StoreInitializationError
from cronlock.parser import Entry, parse, resolve_timezone

from .base import Event, Store
from .models import ENTRIES_TABLE, EVENTS_TABLE, EntryRecord, EventRecord
from .repositories import EntryRepository, EventRepository

if TYPE_CHECKING:
    from collections.abc import Generator

    from sqlalchemy.orm import Session

    from .database import Database

logger = logging.getLogger(__name__)


def _to_db_time(value: datetime) -> datetime:
    """Convert a timestamp to the naive UTC form stored in the database."""
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def _lock_statements(dialect: str) -> list[str]:
    """Explicit table lock statements for a dialect.

    SQLite needs none: its transactions already begin with BEGIN EXCLUSIVE.
    """
    if dialect == "mysql":
        return [f"LOCK TABLES `{ENTRIES_TABLE}` WRITE, `{EVENTS_TABLE}` WRITE"]
    if dialect == "postgresql":
        return [f"LOCK TABLE {ENTRIES_TABLE}, {EVENTS_TABLE} IN ACCESS EXCLUSIVE MODE"]
    return []


class SQLStore(Store):
    """Durable store on a relational database.

    ``lock`` opens a serializable transaction on a dedicated session and
    takes write locks on both tables; everything done until ``unlock`` runs in
    that transaction. Operations outside a lock use their own short
    transaction. Each scheduler should own its SQLStore instance.
    """

    def __init__(self, database: Database) -> None:
        """Initialize the store.

        Args:
            database: Database to persist entries and events in.
        """
        self._db = database
        self._session: Session | None = None

    @property
    def is_locked(self) -> bool:
        """Check if this store currently holds the lock."""
        return self._session is not None

    def initialize(self) -> None:
        try:
            self._db.create_tables()
        except SQLAlchemyError as e:
            msg = f"failed creating cron tables: {e}"
            raise StoreInitializationError(msg) from e

    def lock(self) -> None:
        if self._session is not None:
            raise StoreError("already locked or transaction exists", operation="lock")

        dialect = self._db.dialect_name
        session = self._db.get_session()
        try:
            if dialect == "sqlite":
                session.connection()
            else:
                session.connection(execution_options={"isolation_level": "SERIALIZABLE"})
            for statement in _lock_statements(dialect):
                session.execute(text(statement))
        except SQLAlchemyError as e:
            session.rollback()
            session.close()
            raise StoreError(f"failed to lock tables: {e}", operation="lock") from e

        self._session = session
        logger.debug("Acquired store lock")

    def unlock(self) -> None:
        session = self._session
        if session is None:
            raise StoreError("not locked or transaction not exists", operation="unlock")

        self._session = None
        try:
            if self._db.dialect_name == "mysql":
                session.execute(text("UNLOCK TABLES"))
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreError(f"failed to unlock tables: {e}", operation="unlock") from e
        finally:
            session.close()

        logger.debug("Released store lock")

    @contextmanager
    def _scope(self) -> Generator[Session, None, None]:
        """Yield the locked session, or a short transaction when unlocked."""
        if self._session is not None:
            yield self._session
            return

        with self._db.session_scope() as session:
            yield session

    def _entry_from_row(self, expression: str, location: str, name: str, meta: str | None) -> Entry:
        try:
            return parse(expression, location, name, meta=meta)
        except CronParseError as e:
            msg = f"failed to parse expression:{expression!r} loc:{location!r} name:{name!r}: {e}"
            raise StoreError(msg, operation="load") from e

    def get_entries(self) -> list[Entry]:
        try:
            with self._scope() as session:
                return [
                    self._entry_from_row(r.expression, r.location, r.name, r.meta)
                    for r in EntryRepository(session).get_active()
                ]
        except SQLAlchemyError as e:
            raise StoreError(f"failed to query entries: {e}", operation="get_entries") from e

    def get_all_entries(self) -> list[tuple[Entry, bool]]:
        """Return every entry, paused ones included, with its active flag."""
        try:
            with self._scope() as session:
                return [
                    (self._entry_from_row(r.expression, r.location, r.name, r.meta), r.active == 1)
                    for r in EntryRepository(session).get_all()
                ]
        except SQLAlchemyError as e:
            raise StoreError(f"failed to query entries: {e}", operation="get_all_entries") from e

    def add_entry(self, entry: Entry) -> None:
        if not entry.expression:
            raise StoreError("got empty expression", operation="add_entry")
        try:
            resolve_timezone(entry.location)
        except CronParseError as e:
            msg = f"timezone of entry {entry.name!r} cannot be stored: {e}"
            raise StoreError(msg, operation="add_entry") from e

        record = EntryRecord(
            expression=entry.expression,
            location=entry.location,
            name=entry.name,
            meta=entry.meta,
            active=1,
        )
        try:
            with self._scope() as session:
                EntryRepository(session).upsert(record)
        except SQLAlchemyError as e:
            raise StoreError(f"failed to add entry: {e}", operation="add_entry") from e

    def delete_entry(self, entry: Entry) -> None:
        try:
            with self._scope() as session:
                EntryRepository(session).delete(entry.expression, entry.name)
        except SQLAlchemyError as e:
            raise StoreError(f"failed to delete entry: {e}", operation="delete_entry") from e

    def set_active(self, name: str, active: bool) -> int:
        """Soft (de)activate every entry with a name.

        Args:
            name: Entry name.
            active: Whether the entries should be scheduled.

        Returns:
            Number of entries updated.
        """
        try:
            with self._scope() as session:
                return EntryRepository(session).set_active(name, active)
        except SQLAlchemyError as e:
            raise StoreError(f"failed to update entry: {e}", operation="set_active") from e

    def add_event(self, event: Event) -> None:
        entry = event.entry
        record = EventRecord(
            expression=entry.expression,
            location=entry.location,
            name=entry.name,
            triggered_at=_to_db_time(event.time),
            meta=entry.meta,
        )
        try:
            with self._scope() as session:
                # A failed insert only rolls back its own savepoint
                with session.begin_nested():
                    EventRepository(session).create(record)
        except SQLAlchemyError as e:
            raise StoreError(f"failed to add event: {e}", operation="add_event") from e

    def get_events(self, start: datetime, end: datetime) -> list[Event]:
        try:
            with self._scope() as session:
                events: list[Event] = []
                for r in EventRepository(session).get_range(_to_db_time(start), _to_db_time(end)):
                    entry = self._entry_from_row(r.expression, r.location, r.name, r.meta)
                    time = r.triggered_at.replace(tzinfo=UTC).astimezone(entry.timezone)
                    events.append(Event(entry=entry, time=time))
                return events
        except SQLAlchemyError as e:
            raise StoreError(f"failed querying events: {e}", operation="get_events") from e

    def delete_events(self, before: datetime) -> int:
        try:
            with self._scope() as session:
                count = EventRepository(session).cleanup_before(_to_db_time(before))
        except SQLAlchemyError as e:
            raise StoreError(f"failed to delete events: {e}", operation="delete_events") from e

        logger.info(f"Deleted {count} events before {before.isoformat()}")
        return count
