"""SQLAlchemy database models for the durable cron store."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

ENTRIES_TABLE = "cron_entries"
EVENTS_TABLE = "cron_events"


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""


class EntryRecord(Base):
    """A registered cron entry."""

    __tablename__ = ENTRIES_TABLE

    expression: Mapped[str] = mapped_column(String(255), primary_key=True)
    location: Mapped[str] = mapped_column(String(255), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), primary_key=True)
    meta: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    active: Mapped[int] = mapped_column(Integer, default=1)  # SQLite boolean
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(UTC).replace(tzinfo=None)
    )

    def __repr__(self) -> str:
        return (
            f"<EntryRecord(name={self.name!r}, expression={self.expression!r}, "
            f"location={self.location!r}, active={bool(self.active)})>"
        )


class EventRecord(Base):
    """Record of an entry firing at a matched minute.

    ``triggered_at`` is stored as naive UTC.
    """

    __tablename__ = EVENTS_TABLE

    expression: Mapped[str] = mapped_column(String(255), primary_key=True)
    location: Mapped[str] = mapped_column(String(255), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), primary_key=True)
    triggered_at: Mapped[datetime] = mapped_column(DateTime, primary_key=True, index=True)
    meta: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    def __repr__(self) -> str:
        return f"<EventRecord(name={self.name!r}, triggered_at={self.triggered_at})>"
