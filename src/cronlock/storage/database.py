"""Database connection and session management for the durable store."""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base

if TYPE_CHECKING:
    from collections.abc import Generator

    from sqlalchemy.engine import Engine

DEFAULT_DB_PATH = Path.home() / ".cronlock" / "cronlock.db"


def _exclusive_sqlite_transactions(engine: Engine) -> None:
    """Make every SQLite transaction start with ``BEGIN EXCLUSIVE``.

    pysqlite's own transaction handling is disabled so SQLAlchemy controls
    BEGIN; an open transaction then holds the database-wide write lock.
    """

    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_exclusive(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN EXCLUSIVE")


class Database:
    """Database connection manager.

    Accepts a SQLAlchemy URL, a SQLite file path, or ``":memory:"``.
    """

    def __init__(self, url: Path | str | None = None, echo: bool = False) -> None:
        """Initialize the database connection.

        Args:
            url: SQLAlchemy URL or SQLite file path.
                 If None, uses ~/.cronlock/cronlock.db
            echo: Log every SQL statement.
        """
        engine_kwargs: dict[str, Any] = {}

        if url is None:
            url = DEFAULT_DB_PATH

        url = str(url)
        if url in (":memory:", "sqlite://", "sqlite:///:memory:"):
            # One shared connection so every session sees the same database
            db_url = "sqlite://"
            engine_kwargs["poolclass"] = StaticPool
        elif "://" in url:
            db_url = url
        else:
            path = Path(url).expanduser()
            path.parent.mkdir(parents=True, exist_ok=True)
            db_url = f"sqlite:///{path}"

        if db_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}

        self._url = db_url
        self._engine: Engine = create_engine(db_url, echo=echo, **engine_kwargs)
        if self._engine.dialect.name == "sqlite":
            _exclusive_sqlite_transactions(self._engine)
        self._session_factory = sessionmaker(bind=self._engine)

    @property
    def url(self) -> str:
        """Get the database URL."""
        return self._url

    @property
    def engine(self) -> Engine:
        """Get the SQLAlchemy engine."""
        return self._engine

    @property
    def dialect_name(self) -> str:
        """Name of the SQL dialect (sqlite, mysql, postgresql, ...)."""
        return self._engine.dialect.name

    def create_tables(self) -> None:
        """Create all database tables if they don't exist."""
        Base.metadata.create_all(self._engine)

    def get_session(self) -> Session:
        """Get a new database session.

        The caller is responsible for closing the session.

        Returns:
            A new SQLAlchemy Session instance.
        """
        return self._session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """Provide a transactional scope for database operations.

        Usage:
            with db.session_scope() as session:
                repo = EntryRepository(session)
                repo.upsert(record)

        Yields:
            A SQLAlchemy Session that will be committed on success
            or rolled back on exception.
        """
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        """Close every pooled connection."""
        self._engine.dispose()
