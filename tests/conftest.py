"""Pytest configuration and shared fixtures."""

import threading
from collections.abc import Generator
from pathlib import Path

import pytest

from cronlock.storage import Database, MemoryStore, SQLStore


class HandlerRecorder:
    """Thread-safe scheduler handler that records fired names."""

    def __init__(self) -> None:
        self.names: list[str] = []
        self._lock = threading.Lock()
        self._fired = threading.Condition(self._lock)

    def __call__(self, name: str) -> None:
        with self._fired:
            self.names.append(name)
            self._fired.notify_all()

    def wait_for(self, count: int, timeout: float = 5.0) -> bool:
        """Wait until at least ``count`` names were recorded."""
        with self._fired:
            return self._fired.wait_for(lambda: len(self.names) >= count, timeout=timeout)


@pytest.fixture
def recorder() -> HandlerRecorder:
    """Create a recording handler."""
    return HandlerRecorder()


@pytest.fixture
def memory_store() -> MemoryStore:
    """Create an initialized in-memory store."""
    store = MemoryStore()
    store.initialize()
    return store


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Path of a SQLite database file shared by several connections."""
    return tmp_path / "cronlock.db"


@pytest.fixture
def sql_store(db_path: Path) -> Generator[SQLStore, None, None]:
    """Create an initialized SQL store on a SQLite file."""
    database = Database(db_path)
    store = SQLStore(database)
    store.initialize()
    yield store
    database.dispose()
