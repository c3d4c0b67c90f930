"""Tests for the scheduler check cycle and tick loop."""

import threading
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from cronlock.errors import SchedulerError, StoreError, StoreInitializationError
from cronlock.parser import parse
from cronlock.scheduler import ErrorSink, Scheduler, next_minute, truncate_minute
from cronlock.storage import Database, Event, MemoryStore, SQLStore


class FailingStore(MemoryStore):
    """Memory store whose operations can be made to fail."""

    def __init__(self, fail: set[str] | None = None, fail_names: set[str] | None = None) -> None:
        super().__init__()
        self.fail = fail or set()
        self.fail_names = fail_names or set()

    @property
    def held(self) -> bool:
        return self._mutex.locked()

    def initialize(self) -> None:
        if "initialize" in self.fail:
            raise RuntimeError("disk full")

    def lock(self) -> None:
        if "lock" in self.fail:
            raise RuntimeError("lock timeout")
        super().lock()

    def unlock(self) -> None:
        super().unlock()
        if "unlock" in self.fail:
            raise RuntimeError("commit failed")

    def get_entries(self):
        if "get_entries" in self.fail:
            raise RuntimeError("connection reset")
        return super().get_entries()

    def get_events(self, start, end):
        if "get_events" in self.fail:
            raise RuntimeError("connection reset")
        return super().get_events(start, end)

    def add_event(self, event: Event) -> None:
        if event.entry.name in self.fail_names:
            raise RuntimeError("constraint violated")
        super().add_event(event)


def _register(store, *entries) -> None:
    with store.locked():
        for entry in entries:
            store.add_entry(entry)


class TestMinuteHelpers:
    """Tests for minute arithmetic."""

    def test_truncate_minute(self) -> None:
        """Test seconds and microseconds are dropped."""
        value = datetime(2024, 1, 1, 12, 30, 59, 999999, tzinfo=UTC)
        assert truncate_minute(value) == datetime(2024, 1, 1, 12, 30, tzinfo=UTC)

    def test_truncate_naive_is_utc(self) -> None:
        """Test naive values are treated as UTC."""
        assert truncate_minute(datetime(2024, 1, 1, 12, 30, 5)).tzinfo == UTC

    def test_next_minute(self) -> None:
        """Test the next boundary is strictly after now."""
        at = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
        assert next_minute(at) == at + timedelta(minutes=1)
        assert next_minute(at + timedelta(seconds=59.99)) == at + timedelta(minutes=1)

    def test_next_minute_crosses_midnight(self) -> None:
        """Test the boundary rolls over the day."""
        at = datetime(2023, 12, 31, 23, 59, 30, tzinfo=UTC)
        assert next_minute(at) == datetime(2024, 1, 1, 0, 0, tzinfo=UTC)


class TestCheck:
    """Tests for a single check cycle."""

    def test_two_schedulers_share_a_store(self, recorder, memory_store: MemoryStore) -> None:
        """Test only the first scheduler fires an occurrence and prior events suppress firing."""
        now = datetime(2018, 12, 15, 10, 30, tzinfo=UTC)
        entry1 = parse("* * * * *", "UTC", "ENTRY_1")
        entry2 = parse("30 10 * * *", "UTC", "ENTRY_2")
        entry3 = parse("0 0 1 1 *", "UTC", "ENTRY_3")
        _register(memory_store, entry1, entry2, entry3)
        with memory_store.locked():
            memory_store.add_event(Event(entry=entry1, time=now))

        first = Scheduler(recorder, memory_store)
        second = Scheduler(recorder, memory_store)

        assert first.check(now) == ["ENTRY_2"]
        assert second.check(now) == []

        assert recorder.wait_for(1)
        assert recorder.names == ["ENTRY_2"]
        assert len(memory_store.events) == 2

    def test_check_is_idempotent(self, recorder, memory_store: MemoryStore) -> None:
        """Test a repeated check for the same minute fires nothing."""
        _register(memory_store, parse("* * * * *", "UTC", "job"))
        scheduler = Scheduler(recorder, memory_store)
        now = datetime(2024, 6, 1, 8, 15, 42, tzinfo=UTC)

        assert scheduler.check(now) == ["job"]
        assert scheduler.check(now) == []
        assert scheduler.check(now + timedelta(minutes=1)) == ["job"]

        assert [e.time for e in memory_store.events] == [
            datetime(2024, 6, 1, 8, 15, tzinfo=UTC),
            datetime(2024, 6, 1, 8, 16, tzinfo=UTC),
        ]

    def test_duplicate_names_fire_once(self, recorder, memory_store: MemoryStore) -> None:
        """Test two entries sharing a name fire once per minute."""
        _register(
            memory_store,
            parse("* * * * *", "UTC", "shared"),
            parse("*/2 * * * *", "UTC", "shared"),
        )
        scheduler = Scheduler(recorder, memory_store)

        assert scheduler.check(datetime(2024, 6, 1, 8, 10, tzinfo=UTC)) == ["shared"]
        assert len(memory_store.events) == 1

    def test_entry_timezone_is_respected(self, recorder, memory_store: MemoryStore) -> None:
        """Test matching uses the wall clock of the entry's timezone."""
        _register(
            memory_store,
            parse("0 9 * * *", "Asia/Jakarta", "jakarta"),
            parse("0 9 * * *", "UTC", "utc"),
        )
        scheduler = Scheduler(recorder, memory_store)

        # 02:00 UTC is 09:00 in Jakarta
        assert scheduler.check(datetime(2024, 6, 1, 2, 0, tzinfo=UTC)) == ["jakarta"]
        assert scheduler.check(datetime(2024, 6, 1, 9, 0, tzinfo=UTC)) == ["utc"]

    def test_non_matching_minute(self, recorder, memory_store: MemoryStore) -> None:
        """Test nothing is recorded when no entry matches."""
        _register(memory_store, parse("0 0 * * *", "UTC", "midnight"))
        scheduler = Scheduler(recorder, memory_store)

        assert scheduler.check(datetime(2024, 6, 1, 12, 0, tzinfo=UTC)) == []
        assert memory_store.events == []

    def test_concurrent_checks_fire_once(self, recorder, memory_store: MemoryStore) -> None:
        """Test racing schedulers fire each entry exactly once."""
        _register(
            memory_store,
            parse("* * * * *", "UTC", "A"),
            parse("* * * * *", "UTC", "B"),
        )
        now = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)
        schedulers = [Scheduler(recorder, memory_store) for _ in range(8)]
        barrier = threading.Barrier(len(schedulers))

        def run_check(scheduler: Scheduler) -> None:
            barrier.wait()
            scheduler.check(now)

        threads = [threading.Thread(target=run_check, args=(s,)) for s in schedulers]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert recorder.wait_for(2)
        assert sorted(recorder.names) == ["A", "B"]
        assert len(memory_store.events) == 2

    def test_sql_stores_share_a_database(self, recorder, db_path: Path, sql_store) -> None:
        """Test schedulers on separate connections deduplicate through the database."""
        _register(sql_store, parse("* * * * *", "UTC", "A"), parse("*/5 * * * *", "UTC", "B"))
        other = SQLStore(Database(db_path))
        now = datetime(2024, 6, 1, 12, 5, tzinfo=UTC)

        assert Scheduler(recorder, sql_store).check(now) == ["A", "B"]
        assert Scheduler(recorder, other).check(now) == []
        assert recorder.wait_for(2)

        events = sql_store.get_events(now, now + timedelta(minutes=1))
        assert sorted(e.entry.name for e in events) == ["A", "B"]

    def test_handler_errors_do_not_propagate(self, memory_store: MemoryStore) -> None:
        """Test a failing handler neither blocks the check nor other handlers."""
        calls: list[str] = []
        done = threading.Event()

        def handler(name: str) -> None:
            calls.append(name)
            if name == "bad":
                raise RuntimeError("boom")
            done.set()

        _register(memory_store, parse("* * * * *", "UTC", "bad"), parse("* * * * *", "UTC", "good"))
        scheduler = Scheduler(handler, memory_store)

        assert scheduler.check(datetime(2024, 6, 1, 12, 0, tzinfo=UTC)) == ["bad", "good"]
        assert done.wait(5)
        assert len(scheduler.errors) == 0

    def test_handlers_run_concurrently(self, memory_store: MemoryStore) -> None:
        """Test a slow handler does not delay the check or other handlers."""
        release = threading.Event()
        started = threading.Event()

        def handler(name: str) -> None:
            if name == "slow":
                release.wait(5)
            else:
                started.set()

        _register(
            memory_store,
            parse("* * * * *", "UTC", "slow"),
            parse("* * * * *", "UTC", "fast"),
        )
        scheduler = Scheduler(handler, memory_store)

        try:
            assert scheduler.check(datetime(2024, 6, 1, 12, 0, tzinfo=UTC)) == ["slow", "fast"]
            assert started.wait(5)
        finally:
            release.set()


class TestCheckFailures:
    """Tests for store failures during a check cycle."""

    def test_lock_failure(self, recorder) -> None:
        """Test lock errors are raised as store errors."""
        store = FailingStore(fail={"lock"})
        with pytest.raises(StoreError, match="locking store failed: lock timeout"):
            Scheduler(recorder, store).check(datetime(2024, 6, 1, tzinfo=UTC))

    @pytest.mark.parametrize(
        ("operation", "message"),
        [
            ("get_entries", "failed to get entries"),
            ("get_events", "failed to get events"),
        ],
    )
    def test_read_failure_releases_lock(self, recorder, operation: str, message: str) -> None:
        """Test read errors abort the cycle and release the lock."""
        store = FailingStore(fail={operation})
        _register(store, parse("* * * * *", "UTC", "job"))

        with pytest.raises(StoreError, match=message):
            Scheduler(recorder, store).check(datetime(2024, 6, 1, tzinfo=UTC))

        assert store.held is False
        assert store.events == []

    def test_event_write_failure_skips_entry(self, recorder) -> None:
        """Test a failed event write is reported and other entries still fire."""
        store = FailingStore(fail_names={"broken"})
        _register(store, parse("* * * * *", "UTC", "broken"), parse("* * * * *", "UTC", "ok"))
        scheduler = Scheduler(recorder, store)

        assert scheduler.check(datetime(2024, 6, 1, tzinfo=UTC)) == ["ok"]
        assert recorder.wait_for(1)
        assert recorder.names == ["ok"]

        error = scheduler.errors.get_nowait()
        assert isinstance(error, StoreError)
        assert str(error) == "failed to store event: constraint violated"

    def test_event_write_failure_on_sql_store(self, recorder, db_path: Path, sql_store) -> None:
        """Test a rejected insert on the durable store leaves the rest of the tick intact."""
        database = Database(db_path)
        with database.engine.begin() as conn:
            conn.exec_driver_sql(
                "CREATE TRIGGER reject_a BEFORE INSERT ON cron_events "
                "WHEN NEW.name = 'A' BEGIN SELECT RAISE(ABORT, 'boom'); END"
            )
        database.dispose()

        _register(sql_store, parse("* * * * *", "UTC", "A"), parse("* * * * *", "UTC", "B"))
        scheduler = Scheduler(recorder, sql_store)
        now = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)

        assert scheduler.check(now) == ["B"]
        assert recorder.wait_for(1)
        assert recorder.names == ["B"]

        events = sql_store.get_events(now, now + timedelta(minutes=1))
        assert [e.entry.name for e in events] == ["B"]

        error = scheduler.errors.get_nowait()
        assert str(error).startswith("failed to store event: failed to add event:")
        assert "boom" in str(error)
        assert scheduler.errors.get_nowait() is None

    def test_unlock_failure_fires_nothing(self, recorder) -> None:
        """Test handlers are not dispatched when the commit fails."""
        store = FailingStore(fail={"unlock"})
        _register(store, parse("* * * * *", "UTC", "job"))
        scheduler = Scheduler(recorder, store)

        assert scheduler.check(datetime(2024, 6, 1, tzinfo=UTC)) == []
        assert not recorder.wait_for(1, timeout=0.2)

        error = scheduler.errors.get_nowait()
        assert str(error) == "unlocking store failed: commit failed"

    def test_empty_name_is_reported(self, recorder, memory_store: MemoryStore) -> None:
        """Test unnamed entries are skipped with an error."""
        _register(memory_store, parse("* * * * *", "UTC", ""), parse("* * * * *", "UTC", "named"))
        scheduler = Scheduler(recorder, memory_store)

        assert scheduler.check(datetime(2024, 6, 1, tzinfo=UTC)) == ["named"]
        error = scheduler.errors.get_nowait()
        assert "got empty name for an entry" in str(error)


class FakeClock:
    """Clock frozen at a fixed instant."""

    def __init__(self, start: datetime) -> None:
        self.now = start
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            return self.now


class TestRun:
    """Tests for the tick loop."""

    def test_run_ticks_at_minute_boundary(self, recorder, memory_store: MemoryStore) -> None:
        """Test the first tick happens at the next minute boundary."""
        clock = FakeClock(datetime(2024, 6, 1, 12, 0, 59, 990000, tzinfo=UTC))
        _register(memory_store, parse("1 12 * * *", "UTC", "at-12-01"))
        scheduler = Scheduler(recorder, memory_store, clock=clock)
        stop = threading.Event()

        thread = threading.Thread(target=scheduler.run, args=(stop,))
        thread.start()
        try:
            assert recorder.wait_for(1)
        finally:
            stop.set()
            thread.join(timeout=5)

        assert not thread.is_alive()
        assert recorder.names == ["at-12-01"]
        assert [e.time for e in memory_store.events] == [
            datetime(2024, 6, 1, 12, 1, tzinfo=UTC)
        ]

    def test_stop_before_first_tick(self, recorder, memory_store: MemoryStore) -> None:
        """Test a cancelled loop returns without checking."""
        _register(memory_store, parse("* * * * *", "UTC", "job"))
        scheduler = Scheduler(recorder, memory_store)
        stop = threading.Event()
        stop.set()

        scheduler.run(stop)

        assert memory_store.events == []
        assert scheduler.is_running is False

    def test_stop_method(self, recorder, memory_store: MemoryStore) -> None:
        """Test stop() ends a loop started without an event."""
        scheduler = Scheduler(recorder, memory_store)
        thread = threading.Thread(target=scheduler.run)
        thread.start()

        scheduler.stop()
        thread.join(timeout=5)
        assert not thread.is_alive()

    def test_initialize_failure_is_fatal(self, recorder) -> None:
        """Test store initialization errors are raised from run."""
        scheduler = Scheduler(recorder, FailingStore(fail={"initialize"}))

        with pytest.raises(StoreInitializationError, match="failed to initialize store: disk full"):
            scheduler.run(threading.Event())
        assert scheduler.is_running is False

    def test_tick_errors_are_reported(self, recorder) -> None:
        """Test failing checks are reported and the loop keeps running."""
        clock = FakeClock(datetime(2024, 6, 1, 12, 0, 59, 990000, tzinfo=UTC))
        store = FailingStore(fail={"get_entries"})
        scheduler = Scheduler(recorder, store, clock=clock)
        stop = threading.Event()

        thread = threading.Thread(target=scheduler.run, args=(stop,))
        thread.start()
        try:
            error = scheduler.errors.get(timeout=5)
        finally:
            stop.set()
            thread.join(timeout=5)

        assert isinstance(error, StoreError)
        assert str(error) == (
            "failed to do check on 2024-06-01T12:01:00+00:00: "
            "failed to get entries: connection reset"
        )

    def test_unexpected_tick_errors_keep_loop_alive(
        self, recorder, memory_store: MemoryStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test errors other than store errors are reported instead of ending the loop."""
        clock = FakeClock(datetime(2024, 6, 1, 12, 0, 59, 990000, tzinfo=UTC))
        _register(memory_store, parse("* * * * *", "UTC", "job"))
        scheduler = Scheduler(recorder, memory_store, clock=clock)

        def refuse_thread(name: str) -> None:
            raise RuntimeError("can't start new thread")

        monkeypatch.setattr(scheduler, "_dispatch", refuse_thread)
        stop = threading.Event()

        thread = threading.Thread(target=scheduler.run, args=(stop,))
        thread.start()
        try:
            error = scheduler.errors.get(timeout=5)
            assert thread.is_alive()
        finally:
            stop.set()
            thread.join(timeout=5)

        assert isinstance(error, SchedulerError)
        assert str(error) == (
            "failed to do check on 2024-06-01T12:01:00+00:00: can't start new thread"
        )


class TestErrorSink:
    """Tests for the bounded error sink."""

    def test_default_capacity_is_one(self) -> None:
        """Test a second unread error is dropped."""
        sink = ErrorSink()
        first, second = StoreError("first"), StoreError("second")

        assert sink.report(first) is True
        assert sink.report(second) is False
        assert sink.dropped == 1
        assert sink.get_nowait() is first
        assert sink.get_nowait() is None

    def test_capacity(self) -> None:
        """Test larger sinks keep errors in order."""
        sink = ErrorSink(capacity=3)
        errors = [StoreError(f"error {i}") for i in range(4)]
        for error in errors:
            sink.report(error)

        assert len(sink) == 3
        assert sink.drain() == errors[:3]
        assert len(sink) == 0

    def test_get_timeout(self) -> None:
        """Test waiting on an empty sink times out."""
        assert ErrorSink().get(timeout=0.01) is None

    def test_invalid_capacity(self) -> None:
        """Test capacity must be positive."""
        with pytest.raises(ValueError, match="at least 1"):
            ErrorSink(capacity=0)
