"""Minute-resolution scheduling loop with store-level deduplication."""

from __future__ import annotations

import logging
import threading
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from cronlock.errors import SchedulerError, StoreError, StoreInitializationError, wrap_error
from cronlock.storage.base import Event, minute_key

from .reporting import ErrorSink

if TYPE_CHECKING:
    from collections.abc import Callable

    from cronlock.parser import Entry
    from cronlock.storage.base import Store

logger = logging.getLogger(__name__)

ONE_MINUTE = timedelta(minutes=1)


def truncate_minute(value: datetime) -> datetime:
    """Drop seconds and microseconds; naive values are taken to be UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.replace(second=0, microsecond=0)


def next_minute(now: datetime) -> datetime:
    """Return the first minute boundary strictly after ``now``."""
    return truncate_minute(now) + ONE_MINUTE


class Scheduler:
    """Fires a handler once per matching entry and minute.

    Every tick runs a check cycle under the store lock: load active entries
    and the events already recorded for the minute, record an event for each
    newly matching entry, and then dispatch the handler on its own thread.
    Several schedulers may share one backing store; the store lock makes the
    cycle race-free, so each occurrence fires exactly once.
    """

    def __init__(
        self,
        handler: Callable[[str], object],
        store: Store,
        errors: ErrorSink | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            handler: Called with the entry name for every firing.
            store: Store holding entries and events.
            errors: Sink for errors raised inside the loop. A capacity 1 sink
                    is created when omitted.
            clock: Returns the current time; defaults to ``datetime.now(UTC)``.
        """
        self._handler = handler
        self._store = store
        self._errors = errors if errors is not None else ErrorSink()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._stop = threading.Event()
        self._running = False

    @property
    def errors(self) -> ErrorSink:
        """Sink receiving per-tick errors."""
        return self._errors

    @property
    def is_running(self) -> bool:
        """Check if the loop is running."""
        return self._running

    def stop(self) -> None:
        """Ask a running :meth:`run` without an explicit stop event to return."""
        self._stop.set()

    def run(self, stop_event: threading.Event | None = None) -> None:
        """Run the tick loop until cancelled.

        Args:
            stop_event: Cancellation signal. When set, the loop returns after
                        the current wait or check. Defaults to the event set
                        by :meth:`stop`.

        Raises:
            StoreInitializationError: If the store cannot be initialized.
        """
        stop = stop_event if stop_event is not None else self._stop

        try:
            self._store.initialize()
        except Exception as e:
            msg = wrap_error("failed to initialize store", e)
            raise StoreInitializationError(msg) from e

        self._running = True
        logger.info("Scheduler started")

        last: datetime | None = None
        try:
            while True:
                boundary = next_minute(self._clock())
                if last is not None and boundary <= last:
                    boundary = last + ONE_MINUTE

                delay = (boundary - self._clock()).total_seconds()
                if stop.wait(max(delay, 0.0)):
                    break

                last = boundary
                self._tick(boundary)
        finally:
            self._running = False
            logger.info("Scheduler stopped")

    def _tick(self, on: datetime) -> None:
        try:
            fired = self.check(on)
        except StoreError as e:
            msg = wrap_error(f"failed to do check on {on.isoformat()}", e)
            self._errors.report(StoreError(msg, operation=e.operation))
            return
        except Exception as e:
            msg = wrap_error(f"failed to do check on {on.isoformat()}", e)
            self._errors.report(SchedulerError(msg))
            return

        if fired:
            logger.info(f"Fired {len(fired)} entries at {on.isoformat()}: {', '.join(fired)}")

    def check(self, on: datetime) -> list[str]:
        """Run one check cycle for the minute containing ``on``.

        Idempotent: a second call for the same minute against the same store
        finds the recorded events and fires nothing.

        Args:
            on: Tick time; truncated to the minute.

        Returns:
            Names of the entries fired, in store order.

        Raises:
            StoreError: If the store cannot be locked or read.
        """
        on = truncate_minute(on)

        try:
            self._store.lock()
        except Exception as e:
            raise StoreError(wrap_error("locking store failed", e), operation="lock") from e

        try:
            due = self._record_due(on)
        except BaseException:
            self._release()
            raise

        # Events that were not committed must not fire
        if not self._release():
            return []

        for entry in due:
            self._dispatch(entry.name)

        return [entry.name for entry in due]

    def _release(self) -> bool:
        try:
            self._store.unlock()
        except Exception as e:
            msg = wrap_error("unlocking store failed", e)
            self._errors.report(StoreError(msg, operation="unlock"))
            return False
        return True

    def _record_due(self, on: datetime) -> list[Entry]:
        """Record events for entries that match ``on`` and have not fired yet.

        Must be called with the store locked.
        """
        try:
            entries = self._store.get_entries()
        except Exception as e:
            raise StoreError(wrap_error("failed to get entries", e), operation="get_entries") from e

        try:
            events = self._store.get_events(on, on + ONE_MINUTE)
        except Exception as e:
            raise StoreError(wrap_error("failed to get events", e), operation="get_events") from e

        fired_keys: set[str] = set()
        for event in events:
            if not event.entry.name:
                self._errors.report(StoreError(f"got empty name for an event entry {event.entry}"))
                continue
            fired_keys.add(event.key)

        due: list[Entry] = []
        for entry in entries:
            if not entry.name:
                self._errors.report(StoreError(f"got empty name for an entry {entry}"))
                continue

            if not entry.match(on):
                continue

            key = minute_key(entry.name, on)
            if key in fired_keys:
                logger.debug(f"Entry '{entry.name}' already fired at {on.isoformat()}")
                continue

            try:
                self._store.add_event(Event(entry=entry, time=on))
            except Exception as e:
                msg = wrap_error("failed to store event", e)
                self._errors.report(StoreError(msg, operation="add_event"))
                continue

            fired_keys.add(key)
            due.append(entry)

        return due

    def _dispatch(self, name: str) -> None:
        thread = threading.Thread(
            target=self._invoke,
            args=(name,),
            name=f"cronlock-{name}",
            daemon=True,
        )
        thread.start()

    def _invoke(self, name: str) -> None:
        try:
            self._handler(name)
        except Exception as e:
            logger.exception(f"Handler for '{name}' failed: {e}")
