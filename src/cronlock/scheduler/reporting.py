"""Non-blocking error reporting for the scheduling loop."""

from __future__ import annotations

import logging
import queue

logger = logging.getLogger(__name__)


class ErrorSink:
    """Bounded conduit for errors that cannot be returned to a caller.

    Each scheduler owns its sink. Reporting never blocks: when the sink is
    full the error is dropped. Every reported error is also logged.
    """

    def __init__(self, capacity: int = 1) -> None:
        """Initialize the sink.

        Args:
            capacity: Maximum number of unread errors kept.
        """
        if capacity < 1:
            msg = f"capacity must be at least 1, got {capacity}"
            raise ValueError(msg)
        self._queue: queue.Queue[BaseException] = queue.Queue(maxsize=capacity)
        self._dropped = 0

    @property
    def dropped(self) -> int:
        """Number of errors discarded because the sink was full."""
        return self._dropped

    def report(self, error: BaseException) -> bool:
        """Offer an error to the sink without blocking.

        Args:
            error: The error to report.

        Returns:
            True if queued, False if dropped.
        """
        logger.warning(f"Scheduler error: {error}")
        try:
            self._queue.put_nowait(error)
        except queue.Full:
            self._dropped += 1
            return False
        return True

    def get(self, timeout: float | None = None) -> BaseException | None:
        """Wait for the next error.

        Args:
            timeout: Seconds to wait; None waits forever.

        Returns:
            The error, or None if the timeout elapsed.
        """
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def get_nowait(self) -> BaseException | None:
        """Return the next error if one is waiting."""
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            return None

    def drain(self) -> list[BaseException]:
        """Return and remove every waiting error."""
        errors: list[BaseException] = []
        while (error := self.get_nowait()) is not None:
            errors.append(error)
        return errors

    def __len__(self) -> int:
        return self._queue.qsize()
