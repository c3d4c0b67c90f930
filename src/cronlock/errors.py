"""Error classification for cronlock."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Classification of errors for handling decisions."""

    PARSE = "parse"  # Returned to the caller, never fatal
    INITIALIZATION = "initialization"  # Fatal to Scheduler.run
    STORE = "store"  # Per-tick, reported and skipped
    SCHEDULER = "scheduler"  # Unexpected per-tick failure, reported and skipped
    CONFIG = "config"  # Bad settings or job files


@dataclass
class CronlockError(Exception):
    """Base error with classification and context."""

    message: str
    category: ErrorCategory
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.message

    def __post_init__(self) -> None:
        super().__init__(self.message)


@dataclass
class CronParseError(CronlockError):
    """Malformed cron expression or field."""

    category: ErrorCategory = ErrorCategory.PARSE
    field_name: str | None = None
    token: str | None = None


@dataclass
class StoreInitializationError(CronlockError):
    """The store could not prepare its backing structures."""

    category: ErrorCategory = ErrorCategory.INITIALIZATION


@dataclass
class StoreError(CronlockError):
    """A store operation failed during a check cycle."""

    category: ErrorCategory = ErrorCategory.STORE
    operation: str | None = None


@dataclass
class SchedulerError(CronlockError):
    """A check cycle failed for a reason other than the store."""

    category: ErrorCategory = ErrorCategory.SCHEDULER


@dataclass
class ConfigError(CronlockError):
    """Error loading or accessing configuration."""

    category: ErrorCategory = ErrorCategory.CONFIG


def wrap_error(prefix: str, error: BaseException) -> str:
    """Prefix an error message with operation context.

    Args:
        prefix: Description of the failed operation.
        error: The underlying exception.

    Returns:
        Message in the form ``"<prefix>: <error>"``.
    """
    return f"{prefix}: {error}"
