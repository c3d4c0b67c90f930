"""Cron expression parsing and matching.

An expression has five whitespace separated fields::

    +------------------ minute (0-59)
    | +---------------- hour (0-23)
    | |   +------------ day of month (1-31)
    | |   |    +------- month (1-12)
    | |   |    |     +- day of week (0-6, 0 = Sunday)
    5 *  */5 1-12/2 0-3

Each field compiles to a bitmask where bit ``i`` set means value ``i`` is
permitted. The wildcard (``*`` or ``?``) is the all-ones mask. Macros such as
``@daily`` are not supported.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from datetime import UTC, datetime, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from tzlocal import get_localzone

from cronlock.errors import CronParseError

# Bitmask representing '*': every bit set
STAR = (1 << 64) - 1

WILDCARDS = ("*", "?")

# (name, minimum, maximum) in expression order
FIELDS: tuple[tuple[str, int, int], ...] = (
    ("minute", 0, 59),
    ("hour", 0, 23),
    ("day of month", 1, 31),
    ("month", 1, 12),
    ("day of week", 0, 6),
)

_INTEGER = re.compile(r"[+-]?\d+")


def field_matches(mask: int, value: int) -> bool:
    """Check whether ``value`` is permitted by a field bitmask."""
    return mask & (1 << value) != 0


def format_field(mask: int) -> str:
    """Render a field bitmask as ``*`` or a comma separated list of values."""
    if mask == STAR:
        return "*"
    return ",".join(str(i) for i in range(64) if field_matches(mask, i))


def _parse_int(value: str, what: str, expression: str) -> int:
    if not _INTEGER.fullmatch(value):
        msg = f'failed parsing {what} "{expression}": invalid integer "{value}"'
        raise CronParseError(msg, token=expression)
    return int(value)


def compile_field(text: str, minimum: int, maximum: int) -> int:
    """Compile one cron field into a bitmask.

    Supports single values (``5``), ranges (``1-5``), lists (``1,3,5``) and
    steps over a wildcard or a range (``*/15``, ``10-30/3``).

    Args:
        text: The field text.
        minimum: Smallest legal value for the field.
        maximum: Largest legal value for the field.

    Returns:
        Bitmask of permitted values.

    Raises:
        CronParseError: If the field is empty, malformed or out of range.
    """
    text = text.strip()
    if not text:
        raise CronParseError("empty field")

    if text in WILDCARDS:
        return STAR

    mask = 0
    for part in text.split(","):
        step = 1
        start, end = minimum, maximum

        if "/" in part:
            base, _, step_text = part.partition("/")
            if base not in WILDCARDS and "-" not in base:
                msg = f'step given without range, expression "{text}"'
                raise CronParseError(msg, token=text)

            if not _INTEGER.fullmatch(step_text):
                msg = f'failed parsing interval expression "{step_text}": invalid integer'
                raise CronParseError(msg, token=text)
            step = int(step_text)
            if step <= 0:
                msg = f'step must be a positive integer, expression "{text}"'
                raise CronParseError(msg, token=text)
            part = base

        first, has_range, last = part.partition("-")
        if first not in WILDCARDS:
            start = _parse_int(first, "expression", text)
            if not has_range:
                end = start
            elif last:
                end = _parse_int(last, "expression", text)
            # An empty end ("55-") runs to the field maximum

        if start < minimum or end > maximum or start > end:
            msg = f"value out of range ({minimum} - {maximum}): {part}"
            raise CronParseError(msg, token=text)

        for value in range(start, end + 1, step):
            mask |= 1 << value

    return mask


def resolve_timezone(timezone: tzinfo | str | None) -> tzinfo:
    """Resolve a timezone argument into a tzinfo.

    Args:
        timezone: A tzinfo, an IANA zone name, or None for the local zone.

    Returns:
        The resolved tzinfo.

    Raises:
        CronParseError: If a zone name is unknown.
    """
    if timezone is None or timezone == "local":
        return get_localzone()
    if isinstance(timezone, str):
        try:
            return ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise CronParseError(f"unknown timezone {timezone!r}", token=timezone) from e
    return timezone


def timezone_name(tz: tzinfo) -> str:
    """Return the name a timezone is persisted and displayed under."""
    key = getattr(tz, "key", None) or getattr(tz, "zone", None)
    return str(key) if key else str(tz)


@dataclass(frozen=True)
class Entry:
    """A compiled, named, timezone-bound cron schedule."""

    name: str
    timezone: tzinfo
    expression: str
    minute: int
    hour: int
    dom: int
    month: int
    dow: int
    meta: str | None = None

    @property
    def location(self) -> str:
        """Name of the entry timezone."""
        return timezone_name(self.timezone)

    def match(self, instant: datetime) -> bool:
        """Check whether an instant satisfies every field of the schedule.

        Naive datetimes are taken to be UTC. The instant is converted into the
        entry timezone before comparing; all five fields must match.
        """
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=UTC)
        local = instant.astimezone(self.timezone)

        return (
            field_matches(self.minute, local.minute)
            and field_matches(self.hour, local.hour)
            and field_matches(self.dom, local.day)
            and field_matches(self.dow, local.isoweekday() % 7)
            and field_matches(self.month, local.month)
        )

    def format(self) -> str:
        """Canonical rendering of the five fields."""
        masks = (self.minute, self.hour, self.dom, self.month, self.dow)
        return " ".join(format_field(mask) for mask in masks)

    def same_definition(self, other: Entry) -> bool:
        """Check whether two entries describe the same scheduled definition."""
        return self.name == other.name and self.expression == other.expression

    def with_meta(self, meta: str | None) -> Entry:
        """Return a copy of the entry carrying free-text metadata."""
        return replace(self, meta=meta)

    def __str__(self) -> str:
        return f'{{ name:"{self.name}" schedule:"{self.format()}", location:"{self.location}" }}'


def parse(
    expression: str,
    timezone: tzinfo | str | None = None,
    name: str = "",
    meta: str | None = None,
) -> Entry:
    """Parse a five field cron expression into an Entry.

    Args:
        expression: Fields in the order minute hour day-of-month month day-of-week.
        timezone: Zone the fields are evaluated in. Defaults to the local zone.
        name: Name of the scheduled job.
        meta: Optional free-text metadata carried by the entry.

    Returns:
        The compiled Entry.

    Raises:
        CronParseError: If the expression is malformed.
    """
    tz = resolve_timezone(timezone)

    fields = expression.split()
    if len(fields) != len(FIELDS):
        msg = f"got {len(fields)} want {len(FIELDS)} expressions"
        raise CronParseError(msg, token=expression)

    masks: list[int] = []
    for token, (field_name, minimum, maximum) in zip(fields, FIELDS, strict=True):
        try:
            masks.append(compile_field(token, minimum, maximum))
        except CronParseError as e:
            msg = f"failed parsing '{field_name}' field \"{token}\": {e}"
            raise CronParseError(msg, field_name=field_name, token=token) from e

    minute, hour, dom, month, dow = masks
    return Entry(
        name=name,
        timezone=tz,
        expression=" ".join(fields),
        minute=minute,
        hour=hour,
        dom=dom,
        month=month,
        dow=dow,
        meta=meta,
    )
