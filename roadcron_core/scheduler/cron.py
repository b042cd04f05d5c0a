"""RoadCron Cron Expression - Parsed Cron Schedules.

Parsing and occurrence lookup are delegated to croniter; this module only
normalizes the text (macros, the seconds field and the day-field spellings
croniter reads differently) and gives the rest of the package a small
immutable value type to pass around.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from enum import Enum
from typing import Iterator, Optional

from croniter import CroniterBadDateError, croniter

from roadcron_core.errors import CronFormatError


class CronFormat(Enum):
    """Supported field layouts."""

    STANDARD = 5          # minute hour day month weekday
    INCLUDE_SECONDS = 6   # second minute hour day month weekday


# Macro -> six-field equivalent
MACROS = {
    "@every_second": "* * * * * *",
    "@every_minute": "0 * * * * *",
    "@hourly": "0 0 * * * *",
    "@daily": "0 0 0 * * *",
    "@midnight": "0 0 0 * * *",
    "@weekly": "0 0 0 * * 0",
    "@monthly": "0 0 0 1 * *",
    "@yearly": "0 0 0 1 1 *",
    "@annually": "0 0 0 1 1 *",
}

DAY_OF_MONTH_FIELD = 3
DAY_OF_WEEK_FIELD = 5

WEEKDAYS = {"SUN": 0, "MON": 1, "TUE": 2, "WED": 3, "THU": 4, "FRI": 5, "SAT": 6}

_RANGE_TO_SEVEN = re.compile(r"(\w+)-7(?:/(\d+))?")
_LAST_WEEKDAY = re.compile(r"(\w+)L|L(\w+)")
_NTH_WEEKDAY = re.compile(r"(\w+)#(\d+)")


@dataclass(frozen=True)
class CronExpression:
    """Immutable, validated cron schedule.

    ``LW`` and ``L-n`` in day-of-month are not supported and fail to parse.

    Attributes:
        text: Expression as supplied by the caller (whitespace-normalized)
        expanded: Six-field form handed to the evaluator, with ``?`` as
            ``*``, Sunday as ``0`` and last weekdays as ``Ln``
        format: Field layout ``text`` was parsed with
    """

    text: str
    expanded: str
    format: CronFormat = CronFormat.INCLUDE_SECONDS

    @classmethod
    def parse(
        cls,
        text: Optional[str],
        fmt: CronFormat = CronFormat.INCLUDE_SECONDS,
    ) -> "CronExpression":
        """Parse a cron expression.

        Args:
            text: Cron expression or macro (e.g. ``@hourly``)
            fmt: Expected field layout

        Returns:
            Parsed expression

        Raises:
            CronFormatError: If the text is empty or invalid
        """
        if text is not None and not isinstance(text, str):
            raise CronFormatError(
                f"Cron expression must be a string, not {type(text).__name__}", text
            )
        if text is None or not text.strip():
            raise CronFormatError("Cron expression is empty", text)

        normalized = " ".join(text.split())
        expanded = MACROS.get(normalized.lower())
        fields = normalized.split(" ")
        if expanded is None and len(fields) != fmt.value:
            raise CronFormatError(
                f"Cron expression {normalized!r} has {len(fields)} fields, "
                f"expected {fmt.value}",
                text,
            )

        try:
            if expanded is None:
                if fmt is CronFormat.STANDARD:
                    fields.insert(0, "0")
                fields[DAY_OF_MONTH_FIELD] = _normalize_day_of_month(fields[DAY_OF_MONTH_FIELD])
                fields[DAY_OF_WEEK_FIELD] = _normalize_day_of_week(fields[DAY_OF_WEEK_FIELD])
                expanded = " ".join(fields)
            _iterator(expanded, datetime.now(timezone.utc))
        except (ValueError, TypeError, KeyError) as e:
            raise CronFormatError(f"Invalid cron expression {normalized!r}: {e}", text) from e

        return cls(text=normalized, expanded=expanded, format=fmt)

    def next_occurrence(
        self,
        after: datetime,
        tz: Optional[tzinfo] = None,
    ) -> Optional[datetime]:
        """Find the first occurrence strictly after ``after``.

        Args:
            after: Reference instant; naive values are taken as UTC
            tz: Zone the schedule is evaluated in (defaults to ``after``'s zone)

        Returns:
            Aware datetime, or None if the schedule never fires again
        """
        start = _as_aware(after, tz)
        try:
            return _iterator(self.expanded, start).get_next(datetime)
        except CroniterBadDateError:
            return None

    def occurrences(
        self,
        start: datetime,
        count: int = 10,
        tz: Optional[tzinfo] = None,
    ) -> Iterator[datetime]:
        """Yield up to ``count`` successive occurrences after ``start``."""
        current = _as_aware(start, tz)
        iterator = _iterator(self.expanded, current)
        for _ in range(count):
            try:
                yield iterator.get_next(datetime)
            except CroniterBadDateError:
                return

    def __str__(self) -> str:
        return self.expanded


def _as_aware(value: datetime, tz: Optional[tzinfo]) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    if tz is not None:
        value = value.astimezone(tz)
    return value


def _weekday(token: str) -> str:
    token = token.upper()
    if token in WEEKDAYS:
        return str(WEEKDAYS[token])
    return "0" if token == "7" else token


def _normalize_day_of_month(field: str) -> str:
    if field == "?":
        return "*"
    for item in field.upper().split(","):
        if item == "LW" or item.startswith("L-"):
            raise ValueError(f"{item!r} in day-of-month is not supported")
    return field


def _normalize_day_of_week(field: str) -> str:
    if field == "?":
        return "*"

    items = []
    for item in field.upper().split(","):
        match = _RANGE_TO_SEVEN.fullmatch(item)
        if match:
            low = _weekday(match.group(1))
            if not low.isdigit():
                raise ValueError(f"invalid day-of-week range {item!r}")
            step = int(match.group(2) or 1)
            items.extend(_weekday(str(day)) for day in range(int(low), 8, step))
            continue

        match = _LAST_WEEKDAY.fullmatch(item)
        if match:
            items.append("L" + _weekday(match.group(1) or match.group(2)))
            continue

        match = _NTH_WEEKDAY.fullmatch(item)
        if match:
            items.append(f"{_weekday(match.group(1))}#{match.group(2)}")
            continue

        items.append(_weekday(item))

    # 7 and 0 both name Sunday
    return ",".join(dict.fromkeys(items))


def _iterator(expanded: str, start: datetime) -> croniter:
    second, rest = expanded.split(" ", 1)
    # croniter keeps seconds in the last field
    # day_or=False: day-of-month and day-of-week must both match
    return croniter(f"{rest} {second}", start, day_or=False)


# Common cron expressions
EVERY_SECOND = MACROS["@every_second"]
EVERY_MINUTE = MACROS["@every_minute"]
EVERY_HOUR = MACROS["@hourly"]
EVERY_DAY = MACROS["@daily"]
WORKDAY_9AM = "0 0 9 * * 1-5"


__all__ = [
    "CronExpression",
    "CronFormat",
    "MACROS",
    "EVERY_SECOND",
    "EVERY_MINUTE",
    "EVERY_HOUR",
    "EVERY_DAY",
    "WORKDAY_9AM",
]
