"""Date arithmetic helpers — pure functions, no I/O.

All calendar dates in CampShare are whole days. Anything carrying a time of
day is reduced to its date before it is stored or compared.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta, tzinfo


def strip_time(value: date | datetime | str, tz: tzinfo | None = None) -> date:
    """Reduce a date, datetime or ISO string to a plain date.

    Timezone-aware datetimes are first converted to ``tz`` (when given), so a
    midnight serialized as UTC by a browser lands on the intended local day.

    Raises ValueError on strings that are not ISO dates.
    """
    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("empty date string")
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        value = datetime.fromisoformat(text)

    if isinstance(value, datetime):
        if tz is not None and value.tzinfo is not None:
            value = value.astimezone(tz)
        return value.date()
    if isinstance(value, date):
        return value
    raise ValueError(f"Not a date: {value!r}")


def days_between(start: date, end: date) -> int:
    """Whole-day difference ``end - start`` (negative if end is earlier)."""
    return (end - start).days


def weekday_ordinal(d: date) -> int:
    """1-based occurrence of d's weekday within its month (2nd Saturday -> 2)."""
    return (d.day - 1) // 7 + 1


def nth_weekday_of_month(year: int, month: int, weekday: int, n: int) -> date:
    """Return the n-th ``weekday`` (Monday=0) of the given month.

    When the month has fewer than n occurrences, the last occurrence is
    returned instead of rolling into the following month.
    """
    if n < 1:
        raise ValueError(f"Occurrence must be >= 1, got {n}")
    first = date(year, month, 1)
    first_match = first + timedelta(days=(weekday - first.weekday()) % 7)
    candidate = first_match + timedelta(weeks=n - 1)
    while candidate.month != month:
        candidate -= timedelta(weeks=1)
    return candidate


def ordinal_suffix(n: int) -> str:
    """1 -> '1st', 2 -> '2nd', 11 -> '11th', 23 -> '23rd'."""
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def describe_relative_position(d: date) -> str:
    """Human label such as '2nd Saturday of August'."""
    return (
        f"{ordinal_suffix(weekday_ordinal(d))} "
        f"{calendar.day_name[d.weekday()]} of {calendar.month_name[d.month]}"
    )


def add_days(d: date, days: int) -> date:
    return d + timedelta(days=days)
