# Overview: Pure recurrence and pause-window predicates for subscription schedules.

"""
Subscription schedule rules.

Everything here is a pure function of (start date, target date, recurrence,
pause window). No database access, so the generator, the subscription
preview and the tests all share one definition of "is this a delivery day".

RECURRENCE:
    DAILY      every date on or after start
    ALTERNATE  every other day: (target - start).days is even
    WEEKLY     (target - start).days % 7 == 0

PAUSE WINDOW:
    Inclusive [pause_start, pause_end]. A date inside it is never a delivery
    day regardless of recurrence. A window missing either bound is ignored.

All inputs are normalized to calendar dates first, so a datetime carrying a
time of day cannot shift the day offset.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Optional, Union

RECURRENCE_DAILY = "DAILY"
RECURRENCE_ALTERNATE = "ALTERNATE"
RECURRENCE_WEEKLY = "WEEKLY"

# Day interval between consecutive delivery days
RECURRENCE_INTERVAL_DAYS = {
    RECURRENCE_DAILY: 1,
    RECURRENCE_ALTERNATE: 2,
    RECURRENCE_WEEKLY: 7,
}

# Accepted spellings from API payloads
_RECURRENCE_ALIASES = {
    "daily": RECURRENCE_DAILY,
    "alternate": RECURRENCE_ALTERNATE,
    "every-other-day": RECURRENCE_ALTERNATE,
    "every_other_day": RECURRENCE_ALTERNATE,
    "weekly": RECURRENCE_WEEKLY,
}

DateLike = Union[date, datetime]


def _as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def normalize_recurrence(value: str | None) -> str:
    """
    Map an API spelling ("daily", "every-other-day", "WEEKLY", ...) to the
    canonical constant.

    Raises:
        ValueError: unknown recurrence
    """
    key = (value or "").strip()
    if key.upper() in RECURRENCE_INTERVAL_DAYS:
        return key.upper()
    canonical = _RECURRENCE_ALIASES.get(key.lower())
    if canonical is None:
        raise ValueError(
            f"Invalid recurrence '{value}'. Must be one of: daily, every-other-day, weekly"
        )
    return canonical


def is_in_pause_window(
    target: DateLike,
    pause_start: Optional[DateLike],
    pause_end: Optional[DateLike],
) -> bool:
    if pause_start is None or pause_end is None:
        return False
    day = _as_date(target)
    return _as_date(pause_start) <= day <= _as_date(pause_end)


def matches_recurrence(start: DateLike, target: DateLike, recurrence: str) -> bool:
    """Recurrence rule alone, ignoring pause windows."""
    start_day = _as_date(start)
    target_day = _as_date(target)
    if target_day < start_day:
        return False

    interval = RECURRENCE_INTERVAL_DAYS.get((recurrence or "").upper())
    if interval is None:
        return False

    offset = (target_day - start_day).days
    return offset % interval == 0


def is_delivery_day(
    start: DateLike,
    target: DateLike,
    recurrence: str,
    pause_start: Optional[DateLike] = None,
    pause_end: Optional[DateLike] = None,
) -> bool:
    if is_in_pause_window(target, pause_start, pause_end):
        return False
    return matches_recurrence(start, target, recurrence)


def upcoming_delivery_dates(
    start: DateLike,
    recurrence: str,
    count: int,
    *,
    from_date: Optional[DateLike] = None,
    pause_start: Optional[DateLike] = None,
    pause_end: Optional[DateLike] = None,
) -> list[date]:
    """
    Next `count` delivery days on or after from_date (default: start).

    Steps along the recurrence grid anchored at start, skipping dates inside
    the pause window.
    """
    if count <= 0:
        return []

    interval = RECURRENCE_INTERVAL_DAYS.get((recurrence or "").upper())
    if interval is None:
        return []

    start_day = _as_date(start)
    cursor = start_day
    if from_date is not None and _as_date(from_date) > start_day:
        # Jump to the first grid date on or after from_date
        gap = (_as_date(from_date) - start_day).days
        steps = -(-gap // interval)
        cursor = start_day + timedelta(days=steps * interval)

    dates: list[date] = []
    while len(dates) < count:
        if not is_in_pause_window(cursor, pause_start, pause_end):
            dates.append(cursor)
        cursor += timedelta(days=interval)
    return dates
