"""Weekday and occurrence arithmetic for recurring weekly classes.

Weekdays use the Sunday = 0 .. Saturday = 6 convention. Functions that depend
on the current instant accept ``now`` so they can be evaluated deterministically;
when omitted the current UTC instant is used.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone, tzinfo

WEEKDAY_NAMES = (
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
)

CANCEL_HOURS_BEFORE = 2
CHECKIN_MINUTES_BEFORE = 15
RECURRING_WEEKS = 4


def _now(now: datetime | None) -> datetime:
    return now if now is not None else datetime.now(timezone.utc)


def weekday_name(weekday: int) -> str:
    if not 0 <= weekday <= 6:
        raise ValueError(f"weekday out of range: {weekday}")
    return WEEKDAY_NAMES[weekday]


def weekday_number(name: str) -> int:
    try:
        return WEEKDAY_NAMES.index(name.strip().capitalize())
    except ValueError as exc:
        raise ValueError(f"unknown weekday: {name!r}") from exc


def to_weekday_number(moment: date) -> int:
    """Return the Sunday-based weekday number of a date or datetime."""
    return (moment.weekday() + 1) % 7


def monday_first_index(weekday: int) -> int:
    """Position of a weekday in a Monday-first week (Monday 0 .. Sunday 6)."""
    return (weekday - 1) % 7


def parse_time(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def combine_date_and_time(day: date, value: str, tz: tzinfo | None = None) -> datetime:
    if isinstance(day, datetime):
        day = day.date()
    return datetime.combine(day, parse_time(value), tzinfo=tz)


def hours_until(occurrence: datetime, now: datetime | None = None) -> int:
    """Whole hours left until the occurrence (negative once it has started)."""
    seconds = (occurrence - _now(now)).total_seconds()
    return int(seconds // 3600) if seconds >= 0 else -int(-seconds // 3600)


def minutes_until(occurrence: datetime, now: datetime | None = None) -> int:
    seconds = (occurrence - _now(now)).total_seconds()
    return int(seconds // 60) if seconds >= 0 else -int(-seconds // 60)


def can_cancel(
    occurrence: datetime,
    now: datetime | None = None,
    hours: int = CANCEL_HOURS_BEFORE,
) -> bool:
    """True when the occurrence starts at least ``hours`` from now (boundary included)."""
    return occurrence - _now(now) >= timedelta(hours=hours)


def is_class_past(occurrence: datetime, now: datetime | None = None) -> bool:
    return occurrence < _now(now)


def is_class_happening(occurrence: datetime, duration_minutes: int = 60, now: datetime | None = None) -> bool:
    """True from the check-in window before the start until the class ends."""
    current = _now(now)
    opens = occurrence - timedelta(minutes=CHECKIN_MINUTES_BEFORE)
    ends = occurrence + timedelta(minutes=duration_minutes)
    return opens < current < ends


def next_occurrence(weekday: int, start_time: str, now: datetime | None = None) -> datetime:
    """Next start of a weekly class, in the time zone of ``now``.

    Today's slot is returned while its start time has not passed yet; once it
    has, the class rolls over to the following week.
    """
    current = _now(now)
    days_ahead = (weekday - to_weekday_number(current)) % 7
    candidate = combine_date_and_time(current.date() + timedelta(days=days_ahead), start_time, current.tzinfo)
    if candidate <= current:
        candidate = combine_date_and_time(candidate.date() + timedelta(days=7), start_time, current.tzinfo)
    return candidate


def upcoming_occurrences(
    weekday: int,
    start_time: str,
    count: int = RECURRING_WEEKS,
    now: datetime | None = None,
) -> list[datetime]:
    first = next_occurrence(weekday, start_time, now)
    return [
        combine_date_and_time(first.date() + timedelta(weeks=week), start_time, first.tzinfo)
        for week in range(count)
    ]


def format_date(moment: date) -> str:
    return moment.strftime("%d/%m/%Y")


def format_datetime(moment: datetime) -> str:
    return moment.strftime("%d/%m/%Y at %H:%M")


def format_relative_date(moment: date, now: datetime | None = None) -> str:
    today = _now(now)
    if isinstance(moment, datetime) and moment.tzinfo is not None and today.tzinfo is not None:
        moment = moment.astimezone(today.tzinfo)
    day = moment.date() if isinstance(moment, datetime) else moment
    if day == today.date():
        return "Today"
    if day == today.date() + timedelta(days=1):
        return "Tomorrow"
    return format_date(day)


def format_duration(minutes: int) -> str:
    if minutes < 60:
        return f"{minutes}min"
    hours, remainder = divmod(minutes, 60)
    if remainder == 0:
        return f"{hours}h"
    return f"{hours}h {remainder}min"
