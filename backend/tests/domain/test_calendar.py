from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest
from gymbook.domain import calendar as cal

SAO_PAULO = ZoneInfo("America/Sao_Paulo")


def test_weekday_names_use_sunday_first() -> None:
    assert cal.weekday_name(0) == "Sunday"
    assert cal.weekday_name(1) == "Monday"
    assert cal.weekday_number("saturday") == 6
    with pytest.raises(ValueError):
        cal.weekday_name(7)


def test_to_weekday_number_converts_python_weekday() -> None:
    # 2024-06-02 is a Sunday, 2024-06-03 a Monday
    assert cal.to_weekday_number(date(2024, 6, 2)) == 0
    assert cal.to_weekday_number(date(2024, 6, 3)) == 1
    assert cal.to_weekday_number(date(2024, 6, 8)) == 6


def test_can_cancel_boundary_is_inclusive() -> None:
    now = datetime(2024, 6, 3, 10, 0, tzinfo=timezone.utc)
    assert cal.can_cancel(now + timedelta(hours=2), now)
    assert not cal.can_cancel(now + timedelta(hours=1, minutes=59, seconds=59), now)
    assert cal.can_cancel(now + timedelta(days=1), now)


def test_next_occurrence_same_day_before_start() -> None:
    now = datetime(2024, 6, 3, 6, 0, tzinfo=SAO_PAULO)  # Monday
    assert cal.next_occurrence(1, "07:00", now) == datetime(2024, 6, 3, 7, 0, tzinfo=SAO_PAULO)


def test_next_occurrence_rolls_over_once_started() -> None:
    now = datetime(2024, 6, 3, 7, 0, tzinfo=SAO_PAULO)
    assert cal.next_occurrence(1, "07:00", now) == datetime(2024, 6, 10, 7, 0, tzinfo=SAO_PAULO)


def test_next_occurrence_later_in_week() -> None:
    now = datetime(2024, 6, 3, 12, 0, tzinfo=SAO_PAULO)
    assert cal.next_occurrence(5, "19:00", now) == datetime(2024, 6, 7, 19, 0, tzinfo=SAO_PAULO)
    assert cal.next_occurrence(0, "08:00", now) == datetime(2024, 6, 9, 8, 0, tzinfo=SAO_PAULO)


def test_upcoming_occurrences_are_weekly() -> None:
    now = datetime(2024, 6, 3, 12, 0, tzinfo=SAO_PAULO)
    dates = cal.upcoming_occurrences(2, "19:00", count=4, now=now)
    assert [d.date() for d in dates] == [
        date(2024, 6, 4),
        date(2024, 6, 11),
        date(2024, 6, 18),
        date(2024, 6, 25),
    ]


def test_is_class_happening_opens_at_check_in() -> None:
    start = datetime(2024, 6, 3, 18, 0, tzinfo=timezone.utc)
    assert cal.is_class_happening(start, 60, start - timedelta(minutes=10))
    assert not cal.is_class_happening(start, 60, start - timedelta(minutes=20))
    assert not cal.is_class_happening(start, 60, start + timedelta(minutes=61))
    assert cal.is_class_past(start, start + timedelta(seconds=1))


def test_hours_and_minutes_until() -> None:
    now = datetime(2024, 6, 3, 10, 0, tzinfo=timezone.utc)
    assert cal.hours_until(now + timedelta(hours=5, minutes=30), now) == 5
    assert cal.minutes_until(now + timedelta(minutes=90), now) == 90


def test_formatting_helpers() -> None:
    now = datetime(2024, 6, 3, 10, 0, tzinfo=timezone.utc)
    assert cal.format_date(date(2024, 6, 3)) == "03/06/2024"
    assert cal.format_datetime(datetime(2024, 6, 3, 7, 5)) == "03/06/2024 at 07:05"
    assert cal.format_relative_date(date(2024, 6, 3), now) == "Today"
    assert cal.format_relative_date(date(2024, 6, 4), now) == "Tomorrow"
    assert cal.format_relative_date(date(2024, 6, 10), now) == "10/06/2024"
    assert cal.format_duration(45) == "45min"
    assert cal.format_duration(60) == "1h"
    assert cal.format_duration(90) == "1h 30min"
