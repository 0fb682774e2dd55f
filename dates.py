# dates.py
# -----------------------------------------------------------------------------
# Gregorian month helpers for the calendar view.
# Dates travel as zero-padded "YYYY-MM-DD" strings; comparing those strings is
# the same as comparing the dates, which the day filter and ordering rely on.
# -----------------------------------------------------------------------------

from __future__ import annotations

import calendar
from datetime import date
from typing import List, Tuple

WEEKDAY_LABELS: List[str] = ["일", "월", "화", "수", "목", "금", "토"]

# Sunday-first weeks.
_SUNDAY_CAL = calendar.Calendar(firstweekday=6)


def format_date(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}-{d.day:02d}"


def normalize_month(year: int, month: int) -> Tuple[int, int]:
    """Fold an out-of-range month (0, 13, -1, ...) into (year, 1..12)."""
    y, m0 = divmod(month - 1, 12)
    return year + y, m0 + 1


def step_month(year: int, month: int, delta: int) -> Tuple[int, int]:
    """Move the visible month by `delta` with year rollover."""
    return normalize_month(year, month + delta)


def days_in_month(year: int, month: int) -> int:
    """
    Day count for `month` (1-12, out-of-range months roll over).
    Equivalent to "day 0 of the following month".
    """
    year, month = normalize_month(year, month)
    return calendar.monthrange(year, month)[1]


def first_weekday(year: int, month: int) -> int:
    """Weekday of the 1st with Sunday=0 ... Saturday=6."""
    return month_weeks(year, month)[0].count(0)


def month_weeks(year: int, month: int) -> List[List[int]]:
    """Sunday-first week rows; 0 marks a day outside the month."""
    year, month = normalize_month(year, month)
    return _SUNDAY_CAL.monthdayscalendar(year, month)


def clamp_day(year: int, month: int, day: int) -> date:
    """Build a date, pulling `day` back into the month if it overflows."""
    year, month = normalize_month(year, month)
    return date(year, month, max(1, min(day, days_in_month(year, month))))


def month_title(year: int, month: int) -> str:
    return f"{year}년 {month}월"


def day_title(d: date) -> str:
    return f"{d.month}월 {d.day}일 일정"
