"""
Tool: Recurrence Patterns
Purpose: Decide whether a recurring task falls on a date and expand its dates

Supported patterns:
    daily:   every day between startDate and endDate
    weekly:  selected weekdays (0 = Sunday ... 6 = Saturday)
    monthly: selected days of month (mode "date"), or the Nth / last weekday
             of the month (mode "weekday", weekOfMonth 1..4 or -1)

Open-ended patterns are expanded MAX_RECURRING_DAYS past their start.

Usage:
    from tracker.tasks.recurrence import occurs_on, occurrence_dates

    occurs_on(task.recurrence, "2025-01-15")
    occurrence_dates(task.recurrence)  # ["2025-01-01", "2025-01-02", ...]

Dependencies:
    - python-dateutil (rrule expansion)
"""

import calendar
import logging
from datetime import date, datetime, time, timedelta
from typing import Union

from dateutil.rrule import DAILY, FR, MO, MONTHLY, SA, SU, TH, TU, WE, WEEKLY, rrule

from . import MAX_RECURRING_DAYS
from .date_keys import format_date_key, parse_date_key
from .models import MonthlyMode, Recurrence, RecurrenceType

logger = logging.getLogger(__name__)

# Indexed by the stored weekday number (0 = Sunday)
RRULE_WEEKDAYS = (SU, MO, TU, WE, TH, FR, SA)

LAST_WEEK_OF_MONTH = -1


def js_weekday(day: date) -> int:
    """Weekday number as stored in recurrence records (0 = Sunday)."""
    return (day.weekday() + 1) % 7


def week_of_month(day: date) -> int:
    """
    Which occurrence of its weekday `day` is within the month.

    The last occurrence always reports -1, even when it is also the 4th.
    Earlier occurrences report 1..4.
    """
    days_in_month = calendar.monthrange(day.year, day.month)[1]
    if day.day + 7 > days_in_month:
        return LAST_WEEK_OF_MONTH
    return min((day.day - 1) // 7 + 1, 4)


def _as_date(value: Union[str, date]) -> date:
    return value if isinstance(value, date) else parse_date_key(value)


def occurs_on(recurrence: Recurrence, target: Union[str, date]) -> bool:
    """Check if a recurring task should appear on `target`."""
    try:
        day = _as_date(target)
    except ValueError:
        return False

    key = format_date_key(day)
    if key < recurrence.start_date:
        return False
    if recurrence.end_date and key > recurrence.end_date:
        return False

    if recurrence.type == RecurrenceType.DAILY:
        return True

    if recurrence.type == RecurrenceType.WEEKLY:
        return js_weekday(day) in recurrence.days

    if recurrence.mode == MonthlyMode.DATE:
        return day.day in recurrence.dates

    if js_weekday(day) not in recurrence.weekdays:
        return False
    return week_of_month(day) in recurrence.week_of_month


def _build_rule(recurrence: Recurrence, start: datetime, until: datetime) -> "rrule | None":
    if recurrence.type == RecurrenceType.DAILY:
        return rrule(DAILY, dtstart=start, until=until)

    if recurrence.type == RecurrenceType.WEEKLY:
        weekdays = [RRULE_WEEKDAYS[d] for d in recurrence.days if 0 <= d <= 6]
        if not weekdays:
            return None
        return rrule(WEEKLY, dtstart=start, until=until, byweekday=weekdays)

    if recurrence.mode == MonthlyMode.DATE:
        month_days = [d for d in recurrence.dates if 1 <= d <= 31]
        if not month_days:
            return None
        return rrule(MONTHLY, dtstart=start, until=until, bymonthday=month_days)

    # Nth weekday; occurs_on() later drops a 4th weekday that is also the last
    nth_weekdays = [
        RRULE_WEEKDAYS[d](n)
        for d in recurrence.weekdays
        if 0 <= d <= 6
        for n in recurrence.week_of_month
        if n in (1, 2, 3, 4, LAST_WEEK_OF_MONTH)
    ]
    if not nth_weekdays:
        return None
    return rrule(MONTHLY, dtstart=start, until=until, byweekday=nth_weekdays)


def occurrence_dates(recurrence: Recurrence, max_days: int = MAX_RECURRING_DAYS) -> list[str]:
    """
    All YYYY-MM-DD dates the pattern produces.

    Args:
        recurrence: The pattern
        max_days: Horizon for patterns without an end date

    Returns:
        Sorted list of canonical date keys (empty if the start date is invalid)
    """
    try:
        start = parse_date_key(recurrence.start_date)
    except ValueError:
        logger.warning(f"Recurrence has invalid start date {recurrence.start_date!r}")
        return []

    if recurrence.end_date:
        try:
            end = parse_date_key(recurrence.end_date)
        except ValueError:
            end = start + timedelta(days=max_days)
    else:
        end = start + timedelta(days=max_days)

    if end < start:
        return []

    rule = _build_rule(recurrence, datetime.combine(start, time()), datetime.combine(end, time()))
    if rule is None:
        return []

    return [format_date_key(dt) for dt in rule if occurs_on(recurrence, dt.date())]


__all__ = [
    "RRULE_WEEKDAYS",
    "LAST_WEEK_OF_MONTH",
    "js_weekday",
    "week_of_month",
    "occurs_on",
    "occurrence_dates",
]
