"""
Tool: Logical Day
Purpose: Map wall-clock time to the app's notion of "today"

The day rolls over at the configured daily start (e.g. 06:00), not at
midnight. At 01:30 with a 06:00 start it is still yesterday.

Usage:
    from tracker.tasks.logical_day import logical_date, start_of_logical_day

    logical_date(datetime(2025, 3, 15, 1, 30), 360)          # "2025-03-14"
    start_of_logical_day(datetime(2025, 3, 15, 15, 0), 360)  # 2025-03-15 06:00
"""

from datetime import date, datetime, time, timedelta

from .date_keys import format_date_key, parse_date_key


def logical_day(moment: datetime, daily_start_minutes: int) -> date:
    minutes = moment.hour * 60 + moment.minute + moment.second / 60
    day = moment.date()
    if minutes < daily_start_minutes:
        day -= timedelta(days=1)
    return day


def logical_date(moment: datetime, daily_start_minutes: int) -> str:
    """Logical date (YYYY-MM-DD) containing `moment`."""
    return format_date_key(logical_day(moment, daily_start_minutes))


def start_of_logical_day(moment: datetime, daily_start_minutes: int) -> datetime:
    """Datetime at which the logical day containing `moment` began."""
    day = logical_day(moment, daily_start_minutes)
    start = datetime.combine(day, time(daily_start_minutes // 60, daily_start_minutes % 60))
    return start.replace(tzinfo=moment.tzinfo)


def start_of_logical_day_from_key(key: str, daily_start_minutes: int) -> datetime:
    day = parse_date_key(key)
    return datetime.combine(day, time(daily_start_minutes // 60, daily_start_minutes % 60))


__all__ = [
    "logical_day",
    "logical_date",
    "start_of_logical_day",
    "start_of_logical_day_from_key",
]
