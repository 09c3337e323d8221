"""
Tool: Streak Calculator
Purpose: Count consecutive completed occurrences of a recurring task

The walk starts at the logical today and goes back one day at a time:
    - days the pattern does not schedule are skipped
    - leave days are skipped (they neither count nor break the streak)
    - a scheduled, completed day adds one
    - a scheduled day that is not completed ends the streak, except
      today, which is still in progress and carries no penalty

Usage:
    from tracker.tasks.streak import compute_streak

    task = replace(task, streak=compute_streak(task, 360, now=datetime.now()))
"""

from datetime import date, datetime, timedelta
from typing import Callable, Iterable, Optional

from .date_keys import format_date_key, normalize_date_key, parse_date_key
from .instances import resolve
from .logical_day import logical_date
from .models import Task, TaskStatus
from .recurrence import occurs_on
from .stages import derive_status

LogicalDateFn = Callable[[datetime, int], str]

LEAVE = "Leave"


def occurrence_status(task: Task, key: str) -> TaskStatus:
    """
    Status of the occurrence on `key`.

    Re-derived from its stored stages; occurrences without stages (toggled
    directly) keep their stored status.
    """
    instance = resolve(task, key)
    if not instance.stages:
        return instance.status
    return derive_status(instance.stages, instance.status, is_adding_stage=False)


def _bounds(task: Task, now: datetime, daily_start_minutes: int, logical_date_fn: LogicalDateFn) -> Optional[tuple[date, date]]:
    if task.recurrence is None:
        return None
    try:
        start = parse_date_key(task.recurrence.start_date)
        today = parse_date_key(logical_date_fn(now, daily_start_minutes))
    except ValueError:
        return None
    return start, today


def compute_streak(
    task: Task,
    daily_start_minutes: int,
    *,
    now: datetime,
    leave_days: Iterable[str] = (),
    logical_date_fn: LogicalDateFn = logical_date,
) -> int:
    """
    Consecutive-completion streak ending at (or just before) the logical today.

    Args:
        task: The task (non-recurring tasks always return 0)
        daily_start_minutes: Minutes after midnight at which the logical day starts
        now: Current wall-clock time
        leave_days: Dates excluded from the walk
        logical_date_fn: Logical-day collaborator

    Returns:
        Streak count, >= 0
    """
    bounds = _bounds(task, now, daily_start_minutes, logical_date_fn)
    if bounds is None:
        return 0
    start, today = bounds

    leave = {normalize_date_key(d) for d in leave_days}
    streak = 0
    day = today
    while day >= start:
        key = format_date_key(day)
        if key not in leave and occurs_on(task.recurrence, key):
            if occurrence_status(task, key) == TaskStatus.COMPLETED:
                streak += 1
            elif day != today:
                break
        day -= timedelta(days=1)

    return streak


def recent_occurrence_statuses(
    task: Task,
    daily_start_minutes: int,
    *,
    now: datetime,
    leave_days: Iterable[str] = (),
    limit: Optional[int] = None,
    logical_date_fn: LogicalDateFn = logical_date,
) -> list[dict[str, str]]:
    """
    Statuses of past scheduled occurrences, newest first, for the streak display.

    Today is excluded. Leave days are reported as "Leave".

    Returns:
        [{"date": "2025-01-14", "status": "Completed"}, ...]
    """
    bounds = _bounds(task, now, daily_start_minutes, logical_date_fn)
    if bounds is None:
        return []
    start, today = bounds

    leave = {normalize_date_key(d) for d in leave_days}
    history: list[dict[str, str]] = []
    day = today - timedelta(days=1)
    while day >= start and (limit is None or len(history) < limit):
        key = format_date_key(day)
        if occurs_on(task.recurrence, key):
            status = LEAVE if key in leave else occurrence_status(task, key).value
            history.append({"date": key, "status": status})
        day -= timedelta(days=1)

    return history


__all__ = [
    "LogicalDateFn",
    "LEAVE",
    "occurrence_status",
    "compute_streak",
    "recent_occurrence_statuses",
]
