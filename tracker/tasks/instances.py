"""
Tool: Recurrence Instance Store
Purpose: Read and write the per-date state of a recurring task

A recurring task owns a map of date key -> RecurrenceInstance. Instances are
created lazily the first time a date is edited and are only removed together
with the task. Every write returns a new Task; sibling instances are shared,
not copied or modified.

Usage:
    from tracker.tasks.instances import resolve, write, enumerate_occurrence_dates

    instance = resolve(task, "2025-01-15")
    task = write(task, "2025-01-15", {"status": TaskStatus.COMPLETED})
    for day in enumerate_occurrence_dates(task):
        ...
"""

import logging
from dataclasses import replace
from typing import Any, Callable, Iterable, Mapping, Optional

from . import MAX_RECURRING_DAYS
from .date_keys import find_by_any_key, is_canonical, matching_keys, normalize_date_key
from .models import Recurrence, RecurrenceInstance, Task, TaskStatus
from .recurrence import occurrence_dates, occurs_on

logger = logging.getLogger(__name__)

# Expands a recurrence pattern into canonical date keys
DateExpander = Callable[[Recurrence], Iterable[str]]


def resolve(task: Task, day: str) -> RecurrenceInstance:
    """
    State of `task` on `day`.

    Recurring tasks look up the canonical key first, then any stored key that
    normalizes to the same date, then fall back to an empty Pending instance.
    Non-recurring tasks return their direct stages and status.
    """
    if not task.is_recurring:
        return RecurrenceInstance(
            stages=task.stages,
            status=task.status or TaskStatus.PENDING,
            started_at=task.started_at,
            completed_at=task.completed_at,
        )

    key = normalize_date_key(day)
    instance = find_by_any_key(task.recurrence_instances, key)
    return instance if instance is not None else RecurrenceInstance()


def write(task: Task, day: str, patch: Mapping[str, Any]) -> Task:
    """
    Merge `patch` into the state of `task` on `day` and return the new task.

    `patch` keys are RecurrenceInstance field names (stages, status,
    started_at, completed_at). For recurring tasks the merged instance is
    stored under the canonical key and older aliases of the same date are
    folded into it; other dates are untouched.
    """
    merged = replace(resolve(task, day), **patch)

    if not task.is_recurring:
        return replace(
            task,
            stages=merged.stages,
            status=merged.status,
            started_at=merged.started_at,
            completed_at=merged.completed_at,
        )

    key = normalize_date_key(day)
    instances = dict(task.recurrence_instances)
    for alias in matching_keys(instances, key):
        if alias != key:
            del instances[alias]
    instances[key] = merged
    return replace(task, recurrence_instances=instances)


def enumerate_occurrence_dates(
    task: Task,
    expand: Optional[DateExpander] = None,
    max_days: int = MAX_RECURRING_DAYS,
) -> list[str]:
    """
    Every date the task has an occurrence on, sorted.

    Combines the dates produced by the recurrence pattern with dates that
    already have stored state (so history outside the current pattern still
    receives propagated edits).
    """
    if task.recurrence is None:
        return []

    if expand is None:
        dates = set(occurrence_dates(task.recurrence, max_days=max_days))
    else:
        dates = set(expand(task.recurrence))

    for key in task.recurrence_instances:
        normalized = normalize_date_key(key)
        if is_canonical(normalized):
            dates.add(normalized)

    return sorted(dates)


def migrate_instance_keys(task: Task) -> tuple[Task, bool]:
    """
    One-time migration: re-key instances stored under non-canonical dates.

    When both a canonical and an aliased record exist for a date, the
    canonical record is kept. Keys that cannot be parsed are left alone.

    Returns:
        (task, changed)
    """
    if not task.recurrence_instances:
        return task, False

    instances: dict[str, RecurrenceInstance] = {}
    changed = False
    for key, instance in task.recurrence_instances.items():
        canonical = normalize_date_key(key)
        if canonical == key or not is_canonical(canonical):
            instances[key] = instance
            continue

        changed = True
        if canonical in task.recurrence_instances or canonical in instances:
            logger.debug(f"Task {task.id}: dropping alias {key!r}, {canonical} already stored")
            continue
        instances[canonical] = instance

    if not changed:
        return task, False
    return replace(task, recurrence_instances=instances), True


def expand_task_for_date(task: Task, day: str) -> Optional[Task]:
    """
    The view of `task` on `day`, or None if it does not appear that day.

    Recurring tasks come back with that date's stages, status and timestamps
    filled into the direct fields and `for_date` set to the canonical date.
    Comments and streak are shared and passed through.
    """
    if task.recurrence is None:
        return task if task.for_date == day else None

    key = normalize_date_key(day)
    if not occurs_on(task.recurrence, key):
        return None

    instance = resolve(task, key)
    return replace(
        task,
        for_date=key,
        stages=instance.stages,
        status=instance.status,
        started_at=instance.started_at,
        completed_at=instance.completed_at,
    )


def expand_tasks_for_date(tasks: Iterable[Task], day: str) -> list[Task]:
    """All tasks appearing on `day`, recurring ones expanded."""
    expanded = []
    for task in tasks:
        view = expand_task_for_date(task, day)
        if view is not None:
            expanded.append(view)
    return expanded


__all__ = [
    "DateExpander",
    "resolve",
    "write",
    "enumerate_occurrence_dates",
    "migrate_instance_keys",
    "expand_task_for_date",
    "expand_tasks_for_date",
]
