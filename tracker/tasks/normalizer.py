"""
Tool: Task Normalizer
Purpose: Turn the persisted task list into valid models, back-filling old records

Runs once per load, over the whole list. Older versions of the app stored
tasks without a streak, stages without timing or status, and instances
without a status. Everything that has to be filled in or dropped sets the
`changed` flag so the host can write the repaired list back right away.

Never raises for malformed data; unusable records are dropped and logged.

Usage:
    from tracker.tasks.normalizer import normalize_tasks

    result = normalize_tasks(storage.load(), now=datetime.now(), daily_start_minutes=360)
    if result.changed:
        storage.save(result.tasks)
"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, Union

from tracker.logging_config import get_logger

from . import DEFAULT_DAILY_START_MINUTES
from .logical_day import logical_date
from .models import Comment, Priority, Recurrence, RecurrenceInstance, Task, TaskStatus
from .stages import coerce_stage_id, normalize_stages
from .streak import LogicalDateFn, compute_streak

logger = get_logger(__name__)


@dataclass(frozen=True)
class TaskListNormalization:
    tasks: list[Task]
    changed: bool


def _parse_task_status(value: Any, completed_at: Optional[str]) -> tuple[TaskStatus, bool]:
    try:
        return TaskStatus(value), False
    except ValueError:
        # Very old instances only carried completedAt
        return (TaskStatus.COMPLETED if completed_at else TaskStatus.PENDING), True


def _parse_priority(value: Any) -> tuple[Priority, bool]:
    try:
        return Priority(value), False
    except ValueError:
        return Priority.MEDIUM, True


def _sequence(raw: Any, what: str) -> tuple[list[Any], bool]:
    """A persisted list field; anything that is not a list is treated as empty."""
    if isinstance(raw, (list, tuple)):
        return list(raw), False
    if raw is None:
        return [], False
    logger.warning(f"Ignoring {what} that is not a list: {type(raw).__name__}")
    return [], True


def _parse_comments(raw: Any) -> tuple[tuple[Comment, ...], bool]:
    if raw is None:
        return (), True
    items, changed = _sequence(raw, "comments")
    comments = []
    for item in items:
        if not isinstance(item, Mapping) or coerce_stage_id(item.get("id")) is None:
            changed = True
            continue
        comments.append(Comment.from_dict({**item, "id": coerce_stage_id(item.get("id"))}))
    return tuple(comments), changed


def _parse_instance(raw: Mapping[str, Any], now: datetime) -> tuple[RecurrenceInstance, bool]:
    raw_stages, malformed = _sequence(raw.get("stages"), "instance stages")
    stages = normalize_stages(raw_stages, now)
    completed_at = raw.get("completedAt")
    status, status_changed = _parse_task_status(raw.get("status"), completed_at)
    instance = RecurrenceInstance(
        stages=stages.stages,
        status=status,
        started_at=raw.get("startedAt"),
        completed_at=completed_at,
    )
    return instance, stages.changed or status_changed or malformed or "stages" not in raw


def _recurrence_repaired(raw: Mapping[str, Any], recurrence: Recurrence) -> bool:
    """True when list fields of the stored pattern lost entries while parsing."""
    for key, parsed in (
        ("days", recurrence.days),
        ("dates", recurrence.dates),
        ("weekOfMonth", recurrence.week_of_month),
        ("weekdays", recurrence.weekdays),
    ):
        stored = raw.get(key)
        if stored is not None and stored != list(parsed):
            return True
    return False


def parse_task(raw: Mapping[str, Any], now: datetime) -> tuple[Optional[Task], bool]:
    """
    Build a Task from one persisted record.

    Returns:
        (task, changed); task is None when the record has no usable id
    """
    task_id = coerce_stage_id(raw.get("id"))
    if task_id is None:
        logger.warning("Dropping persisted task without an id")
        return None, True

    changed = False
    priority, repaired = _parse_priority(raw.get("priority"))
    changed |= repaired
    comments, repaired = _parse_comments(raw.get("comments"))
    changed |= repaired

    task = Task(
        id=task_id,
        title=str(raw.get("title") or ""),
        for_date=raw.get("forDate"),
        description=raw.get("description"),
        priority=priority,
        category_id=raw.get("categoryId"),
        is_backlog=bool(raw.get("isBacklog", False)),
        created_at=raw.get("createdAt"),
        updated_at=raw.get("updatedAt"),
        is_pinned=bool(raw.get("isPinned", False)),
        pin_timestamp=raw.get("pinTimestamp"),
        comments=comments,
    )

    recurrence = raw.get("recurrence")
    if isinstance(recurrence, Mapping):
        raw_instances = raw.get("recurrenceInstances")
        if raw_instances is None:
            raw_instances = {}
        elif not isinstance(raw_instances, Mapping):
            logger.warning(f"Task {task_id}: ignoring recurrenceInstances that is not an object")
            raw_instances = {}
            changed = True

        instances: dict[str, RecurrenceInstance] = {}
        for key, value in raw_instances.items():
            if not isinstance(value, Mapping):
                logger.warning(f"Task {task_id}: dropping malformed instance {key!r}")
                changed = True
                continue
            instance, repaired = _parse_instance(value, now)
            instances[str(key)] = instance
            changed |= repaired

        streak = raw.get("streak")
        if not isinstance(streak, int) or isinstance(streak, bool):
            streak = None
            changed = True

        parsed_recurrence = Recurrence.from_dict(recurrence)
        changed |= _recurrence_repaired(recurrence, parsed_recurrence)

        task = replace(
            task,
            recurrence=parsed_recurrence,
            stages=(),
            status=None,
            recurrence_instances=instances,
            streak=streak,
        )
        return task, changed

    raw_stages, malformed = _sequence(raw.get("stages"), "stages")
    stages = normalize_stages(raw_stages, now)
    status, repaired = _parse_task_status(raw.get("status"), raw.get("completedAt"))
    task = replace(
        task,
        stages=stages.stages,
        status=status,
        started_at=raw.get("startedAt"),
        completed_at=raw.get("completedAt"),
    )
    return task, changed or repaired or malformed or stages.changed


def normalize_tasks(
    raw_tasks: Optional[Iterable[Union[Task, Mapping[str, Any], None]]],
    *,
    now: datetime,
    daily_start_minutes: int = DEFAULT_DAILY_START_MINUTES,
    leave_days: Iterable[str] = (),
    logical_date_fn: LogicalDateFn = logical_date,
) -> TaskListNormalization:
    """
    Normalize a whole task list and refresh every recurring task's streak.

    Args:
        raw_tasks: Records from storage (dicts) or already-built Task values
        now: Current time (createdAt back-fill and streak)
        daily_start_minutes: Logical-day boundary for the streak
        leave_days: Dates excluded from the streak
        logical_date_fn: Logical-day collaborator

    Returns:
        TaskListNormalization with the tasks and a `changed` flag
    """
    leave_days = list(leave_days)
    tasks: list[Task] = []
    changed = False

    for raw in raw_tasks or ():
        if isinstance(raw, Task):
            raw = raw.to_dict()
        if not isinstance(raw, Mapping):
            logger.warning("Dropping persisted task that is not an object")
            changed = True
            continue

        task, repaired = parse_task(raw, now)
        changed |= repaired
        if task is None:
            continue

        if task.is_recurring:
            streak = compute_streak(
                task,
                daily_start_minutes,
                now=now,
                leave_days=leave_days,
                logical_date_fn=logical_date_fn,
            )
            if streak != task.streak:
                task = replace(task, streak=streak)
                changed = True

        tasks.append(task)

    if changed:
        logger.info(f"Normalized {len(tasks)} task(s); repaired data needs saving")
    return TaskListNormalization(tasks=tasks, changed=changed)


__all__ = [
    "TaskListNormalization",
    "parse_task",
    "normalize_tasks",
]
