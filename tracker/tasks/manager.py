"""
Tool: Task Manager
Purpose: Task list operations called by the UI, plus a CLI over stored tasks

Every operation takes the current task list and returns a new one; the
caller is expected to save it. Unknown ids and invalid arguments are logged
and leave the list unchanged.

Operations:
- add_task / delete_task / update_task_fields
- toggle_task_status (Pending -> In Progress -> Completed -> Pending)
- apply_stage_edit (delegates to tracker.tasks.sync)
- add_or_edit_comment / delete_comment
- toggle_pin

Usage:
    python -m tracker.tasks.manager --action add --title "Morning routine" --date 2025-01-15 --recurrence '{"type": "daily", "startDate": "2025-01-15"}'
    python -m tracker.tasks.manager --action list --date 2025-01-15
    python -m tracker.tasks.manager --action edit-stages --task-id 123 --date 2025-01-15 --stages '[{"id": 1, "text": "Stretch"}]' --sync-mode all
    python -m tracker.tasks.manager --action toggle-status --task-id 123 --date 2025-01-15
    python -m tracker.tasks.manager --action comment --task-id 123 --text "felt good"
    python -m tracker.tasks.manager --action pin --task-id 123
    python -m tracker.tasks.manager --action history --task-id 123
    python -m tracker.tasks.manager --action migrate-keys

Dependencies:
    - pydantic, PyYAML (configuration)
    - structlog (logging)

Output:
    JSON result with success status and data
"""

import argparse
import json
import sys
from dataclasses import replace
from datetime import datetime
from functools import partial
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from tracker.config_models import load_and_validate
from tracker.logging_config import bind_run_context, get_logger, setup_logging

from . import DEFAULT_DAILY_START_MINUTES, PRIORITIES, SYNC_MODES
from .date_keys import is_canonical, normalize_date_key
from .instances import DateExpander, expand_tasks_for_date, migrate_instance_keys, resolve, write
from .logical_day import logical_date
from .models import Comment, Priority, Recurrence, RecurrenceInstance, SyncMode, Task, TaskStatus
from .normalizer import normalize_tasks
from .recurrence import occurrence_dates
from .stages import RawStage
from .storage import TaskStorage
from .streak import compute_streak, recent_occurrence_statuses
from .sync import apply_stage_edit as apply_stage_edit_to_task
from .sync import occurrence_patch

logger = get_logger(__name__)

UPDATABLE_FIELDS = ("title", "description", "priority", "category_id", "for_date", "is_backlog", "recurrence")

STATUS_CYCLE = {
    TaskStatus.PENDING: TaskStatus.IN_PROGRESS,
    TaskStatus.IN_PROGRESS: TaskStatus.COMPLETED,
    TaskStatus.COMPLETED: TaskStatus.PENDING,
}


def generate_id(existing: Iterable[int], now: datetime) -> int:
    """Millisecond creation timestamp, bumped until unique."""
    taken = set(existing)
    new_id = int(now.timestamp() * 1000)
    while new_id in taken:
        new_id += 1
    return new_id


def find_task(tasks: Iterable[Task], task_id: int) -> Optional[Task]:
    return next((task for task in tasks if task.id == task_id), None)


def _update_task(tasks: list[Task], task_id: int, update: Callable[[Task], Task]) -> list[Task]:
    updated = []
    found = False
    for task in tasks:
        if task.id == task_id:
            found = True
            task = update(task)
        updated.append(task)
    if not found:
        logger.warning(f"Task not found: {task_id}")
    return updated


def _touch(before: Task, after: Task, now: datetime) -> Task:
    """Stamp updatedAt only when something actually changed."""
    if after == before:
        return before
    return replace(after, updated_at=now.isoformat())


def _with_streak(task: Task, now: datetime, daily_start_minutes: int, leave_days: Iterable[str]) -> Task:
    if not task.is_recurring:
        return task
    return replace(task, streak=compute_streak(task, daily_start_minutes, now=now, leave_days=leave_days))


def _as_recurrence(value: Union[Recurrence, Mapping[str, Any], None]) -> Optional[Recurrence]:
    if value is None or isinstance(value, Recurrence):
        return value
    return Recurrence.from_dict(value)


def add_task(
    tasks: list[Task],
    title: str,
    for_date: str,
    *,
    description: Optional[str] = None,
    priority: Union[Priority, str] = Priority.MEDIUM,
    category_id: Optional[str] = None,
    is_backlog: bool = False,
    recurrence: Union[Recurrence, Mapping[str, Any], None] = None,
    now: Optional[datetime] = None,
) -> list[Task]:
    """
    Create a task (Pending, no stages) and append it to the list.

    Args:
        tasks: Current task list
        title: Task title
        for_date: Target date (YYYY-MM-DD)
        description: Optional description
        priority: Low/Medium/High
        category_id: Optional category reference
        is_backlog: Date-agnostic backlog item
        recurrence: Optional repeating pattern (Recurrence or its JSON form)
        now: Creation time (defaults to the current time)

    Returns:
        New task list
    """
    now = now or datetime.now()
    if not title or not title.strip():
        logger.warning("Refusing to add a task without a title")
        return list(tasks)
    if priority not in PRIORITIES:
        logger.warning(f"Invalid priority {priority!r}. Must be one of: {PRIORITIES}")
        return list(tasks)

    pattern = _as_recurrence(recurrence)
    stamp = now.isoformat()
    task = Task(
        id=generate_id((t.id for t in tasks), now),
        title=title.strip(),
        for_date=normalize_date_key(for_date) if for_date else for_date,
        description=description,
        priority=Priority(priority),
        category_id=category_id,
        is_backlog=is_backlog,
        recurrence=pattern,
        created_at=stamp,
        updated_at=stamp,
        status=None if pattern else TaskStatus.PENDING,
        streak=0 if pattern else None,
    )
    return [*tasks, task]


def delete_task(tasks: list[Task], task_id: int) -> list[Task]:
    """Remove a task and, for recurring tasks, every occurrence with it."""
    remaining = [task for task in tasks if task.id != task_id]
    if len(remaining) == len(tasks):
        logger.warning(f"Task not found: {task_id}")
    return remaining


def toggle_task_status(
    tasks: list[Task],
    task_id: int,
    for_date: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
    daily_start_minutes: int = DEFAULT_DAILY_START_MINUTES,
    leave_days: Iterable[str] = (),
) -> list[Task]:
    """
    Advance a task's status: Pending -> In Progress -> Completed -> Pending.

    Recurring tasks toggle the occurrence on `for_date` and refresh the
    streak. Stages are left as they are.
    """
    now = now or datetime.now()

    def toggle(task: Task) -> Task:
        key = ""
        if task.is_recurring:
            key = normalize_date_key(for_date) if for_date else ""
            if not is_canonical(key):
                logger.warning(f"Refusing status toggle on recurring task {task.id}: no valid date ({for_date!r})")
                return task

        current = resolve(task, key)
        status = STATUS_CYCLE[current.status]
        toggled = write(task, key, occurrence_patch(current, current.stages, status, now.isoformat()))
        toggled = _with_streak(toggled, now, daily_start_minutes, leave_days)
        return _touch(task, toggled, now)

    return _update_task(tasks, task_id, toggle)


def _convert_recurrence(task: Task, recurrence: Optional[Recurrence]) -> Task:
    """
    Switch a task between one-off and recurring.

    The state of `for_date` moves with it: direct stages become that date's
    instance, or that date's instance becomes the direct state.
    """
    if task.recurrence is None and recurrence is not None:
        instances: dict[str, RecurrenceInstance] = {}
        if task.for_date and (task.stages or task.status != TaskStatus.PENDING):
            instances[normalize_date_key(task.for_date)] = resolve(task, task.for_date)
        return replace(
            task,
            recurrence=recurrence,
            recurrence_instances=instances,
            stages=(),
            status=None,
            started_at=None,
            completed_at=None,
            streak=0,
        )

    if task.recurrence is not None and recurrence is None:
        current = resolve(task, task.for_date or "")
        return replace(
            task,
            recurrence=None,
            recurrence_instances={},
            stages=current.stages,
            status=current.status,
            started_at=current.started_at,
            completed_at=current.completed_at,
            streak=None,
        )

    return replace(task, recurrence=recurrence)


def update_task_fields(
    tasks: list[Task],
    task_id: int,
    *,
    now: Optional[datetime] = None,
    daily_start_minutes: int = DEFAULT_DAILY_START_MINUTES,
    leave_days: Iterable[str] = (),
    **fields: Any,
) -> list[Task]:
    """
    Update editable task fields.

    Args:
        tasks: Current task list
        task_id: Task to update
        now: Update time
        **fields: Any of title, description, priority, category_id,
            for_date, is_backlog, recurrence

    Returns:
        New task list (unchanged if a field is unknown or invalid)
    """
    now = now or datetime.now()
    unknown = set(fields) - set(UPDATABLE_FIELDS)
    if unknown:
        logger.warning(f"Cannot update fields {sorted(unknown)}. Must be among: {UPDATABLE_FIELDS}")
        return list(tasks)
    if "priority" in fields and fields["priority"] not in PRIORITIES:
        logger.warning(f"Invalid priority {fields['priority']!r}. Must be one of: {PRIORITIES}")
        return list(tasks)

    def update(task: Task) -> Task:
        changes = dict(fields)
        updated = task
        if "recurrence" in changes:
            updated = _convert_recurrence(updated, _as_recurrence(changes.pop("recurrence")))
        if "priority" in changes:
            changes["priority"] = Priority(changes["priority"])
        if changes.get("for_date"):
            changes["for_date"] = normalize_date_key(changes["for_date"])
        updated = replace(updated, **changes)
        updated = _with_streak(updated, now, daily_start_minutes, leave_days)
        return _touch(task, updated, now)

    return _update_task(tasks, task_id, update)


def apply_stage_edit(
    tasks: list[Task],
    task_id: int,
    for_date: Optional[str],
    stages: Iterable[RawStage],
    sync_mode: Union[SyncMode, str] = SyncMode.NONE,
    *,
    now: Optional[datetime] = None,
    daily_start_minutes: int = DEFAULT_DAILY_START_MINUTES,
    leave_days: Iterable[str] = (),
    expand: Optional[DateExpander] = None,
) -> list[Task]:
    """Replace the stages of one occurrence and propagate per `sync_mode`."""
    now = now or datetime.now()
    if sync_mode not in SYNC_MODES:
        logger.warning(f"Invalid sync mode {sync_mode!r}. Must be one of: {SYNC_MODES}")
        return list(tasks)

    def edit(task: Task) -> Task:
        edited = apply_stage_edit_to_task(
            task,
            for_date,
            stages,
            sync_mode,
            now=now,
            daily_start_minutes=daily_start_minutes,
            leave_days=leave_days,
            expand=expand,
        )
        return _touch(task, edited, now)

    return _update_task(tasks, task_id, edit)


def add_or_edit_comment(
    tasks: list[Task],
    task_id: int,
    text: str,
    comment_id: Optional[int] = None,
    *,
    now: Optional[datetime] = None,
) -> list[Task]:
    """Add a comment, or change the text of `comment_id`. Comments are shared by all occurrences."""
    now = now or datetime.now()
    text = (text or "").strip()
    if not text:
        logger.warning("Refusing to save an empty comment")
        return list(tasks)

    def comment(task: Task) -> Task:
        stamp = now.isoformat()
        if comment_id is None:
            new = Comment(id=generate_id((c.id for c in task.comments), now), text=text, created_at=stamp)
            return _touch(task, replace(task, comments=(*task.comments, new)), now)

        if not any(c.id == comment_id for c in task.comments):
            logger.warning(f"Comment not found: {comment_id} on task {task.id}")
            return task
        comments = tuple(
            replace(c, text=text, updated_at=stamp) if c.id == comment_id else c
            for c in task.comments
        )
        return _touch(task, replace(task, comments=comments), now)

    return _update_task(tasks, task_id, comment)


def delete_comment(tasks: list[Task], task_id: int, comment_id: int, *, now: Optional[datetime] = None) -> list[Task]:
    now = now or datetime.now()

    def remove(task: Task) -> Task:
        comments = tuple(c for c in task.comments if c.id != comment_id)
        if len(comments) == len(task.comments):
            logger.warning(f"Comment not found: {comment_id} on task {task.id}")
            return task
        return _touch(task, replace(task, comments=comments), now)

    return _update_task(tasks, task_id, remove)


def toggle_pin(tasks: list[Task], task_id: int, *, now: Optional[datetime] = None) -> list[Task]:
    """Pin or unpin a task. Pinning records when, so the newest pin sorts first."""
    now = now or datetime.now()

    def pin(task: Task) -> Task:
        if task.is_pinned:
            pinned = replace(task, is_pinned=False, pin_timestamp=None)
        else:
            pinned = replace(task, is_pinned=True, pin_timestamp=int(now.timestamp() * 1000))
        return _touch(task, pinned, now)

    return _update_task(tasks, task_id, pin)


def sort_tasks(tasks: Iterable[Task]) -> list[Task]:
    """Pinned tasks first (most recently pinned on top); others keep their order."""
    return sorted(tasks, key=lambda t: (not t.is_pinned, -(t.pin_timestamp or 0) if t.is_pinned else 0))


def main():
    parser = argparse.ArgumentParser(
        description="Task Manager - recurring tasks with per-date stages"
    )
    parser.add_argument(
        "--action",
        required=True,
        choices=[
            "list", "add", "update", "delete", "toggle-status", "edit-stages",
            "comment", "delete-comment", "pin", "history", "migrate-keys",
        ],
        help="Action to perform",
    )

    # Task identification
    parser.add_argument("--task-id", type=int, help="Task ID for operations")
    parser.add_argument("--date", help="Occurrence date (YYYY-MM-DD); defaults to the logical today")

    # Task creation/update
    parser.add_argument("--title", help="Task title")
    parser.add_argument("--description", help="Task description")
    parser.add_argument("--priority", choices=PRIORITIES, help="Task priority")
    parser.add_argument("--category", help="Category ID")
    parser.add_argument("--backlog", action="store_true", help="Add to backlog")
    parser.add_argument("--recurrence", help="Recurrence pattern as JSON")

    # Stages and comments
    parser.add_argument("--stages", help="Complete stage list for the date, as JSON")
    parser.add_argument("--sync-mode", choices=SYNC_MODES, default="none", help="Stage edit propagation")
    parser.add_argument("--text", help="Comment text")
    parser.add_argument("--comment-id", type=int, help="Comment ID to edit or delete")

    parser.add_argument("--config", help="Path to tracker.yaml")

    args = parser.parse_args()
    setup_logging()

    config = load_and_validate(Path(args.config) if args.config else None)
    storage = TaskStorage(config.storage.resolved_path(), key=config.storage.key)
    now = datetime.now()
    daily_start = config.day.daily_start_minutes
    leave_days = config.day.leave_days
    expand = partial(occurrence_dates, max_days=config.recurrence.max_recurring_days)
    day = normalize_date_key(args.date) if args.date else logical_date(now, daily_start)
    bind_run_context(action=args.action, date=day, task_id=args.task_id)

    loaded = normalize_tasks(storage.load(), now=now, daily_start_minutes=daily_start, leave_days=leave_days)
    tasks = loaded.tasks

    def need_task() -> Task:
        if args.task_id is None:
            print(json.dumps({"success": False, "error": f"--task-id required for {args.action}"}))
            sys.exit(1)
        found = find_task(tasks, args.task_id)
        if found is None:
            print(json.dumps({"success": False, "error": f"Task not found: {args.task_id}"}))
            sys.exit(1)
        return found

    result: dict[str, Any]
    new_tasks: Optional[list[Task]] = None

    if args.action == "list":
        shown = sort_tasks(expand_tasks_for_date(tasks, day))
        result = {"success": True, "data": {"date": day, "tasks": [t.to_dict() for t in shown]}}

    elif args.action == "add":
        if not args.title:
            print(json.dumps({"success": False, "error": "--title required for add"}))
            sys.exit(1)
        new_tasks = add_task(
            tasks,
            args.title,
            day,
            description=args.description,
            priority=args.priority or Priority.MEDIUM,
            category_id=args.category,
            is_backlog=args.backlog,
            recurrence=json.loads(args.recurrence) if args.recurrence else None,
            now=now,
        )
        if len(new_tasks) > len(tasks):
            result = {"success": True, "data": new_tasks[-1].to_dict(), "message": "Task created"}
        else:
            result = {"success": False, "error": "Task not created (empty title or invalid priority)"}

    elif args.action == "update":
        need_task()
        fields: dict[str, Any] = {}
        for name, value in (
            ("title", args.title),
            ("description", args.description),
            ("priority", args.priority),
            ("category_id", args.category),
        ):
            if value is not None:
                fields[name] = value
        if args.recurrence is not None:
            fields["recurrence"] = json.loads(args.recurrence) or None
        if args.date:
            fields["for_date"] = day
        new_tasks = update_task_fields(
            tasks, args.task_id, now=now, daily_start_minutes=daily_start, leave_days=leave_days, **fields
        )
        result = {"success": True, "message": f"Task {args.task_id} updated"}

    elif args.action == "delete":
        need_task()
        new_tasks = delete_task(tasks, args.task_id)
        result = {"success": True, "message": f"Task {args.task_id} deleted"}

    elif args.action == "toggle-status":
        need_task()
        new_tasks = toggle_task_status(
            tasks, args.task_id, day, now=now, daily_start_minutes=daily_start, leave_days=leave_days
        )
        result = {"success": True, "message": f"Task {args.task_id} status toggled for {day}"}

    elif args.action == "edit-stages":
        need_task()
        if args.stages is None:
            print(json.dumps({"success": False, "error": "--stages required for edit-stages"}))
            sys.exit(1)
        new_tasks = apply_stage_edit(
            tasks,
            args.task_id,
            day,
            json.loads(args.stages),
            args.sync_mode,
            now=now,
            daily_start_minutes=daily_start,
            leave_days=leave_days,
            expand=expand,
        )
        result = {"success": True, "message": f"Stages of task {args.task_id} updated for {day}"}

    elif args.action == "comment":
        need_task()
        new_tasks = add_or_edit_comment(tasks, args.task_id, args.text or "", args.comment_id, now=now)
        result = {"success": True, "message": "Comment saved"}

    elif args.action == "delete-comment":
        need_task()
        if args.comment_id is None:
            print(json.dumps({"success": False, "error": "--comment-id required for delete-comment"}))
            sys.exit(1)
        new_tasks = delete_comment(tasks, args.task_id, args.comment_id, now=now)
        result = {"success": True, "message": "Comment deleted"}

    elif args.action == "pin":
        need_task()
        new_tasks = toggle_pin(tasks, args.task_id, now=now)
        result = {"success": True, "message": f"Task {args.task_id} pin toggled"}

    elif args.action == "history":
        task = need_task()
        result = {
            "success": True,
            "data": {
                "streak": task.streak or 0,
                "history": recent_occurrence_statuses(task, daily_start, now=now, leave_days=leave_days, limit=30),
            },
        }

    else:  # migrate-keys
        migrated = [migrate_instance_keys(task) for task in tasks]
        new_tasks = [task for task, _ in migrated]
        count = sum(1 for _, changed in migrated if changed)
        result = {"success": True, "message": f"Re-keyed instances of {count} task(s)"}

    if new_tasks is not None and (new_tasks != tasks or loaded.changed):
        storage.save(new_tasks)
    elif loaded.changed:
        storage.save(tasks)

    print(json.dumps(result, indent=2, default=str))
    if not result.get("success"):
        sys.exit(1)


if __name__ == "__main__":
    main()
