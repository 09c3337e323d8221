"""
Tool: Task Models
Purpose: Data structures for tasks, stages, recurrence patterns and occurrences

All models are frozen dataclasses. Engine operations build new values with
dataclasses.replace() instead of editing in place, so a task handed to the
engine is never modified behind the caller's back.

JSON uses the camelCase keys of the persisted task blob. Raw task and stage
records are turned into models by tracker.tasks.normalizer, which is the one
place that back-fills fields missing from older records.

Usage:
    from tracker.tasks.models import (
        Task,
        TaskStage,
        TaskStatus,
        StageStatus,
        SyncMode,
        Recurrence,
        RecurrenceInstance,
    )
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional

from . import DEFAULT_STAGE_DURATION_MINUTES, DEFAULT_STAGE_START_MINUTES
from .date_keys import normalize_date_key

logger = logging.getLogger(__name__)


def _int_tuple(raw: Any, field_name: str) -> tuple[int, ...]:
    """Coerce a persisted list of integers, skipping entries that are not numbers."""
    if raw is None:
        return ()
    if not isinstance(raw, (list, tuple)):
        logger.warning(f"Ignoring recurrence {field_name} that is not a list: {raw!r}")
        return ()

    values = []
    for item in raw:
        try:
            values.append(int(item))
        except (TypeError, ValueError):
            logger.warning(f"Skipping recurrence {field_name} entry {item!r}")
    return tuple(values)


class TaskStatus(str, Enum):
    """Aggregate status of a task or of one occurrence."""

    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"


class StageStatus(str, Enum):
    """Stage status. DONE is the completion marker."""

    UPCOMING = "Upcoming"
    PROCESS = "Process"
    DONE = "Done"
    UNDONE = "Undone"


class Priority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class SyncMode(str, Enum):
    """
    How far a stage edit propagates across occurrences.

    NONE: only deletions propagate
    ALL: every occurrence, past and future
    FUTURE: occurrences dated strictly after the edited one
    """

    NONE = "none"
    ALL = "all"
    FUTURE = "future"


class RecurrenceType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class MonthlyMode(str, Enum):
    DATE = "date"
    WEEKDAY = "weekday"


@dataclass(frozen=True)
class TaskStage:
    """
    A subtask of one occurrence (or of a non-recurring task).

    `status` is the only completion field held in memory; `isCompleted`
    is derived from it when writing JSON so older readers keep working.
    """

    id: int
    text: str = ""
    start_time_minutes: int = DEFAULT_STAGE_START_MINUTES
    duration_minutes: int = DEFAULT_STAGE_DURATION_MINUTES
    status: StageStatus = StageStatus.UPCOMING
    created_at: Optional[str] = None
    sync_mode: Optional[SyncMode] = None

    @property
    def is_completed(self) -> bool:
        return self.status == StageStatus.DONE

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "text": self.text,
            "startTimeMinutes": self.start_time_minutes,
            "durationMinutes": self.duration_minutes,
            "status": self.status.value,
            "isCompleted": self.is_completed,
            "createdAt": self.created_at,
        }
        if self.sync_mode is not None:
            data["syncMode"] = self.sync_mode.value
        return data


@dataclass(frozen=True)
class RecurrenceInstance:
    """State of one dated occurrence of a recurring task."""

    stages: tuple[TaskStage, ...] = ()
    status: TaskStatus = TaskStatus.PENDING
    started_at: Optional[str] = None
    completed_at: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "stages": [stage.to_dict() for stage in self.stages],
            "status": self.status.value,
        }
        if self.started_at is not None:
            data["startedAt"] = self.started_at
        if self.completed_at is not None:
            data["completedAt"] = self.completed_at
        return data


@dataclass(frozen=True)
class Recurrence:
    """
    Repeating schedule of a task.

    Weekdays follow the JavaScript convention of the stored data:
    0 = Sunday ... 6 = Saturday. `week_of_month` holds 1..4, or -1 for
    the last such weekday of the month.
    """

    type: RecurrenceType
    start_date: str
    end_date: Optional[str] = None
    days: tuple[int, ...] = ()
    mode: MonthlyMode = MonthlyMode.DATE
    dates: tuple[int, ...] = ()
    week_of_month: tuple[int, ...] = ()
    weekdays: tuple[int, ...] = ()
    repeat_sync: bool = False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.type.value,
            "startDate": self.start_date,
            "repeatSync": self.repeat_sync,
        }
        if self.end_date:
            data["endDate"] = self.end_date
        if self.type == RecurrenceType.WEEKLY:
            data["days"] = list(self.days)
        elif self.type == RecurrenceType.MONTHLY:
            data["mode"] = self.mode.value
            if self.mode == MonthlyMode.DATE:
                data["dates"] = list(self.dates)
            else:
                data["weekOfMonth"] = list(self.week_of_month)
                data["weekdays"] = list(self.weekdays)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Recurrence":
        """Create from a persisted recurrence record, tolerating unknown values."""
        try:
            rtype = RecurrenceType(data.get("type", RecurrenceType.DAILY.value))
        except ValueError:
            logger.warning(f"Unknown recurrence type {data.get('type')!r}, treating as daily")
            rtype = RecurrenceType.DAILY

        try:
            mode = MonthlyMode(data.get("mode", MonthlyMode.DATE.value))
        except ValueError:
            mode = MonthlyMode.DATE

        return cls(
            type=rtype,
            start_date=normalize_date_key(str(data.get("startDate", ""))),
            end_date=normalize_date_key(str(data["endDate"])) if data.get("endDate") else None,
            days=_int_tuple(data.get("days"), "days"),
            mode=mode,
            dates=_int_tuple(data.get("dates"), "dates"),
            week_of_month=_int_tuple(data.get("weekOfMonth"), "weekOfMonth"),
            weekdays=_int_tuple(data.get("weekdays"), "weekdays"),
            repeat_sync=bool(data.get("repeatSync", False)),
        )


@dataclass(frozen=True)
class Comment:
    """A note on a task. Shared by every occurrence of a recurring task."""

    id: int
    text: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "text": self.text, "createdAt": self.created_at}
        if self.updated_at is not None:
            data["updatedAt"] = self.updated_at
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Comment":
        return cls(
            id=int(data["id"]),
            text=str(data.get("text", "")),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )


@dataclass(frozen=True)
class Task:
    """
    One user-visible to-do item.

    Non-recurring tasks keep their state in `stages`/`status`/`started_at`/
    `completed_at`. Recurring tasks leave those empty and keep one
    RecurrenceInstance per date in `recurrence_instances`.
    """

    id: int
    title: str
    for_date: Optional[str] = None
    description: Optional[str] = None
    priority: Priority = Priority.MEDIUM
    category_id: Optional[str] = None
    is_backlog: bool = False
    recurrence: Optional[Recurrence] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    is_pinned: bool = False
    pin_timestamp: Optional[int] = None

    # Non-recurring state
    stages: tuple[TaskStage, ...] = ()
    status: Optional[TaskStatus] = TaskStatus.PENDING
    started_at: Optional[str] = None
    completed_at: Optional[str] = None

    # Recurring state
    recurrence_instances: Mapping[str, RecurrenceInstance] = field(default_factory=dict)
    streak: Optional[int] = None

    comments: tuple[Comment, ...] = ()

    @property
    def is_recurring(self) -> bool:
        return self.recurrence is not None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the persisted JSON shape."""
        data: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "priority": self.priority.value,
            "forDate": self.for_date,
            "isBacklog": self.is_backlog,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "isPinned": self.is_pinned,
            "comments": [comment.to_dict() for comment in self.comments],
        }
        if self.description is not None:
            data["description"] = self.description
        if self.category_id is not None:
            data["categoryId"] = self.category_id
        if self.pin_timestamp is not None:
            data["pinTimestamp"] = self.pin_timestamp

        if self.recurrence is not None:
            data["recurrence"] = self.recurrence.to_dict()
            data["recurrenceInstances"] = {
                key: instance.to_dict() for key, instance in self.recurrence_instances.items()
            }
            data["streak"] = self.streak if self.streak is not None else 0
        else:
            data["stages"] = [stage.to_dict() for stage in self.stages]
            data["status"] = (self.status or TaskStatus.PENDING).value
            if self.started_at is not None:
                data["startedAt"] = self.started_at
            if self.completed_at is not None:
                data["completedAt"] = self.completed_at
        return data


__all__ = [
    "TaskStatus",
    "StageStatus",
    "Priority",
    "SyncMode",
    "RecurrenceType",
    "MonthlyMode",
    "TaskStage",
    "RecurrenceInstance",
    "Recurrence",
    "Comment",
    "Task",
]
