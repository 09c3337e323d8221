"""
Tool: Stage Synchronization Engine
Purpose: Apply a stage-list edit to one occurrence and replay it onto the others

An edit arrives as the complete new stage list for one date. The engine
diffs it against what was stored for that date and replays the difference:

    repeatSync on:  every occurrence is rebuilt from the edited list as a
                    template. Structure (ids, text, new timing) always
                    propagates; each date keeps its own completion unless
                    the sync mode asks for status propagation.
    repeatSync off: deletions always propagate. Added and changed stages
                    propagate only when the sync mode is "all" or "future".

Sync modes:
    none:   no status propagation
    all:    every other occurrence
    future: only occurrences dated after the edited one

All work happens on in-memory values; the returned task is complete before
anything is persisted. Applying the same edit twice yields the same task.

Usage:
    from tracker.tasks.sync import apply_stage_edit

    task = apply_stage_edit(task, "2025-01-15", stages, SyncMode.FUTURE, now=datetime.now())
"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, Union

from tracker.logging_config import get_logger

from . import DEFAULT_DAILY_START_MINUTES
from .date_keys import find_by_any_key, is_canonical, normalize_date_key
from .instances import DateExpander, enumerate_occurrence_dates, resolve, write
from .logical_day import logical_date
from .models import RecurrenceInstance, StageStatus, SyncMode, Task, TaskStage, TaskStatus
from .stages import RawStage, coerce_stage_id, derive_status, normalize_stages
from .streak import LogicalDateFn, compute_streak

logger = get_logger(__name__)

CONTENT_FIELDS = ("text", "start_time_minutes", "duration_minutes", "status")


@dataclass(frozen=True)
class StageDelta:
    """Difference between the stored and the edited stage list of one date."""

    removed_ids: frozenset[int]
    modified: tuple[TaskStage, ...]
    status_changed_ids: frozenset[int]
    timing_changed_ids: frozenset[int]

    @property
    def is_empty(self) -> bool:
        return not self.removed_ids and not self.modified


def content_differs(a: TaskStage, b: TaskStage) -> bool:
    return any(getattr(a, name) != getattr(b, name) for name in CONTENT_FIELDS)


def compute_delta(previous: Iterable[TaskStage], current: Iterable[TaskStage]) -> StageDelta:
    """
    Diff two stage lists of the same occurrence.

    A stage counts as modified when it is new or its text, timing or status
    changed. New stages count as retimed, and as status-changed when they
    are not Upcoming.
    """
    before = {stage.id: stage for stage in previous}
    after = list(current)
    after_ids = {stage.id for stage in after}

    modified = []
    status_changed = set()
    timing_changed = set()
    for stage in after:
        old = before.get(stage.id)
        if old is None:
            modified.append(stage)
            timing_changed.add(stage.id)
            if stage.status != StageStatus.UPCOMING:
                status_changed.add(stage.id)
            continue
        if not content_differs(old, stage):
            continue
        modified.append(stage)
        if old.status != stage.status:
            status_changed.add(stage.id)
        if (old.start_time_minutes, old.duration_minutes) != (stage.start_time_minutes, stage.duration_minutes):
            timing_changed.add(stage.id)

    return StageDelta(
        removed_ids=frozenset(before.keys() - after_ids),
        modified=tuple(modified),
        status_changed_ids=frozenset(status_changed),
        timing_changed_ids=frozenset(timing_changed),
    )


def _carry_forward(new_stages: Iterable[RawStage], previous: Mapping[int, TaskStage]) -> list[RawStage]:
    """
    Fill createdAt and syncMode of edited stages from their stored counterpart.

    The UI rebuilds stage records when editing and may drop these two fields.
    Without this, replaying an edit would restamp them and never settle.
    """
    carried: list[RawStage] = []
    for raw in new_stages:
        if isinstance(raw, TaskStage):
            old = previous.get(raw.id)
            if old is not None:
                raw = replace(
                    raw,
                    created_at=raw.created_at or old.created_at,
                    sync_mode=raw.sync_mode or old.sync_mode,
                )
        elif isinstance(raw, Mapping):
            stage_id = coerce_stage_id(raw.get("id"))
            old = previous.get(stage_id) if stage_id is not None else None
            if old is not None:
                filled: dict[str, Any] = dict(raw)
                if not filled.get("createdAt"):
                    filled["createdAt"] = old.created_at
                if filled.get("syncMode") is None and old.sync_mode is not None:
                    filled["syncMode"] = old.sync_mode.value
                raw = filled
        carried.append(raw)
    return carried


def _stamp_sync_mode(
    stages: tuple[TaskStage, ...],
    previous: Mapping[int, TaskStage],
    sync_mode: SyncMode,
) -> tuple[TaskStage, ...]:
    if sync_mode == SyncMode.NONE:
        return stages
    stamped = []
    for stage in stages:
        old = previous.get(stage.id)
        if old is None or content_differs(old, stage):
            stage = replace(stage, sync_mode=sync_mode)
        stamped.append(stage)
    return tuple(stamped)


def _merge_stage(
    source: TaskStage,
    local: Optional[TaskStage],
    take_status: bool,
    take_timing: bool,
    modified: bool,
) -> TaskStage:
    """
    Combine the edited stage with the record another date already holds.

    Text always comes from the edit. Timing and status stay local unless
    the edit changed them and propagation of that part is allowed. A stage
    a date has never seen starts out Upcoming unless status propagates.
    """
    if local is None:
        return source if take_status else replace(source, status=StageStatus.UPCOMING)

    return replace(
        local,
        text=source.text,
        start_time_minutes=source.start_time_minutes if take_timing else local.start_time_minutes,
        duration_minutes=source.duration_minutes if take_timing else local.duration_minutes,
        status=source.status if take_status else local.status,
        sync_mode=source.sync_mode if modified else local.sync_mode,
    )


def rebuild_from_template(
    template: tuple[TaskStage, ...],
    local: tuple[TaskStage, ...],
    delta: StageDelta,
    status_allowed: bool,
) -> tuple[TaskStage, ...]:
    """repeatSync: the edited list dictates structure and order, id for id."""
    local_by_id = {stage.id: stage for stage in local}
    modified_ids = {stage.id for stage in delta.modified}
    return tuple(
        _merge_stage(
            stage,
            local_by_id.get(stage.id),
            take_status=status_allowed and stage.id in delta.status_changed_ids,
            take_timing=stage.id in delta.timing_changed_ids,
            modified=stage.id in modified_ids,
        )
        for stage in template
    )


def apply_delta(
    local: tuple[TaskStage, ...],
    delta: StageDelta,
    sync_mode: SyncMode,
    status_allowed: bool,
) -> tuple[TaskStage, ...]:
    """Delta sync: drop removed stages, then upsert changed ones if the mode allows."""
    stages = [stage for stage in local if stage.id not in delta.removed_ids]
    if sync_mode == SyncMode.NONE:
        return tuple(stages)

    index = {stage.id: i for i, stage in enumerate(stages)}
    for source in delta.modified:
        take_status = status_allowed and source.id in delta.status_changed_ids
        take_timing = source.id in delta.timing_changed_ids
        if source.id in index:
            position = index[source.id]
            stages[position] = _merge_stage(source, stages[position], take_status, take_timing, modified=True)
        else:
            index[source.id] = len(stages)
            stages.append(_merge_stage(source, None, take_status, take_timing, modified=True))
    return tuple(stages)


def occurrence_patch(
    previous: RecurrenceInstance,
    stages: tuple[TaskStage, ...],
    status: TaskStatus,
    now: str,
) -> dict[str, Any]:
    """Instance fields for a new state: startedAt is set once, completedAt only while Completed."""
    started_at = previous.started_at
    if started_at is None and status != TaskStatus.PENDING:
        started_at = now

    completed_at = None
    if status == TaskStatus.COMPLETED:
        completed_at = previous.completed_at or now

    return {
        "stages": stages,
        "status": status,
        "started_at": started_at,
        "completed_at": completed_at,
    }


def _should_propagate(task: Task, sync_mode: SyncMode, delta: StageDelta) -> bool:
    repeat_sync = bool(task.recurrence and task.recurrence.repeat_sync)
    return repeat_sync or sync_mode != SyncMode.NONE or bool(delta.removed_ids)


def propagate(
    task: Task,
    edited_key: str,
    template: tuple[TaskStage, ...],
    delta: StageDelta,
    sync_mode: SyncMode,
    now: str,
    expand: Optional[DateExpander] = None,
) -> Task:
    """Replay an edit made on `edited_key` onto every other occurrence."""
    repeat_sync = bool(task.recurrence and task.recurrence.repeat_sync)
    touched = 0

    for day in enumerate_occurrence_dates(task, expand=expand):
        if day == edited_key:
            continue

        is_future = day > edited_key
        if sync_mode == SyncMode.FUTURE and not is_future:
            continue
        status_allowed = sync_mode == SyncMode.ALL or (sync_mode == SyncMode.FUTURE and is_future)

        local = resolve(task, day)
        if repeat_sync:
            stages = rebuild_from_template(template, local.stages, delta, status_allowed)
        else:
            stages = apply_delta(local.stages, delta, sync_mode, status_allowed)

        if stages == local.stages:
            continue

        status = derive_status(stages, local.status, is_adding_stage=len(stages) > len(local.stages))
        task = write(task, day, occurrence_patch(local, stages, status, now))
        touched += 1

    logger.debug(
        f"Task {task.id}: propagated edit of {edited_key} to {touched} occurrence(s) "
        f"(mode={sync_mode.value}, repeat_sync={repeat_sync})"
    )
    return task


def apply_stage_edit(
    task: Task,
    edited_date: Optional[str],
    new_stages: Optional[Iterable[RawStage]],
    sync_mode: Union[SyncMode, str] = SyncMode.NONE,
    *,
    now: datetime,
    daily_start_minutes: int = DEFAULT_DAILY_START_MINUTES,
    leave_days: Iterable[str] = (),
    expand: Optional[DateExpander] = None,
    logical_date_fn: LogicalDateFn = logical_date,
) -> Task:
    """
    Replace the stage list of one occurrence and propagate the change.

    Args:
        task: Task being edited
        edited_date: Occurrence date (required for recurring tasks)
        new_stages: Complete edited stage list (raw records or TaskStage values)
        sync_mode: How far the edit propagates
        now: Timestamp for createdAt/startedAt/completedAt stamping and the streak
        daily_start_minutes: Logical-day boundary used for the streak
        leave_days: Dates excluded from the streak
        expand: Recurrence expander override (defaults to the built-in patterns)
        logical_date_fn: Logical-day collaborator

    Returns:
        The updated task. A recurring task with no usable edit date is
        returned unchanged.
    """
    sync_mode = SyncMode(sync_mode)
    stamp = now.isoformat()

    edited_key = ""
    if task.is_recurring:
        edited_key = normalize_date_key(edited_date) if edited_date else ""
        if not is_canonical(edited_key):
            logger.warning(f"Refusing stage edit on recurring task {task.id}: no valid date ({edited_date!r})")
            return task

    previous = resolve(task, edited_key)
    previous_by_id = {stage.id: stage for stage in previous.stages}

    normalized = normalize_stages(_carry_forward(new_stages or (), previous_by_id), now)
    next_stages = _stamp_sync_mode(normalized.stages, previous_by_id, sync_mode)

    delta = compute_delta(previous.stages, next_stages)
    status = derive_status(
        next_stages,
        previous.status,
        is_adding_stage=len(next_stages) > len(previous.stages),
    )
    patch = occurrence_patch(previous, next_stages, status, stamp)
    # An empty edit of a date with nothing stored leaves no instance behind
    if replace(previous, **patch) != previous or find_by_any_key(task.recurrence_instances, edited_key) is not None:
        task = write(task, edited_key, patch)

    if not task.is_recurring:
        return task

    if _should_propagate(task, sync_mode, delta):
        task = propagate(task, edited_key, next_stages, delta, sync_mode, stamp, expand=expand)

    streak = compute_streak(
        task,
        daily_start_minutes,
        now=now,
        leave_days=leave_days,
        logical_date_fn=logical_date_fn,
    )
    return replace(task, streak=streak)


__all__ = [
    "CONTENT_FIELDS",
    "StageDelta",
    "content_differs",
    "compute_delta",
    "rebuild_from_template",
    "apply_delta",
    "occurrence_patch",
    "propagate",
    "apply_stage_edit",
]
