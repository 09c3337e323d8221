"""
Tool: Stage Normalizer and Status Deriver
Purpose: Turn raw stage lists into valid TaskStage tuples and derive status

Stage lists come from two places: the persisted JSON blob (possibly written
by an older version of the app) and the UI (which sends the full edited
list). Both go through normalize_stages() before the engine looks at them.

Usage:
    from tracker.tasks.stages import normalize_stages, derive_status

    result = normalize_stages(raw_stages, now=datetime.now())
    if result.changed:
        ...  # persist the repaired list
    status = derive_status(result.stages, TaskStatus.PENDING, is_adding_stage=False)
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, Union

from . import DEFAULT_STAGE_DURATION_MINUTES, DEFAULT_STAGE_START_MINUTES
from .models import StageStatus, SyncMode, TaskStage, TaskStatus

logger = logging.getLogger(__name__)

RawStage = Union[TaskStage, Mapping[str, Any], None]


@dataclass(frozen=True)
class StageNormalization:
    stages: tuple[TaskStage, ...]
    changed: bool


def _timestamp(now: Union[datetime, str]) -> str:
    return now if isinstance(now, str) else now.isoformat()


def coerce_stage_id(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


def _coerce_minutes(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _parse_status(value: Any) -> Optional[StageStatus]:
    if isinstance(value, StageStatus):
        return value
    try:
        return StageStatus(value)
    except ValueError:
        return None


def _parse_sync_mode(value: Any) -> Optional[SyncMode]:
    if value is None:
        return None
    try:
        return SyncMode(value)
    except ValueError:
        return None


def stage_from_raw(raw: Mapping[str, Any], stage_id: int, created_at: str) -> tuple[TaskStage, bool]:
    """
    Build a TaskStage from a raw JSON record, back-filling missing fields.

    Returns the stage and whether anything had to be filled in or repaired.
    """
    changed = False

    start = _coerce_minutes(raw.get("startTimeMinutes"))
    if start is None:
        start = DEFAULT_STAGE_START_MINUTES
        changed = True

    duration = _coerce_minutes(raw.get("durationMinutes"))
    if duration is None:
        duration = DEFAULT_STAGE_DURATION_MINUTES
        changed = True

    # Either signal marks a stage done; status becomes the single field.
    status = _parse_status(raw.get("status"))
    is_completed = raw.get("isCompleted")
    if status is None:
        status = StageStatus.DONE if is_completed is True else StageStatus.UPCOMING
        changed = True
    elif is_completed is None:
        changed = True
    elif is_completed is True and status != StageStatus.DONE:
        status = StageStatus.DONE
        changed = True

    stamped = raw.get("createdAt")
    if not stamped:
        stamped = created_at
        changed = True

    stage = TaskStage(
        id=stage_id,
        text=str(raw.get("text") or ""),
        start_time_minutes=start,
        duration_minutes=duration,
        status=status,
        created_at=stamped,
        sync_mode=_parse_sync_mode(raw.get("syncMode")),
    )
    return stage, changed


def normalize_stages(stages: Optional[Iterable[RawStage]], now: Union[datetime, str]) -> StageNormalization:
    """
    Sanitize a stage list for one task occurrence.

    - entries that are null or lack an id are dropped
    - duplicate ids are dropped, the first record wins
    - missing timing is filled with 0 / 180 minutes
    - missing status defaults to Upcoming (Done if the legacy isCompleted flag is set)
    - missing createdAt is stamped with `now`

    Order of surviving entries is preserved. Pure function.

    Args:
        stages: Raw stage records or TaskStage values (None is treated as empty)
        now: Timestamp used for createdAt back-fill

    Returns:
        StageNormalization with the clean tuple and a `changed` flag
    """
    created_at = _timestamp(now)
    seen: set[int] = set()
    result: list[TaskStage] = []
    changed = False

    for raw in stages or ():
        if raw is None:
            changed = True
            continue

        if isinstance(raw, TaskStage):
            stage, repaired = raw, False
            if not stage.created_at:
                stage, repaired = replace(stage, created_at=created_at), True
        elif isinstance(raw, Mapping):
            stage_id = coerce_stage_id(raw.get("id"))
            if stage_id is None:
                changed = True
                continue
            stage, repaired = stage_from_raw(raw, stage_id, created_at)
        else:
            logger.warning(f"Dropping stage of unexpected type {type(raw).__name__}")
            changed = True
            continue

        if stage.id in seen:
            changed = True
            continue

        seen.add(stage.id)
        result.append(stage)
        changed = changed or repaired

    return StageNormalization(stages=tuple(result), changed=changed)


def count_completed(stages: Iterable[TaskStage]) -> int:
    return sum(1 for stage in stages if stage.is_completed)


def derive_status(
    stages: tuple[TaskStage, ...],
    previous_status: Optional[TaskStatus],
    is_adding_stage: bool = False,
) -> TaskStatus:
    """
    Compute an occurrence's status from its stages.

    Rules, first match wins:
        1. stages present and all done          -> Completed
        2. some (not all) done                  -> In Progress
        3. adding a stage to a Completed task   -> Pending (reopen)
        4. previously Completed, none done now  -> In Progress
        5. otherwise the previous status is kept

    Editing a non-completion field of a stage on a Completed task whose
    stages are all still done stays Completed (rule 1).
    """
    previous = previous_status or TaskStatus.PENDING
    done = count_completed(stages)

    if stages and done == len(stages):
        return TaskStatus.COMPLETED
    if done > 0:
        return TaskStatus.IN_PROGRESS
    if is_adding_stage and previous == TaskStatus.COMPLETED:
        return TaskStatus.PENDING
    if previous == TaskStatus.COMPLETED:
        return TaskStatus.IN_PROGRESS
    return previous


def next_stage_id(stages: Iterable[TaskStage], now: datetime) -> int:
    """Allocate a stage id from the current millisecond timestamp, unique within `stages`."""
    existing = {stage.id for stage in stages}
    stage_id = int(now.timestamp() * 1000)
    while stage_id in existing:
        stage_id += 1
    return stage_id


__all__ = [
    "RawStage",
    "StageNormalization",
    "coerce_stage_id",
    "stage_from_raw",
    "normalize_stages",
    "count_completed",
    "derive_status",
    "next_stage_id",
]
