"""Task Engine - recurring tasks with per-date stage tracking

Philosophy:
    A recurring task is one template and many dated occurrences.
    Editing one day must never wipe out the progress recorded on another.

Components:
    models.py: Task, TaskStage, Recurrence and friends (JSON <-> dataclasses)
    date_keys.py: Canonical YYYY-MM-DD keys and tolerant key lookup
    stages.py: Stage normalization and status derivation
    recurrence.py: Expand a recurrence pattern into occurrence dates
    instances.py: Per-date occurrence state of a recurring task
    sync.py: Apply a stage edit to one date and replay it onto the others
    streak.py: Consecutive-completion streak relative to the logical day
    logical_day.py: "Today" shifted by the configured daily start time
    normalizer.py: Back-fill the whole task list after loading
    storage.py: JSON blob persistence under a single storage key
    manager.py: Task list operations used by the UI, plus a small CLI

Usage:
    from tracker.tasks.manager import add_task, apply_stage_edit
    from tracker.tasks.models import SyncMode

    tasks = add_task([], title="Morning routine", for_date="2025-01-15")
    tasks = apply_stage_edit(
        tasks,
        task_id=tasks[0].id,
        for_date="2025-01-15",
        stages=[{"id": 1, "text": "Stretch"}],
        sync_mode=SyncMode.ALL,
    )
"""

from pathlib import Path

# Path constants
PROJECT_ROOT = Path(__file__).parent.parent.parent
DATA_DIR = PROJECT_ROOT / "data"
STORAGE_PATH = DATA_DIR / "storage.json"
CONFIG_PATH = PROJECT_ROOT / "args" / "tracker.yaml"

# Storage key holding the serialized task list
TASKS_STORAGE_KEY = "@tasks"

# Valid values
PRIORITIES = ("Low", "Medium", "High")
SYNC_MODES = ("none", "all", "future")

# Stage defaults
DEFAULT_STAGE_START_MINUTES = 0
DEFAULT_STAGE_DURATION_MINUTES = 180

# 06:00 - before this the app is still on the previous logical day
DEFAULT_DAILY_START_MINUTES = 6 * 60

# Open-ended recurrences are expanded this far past their start date (~2 years)
MAX_RECURRING_DAYS = 730

__all__ = [
    "PROJECT_ROOT",
    "DATA_DIR",
    "STORAGE_PATH",
    "CONFIG_PATH",
    "TASKS_STORAGE_KEY",
    "PRIORITIES",
    "SYNC_MODES",
    "DEFAULT_STAGE_START_MINUTES",
    "DEFAULT_STAGE_DURATION_MINUTES",
    "DEFAULT_DAILY_START_MINUTES",
    "MAX_RECURRING_DAYS",
]
