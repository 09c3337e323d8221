"""
Tool: Task Storage
Purpose: Persist the task list as one serialized JSON array under a storage key

The backing file is a small key/value store: a JSON object whose values are
serialized JSON strings. The task list lives under TASKS_STORAGE_KEY
("@tasks"); other keys in the file are preserved on save.

load() never raises for a missing or corrupt file - it returns an empty list
and logs. Records are returned raw; run them through
tracker.tasks.normalizer.normalize_tasks() before use.

Usage:
    from tracker.tasks.storage import TaskStorage

    storage = TaskStorage()
    raw = storage.load()
    storage.save(tasks)
"""

import json
import os
from pathlib import Path
from typing import Any, Iterable, Optional, Union

from tracker.logging_config import get_logger

from . import STORAGE_PATH, TASKS_STORAGE_KEY
from .models import Task

logger = get_logger(__name__)


class TaskStorage:
    def __init__(self, path: Optional[Path] = None, key: str = TASKS_STORAGE_KEY):
        self.path = Path(path) if path is not None else STORAGE_PATH
        self.key = key

    def _read_store(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                store = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Could not read storage file {self.path}: {e}")
            return {}
        if not isinstance(store, dict):
            logger.error(f"Storage file {self.path} does not hold an object")
            return {}
        return store

    def load(self) -> list[dict[str, Any]]:
        """Load the raw task records stored under the key (empty if absent)."""
        stored = self._read_store().get(self.key)
        if not stored:
            return []
        try:
            tasks = json.loads(stored) if isinstance(stored, str) else stored
        except json.JSONDecodeError as e:
            logger.error(f"Stored value for {self.key} is not valid JSON: {e}")
            return []
        if not isinstance(tasks, list):
            logger.error(f"Stored value for {self.key} is not a list")
            return []
        return tasks

    def save(self, tasks: Iterable[Union[Task, dict[str, Any]]]) -> None:
        """Serialize the task list under the key, replacing the file atomically."""
        payload = [task.to_dict() if isinstance(task, Task) else task for task in tasks]
        store = self._read_store()
        store[self.key] = json.dumps(payload, ensure_ascii=False)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(store, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, self.path)
        logger.debug(f"Saved {len(payload)} task(s) to {self.path}")


__all__ = ["TaskStorage"]
