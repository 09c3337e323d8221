from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from tracker.tasks import (
    CONFIG_PATH,
    DEFAULT_DAILY_START_MINUTES,
    MAX_RECURRING_DAYS,
    PROJECT_ROOT,
    STORAGE_PATH,
    TASKS_STORAGE_KEY,
)
from tracker.tasks.date_keys import normalize_date_key

logger = logging.getLogger(__name__)


# =============================================================================
# TrackerConfig (args/tracker.yaml)
# =============================================================================

class DayConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    daily_start_minutes: int = Field(default=DEFAULT_DAILY_START_MINUTES, ge=0, le=24 * 60 - 1)
    leave_days: list[str] = Field(default_factory=list)

    @field_validator("leave_days")
    @classmethod
    def _canonical_leave_days(cls, value: list[str]) -> list[str]:
        return [normalize_date_key(str(day)) for day in value]


class RecurrenceSettingsConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    max_recurring_days: int = Field(default=MAX_RECURRING_DAYS, ge=1)


class StorageConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    path: Optional[str] = None
    key: str = Field(default=TASKS_STORAGE_KEY, min_length=1)

    def resolved_path(self) -> Path:
        if not self.path:
            return STORAGE_PATH
        path = Path(self.path)
        return path if path.is_absolute() else PROJECT_ROOT / path


class TrackerConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    day: DayConfig = Field(default_factory=DayConfig)
    recurrence: RecurrenceSettingsConfig = Field(default_factory=RecurrenceSettingsConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)


def load_and_validate(yaml_path: Path | None = None) -> TrackerConfig:
    if yaml_path is None:
        yaml_path = CONFIG_PATH

    try:
        if yaml_path.exists():
            with open(yaml_path) as f:
                raw = yaml.safe_load(f) or {}
        else:
            raw = {}

        return TrackerConfig.model_validate(raw)
    except Exception as e:
        logger.warning(f"Config validation failed for {yaml_path}: {e}, using defaults")
        return TrackerConfig()


__all__ = [
    "DayConfig",
    "RecurrenceSettingsConfig",
    "StorageConfig",
    "TrackerConfig",
    "load_and_validate",
]
