"""Shared test fixtures for tracker tests.

This module provides common fixtures used across all test modules:
- A fixed clock and UTC local timezone
- Storage isolation with temporary files
- Standard stages and tasks (one-off and recurring)

Usage:
    def test_something(recurring_task, now):
        ...
"""

import time
from collections.abc import Generator
from datetime import datetime
from pathlib import Path

import pytest
import structlog

from tracker.tasks.models import Recurrence, RecurrenceType, StageStatus, Task, TaskStage, TaskStatus


# ─────────────────────────────────────────────────────────────────────────────
# Logging Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def stdlib_logging() -> Generator[None, None, None]:
    """Route structlog through stdlib logging so stdout holds only CLI output."""
    structlog.configure(
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
    )

    yield

    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()


# ─────────────────────────────────────────────────────────────────────────────
# Clock Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def now() -> datetime:
    """Fixed wall-clock time: 2025-01-15 10:00, after the 06:00 daily start."""
    return datetime(2025, 1, 15, 10, 0, 0)


@pytest.fixture
def utc_tz(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Run the test with the process local timezone set to UTC.

    ISO timestamps with an offset are converted to local time before their
    date is taken, so date-key tests pin the local zone.
    """
    monkeypatch.setenv("TZ", "UTC")
    time.tzset()

    yield

    monkeypatch.undo()
    time.tzset()


# ─────────────────────────────────────────────────────────────────────────────
# Storage Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def temp_storage_path(tmp_path: Path) -> Path:
    """Path of a storage file inside a temporary data directory.

    Returns:
        Path (the file itself does not exist yet)
    """
    data_dir = tmp_path / "data"
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir / "storage.json"


@pytest.fixture
def temp_config_path(tmp_path: Path, temp_storage_path: Path) -> Path:
    """A tracker.yaml pointing storage at the temporary file.

    Returns:
        Path to the config file
    """
    config_path = tmp_path / "tracker.yaml"
    config_path.write_text(
        "day:\n"
        "  daily_start_minutes: 360\n"
        "storage:\n"
        f"  path: {temp_storage_path}\n"
    )
    return config_path


# ─────────────────────────────────────────────────────────────────────────────
# Task Fixtures
# ─────────────────────────────────────────────────────────────────────────────


def make_stage(stage_id: int, text: str = "", status: StageStatus = StageStatus.UPCOMING, **kwargs) -> TaskStage:
    """Build a TaskStage with a fixed createdAt so comparisons are stable."""
    kwargs.setdefault("created_at", "2025-01-01T00:00:00")
    return TaskStage(id=stage_id, text=text, status=status, **kwargs)


@pytest.fixture
def sample_stages() -> tuple[TaskStage, ...]:
    """Two stages, neither completed.

    Returns:
        tuple of TaskStage
    """
    return (
        make_stage(1, "Stretch", start_time_minutes=360, duration_minutes=15),
        make_stage(2, "Run", start_time_minutes=380, duration_minutes=30),
    )


@pytest.fixture
def one_off_task(sample_stages) -> Task:
    """Non-recurring task for 2025-01-15 with two stages."""
    return Task(
        id=100,
        title="Write report",
        for_date="2025-01-15",
        stages=sample_stages,
        status=TaskStatus.PENDING,
        created_at="2025-01-01T00:00:00",
    )


@pytest.fixture
def daily_recurrence() -> Recurrence:
    """Daily pattern from 2025-01-10 to 2025-01-20."""
    return Recurrence(type=RecurrenceType.DAILY, start_date="2025-01-10", end_date="2025-01-20")


@pytest.fixture
def recurring_task(daily_recurrence: Recurrence) -> Task:
    """Daily recurring task without stored occurrences."""
    return Task(
        id=200,
        title="Morning routine",
        for_date="2025-01-10",
        recurrence=daily_recurrence,
        status=None,
        streak=0,
        created_at="2025-01-01T00:00:00",
    )
