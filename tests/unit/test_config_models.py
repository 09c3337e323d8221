"""Tests for tracker/config_models.py

Configuration falls back to defaults instead of failing, so a broken
tracker.yaml never stops the app from loading tasks.
"""

from pathlib import Path

from tracker.config_models import StorageConfig, TrackerConfig, load_and_validate
from tracker.tasks import PROJECT_ROOT, STORAGE_PATH


class TestLoadAndValidate:
    """Tests for loading args/tracker.yaml."""

    def test_missing_file_gives_defaults(self, tmp_path):
        """Should return defaults when the file does not exist."""
        config = load_and_validate(tmp_path / "absent.yaml")

        assert config == TrackerConfig()
        assert config.day.daily_start_minutes == 360
        assert config.recurrence.max_recurring_days == 730
        assert config.storage.key == "@tasks"

    def test_reads_values(self, tmp_path):
        """Should read the configured values."""
        path = tmp_path / "tracker.yaml"
        path.write_text(
            "day:\n"
            "  daily_start_minutes: 300\n"
            "  leave_days: ['2025-01-13']\n"
            "recurrence:\n"
            "  max_recurring_days: 90\n"
        )

        config = load_and_validate(path)

        assert config.day.daily_start_minutes == 300
        assert config.day.leave_days == ["2025-01-13"]
        assert config.recurrence.max_recurring_days == 90

    def test_leave_days_normalized(self, tmp_path):
        """Should canonicalize leave day dates."""
        path = tmp_path / "tracker.yaml"
        path.write_text("day:\n  leave_days: ['2025-01-13T08:00:00']\n")

        assert load_and_validate(path).day.leave_days == ["2025-01-13"]

    def test_invalid_values_fall_back(self, tmp_path):
        """Should fall back to defaults on validation errors."""
        path = tmp_path / "tracker.yaml"
        path.write_text("day:\n  daily_start_minutes: 5000\n")

        assert load_and_validate(path) == TrackerConfig()

    def test_empty_file(self, tmp_path):
        """Should treat an empty file as defaults."""
        path = tmp_path / "tracker.yaml"
        path.write_text("")

        assert load_and_validate(path) == TrackerConfig()

    def test_shipped_config_is_valid(self):
        """Should load the repository's own config without falling back."""
        config = load_and_validate(PROJECT_ROOT / "args" / "tracker.yaml")

        assert config.storage.path == "data/storage.json"


class TestStorageConfig:
    """Tests for storage path resolution."""

    def test_default_path(self):
        """Should use the data directory by default."""
        assert StorageConfig().resolved_path() == STORAGE_PATH

    def test_relative_to_project_root(self):
        """Should resolve relative paths against the project root."""
        assert StorageConfig(path="var/tasks.json").resolved_path() == PROJECT_ROOT / "var" / "tasks.json"

    def test_absolute_path(self, tmp_path):
        """Should keep absolute paths."""
        assert StorageConfig(path=str(tmp_path / "x.json")).resolved_path() == Path(tmp_path / "x.json")
