"""Tests for tracker/logging_config.py"""

import json
import logging

import pytest
import structlog

from tracker.logging_config import bind_run_context, setup_logging, shorten_logger_name


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level

    yield

    root.handlers[:] = handlers
    root.setLevel(level)


class TestShortenLoggerName:
    """Tests for the logger-name processor."""

    def test_strips_package_prefix(self):
        """Should show engine loggers relative to the package."""
        event = shorten_logger_name(None, "info", {"logger": "tracker.tasks.sync"})

        assert event["logger"] == "tasks.sync"

    def test_leaves_other_names(self):
        """Should keep names from outside the package."""
        event = shorten_logger_name(None, "info", {"logger": "urllib3"})

        assert event["logger"] == "urllib3"


class TestRunContext:
    """Tests for per-run context binding."""

    def test_binds_given_values(self):
        """Should bind the values and skip the ones that are None."""
        bind_run_context(action="edit-stages", date="2025-01-15", task_id=None)

        assert structlog.contextvars.get_contextvars() == {"action": "edit-stages", "date": "2025-01-15"}


class TestSetupLogging:
    """Tests for handler and renderer configuration."""

    def test_stdlib_records_rendered_as_json(self, capsys, restore_root_logger):
        """Should render plain stdlib records with the shared fields."""
        setup_logging(level="DEBUG", json_output=True)
        bind_run_context(action="list")

        logging.getLogger("tracker.tasks.models").warning("Skipping recurrence days entry 'Mon'")

        captured = capsys.readouterr()
        line = json.loads(captured.err.strip().splitlines()[-1])
        assert captured.out == ""
        assert line["event"] == "Skipping recurrence days entry 'Mon'"
        assert line["logger"] == "tasks.models"
        assert line["level"] == "warning"
        assert line["action"] == "list"

    def test_level_from_environment(self, monkeypatch, restore_root_logger):
        """Should read the level from TRACKER_LOG_LEVEL."""
        monkeypatch.setenv("TRACKER_LOG_LEVEL", "error")

        setup_logging(json_output=False)

        assert logging.getLogger().level == logging.ERROR
