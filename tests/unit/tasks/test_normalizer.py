"""Tests for tracker/tasks/normalizer.py

Loading must repair what older app versions stored and report whether the
repaired list needs writing back.
"""

from tracker.tasks.models import Priority, StageStatus, TaskStatus
from tracker.tasks.normalizer import normalize_tasks, parse_task


# ─────────────────────────────────────────────────────────────────────────────
# Clean Data Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestCleanData:
    """Tests for records that need no repair."""

    def test_one_off_unchanged(self, one_off_task, now):
        """Should rebuild a one-off task exactly and report no change."""
        result = normalize_tasks([one_off_task.to_dict()], now=now)

        assert result.changed is False
        assert result.tasks == [one_off_task]

    def test_recurring_unchanged(self, recurring_task, now):
        """Should rebuild a recurring task exactly and report no change."""
        result = normalize_tasks([recurring_task.to_dict()], now=now)

        assert result.changed is False
        assert result.tasks == [recurring_task]

    def test_accepts_task_values(self, one_off_task, now):
        """Should accept already-built Task values."""
        assert normalize_tasks([one_off_task], now=now).tasks == [one_off_task]

    def test_empty_input(self, now):
        """Should treat None as an empty list."""
        result = normalize_tasks(None, now=now)

        assert result.tasks == []
        assert result.changed is False


# ─────────────────────────────────────────────────────────────────────────────
# Repair Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestRepairs:
    """Tests for back-filling legacy records."""

    def test_recurring_streak_backfilled(self, now):
        """Should compute a missing streak and repair legacy stages."""
        raw = {
            "id": 1,
            "title": "Gym",
            "recurrence": {"type": "daily", "startDate": "2025-01-10"},
            "recurrenceInstances": {"2025-01-14": {"stages": [{"id": 1, "isCompleted": True}]}},
        }

        result = normalize_tasks([raw], now=now)

        task = result.tasks[0]
        assert result.changed is True
        assert task.streak == 1
        stage = task.recurrence_instances["2025-01-14"].stages[0]
        assert stage.status == StageStatus.DONE
        assert stage.duration_minutes == 180

    def test_stale_streak_refreshed(self, recurring_task, now):
        """Should overwrite a stored streak that no longer matches."""
        raw = {**recurring_task.to_dict(), "streak": 9}

        result = normalize_tasks([raw], now=now)

        assert result.tasks[0].streak == 0
        assert result.changed is True

    def test_instance_status_from_completed_at(self, now):
        """Should infer Completed for old instances that only carry completedAt."""
        raw = {
            "id": 1,
            "title": "Gym",
            "recurrence": {"type": "daily", "startDate": "2025-01-10"},
            "recurrenceInstances": {"2025-01-14": {"stages": [], "completedAt": "2025-01-14T09:00:00"}},
            "streak": 1,
            "comments": [],
        }

        task = normalize_tasks([raw], now=now).tasks[0]

        assert task.recurrence_instances["2025-01-14"].status == TaskStatus.COMPLETED
        assert task.streak == 1

    def test_drops_unusable_records(self, one_off_task, now):
        """Should drop records without an id or that are not objects."""
        result = normalize_tasks([{"title": "no id"}, "junk", None, one_off_task.to_dict()], now=now)

        assert [t.id for t in result.tasks] == [one_off_task.id]
        assert result.changed is True

    def test_unknown_priority_defaults(self, now):
        """Should fall back to Medium for unknown priorities."""
        task, changed = parse_task({"id": 1, "title": "x", "priority": "Urgent", "comments": []}, now)

        assert task.priority == Priority.MEDIUM
        assert changed is True

    def test_one_off_legacy_stages(self, now):
        """Should repair the direct stages of one-off tasks."""
        raw = {
            "id": 5,
            "title": "Report",
            "status": "In Progress",
            "stages": [{"id": 1, "text": "Draft", "isCompleted": True}, {"id": 1, "text": "dupe"}],
            "comments": [],
        }

        task, changed = parse_task(raw, now)

        assert changed is True
        assert [s.text for s in task.stages] == ["Draft"]
        assert task.status == TaskStatus.IN_PROGRESS
        assert task.recurrence is None

    def test_malformed_recurrence_lists_skipped(self, now):
        """Should skip weekday entries that are not numbers instead of failing the load."""
        raw = {
            "id": 1,
            "title": "Gym",
            "recurrence": {"type": "weekly", "startDate": "2025-01-01", "days": ["Mon", 3]},
            "recurrenceInstances": {},
            "streak": 0,
            "comments": [],
        }

        result = normalize_tasks([raw], now=now)

        assert result.tasks[0].recurrence.days == (3,)
        assert result.changed is True

    def test_scalar_recurrence_list_treated_as_empty(self, now):
        """Should treat a scalar where a list is expected as an empty list."""
        raw = {
            "id": 1,
            "title": "Gym",
            "recurrence": {"type": "monthly", "startDate": "2025-01-01", "mode": "date", "dates": 3},
            "recurrenceInstances": {},
            "streak": 0,
            "comments": [],
        }

        result = normalize_tasks([raw], now=now)

        assert result.tasks[0].recurrence.dates == ()
        assert result.changed is True

    def test_malformed_containers_treated_as_empty(self, one_off_task, now):
        """Should load tasks whose comments, stages or instances have the wrong shape."""
        recurring = {
            "id": 1,
            "title": "Gym",
            "recurrence": {"type": "daily", "startDate": "2025-01-10"},
            "recurrenceInstances": [{"stages": []}],
            "streak": 0,
            "comments": 5,
        }
        one_off = {**one_off_task.to_dict(), "stages": "Draft"}

        result = normalize_tasks([recurring, one_off], now=now)

        gym, report = result.tasks
        assert result.changed is True
        assert gym.recurrence_instances == {}
        assert gym.comments == ()
        assert report.stages == ()

    def test_malformed_instance_stages(self, now):
        """Should drop instance stages that are not a list."""
        raw = {
            "id": 1,
            "title": "Gym",
            "recurrence": {"type": "daily", "startDate": "2025-01-10"},
            "recurrenceInstances": {"2025-01-14": {"stages": {"id": 1}, "status": "Completed"}},
            "streak": 1,
            "comments": [],
        }

        result = normalize_tasks([raw], now=now)

        instance = result.tasks[0].recurrence_instances["2025-01-14"]
        assert instance.stages == ()
        assert instance.status == TaskStatus.COMPLETED
        assert result.changed is True
