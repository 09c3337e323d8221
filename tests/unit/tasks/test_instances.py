"""Tests for tracker/tasks/instances.py

Each recurring occurrence owns its own state; writing one date must never
touch another.
"""

from dataclasses import replace

from tracker.tasks.instances import (
    enumerate_occurrence_dates,
    expand_task_for_date,
    expand_tasks_for_date,
    migrate_instance_keys,
    resolve,
    write,
)
from tracker.tasks.models import RecurrenceInstance, StageStatus, TaskStage, TaskStatus


# ─────────────────────────────────────────────────────────────────────────────
# Resolve / Write Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestResolve:
    """Tests for reading per-date state."""

    def test_missing_date_is_empty_pending(self, recurring_task):
        """Should return an empty Pending instance for unseen dates."""
        instance = resolve(recurring_task, "2025-01-12")

        assert instance == RecurrenceInstance()
        assert instance.status == TaskStatus.PENDING

    def test_finds_legacy_key(self, recurring_task, utc_tz):
        """Should find state stored under an ISO timestamp key."""
        stored = RecurrenceInstance(status=TaskStatus.COMPLETED)
        task = replace(recurring_task, recurrence_instances={"2025-01-12T00:00:00.000Z": stored})

        assert resolve(task, "2025-01-12") is stored

    def test_one_off_returns_direct_state(self, one_off_task):
        """Should return direct stages of non-recurring tasks."""
        instance = resolve(one_off_task, "ignored")

        assert instance.stages == one_off_task.stages
        assert instance.status == TaskStatus.PENDING


class TestWrite:
    """Tests for writing per-date state."""

    def test_write_isolated_to_date(self, recurring_task, sample_stages):
        """Should leave other dates untouched."""
        other = RecurrenceInstance(stages=sample_stages, status=TaskStatus.IN_PROGRESS)
        task = replace(recurring_task, recurrence_instances={"2025-01-11": other})

        updated = write(task, "2025-01-12", {"status": TaskStatus.COMPLETED})

        assert updated.recurrence_instances["2025-01-11"] is other
        assert updated.recurrence_instances["2025-01-12"].status == TaskStatus.COMPLETED
        assert task.recurrence_instances == {"2025-01-11": other}

    def test_write_folds_aliases(self, recurring_task, sample_stages, utc_tz):
        """Should store under the canonical key and drop the alias."""
        legacy = RecurrenceInstance(stages=sample_stages)
        task = replace(recurring_task, recurrence_instances={"2025-01-12T00:00:00.000Z": legacy})

        updated = write(task, "2025-01-12", {"status": TaskStatus.IN_PROGRESS})

        assert list(updated.recurrence_instances) == ["2025-01-12"]
        assert updated.recurrence_instances["2025-01-12"].stages == sample_stages

    def test_write_one_off_sets_direct_fields(self, one_off_task):
        """Should update the direct state of non-recurring tasks."""
        stage = TaskStage(id=9, status=StageStatus.DONE, created_at="x")

        updated = write(one_off_task, "", {"stages": (stage,), "status": TaskStatus.COMPLETED})

        assert updated.stages == (stage,)
        assert updated.status == TaskStatus.COMPLETED
        assert updated.recurrence_instances == {}


# ─────────────────────────────────────────────────────────────────────────────
# Enumeration and Migration Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestEnumerateOccurrenceDates:
    """Tests for listing every occurrence date."""

    def test_pattern_dates(self, recurring_task):
        """Should list pattern dates in order."""
        dates = enumerate_occurrence_dates(recurring_task)

        assert dates[0] == "2025-01-10"
        assert len(dates) == 11

    def test_includes_stored_dates_outside_pattern(self, recurring_task):
        """Should include dates that already have stored state."""
        task = replace(recurring_task, recurrence_instances={"2025-01-05": RecurrenceInstance()})

        assert "2025-01-05" in enumerate_occurrence_dates(task)

    def test_custom_expander(self, recurring_task):
        """Should use the injected expander."""
        dates = enumerate_occurrence_dates(recurring_task, expand=lambda r: ["2025-01-11", "2025-01-10"])

        assert dates == ["2025-01-10", "2025-01-11"]

    def test_one_off_has_none(self, one_off_task):
        """Should return nothing for non-recurring tasks."""
        assert enumerate_occurrence_dates(one_off_task) == []


class TestMigrateInstanceKeys:
    """Tests for re-keying legacy instance keys."""

    def test_rekeys_legacy(self, recurring_task, utc_tz):
        """Should move aliased records to canonical keys."""
        stored = RecurrenceInstance(status=TaskStatus.COMPLETED)
        task = replace(recurring_task, recurrence_instances={"2025-01-12T00:00:00.000Z": stored})

        migrated, changed = migrate_instance_keys(task)

        assert changed is True
        assert migrated.recurrence_instances == {"2025-01-12": stored}

    def test_canonical_record_wins(self, recurring_task, utc_tz):
        """Should keep the canonical record when both exist."""
        canonical = RecurrenceInstance(status=TaskStatus.COMPLETED)
        legacy = RecurrenceInstance(status=TaskStatus.PENDING)
        task = replace(
            recurring_task,
            recurrence_instances={"2025-01-12T00:00:00.000Z": legacy, "2025-01-12": canonical},
        )

        migrated, changed = migrate_instance_keys(task)

        assert changed is True
        assert migrated.recurrence_instances == {"2025-01-12": canonical}

    def test_no_change_when_canonical(self, recurring_task):
        """Should report no change for canonical keys."""
        task = replace(recurring_task, recurrence_instances={"2025-01-12": RecurrenceInstance()})

        migrated, changed = migrate_instance_keys(task)

        assert changed is False
        assert migrated is task


# ─────────────────────────────────────────────────────────────────────────────
# Expansion Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestExpandForDate:
    """Tests for the per-date task view."""

    def test_recurring_view_carries_date_state(self, recurring_task, sample_stages):
        """Should fill the direct fields from that date's instance."""
        task = replace(
            recurring_task,
            recurrence_instances={"2025-01-12": RecurrenceInstance(stages=sample_stages, status=TaskStatus.IN_PROGRESS)},
        )

        view = expand_task_for_date(task, "2025-01-12")

        assert view.for_date == "2025-01-12"
        assert view.stages == sample_stages
        assert view.status == TaskStatus.IN_PROGRESS

    def test_recurring_off_pattern(self, recurring_task):
        """Should hide a recurring task outside its pattern."""
        assert expand_task_for_date(recurring_task, "2025-02-01") is None

    def test_list_filters_one_off_by_date(self, recurring_task, one_off_task):
        """Should include one-off tasks only on their date."""
        assert [t.id for t in expand_tasks_for_date([one_off_task, recurring_task], "2025-01-15")] == [100, 200]
        assert [t.id for t in expand_tasks_for_date([one_off_task, recurring_task], "2025-01-16")] == [200]
