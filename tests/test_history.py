"""Tests for rendering status history."""

from datetime import datetime, timezone

from action_tracker.core.entities import create_task, get_entity
from action_tracker.core.executor import TransitionExecutor
from action_tracker.core.history import (
    AUTOMATIC_MARKER,
    INVALID_DATE,
    collect_history,
    format_timestamp,
    render_entry,
    render_history,
)
from action_tracker.core.rules import EntityKind
from action_tracker.core.status_log import AUTOMATIC_SYSTEM_NOTES
from action_tracker.db.models import ActionPlan, StatusLogEntry, Task

from conftest import NOW, days


def make_entry(id, timestamp, from_status="not_started", to_status="in_progress", **kwargs):
    return StatusLogEntry(
        id=id, entity_id="e", from_status=from_status, to_status=to_status, timestamp=timestamp, **kwargs
    )


def make_task(name, logs):
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return Task(id=name.lower(), name=name, start_date=start, end_date=start, status_logs=logs)


class TestFormatting:
    def test_timestamp(self):
        assert format_timestamp("2024-01-11T09:30:00+00:00") == "2024-01-11 09:30"

    def test_zulu_timestamp(self):
        assert format_timestamp("2024-01-11T09:30:00Z") == "2024-01-11 09:30"

    def test_invalid_timestamp(self):
        assert format_timestamp("last tuesday") == INVALID_DATE
        assert format_timestamp("") == INVALID_DATE
        assert format_timestamp(None) == INVALID_DATE


class TestRenderEntry:
    def test_manual_entry(self):
        entry = make_entry(
            "1", "2024-01-11T09:30:00+00:00", justification="kicked off", user_name="jane"
        )
        assert render_entry(entry, EntityKind.TASK) == (
            "2024-01-11 09:30 | Not Started → In Progress | Justification: kicked off | Changed by: jane"
        )

    def test_automatic_entry(self):
        entry = make_entry(
            "1", "2024-01-11T00:00:00+00:00", "in_progress", "delayed",
            automatic=True, system_notes=AUTOMATIC_SYSTEM_NOTES,
        )
        text = render_entry(entry, EntityKind.TASK)
        assert f"In Progress → Delayed {AUTOMATIC_MARKER}" in text
        assert text.endswith(AUTOMATIC_SYSTEM_NOTES)
        assert "Changed by" not in text

    def test_source_tag(self):
        entry = make_entry("1", "2024-01-11T00:00:00+00:00", "in_progress", "cancelled")
        text = render_entry(entry, EntityKind.ACTION_PLAN, source="Rollout")
        assert text == "2024-01-11 00:00 | Action plan 'Rollout' | In Progress → Cancelled"

    def test_unknown_status_rendered_raw(self):
        entry = make_entry("1", "2024-01-11T00:00:00+00:00", "in_progress", "archived")
        assert "In Progress → archived" in render_entry(entry, EntityKind.TASK)

    def test_invalid_date_rendered(self):
        entry = make_entry("1", "garbage")
        assert render_entry(entry, EntityKind.TASK).startswith(f"{INVALID_DATE} | ")


class TestCollect:
    def test_newest_first_across_entities(self):
        a = make_task("Alpha", [
            make_entry("a1", "2024-01-01T10:00:00+00:00"),
            make_entry("a2", "2024-01-03T10:00:00+00:00", "in_progress", "in_review"),
        ])
        b = make_task("Beta", [make_entry("b1", "2024-01-02T10:00:00+00:00")])
        items = collect_history([a, b])
        assert [i.entry.id for i in items] == ["a2", "b1", "a1"]
        assert [i.source for i in items] == ["Alpha", "Beta", "Alpha"]

    def test_undated_sort_last(self):
        task = make_task("Alpha", [
            make_entry("bad", "not a date"),
            make_entry("old", "2023-12-01T00:00:00+00:00"),
            make_entry("new", "2024-02-01T00:00:00+00:00"),
        ])
        assert [i.entry.id for i in collect_history([task])] == ["new", "old", "bad"]

    def test_mixed_offsets_compare_as_instants(self):
        task = make_task("Alpha", [
            make_entry("utc", "2024-01-01T10:00:00+00:00"),
            make_entry("east", "2024-01-01T11:30:00+02:00"),
        ])
        assert [i.entry.id for i in collect_history([task])] == ["utc", "east"]

    def test_untagged(self):
        task = make_task("Alpha", [make_entry("1", "2024-01-01T10:00:00+00:00")])
        assert collect_history([task], tag_source=False)[0].source is None

    def test_kind_follows_entity(self):
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        plan = ActionPlan(
            id="p", name="Plan", start_date=start, end_date=start,
            status_logs=[make_entry("1", "2024-01-01T10:00:00+00:00", "not_started", "cancelled")],
        )
        lines = render_history([plan])
        assert lines == ["2024-01-01 10:00 | Action plan 'Plan' | Not Started → Cancelled"]

    def test_empty(self):
        assert render_history([make_task("Alpha", [])]) == []


class TestTiedTimestamps:
    def test_later_entry_first_on_equal_timestamps(self, db, repo, clock):
        executor = TransitionExecutor(EntityKind.TASK, repo, clock=clock)
        task = create_task(db, "Report", NOW - days(1), NOW + days(5))
        executor.apply(task.id, "in_progress", justification="go")
        executor.apply(task.id, "in_review", justification="ready")

        items = collect_history([get_entity(db, EntityKind.TASK, task.id)])
        assert items[0].entry.timestamp == items[1].entry.timestamp
        assert [i.entry.to_status for i in items] == ["in_review", "in_progress"]

    def test_undated_still_last_with_ties(self):
        task = make_task("Alpha", [
            make_entry("first", "2024-01-01T10:00:00+00:00"),
            make_entry("bad", "??"),
            make_entry("second", "2024-01-01T10:00:00+00:00"),
        ])
        assert [i.entry.id for i in collect_history([task])] == ["second", "first", "bad"]
