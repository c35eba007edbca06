"""Tests for status summaries."""

from action_tracker.core.rules import EntityKind
from action_tracker.core.summary import status_summary
from action_tracker.db.models import ActionPlan, Task

from conftest import NOW, days


def task(id, status, end=None, active=True):
    return Task(id=id, name=id, start_date=NOW - days(10), end_date=end or NOW + days(1), status=status, active=active)


def test_counts_are_zero_filled():
    summary = status_summary([], EntityKind.ACTION_PLAN, now=NOW)
    assert summary.counts == {
        "not_started": 0, "in_progress": 0, "completed": 0,
        "delayed": 0, "cancelled": 0, "rescheduled": 0,
    }
    assert summary.total == 0
    assert summary.progress_pct == 0


def test_counts_progress_and_overdue():
    tasks = [
        task("a", "completed"),
        task("b", "in_progress"),
        task("c", "in_progress", end=NOW - days(1)),
        task("d", "delayed", end=NOW - days(1)),
    ]
    summary = status_summary(tasks, EntityKind.TASK, now=NOW)
    assert summary.counts["in_progress"] == 2
    assert summary.counts["in_review"] == 0
    assert summary.total == 4
    assert summary.progress_pct == 25.0
    assert summary.overdue == 1


def test_inactive_excluded_by_default():
    tasks = [task("a", "completed"), task("b", "in_progress", active=False)]
    assert status_summary(tasks, "task", now=NOW).total == 1
    assert status_summary(tasks, "task", now=NOW, include_inactive=True).total == 2


def test_to_dict():
    plan = ActionPlan(id="p", name="p", start_date=NOW, end_date=NOW + days(1), status="in_progress")
    d = status_summary([plan], "action_plan", now=NOW).to_dict()
    assert d["kind"] == "action_plan"
    assert d["counts"]["in_progress"] == 1
    assert d["overdue"] == 0
