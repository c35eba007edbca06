"""Tests for the status rule tables."""

import pytest

from action_tracker.core import rules
from action_tracker.core.rules import (
    ActionPlanStatus,
    EntityKind,
    StatusColor,
    StatusRules,
    TaskStatus,
    UnknownStatusError,
    get_available_statuses,
)

TASK_GRAPH = {
    "not_started": {"in_progress", "blocked"},
    "in_progress": {"in_review", "blocked", "completed", "delayed"},
    "in_review": {"completed", "in_progress", "blocked"},
    "blocked": {"in_progress", "not_started"},
    "completed": set(),
    "delayed": {"completed", "in_progress", "blocked"},
}

PLAN_GRAPH = {
    "not_started": {"in_progress", "cancelled"},
    "in_progress": {"completed", "delayed", "cancelled"},
    "completed": {"in_progress"},
    "delayed": {"completed", "cancelled"},
    "cancelled": {"not_started"},
}


class TestTransitionGraphs:
    @pytest.mark.parametrize("status", list(TASK_GRAPH))
    def test_task_graph(self, status):
        assert set(get_available_statuses(EntityKind.TASK, status)) == TASK_GRAPH[status]

    @pytest.mark.parametrize("status", list(PLAN_GRAPH))
    def test_action_plan_graph(self, status):
        assert set(get_available_statuses(EntityKind.ACTION_PLAN, status)) == PLAN_GRAPH[status]

    def test_accepts_enum_members(self):
        assert get_available_statuses("task", TaskStatus.BLOCKED) == {"in_progress", "not_started"}

    def test_unknown_status_has_no_transitions(self):
        assert get_available_statuses(EntityKind.TASK, "archived") == frozenset()
        assert get_available_statuses(EntityKind.ACTION_PLAN, "in_review") == frozenset()

    def test_rescheduled_is_reserved(self):
        assert get_available_statuses(EntityKind.ACTION_PLAN, "rescheduled") == frozenset()
        for targets in rules.ACTION_PLAN_RULES.transitions.values():
            assert "rescheduled" not in targets

    def test_terminal(self):
        assert rules.is_terminal(EntityKind.TASK, "completed")
        assert not rules.is_terminal(EntityKind.ACTION_PLAN, "completed")


class TestLabelsAndColors:
    def test_every_status_has_label_and_color(self):
        for kind in EntityKind:
            r = rules.get_rules(kind)
            for status in r.statuses:
                assert r.label(status)
                assert isinstance(r.color(status), StatusColor)

    def test_labels(self):
        assert rules.status_labels("task")["in_review"] == "In Review"
        assert rules.status_labels("action_plan")["rescheduled"] == "Rescheduled"
        assert rules.status_colors("task")["delayed"].bg == "bg-orange-100"

    def test_unknown_label_falls_back_to_code(self):
        assert rules.TASK_RULES.label("archived") == "archived"


class TestParse:
    def test_parse_known(self):
        assert rules.parse_status("task", "in_review") is TaskStatus.IN_REVIEW
        assert rules.parse_status("action_plan", "cancelled") is ActionPlanStatus.CANCELLED

    def test_parse_unknown_raises(self):
        with pytest.raises(UnknownStatusError):
            rules.parse_status("task", "cancelled")

    def test_unknown_status_error_is_value_error(self):
        with pytest.raises(ValueError):
            rules.parse_status("action_plan", "in_review")


class TestTableChecks:
    def test_missing_label_rejected(self):
        with pytest.raises(ValueError, match="labels"):
            StatusRules(
                kind=EntityKind.TASK,
                statuses=TaskStatus,
                transitions=dict(rules.TASK_RULES.transitions),
                labels={k: v for k, v in rules.TASK_RULES.labels.items() if k != "delayed"},
                colors=dict(rules.TASK_RULES.colors),
                hold_status="blocked",
                recoverable_status="blocked",
            )

    def test_transition_to_unknown_status_rejected(self):
        transitions = dict(rules.TASK_RULES.transitions)
        transitions["completed"] = frozenset({"archived"})
        with pytest.raises(ValueError, match="unknown statuses"):
            StatusRules(
                kind=EntityKind.TASK,
                statuses=TaskStatus,
                transitions=transitions,
                labels=dict(rules.TASK_RULES.labels),
                colors=dict(rules.TASK_RULES.colors),
                hold_status="blocked",
                recoverable_status="blocked",
            )
