"""Status rule tables for tasks and action plans.

Each entity kind has a closed status enumeration, a transition graph, display
labels and badge colors. ``StatusRules`` refuses to build a table that leaves
any status without an entry, so a new status cannot be added half-way.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum


class EntityKind(StrEnum):
    TASK = "task"
    ACTION_PLAN = "action_plan"


class TaskStatus(StrEnum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    IN_REVIEW = "in_review"
    BLOCKED = "blocked"
    COMPLETED = "completed"
    DELAYED = "delayed"


class ActionPlanStatus(StrEnum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DELAYED = "delayed"
    CANCELLED = "cancelled"
    # Reserved: labelled and colored, but no transition leads in or out.
    RESCHEDULED = "rescheduled"


# Status values shared by both kinds.
NOT_STARTED = "not_started"
IN_PROGRESS = "in_progress"
COMPLETED = "completed"
DELAYED = "delayed"


class UnknownStatusError(ValueError):
    """Raised when a status value is not part of a kind's enumeration."""

    def __init__(self, kind: EntityKind, value):
        self.kind = kind
        self.value = value
        super().__init__(f"Unknown {kind} status: {value!r}")


@dataclass(frozen=True)
class StatusColor:
    bg: str
    text: str


@dataclass(frozen=True)
class StatusRules:
    kind: EntityKind
    statuses: type[StrEnum]
    transitions: Mapping[str, frozenset[str]]
    labels: Mapping[str, str]
    colors: Mapping[str, StatusColor]
    hold_status: str
    recoverable_status: str

    def __post_init__(self):
        values = {s.value for s in self.statuses}
        for name, table in (
            ("transitions", self.transitions),
            ("labels", self.labels),
            ("colors", self.colors),
        ):
            missing = values - set(table)
            extra = set(table) - values
            if missing or extra:
                raise ValueError(
                    f"{self.kind} {name} table mismatch: missing={sorted(missing)} extra={sorted(extra)}"
                )
        for source, targets in self.transitions.items():
            if not targets <= values:
                raise ValueError(f"{self.kind} transition from {source} targets unknown statuses")
        if self.hold_status not in values or self.recoverable_status not in values:
            raise ValueError(f"{self.kind} hold/recoverable status must be a known status")

    def available(self, current) -> frozenset[str]:
        return self.transitions.get(str(current), frozenset())

    def is_terminal(self, status) -> bool:
        return not self.available(status)

    def parse(self, value) -> StrEnum:
        try:
            return self.statuses(str(value))
        except ValueError:
            raise UnknownStatusError(self.kind, value) from None

    def label(self, status) -> str:
        """Display label, falling back to the raw code for unknown values."""
        return self.labels.get(str(status), str(status))

    def color(self, status) -> StatusColor | None:
        return self.colors.get(str(status))


TASK_RULES = StatusRules(
    kind=EntityKind.TASK,
    statuses=TaskStatus,
    transitions={
        "not_started": frozenset({"in_progress", "blocked"}),
        "in_progress": frozenset({"in_review", "blocked", "completed", "delayed"}),
        "in_review": frozenset({"completed", "in_progress", "blocked"}),
        "blocked": frozenset({"in_progress", "not_started"}),
        "completed": frozenset(),
        "delayed": frozenset({"completed", "in_progress", "blocked"}),
    },
    labels={
        "not_started": "Not Started",
        "in_progress": "In Progress",
        "in_review": "In Review",
        "blocked": "Blocked",
        "completed": "Completed",
        "delayed": "Delayed",
    },
    colors={
        "not_started": StatusColor("bg-gray-100", "text-gray-800"),
        "in_progress": StatusColor("bg-blue-100", "text-blue-800"),
        "in_review": StatusColor("bg-yellow-100", "text-yellow-800"),
        "blocked": StatusColor("bg-red-100", "text-red-800"),
        "completed": StatusColor("bg-green-100", "text-green-800"),
        "delayed": StatusColor("bg-orange-100", "text-orange-800"),
    },
    hold_status=TaskStatus.BLOCKED.value,
    recoverable_status=TaskStatus.BLOCKED.value,
)

ACTION_PLAN_RULES = StatusRules(
    kind=EntityKind.ACTION_PLAN,
    statuses=ActionPlanStatus,
    transitions={
        "not_started": frozenset({"in_progress", "cancelled"}),
        "in_progress": frozenset({"completed", "delayed", "cancelled"}),
        "completed": frozenset({"in_progress"}),
        "delayed": frozenset({"completed", "cancelled"}),
        "cancelled": frozenset({"not_started"}),
        "rescheduled": frozenset(),
    },
    labels={
        "not_started": "Not Started",
        "in_progress": "In Progress",
        "completed": "Completed",
        "delayed": "Delayed",
        "cancelled": "Cancelled",
        "rescheduled": "Rescheduled",
    },
    colors={
        "not_started": StatusColor("bg-gray-100", "text-gray-800"),
        "in_progress": StatusColor("bg-blue-100", "text-blue-800"),
        "completed": StatusColor("bg-green-100", "text-green-800"),
        "delayed": StatusColor("bg-orange-100", "text-orange-800"),
        "cancelled": StatusColor("bg-red-100", "text-red-800"),
        "rescheduled": StatusColor("bg-yellow-100", "text-yellow-800"),
    },
    hold_status=ActionPlanStatus.CANCELLED.value,
    recoverable_status=ActionPlanStatus.CANCELLED.value,
)

RULES: dict[EntityKind, StatusRules] = {
    EntityKind.TASK: TASK_RULES,
    EntityKind.ACTION_PLAN: ACTION_PLAN_RULES,
}

KIND_LABELS = {
    EntityKind.TASK: "Task",
    EntityKind.ACTION_PLAN: "Action plan",
}


def get_rules(kind) -> StatusRules:
    return RULES[EntityKind(kind)]


def get_available_statuses(kind, current) -> frozenset[str]:
    """Allowed next statuses. Empty for terminal or unknown statuses."""
    return get_rules(kind).available(current)


def is_terminal(kind, status) -> bool:
    return get_rules(kind).is_terminal(status)


def status_labels(kind) -> Mapping[str, str]:
    return get_rules(kind).labels


def status_colors(kind) -> Mapping[str, StatusColor]:
    return get_rules(kind).colors


def parse_status(kind, value) -> StrEnum:
    """Convert a raw value to the kind's status enum. Raises UnknownStatusError."""
    return get_rules(kind).parse(value)
