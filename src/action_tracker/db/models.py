"""Data models for action tracker."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import ClassVar

from action_tracker.core.rules import ActionPlanStatus, EntityKind, TaskStatus


@dataclass(frozen=True)
class StatusLogEntry:
    id: str
    entity_id: str
    from_status: str
    to_status: str
    timestamp: str
    automatic: bool = False
    justification: str | None = None
    system_notes: str | None = None
    user_name: str | None = None
    user_id: str | None = None


@dataclass
class TrackedEntity:
    id: str
    name: str
    start_date: datetime
    end_date: datetime
    status: str = "not_started"
    status_logs: list[StatusLogEntry] = field(default_factory=list)
    active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None

    kind: ClassVar[EntityKind]


@dataclass
class ActionPlan(TrackedEntity):
    status: ActionPlanStatus = ActionPlanStatus.NOT_STARTED
    coordinator: str | None = None

    kind: ClassVar[EntityKind] = EntityKind.ACTION_PLAN


@dataclass
class Task(TrackedEntity):
    status: TaskStatus = TaskStatus.NOT_STARTED
    action_plan_id: str | None = None
    description: str = ""
    assignee: str | None = None

    kind: ClassVar[EntityKind] = EntityKind.TASK

