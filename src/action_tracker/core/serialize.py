"""Dict serialization shared by the CLI, web API and MCP server."""

from action_tracker.core.rules import get_rules
from action_tracker.db.models import ActionPlan, StatusLogEntry, Task, TrackedEntity


def log_dict(entry: StatusLogEntry) -> dict:
    return {
        "id": entry.id,
        "entity_id": entry.entity_id,
        "from_status": entry.from_status,
        "to_status": entry.to_status,
        "timestamp": entry.timestamp,
        "automatic": entry.automatic,
        "justification": entry.justification,
        "system_notes": entry.system_notes,
        "user_name": entry.user_name,
        "user_id": entry.user_id,
    }


def entity_dict(entity: TrackedEntity, include_logs: bool = False) -> dict:
    rules = get_rules(entity.kind)
    d = {
        "id": entity.id,
        "kind": str(entity.kind),
        "name": entity.name,
        "status": str(entity.status),
        "status_label": rules.label(entity.status),
        "available_statuses": sorted(rules.available(entity.status)),
        "terminal": rules.is_terminal(entity.status),
        "start_date": entity.start_date.isoformat(),
        "end_date": entity.end_date.isoformat(),
        "active": entity.active,
        "created_at": entity.created_at.isoformat() if entity.created_at else None,
        "updated_at": entity.updated_at.isoformat() if entity.updated_at else None,
    }
    if isinstance(entity, Task):
        d["action_plan_id"] = entity.action_plan_id
        d["description"] = entity.description
        d["assignee"] = entity.assignee
    elif isinstance(entity, ActionPlan):
        d["coordinator"] = entity.coordinator
    if include_logs:
        d["status_logs"] = [log_dict(e) for e in entity.status_logs]
    return d


def rules_dict(kind) -> dict:
    rules = get_rules(kind)
    return {
        "kind": str(rules.kind),
        "statuses": [s.value for s in rules.statuses],
        "labels": dict(rules.labels),
        "colors": {k: {"bg": c.bg, "text": c.text} for k, c in rules.colors.items()},
        "transitions": {k: sorted(v) for k, v in rules.transitions.items()},
    }
