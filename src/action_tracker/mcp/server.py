"""MCP server exposing the action tracker tools."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime

from mcp.server.fastmcp import Context, FastMCP

from action_tracker.core import entities as entities_mod
from action_tracker.core import history as history_mod
from action_tracker.core.entities import EntityNotFoundError, RepositoryError
from action_tracker.core.rules import EntityKind, get_rules
from action_tracker.core.serialize import entity_dict, log_dict
from action_tracker.core.summary import status_summary
from action_tracker.db.engine import get_db
from action_tracker.services import Services, create_services


@dataclass
class AppContext:
    services: Services


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[AppContext]:
    """Build services and start deadline monitoring on startup, stop on shutdown."""
    services = create_services()
    services.refresh_stores()
    if services.config.monitor_enabled:
        services.start_monitors()
    try:
        yield AppContext(services=services)
    finally:
        services.stop_monitors()


mcp = FastMCP("action-tracker", lifespan=app_lifespan)


def _services(ctx: Context) -> Services:
    return ctx.request_context.lifespan_context.services


def _db(ctx: Context):
    return get_db(_services(ctx).config.db_path)


def _parse_kind(kind: str) -> EntityKind:
    return EntityKind(kind.replace("-", "_"))


# ── Entity Tools ──────────────────────────────────────────────────────────────


@mcp.tool()
def create_action_plan(
    ctx: Context,
    name: str,
    start_date: str,
    end_date: str,
    coordinator: str | None = None,
) -> dict:
    """Create an action plan. Dates are ISO-8601 (e.g. 2024-01-31 or 2024-01-31T18:00:00)."""
    try:
        with _db(ctx) as db:
            plan = entities_mod.create_action_plan(
                db, name, datetime.fromisoformat(start_date), datetime.fromisoformat(end_date), coordinator
            )
    except ValueError as e:
        return {"error": str(e)}
    return entity_dict(plan)


@mcp.tool()
def create_task(
    ctx: Context,
    name: str,
    start_date: str,
    end_date: str,
    action_plan_id: str | None = None,
    description: str = "",
    assignee: str | None = None,
) -> dict:
    """Create a task, optionally inside an action plan. Dates are ISO-8601."""
    try:
        with _db(ctx) as db:
            task = entities_mod.create_task(
                db, name,
                datetime.fromisoformat(start_date), datetime.fromisoformat(end_date),
                action_plan_id=action_plan_id, description=description, assignee=assignee,
            )
    except (ValueError, EntityNotFoundError) as e:
        return {"error": str(e)}
    return entity_dict(task)


@mcp.tool()
def list_entities(ctx: Context, kind: str = "task", status: str | None = None) -> list[dict] | dict:
    """List tasks (kind='task') or action plans (kind='action_plan'), optionally by status."""
    try:
        with _db(ctx) as db:
            items = entities_mod.list_entities(db, _parse_kind(kind), status=status)
    except ValueError as e:
        return {"error": str(e)}
    return [entity_dict(e) for e in items]


@mcp.tool()
def get_entity(ctx: Context, entity_id: str, kind: str = "task") -> dict:
    """Get a task or action plan with its full status log."""
    try:
        with _db(ctx) as db:
            item = entities_mod.get_entity(db, _parse_kind(kind), entity_id)
    except ValueError as e:
        return {"error": str(e)}
    if not item:
        return {"error": f"Not found: {entity_id}"}
    return entity_dict(item, include_logs=True)


# ── Status Tools ──────────────────────────────────────────────────────────────


@mcp.tool()
def change_status(
    ctx: Context,
    entity_id: str,
    new_status: str,
    justification: str,
    actor: str | None = None,
    kind: str = "task",
) -> dict:
    """Change the status of a task or action plan. A justification is required.
    Use available_statuses first to see which changes are allowed."""
    try:
        executor = _services(ctx).executor(_parse_kind(kind))
        outcome = executor.apply(entity_id, new_status, justification=justification, actor=actor)
    except (ValueError, EntityNotFoundError, RepositoryError) as e:
        return {"error": str(e)}
    if not outcome.applied:
        return {"error": outcome.message}
    return {
        "entity": entity_dict(outcome.entity),
        "log_entry": log_dict(outcome.log_entry),
        "message": outcome.message,
    }


@mcp.tool()
def available_statuses(ctx: Context, entity_id: str, kind: str = "task") -> dict:
    """List the statuses a task or action plan may move to from its current status."""
    try:
        entity_kind = _parse_kind(kind)
        with _db(ctx) as db:
            item = entities_mod.get_entity(db, entity_kind, entity_id)
    except ValueError as e:
        return {"error": str(e)}
    if not item:
        return {"error": f"Not found: {entity_id}"}
    rules = get_rules(entity_kind)
    return {
        "status": str(item.status),
        "available": {s: rules.label(s) for s in sorted(rules.available(item.status))},
    }


@mcp.tool()
def status_history(ctx: Context, entity_id: str | None = None, kind: str = "task", limit: int = 50) -> dict:
    """Status change history, newest first. Without entity_id, pools every task and action plan."""
    try:
        with _db(ctx) as db:
            if entity_id:
                item = entities_mod.get_entity(db, _parse_kind(kind), entity_id)
                if not item:
                    return {"error": f"Not found: {entity_id}"}
                pooled = [item]
            else:
                pooled = [e for k in EntityKind for e in entities_mod.list_entities(db, k)]
    except ValueError as e:
        return {"error": str(e)}
    lines = history_mod.render_history(pooled, tag_source=entity_id is None)
    return {"history": lines[:limit], "total": len(lines)}


@mcp.tool()
def run_deadline_scan(ctx: Context) -> dict:
    """Run a deadline scan now and mark every overdue task and action plan as delayed."""
    services = _services(ctx)
    delayed = {}
    for kind, monitor in services.monitors.items():
        delayed[str(kind)] = [o.entity.id for o in monitor.scan()]
    return {"delayed": delayed}


@mcp.tool()
def get_status_summary(ctx: Context) -> list[dict]:
    """Status counts, completion percentage and overdue count for tasks and action plans."""
    with _db(ctx) as db:
        return [
            status_summary(entities_mod.list_entities(db, kind), kind).to_dict()
            for kind in EntityKind
        ]
