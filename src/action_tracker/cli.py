"""CLI entry point for the action tracker."""

import json
import logging
import sys

import click

from action_tracker.config import get_config
from action_tracker.core import entities as entities_mod
from action_tracker.core import history as history_mod
from action_tracker.core.entities import EntityNotFoundError, RepositoryError
from action_tracker.core.rules import EntityKind, KIND_LABELS, get_rules
from action_tracker.core.serialize import entity_dict
from action_tracker.core.summary import status_summary
from action_tracker.db.engine import get_db
from action_tracker.services import create_services

DATE_FORMATS = ["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M"]

STATUS_ICONS = {
    "not_started": "○",
    "in_progress": "●",
    "in_review": "◐",
    "blocked": "✗",
    "completed": "✓",
    "delayed": "!",
    "cancelled": "-",
    "rescheduled": "↻",
}


def _get_db():
    config = get_config()
    return get_db(config.db_path)


@click.group()
def main():
    """tracker - Action Plan and Task status tracker"""
    pass


# ── Action Plan Commands ──────────────────────────────────────────────────────


@main.group("plan")
def plan_group():
    """Manage action plans."""
    pass


@plan_group.command("add")
@click.argument("name")
@click.option("--start", "start_date", required=True, type=click.DateTime(DATE_FORMATS), help="Planned start")
@click.option("--end", "end_date", required=True, type=click.DateTime(DATE_FORMATS), help="Planned end")
@click.option("--coordinator", default=None, help="Coordinator name")
def plan_add(name, start_date, end_date, coordinator):
    """Create a new action plan."""
    with _get_db() as db:
        try:
            plan = entities_mod.create_action_plan(db, name, start_date, end_date, coordinator)
        except ValueError as e:
            click.echo(str(e), err=True)
            sys.exit(1)
        click.echo(f"Created action plan: {plan.id}")
        click.echo(f"  Name: {plan.name}")
        click.echo(f"  Window: {plan.start_date.isoformat()} -> {plan.end_date.isoformat()}")
        click.echo(f"  Status: {plan.status}")


# ── Task Commands ─────────────────────────────────────────────────────────────


@main.group("task")
def task_group():
    """Manage tasks."""
    pass


@task_group.command("add")
@click.argument("name")
@click.option("--start", "start_date", required=True, type=click.DateTime(DATE_FORMATS), help="Planned start")
@click.option("--end", "end_date", required=True, type=click.DateTime(DATE_FORMATS), help="Planned end")
@click.option("--plan", "action_plan_id", default=None, help="Action plan ID")
@click.option("--assignee", default=None, help="Assignee name")
@click.option("--description", "-d", default="", help="Task description")
def task_add(name, start_date, end_date, action_plan_id, assignee, description):
    """Create a new task."""
    with _get_db() as db:
        try:
            task = entities_mod.create_task(
                db, name, start_date, end_date,
                action_plan_id=action_plan_id, description=description, assignee=assignee,
            )
        except (ValueError, EntityNotFoundError) as e:
            click.echo(str(e), err=True)
            sys.exit(1)
        click.echo(f"Created task: {task.id}")
        click.echo(f"  Name: {task.name}")
        click.echo(f"  Window: {task.start_date.isoformat()} -> {task.end_date.isoformat()}")
        click.echo(f"  Status: {task.status}")
        if task.action_plan_id:
            click.echo(f"  Action plan: {task.action_plan_id}")


# ── Commands shared by both kinds ─────────────────────────────────────────────


def _register_status_commands(group: click.Group, kind: EntityKind):
    label = KIND_LABELS[kind].lower()

    @group.command("list")
    @click.option("--status", default=None, help="Filter by status")
    @click.option("--json-output", "--json", is_flag=True, help="Output as JSON")
    def list_command(status, json_output):
        with _get_db() as db:
            try:
                items = entities_mod.list_entities(db, kind, status=status)
            except ValueError as e:
                click.echo(str(e), err=True)
                sys.exit(1)

        if json_output:
            click.echo(json.dumps([entity_dict(e) for e in items], indent=2))
            return
        if not items:
            click.echo(f"No {label}s found.")
            return
        rules = get_rules(kind)
        for item in items:
            icon = STATUS_ICONS.get(str(item.status), "?")
            click.echo(
                f"  {icon} {item.id}: {item.name} ({rules.label(item.status)}) "
                f"due {item.end_date.date().isoformat()}"
            )

    list_command.help = f"List {label}s."

    @group.command("show")
    @click.argument("entity_id")
    def show_command(entity_id):
        with _get_db() as db:
            item = entities_mod.get_entity(db, kind, entity_id)
        if not item:
            click.echo(f"{KIND_LABELS[kind]} not found: {entity_id}", err=True)
            sys.exit(1)

        rules = get_rules(kind)
        click.echo(f"{KIND_LABELS[kind]}: {item.id}")
        click.echo(f"  Name: {item.name}")
        click.echo(f"  Status: {rules.label(item.status)}")
        click.echo(f"  Start: {item.start_date.isoformat()}")
        click.echo(f"  End: {item.end_date.isoformat()}")
        available = sorted(rules.available(item.status))
        click.echo(f"  Next: {', '.join(available) if available else '(final)'}")
        if item.status_logs:
            click.echo("  History:")
            for line in history_mod.render_history([item], tag_source=False):
                click.echo(f"    {line}")

    show_command.help = f"Show {label} details."

    @group.command("status")
    @click.argument("entity_id")
    @click.argument("new_status")
    @click.option("--justification", "-j", default=None, help="Reason for the change")
    @click.option("--actor", default=None, help="Who is making the change")
    def status_command(entity_id, new_status, justification, actor):
        services = create_services()
        try:
            outcome = services.executor(kind).apply(
                entity_id, new_status, justification=justification, actor=actor
            )
        except EntityNotFoundError as e:
            click.echo(str(e), err=True)
            sys.exit(1)
        except RepositoryError as e:
            click.echo(f"Could not save the change, try again: {e}", err=True)
            sys.exit(1)

        if not outcome.applied:
            click.echo(f"Rejected: {outcome.message}", err=True)
            sys.exit(1)
        rules = get_rules(kind)
        entry = outcome.log_entry
        click.echo(
            f"{KIND_LABELS[kind]} {entity_id}: "
            f"{rules.label(entry.from_status)} -> {rules.label(entry.to_status)}"
        )
        if outcome.message:
            click.echo(f"  Note: {outcome.message}")

    status_command.help = f"Change a {label}'s status."

    @group.command("history")
    @click.argument("entity_id")
    def history_command(entity_id):
        with _get_db() as db:
            item = entities_mod.get_entity(db, kind, entity_id)
        if not item:
            click.echo(f"{KIND_LABELS[kind]} not found: {entity_id}", err=True)
            sys.exit(1)
        lines = history_mod.render_history([item], tag_source=False)
        if not lines:
            click.echo("No status changes recorded.")
            return
        for line in lines:
            click.echo(f"  {line}")

    history_command.help = f"Show a {label}'s status history, newest first."

    @group.command("available")
    @click.argument("entity_id")
    def available_command(entity_id):
        with _get_db() as db:
            item = entities_mod.get_entity(db, kind, entity_id)
        if not item:
            click.echo(f"{KIND_LABELS[kind]} not found: {entity_id}", err=True)
            sys.exit(1)
        rules = get_rules(kind)
        available = sorted(rules.available(item.status))
        if not available:
            click.echo(f"{KIND_LABELS[kind]} is {rules.label(item.status)}; no further changes allowed.")
            return
        for status in available:
            click.echo(f"  {status}: {rules.label(status)}")

    available_command.help = f"List the statuses a {label} can move to."

    @group.command("delete")
    @click.argument("entity_id")
    def delete_command(entity_id):
        services = create_services()
        try:
            deleted = services.delete_entity(kind, entity_id)
        except RepositoryError as e:
            click.echo(f"Could not delete, try again: {e}", err=True)
            sys.exit(1)
        if not deleted:
            click.echo(f"{KIND_LABELS[kind]} not found: {entity_id}", err=True)
            sys.exit(1)
        click.echo(f"Deleted {label}: {entity_id}")

    delete_command.help = f"Delete a {label} and its status history."


_register_status_commands(plan_group, EntityKind.ACTION_PLAN)
_register_status_commands(task_group, EntityKind.TASK)


# ── Overview Commands ────────────────────────────────────────────────────────


@main.command("history")
@click.option("--limit", "-n", default=50, type=int, help="Maximum entries to show")
def history_all(limit):
    """Show recent status changes across all tasks and action plans."""
    with _get_db() as db:
        pooled = []
        for kind in EntityKind:
            pooled.extend(entities_mod.list_entities(db, kind))
    lines = history_mod.render_history(pooled)
    if not lines:
        click.echo("No status changes recorded.")
        return
    for line in lines[:limit]:
        click.echo(f"  {line}")


@main.command("summary")
@click.option("--json-output", "--json", is_flag=True, help="Output as JSON")
def summary_command(json_output):
    """Show status counts for tasks and action plans."""
    with _get_db() as db:
        summaries = [
            status_summary(entities_mod.list_entities(db, kind), kind) for kind in EntityKind
        ]
    if json_output:
        click.echo(json.dumps([s.to_dict() for s in summaries], indent=2))
        return
    for s in summaries:
        rules = get_rules(s.kind)
        click.echo(f"{KIND_LABELS[s.kind]}s: {s.total} total, {s.progress_pct}% completed, {s.overdue} overdue")
        for status, count in s.counts.items():
            click.echo(f"  {rules.label(status)}: {count}")


@main.command("scan")
def scan_command():
    """Run one deadline scan and delay every overdue task and action plan."""
    services = create_services()
    total = 0
    for kind, monitor in services.monitors.items():
        applied = monitor.scan()
        for outcome in applied:
            click.echo(f"  Delayed {KIND_LABELS[kind].lower()} {outcome.entity.id}")
        total += len(applied)
    click.echo(f"{total} item(s) marked as delayed.")


# ── Server Commands ──────────────────────────────────────────────────────────


@main.command("serve")
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--port", default=8787, type=int, help="Port to listen on")
def serve_command(host, port):
    """Launch the JSON API with deadline monitoring."""
    from action_tracker.web.app import run_server

    logging.basicConfig(level=logging.INFO)
    click.echo(f"Starting API at http://{host}:{port}")
    run_server(host=host, port=port)


@main.group("mcp")
def mcp_group():
    """MCP server commands."""
    pass


@mcp_group.command("serve")
def mcp_serve():
    """Start the MCP server (stdio transport)."""
    from action_tracker.mcp.server import mcp
    from action_tracker.mcp import prompts  # noqa: F401 - registers prompts

    logging.basicConfig(level=logging.INFO, stream=sys.stderr)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
