"""Task and action plan persistence.

Module-level functions operate on an open connection. ``SqliteEntityRepository``
wraps them behind the repository interface the transition executor and the
deadline monitors consume, opening one connection per call so it can be
shared with monitor threads.
"""

import re
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Protocol

from action_tracker.core.clock import isoformat, parse_timestamp, to_utc, utc_now
from action_tracker.core.rules import EntityKind, get_rules
from action_tracker.db.engine import get_db
from action_tracker.db.models import (
    ActionPlan,
    StatusLogEntry,
    Task,
    TrackedEntity,
)

TABLES = {
    EntityKind.TASK: "tasks",
    EntityKind.ACTION_PLAN: "action_plans",
}

# Fields update_entity may write, per kind. Status and logs are written only
# by the transition executor through the repository.
_COMMON_FIELDS = {"name", "active", "start_date", "end_date", "status", "status_logs", "updated_at"}
UPDATABLE_FIELDS = {
    EntityKind.TASK: _COMMON_FIELDS | {"description", "assignee", "action_plan_id"},
    EntityKind.ACTION_PLAN: _COMMON_FIELDS | {"coordinator"},
}


class EntityNotFoundError(LookupError):
    """Raised when a task or action plan does not exist."""

    def __init__(self, kind: EntityKind, entity_id: str):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind} not found: {entity_id}")


class RepositoryError(Exception):
    """Raised when a persistence operation fails."""


class EntityRepository(Protocol):
    def get_all(self, kind: EntityKind) -> list[TrackedEntity]: ...

    def get_by_id(self, kind: EntityKind, entity_id: str) -> TrackedEntity | None: ...

    def update(self, kind: EntityKind, entity_id: str, fields: dict) -> bool: ...


def slugify(name: str) -> str:
    """Convert a name to a URL-friendly slug."""
    slug = name.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[\s_]+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")[:60] or "item"


def _unique_id(db: sqlite3.Connection, table: str, base_slug: str) -> str:
    """Generate a unique ID from a slug, appending a number if needed."""
    existing = db.execute(f"SELECT id FROM {table} WHERE id = ?", (base_slug,)).fetchone()
    if not existing:
        return base_slug

    i = 2
    while True:
        candidate = f"{base_slug}-{i}"
        existing = db.execute(f"SELECT id FROM {table} WHERE id = ?", (candidate,)).fetchone()
        if not existing:
            return candidate
        i += 1


def _check_window(start_date: datetime, end_date: datetime) -> tuple[datetime, datetime]:
    start = to_utc(start_date)
    end = to_utc(end_date)
    if end < start:
        raise ValueError("End date must not be before the start date")
    return start, end


def create_action_plan(
    db: sqlite3.Connection,
    name: str,
    start_date: datetime,
    end_date: datetime,
    coordinator: str | None = None,
) -> ActionPlan:
    """Create a new action plan in the not_started status."""
    start, end = _check_window(start_date, end_date)
    plan_id = _unique_id(db, "action_plans", slugify(name))
    now = isoformat(utc_now())

    db.execute(
        """INSERT INTO action_plans (id, name, coordinator, start_date, end_date, created_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?)""",
        (plan_id, name, coordinator, isoformat(start), isoformat(end), now, now),
    )
    db.commit()
    return get_entity(db, EntityKind.ACTION_PLAN, plan_id)


def create_task(
    db: sqlite3.Connection,
    name: str,
    start_date: datetime,
    end_date: datetime,
    action_plan_id: str | None = None,
    description: str = "",
    assignee: str | None = None,
) -> Task:
    """Create a new task in the not_started status."""
    start, end = _check_window(start_date, end_date)
    if action_plan_id and not get_entity(db, EntityKind.ACTION_PLAN, action_plan_id):
        raise EntityNotFoundError(EntityKind.ACTION_PLAN, action_plan_id)
    task_id = _unique_id(db, "tasks", slugify(name))
    now = isoformat(utc_now())

    db.execute(
        """INSERT INTO tasks (id, action_plan_id, name, description, assignee,
                              start_date, end_date, created_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (task_id, action_plan_id, name, description, assignee,
         isoformat(start), isoformat(end), now, now),
    )
    db.commit()
    return get_entity(db, EntityKind.TASK, task_id)


def get_entity(db: sqlite3.Connection, kind: EntityKind, entity_id: str) -> TrackedEntity | None:
    """Get a task or action plan by ID with its status log."""
    kind = EntityKind(kind)
    row = db.execute(f"SELECT * FROM {TABLES[kind]} WHERE id = ?", (entity_id,)).fetchone()
    if not row:
        return None
    entity = _row_to_entity(kind, row)
    entity.status_logs = get_status_logs(db, kind, entity_id)
    return entity


def list_entities(
    db: sqlite3.Connection,
    kind: EntityKind,
    status: str | None = None,
    action_plan_id: str | None = None,
    active_only: bool = False,
) -> list[TrackedEntity]:
    """List tasks or action plans with optional filters."""
    kind = EntityKind(kind)
    query = f"SELECT * FROM {TABLES[kind]} WHERE 1 = 1"
    params: list = []

    if status:
        query += " AND status = ?"
        params.append(str(get_rules(kind).parse(status)))

    if action_plan_id is not None:
        if kind is not EntityKind.TASK:
            raise ValueError("Only tasks can be filtered by action plan")
        query += " AND action_plan_id = ?"
        params.append(action_plan_id)

    if active_only:
        query += " AND active = 1"

    query += " ORDER BY end_date ASC, created_at ASC"
    rows = db.execute(query, params).fetchall()
    entities = []
    for row in rows:
        entity = _row_to_entity(kind, row)
        entity.status_logs = get_status_logs(db, kind, entity.id)
        entities.append(entity)
    return entities


def get_status_logs(db: sqlite3.Connection, kind: EntityKind, entity_id: str) -> list[StatusLogEntry]:
    """Get the status log of an entity in insertion order."""
    rows = db.execute(
        "SELECT * FROM status_logs WHERE entity_kind = ? AND entity_id = ? ORDER BY seq",
        (str(kind), entity_id),
    ).fetchall()
    return [_row_to_log(r) for r in rows]


def update_entity(
    db: sqlite3.Connection,
    kind: EntityKind,
    entity_id: str,
    fields: dict,
) -> bool:
    """Apply a partial update as one transaction. Returns False if the entity is missing.

    ``status_logs``, when given, must be the stored log with new entries
    appended; only the new tail is inserted.
    """
    kind = EntityKind(kind)
    unknown = set(fields) - UPDATABLE_FIELDS[kind]
    if unknown:
        raise ValueError(f"Cannot update {kind} fields: {', '.join(sorted(unknown))}")

    table = TABLES[kind]
    if not db.execute(f"SELECT id FROM {table} WHERE id = ?", (entity_id,)).fetchone():
        return False

    columns = {}
    for key, value in fields.items():
        if key == "status_logs":
            continue
        if key == "status":
            value = str(get_rules(kind).parse(value))
        elif key in ("start_date", "end_date", "updated_at"):
            value = isoformat(value)
        elif key == "active":
            value = 1 if value else 0
        columns[key] = value
    columns.setdefault("updated_at", isoformat(utc_now()))

    try:
        set_parts = [f"{k} = ?" for k in columns]
        db.execute(
            f"UPDATE {table} SET {', '.join(set_parts)} WHERE id = ?",
            [*columns.values(), entity_id],
        )
        if "status_logs" in fields:
            _append_logs(db, kind, entity_id, list(fields["status_logs"]))
        db.commit()
    except Exception:
        db.rollback()
        raise
    return True


def _append_logs(db: sqlite3.Connection, kind: EntityKind, entity_id: str, logs: list[StatusLogEntry]):
    stored = get_status_logs(db, kind, entity_id)
    if [e.id for e in logs[: len(stored)]] != [e.id for e in stored]:
        raise RepositoryError(f"Status log of {kind} {entity_id} is append-only")
    for seq, entry in enumerate(logs[len(stored):], start=len(stored)):
        db.execute(
            """INSERT INTO status_logs (id, entity_kind, entity_id, seq, from_status, to_status,
                                        timestamp, automatic, justification, system_notes,
                                        user_name, user_id)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (entry.id, str(kind), entity_id, seq, entry.from_status, entry.to_status,
             entry.timestamp, 1 if entry.automatic else 0, entry.justification,
             entry.system_notes, entry.user_name, entry.user_id),
        )


def delete_entity(db: sqlite3.Connection, kind: EntityKind, entity_id: str) -> bool:
    """Delete an entity together with its status log."""
    kind = EntityKind(kind)
    if not get_entity(db, kind, entity_id):
        return False
    db.execute(
        "DELETE FROM status_logs WHERE entity_kind = ? AND entity_id = ?",
        (str(kind), entity_id),
    )
    db.execute(f"DELETE FROM {TABLES[kind]} WHERE id = ?", (entity_id,))
    db.commit()
    return True


class SqliteEntityRepository:
    """Entity repository backed by the SQLite database at ``db_path``."""

    def __init__(self, db_path: Path):
        self.db_path = db_path

    def get_all(self, kind: EntityKind) -> list[TrackedEntity]:
        with get_db(self.db_path) as db:
            return list_entities(db, kind)

    def get_by_id(self, kind: EntityKind, entity_id: str) -> TrackedEntity | None:
        with get_db(self.db_path) as db:
            return get_entity(db, kind, entity_id)

    def update(self, kind: EntityKind, entity_id: str, fields: dict) -> bool:
        try:
            with get_db(self.db_path) as db:
                return update_entity(db, kind, entity_id, fields)
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to update {kind} {entity_id}: {e}") from e

    def delete(self, kind: EntityKind, entity_id: str) -> bool:
        try:
            with get_db(self.db_path) as db:
                return delete_entity(db, kind, entity_id)
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to delete {kind} {entity_id}: {e}") from e


def _row_to_entity(kind: EntityKind, row: sqlite3.Row) -> TrackedEntity:
    common = dict(
        id=row["id"],
        name=row["name"],
        status=get_rules(kind).parse(row["status"]),
        start_date=parse_timestamp(row["start_date"]),
        end_date=parse_timestamp(row["end_date"]),
        active=bool(row["active"]),
        created_at=parse_timestamp(row["created_at"]),
        updated_at=parse_timestamp(row["updated_at"]),
    )
    if kind is EntityKind.TASK:
        return Task(
            **common,
            action_plan_id=row["action_plan_id"],
            description=row["description"] or "",
            assignee=row["assignee"],
        )
    return ActionPlan(**common, coordinator=row["coordinator"])


def _row_to_log(row: sqlite3.Row) -> StatusLogEntry:
    return StatusLogEntry(
        id=row["id"],
        entity_id=row["entity_id"],
        from_status=row["from_status"],
        to_status=row["to_status"],
        timestamp=row["timestamp"],
        automatic=bool(row["automatic"]),
        justification=row["justification"],
        system_notes=row["system_notes"],
        user_name=row["user_name"],
        user_id=row["user_id"],
    )
