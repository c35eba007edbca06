"""Rendering status logs as a human-readable history.

History may pool the logs of many entities. Entries are listed newest first;
an entry whose timestamp cannot be parsed shows ``invalid date`` and sorts
after all dated entries, and an unknown status code is shown as-is.
"""

from collections.abc import Iterable
from dataclasses import dataclass

from action_tracker.core.clock import parse_timestamp
from action_tracker.core.rules import KIND_LABELS, EntityKind, get_rules
from action_tracker.db.models import StatusLogEntry, TrackedEntity

INVALID_DATE = "invalid date"
AUTOMATIC_MARKER = "[Automatic]"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M"


@dataclass(frozen=True)
class HistoryItem:
    entry: StatusLogEntry
    kind: EntityKind
    source: str | None = None


def collect_history(entities: Iterable[TrackedEntity], tag_source: bool = True) -> list[HistoryItem]:
    """Pool the status logs of ``entities``, newest first, tagged with each entity's name."""
    items = [
        HistoryItem(entry, entity.kind, entity.name if tag_source else None)
        for entity in entities
        for entry in entity.status_logs
    ]
    return sort_newest_first(items)


def sort_newest_first(items: Iterable[HistoryItem]) -> list[HistoryItem]:
    """Order by timestamp, newest first. On equal timestamps the later-appended entry comes first."""
    dated = []
    undated = []
    for index, item in enumerate(items):
        ts = parse_timestamp(item.entry.timestamp)
        if ts is None:
            undated.append(item)
        else:
            dated.append((ts, index, item))
    dated.sort(key=lambda triple: (triple[0], triple[1]), reverse=True)
    return [item for _, _, item in dated] + undated


def format_timestamp(value) -> str:
    ts = parse_timestamp(value)
    if ts is None:
        return INVALID_DATE
    return ts.strftime(TIMESTAMP_FORMAT)


def render_entry(entry: StatusLogEntry, kind: EntityKind, source: str | None = None) -> str:
    rules = get_rules(kind)
    parts = [format_timestamp(entry.timestamp)]
    if source:
        parts.append(f"{KIND_LABELS[EntityKind(kind)]} '{source}'")

    transition = f"{rules.label(entry.from_status)} → {rules.label(entry.to_status)}"
    if entry.automatic:
        transition += f" {AUTOMATIC_MARKER}"
    parts.append(transition)

    if entry.justification:
        parts.append(f"Justification: {entry.justification}")
    if entry.system_notes:
        parts.append(entry.system_notes)
    elif entry.user_name:
        parts.append(f"Changed by: {entry.user_name}")
    return " | ".join(parts)


def render_item(item: HistoryItem) -> str:
    return render_entry(item.entry, item.kind, item.source)


def render_history(entities: Iterable[TrackedEntity], tag_source: bool = True) -> list[str]:
    return [render_item(item) for item in collect_history(entities, tag_source)]
