"""Per-status counts for dashboards."""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from action_tracker.core.clock import utc_now
from action_tracker.core.rules import COMPLETED, EntityKind, get_rules
from action_tracker.core.validator import is_overdue
from action_tracker.db.models import TrackedEntity


@dataclass
class StatusSummary:
    kind: EntityKind
    counts: dict[str, int]
    total: int
    progress_pct: float
    overdue: int

    def to_dict(self) -> dict:
        return {
            "kind": str(self.kind),
            "counts": self.counts,
            "total": self.total,
            "progress_pct": self.progress_pct,
            "overdue": self.overdue,
        }


def status_summary(
    entities: Iterable[TrackedEntity],
    kind: EntityKind,
    now: datetime | None = None,
    include_inactive: bool = False,
) -> StatusSummary:
    """Count entities per status. Every status of the kind appears, zero-filled.

    ``overdue`` counts entities whose deadline passed but which the monitor
    has not delayed yet.
    """
    now = now or utc_now()
    counts = {s.value: 0 for s in get_rules(kind).statuses}
    overdue = 0
    for entity in entities:
        if not entity.active and not include_inactive:
            continue
        counts[str(entity.status)] = counts.get(str(entity.status), 0) + 1
        if is_overdue(entity.status, entity.end_date, now):
            overdue += 1
    total = sum(counts.values())
    progress = (counts[COMPLETED] / total * 100) if total > 0 else 0
    return StatusSummary(EntityKind(kind), counts, total, round(progress, 1), overdue)
