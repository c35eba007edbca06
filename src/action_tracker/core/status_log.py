"""Construction of status log entries."""

import uuid

from action_tracker.core.clock import Clock, isoformat, utc_now
from action_tracker.db.models import StatusLogEntry

AUTOMATIC_SYSTEM_NOTES = "Automatic change by the system - deadline exceeded"


def create_status_log(
    entity_id: str,
    from_status,
    to_status,
    justification: str | None = None,
    automatic: bool = False,
    user_name: str | None = None,
    user_id: str | None = None,
    clock: Clock = utc_now,
) -> StatusLogEntry:
    """Build a new log entry stamped with a fresh id and the current instant.

    Automatic entries always carry the canned system notes and never a user
    identity or justification, whatever the caller passed.
    """
    if automatic:
        justification = None
        user_name = None
        user_id = None
        system_notes = AUTOMATIC_SYSTEM_NOTES
    else:
        system_notes = None

    return StatusLogEntry(
        id=str(uuid.uuid4()),
        entity_id=entity_id,
        from_status=str(from_status),
        to_status=str(to_status),
        timestamp=isoformat(clock()),
        automatic=automatic,
        justification=justification,
        system_notes=system_notes,
        user_name=user_name,
        user_id=user_id,
    )
