"""Status change validation.

``validate_status_change`` decides whether a proposed transition is legal at a
given instant. It never raises: every outcome, including rejections, comes
back as a ``ValidationResult`` for the caller to surface.

Rules are checked in order and the first match wins:

1. before the planned start only the kind's hold status may be chosen
2. the target must be in the transition graph for the current status
3. completing after the end date is allowed, with an informational message
4. ``delayed`` may only be chosen once the end date has passed
5. ``not_started`` may only be restored from the kind's recoverable status
"""

from dataclasses import dataclass
from datetime import datetime

from action_tracker.core.clock import to_utc, utc_now
from action_tracker.core.rules import (
    COMPLETED,
    DELAYED,
    IN_PROGRESS,
    NOT_STARTED,
    get_rules,
)

MSG_BEFORE_START = "Cannot change status before the planned start date"
MSG_NOT_PERMITTED = "This status transition is not permitted"
MSG_COMPLETED_LATE = "Completed after the deadline"
MSG_DELAYED_TOO_EARLY = "Can only mark as delayed after the end date has passed"
MSG_NO_REVERT = "Cannot revert to not started once started"
MSG_AUTO_DELAYED = "Marked as delayed automatically"


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    message: str | None = None
    automatic: bool = False


def validate_status_change(
    kind,
    current,
    proposed,
    start_date: datetime,
    end_date: datetime,
    now: datetime | None = None,
    automatic: bool = False,
) -> ValidationResult:
    """Validate ``current -> proposed`` for an entity active between start and end.

    ``automatic`` is supplied by the caller and echoed on accepted results.
    An unknown kind or status is rejected as not permitted.
    """
    try:
        rules = get_rules(kind)
    except ValueError:
        return ValidationResult(False, MSG_NOT_PERMITTED)
    now = to_utc(now) if now is not None else utc_now()
    start = to_utc(start_date)
    end = to_utc(end_date)
    current = str(current)
    proposed = str(proposed)

    if now < start and proposed != rules.hold_status:
        return ValidationResult(False, MSG_BEFORE_START)

    if proposed not in rules.available(current):
        return ValidationResult(False, MSG_NOT_PERMITTED)

    if proposed == COMPLETED and now > end:
        return ValidationResult(True, MSG_COMPLETED_LATE, automatic)

    if proposed == DELAYED and now <= end:
        return ValidationResult(False, MSG_DELAYED_TOO_EARLY)

    if proposed == NOT_STARTED and current != rules.recoverable_status:
        return ValidationResult(False, MSG_NO_REVERT)

    return ValidationResult(True, automatic=automatic)


def infer_automatic_delay(status, end_date: datetime, now: datetime | None = None) -> ValidationResult | None:
    """Flag an in-progress entity past its end date as due for an automatic delay."""
    now = to_utc(now) if now is not None else utc_now()
    if str(status) == IN_PROGRESS and now > to_utc(end_date):
        return ValidationResult(True, MSG_AUTO_DELAYED, automatic=True)
    return None


def is_overdue(status, end_date: datetime, now: datetime | None = None) -> bool:
    """True when the end date has passed and the status is neither completed nor delayed."""
    now = to_utc(now) if now is not None else utc_now()
    return now > to_utc(end_date) and str(status) not in (COMPLETED, DELAYED)
