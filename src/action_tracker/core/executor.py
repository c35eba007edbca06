"""Applying status transitions.

``TransitionExecutor`` is the only writer of an entity's ``status`` and
``status_logs``. Each successful ``apply`` performs exactly one repository
update, one store upsert and one notification, in that order. A rejected
transition performs no writes at all.
"""

import dataclasses
import logging
from dataclasses import dataclass
from datetime import datetime

from action_tracker.core.clock import Clock, utc_now
from action_tracker.core.entities import EntityNotFoundError, EntityRepository
from action_tracker.core.notifications import StatusChangeBus, StatusChangedEvent
from action_tracker.core.rules import DELAYED, EntityKind, get_rules
from action_tracker.core.status_log import create_status_log
from action_tracker.core.store import EntityStore
from action_tracker.core.validator import (
    MSG_AUTO_DELAYED,
    ValidationResult,
    infer_automatic_delay,
    is_overdue,
    validate_status_change,
)
from action_tracker.db.models import StatusLogEntry, TrackedEntity

logger = logging.getLogger(__name__)

MSG_JUSTIFICATION_REQUIRED = "A justification is required to change the status"
MSG_AUTO_ONLY_DELAY = "Automatic transitions can only mark an entity as delayed"
MSG_AUTO_NOT_DUE = "Deadline has not passed or the entity is already completed or delayed"


@dataclass(frozen=True)
class TransitionOutcome:
    applied: bool
    entity: TrackedEntity
    message: str | None = None
    automatic: bool = False
    log_entry: StatusLogEntry | None = None


class TransitionExecutor:
    """Validates and commits status transitions for one entity kind."""

    def __init__(
        self,
        kind: EntityKind,
        repository: EntityRepository,
        store: EntityStore | None = None,
        bus: StatusChangeBus | None = None,
        clock: Clock = utc_now,
        require_justification: bool = True,
    ):
        self.kind = EntityKind(kind)
        self.repository = repository
        self.store = store
        self.bus = bus
        self.clock = clock
        self.require_justification = require_justification

    def check(
        self, entity: TrackedEntity, proposed, automatic: bool = False, now: datetime | None = None
    ) -> ValidationResult:
        """Decide whether ``proposed`` may be applied to ``entity`` at ``now`` (default: the clock)."""
        now = now or self.clock()
        if automatic:
            return self._check_forced_delay(entity, proposed, now)
        return validate_status_change(
            self.kind, entity.status, proposed, entity.start_date, entity.end_date, now=now
        )

    def apply(
        self,
        entity_id: str,
        proposed,
        justification: str | None = None,
        actor: str | None = None,
        automatic: bool = False,
        actor_id: str | None = None,
        now: datetime | None = None,
    ) -> TransitionOutcome:
        """Validate and commit a transition against the entity's persisted state.

        ``now`` fixes the instant used for validation, the log timestamp and
        ``updated_at``; it defaults to the executor's clock.

        Raises EntityNotFoundError if the entity does not exist. Persistence
        errors from the repository propagate unchanged.
        """
        now = now or self.clock()
        entity = self.repository.get_by_id(self.kind, entity_id)
        if entity is None:
            raise EntityNotFoundError(self.kind, entity_id)

        if not automatic and self.require_justification and not (justification or "").strip():
            return TransitionOutcome(False, entity, MSG_JUSTIFICATION_REQUIRED)

        result = self.check(entity, proposed, automatic=automatic, now=now)
        if not result.valid:
            logger.info(
                "Rejected %s %s: %s -> %s (%s)",
                self.kind, entity_id, entity.status, proposed, result.message,
            )
            return TransitionOutcome(False, entity, result.message, automatic)

        new_status = get_rules(self.kind).parse(proposed)
        entry = create_status_log(
            entity.id,
            entity.status,
            new_status,
            justification=justification.strip() if justification else None,
            automatic=automatic,
            user_name=actor,
            user_id=actor_id,
            clock=lambda: now,
        )
        updated_at = now
        status_logs = [*entity.status_logs, entry]

        if not self.repository.update(
            self.kind,
            entity.id,
            {"status": new_status, "status_logs": status_logs, "updated_at": updated_at},
        ):
            raise EntityNotFoundError(self.kind, entity_id)

        updated = dataclasses.replace(
            entity, status=new_status, status_logs=status_logs, updated_at=updated_at
        )
        if self.store is not None:
            self.store.upsert(updated)
        if self.bus is not None:
            self.bus.publish(
                StatusChangedEvent(
                    timestamp=entry.timestamp,
                    kind=str(self.kind),
                    entity_id=entity.id,
                    from_status=entry.from_status,
                    to_status=entry.to_status,
                    automatic=automatic,
                )
            )

        return TransitionOutcome(True, updated, result.message, automatic, entry)

    def _check_forced_delay(self, entity: TrackedEntity, proposed, now) -> ValidationResult:
        # Automatic transitions bypass the interactive graph: the deadline
        # alone decides. The in-progress inference runs first and the general
        # overdue check backs it up for every other non-final status.
        if str(proposed) != DELAYED:
            return ValidationResult(False, MSG_AUTO_ONLY_DELAY)
        inferred = infer_automatic_delay(entity.status, entity.end_date, now)
        if inferred is not None:
            return inferred
        if is_overdue(entity.status, entity.end_date, now):
            return ValidationResult(True, MSG_AUTO_DELAYED, automatic=True)
        return ValidationResult(False, MSG_AUTO_NOT_DUE)
