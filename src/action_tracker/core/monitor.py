"""Deadline monitoring.

A ``DeadlineMonitor`` periodically scans every entity of one kind and moves
those whose end date has passed to ``delayed`` through the transition
executor, as automatic transitions. Entities already completed or delayed are
left alone, so repeated scans are idempotent.
"""

import logging
import threading
from collections.abc import Callable, Iterable
from datetime import datetime

from action_tracker.config import DEFAULT_MONITOR_INTERVAL
from action_tracker.core.clock import Clock, utc_now
from action_tracker.core.executor import TransitionExecutor, TransitionOutcome
from action_tracker.core.rules import DELAYED
from action_tracker.core.validator import is_overdue
from action_tracker.db.models import TrackedEntity

logger = logging.getLogger(__name__)

EntityAccessor = Callable[[], Iterable[TrackedEntity]]


class DeadlineMonitor:
    """Background thread that delays overdue entities of one kind."""

    def __init__(
        self,
        executor: TransitionExecutor,
        accessor: EntityAccessor | None = None,
        interval: float = DEFAULT_MONITOR_INTERVAL,
        clock: Clock = utc_now,
    ):
        self.executor = executor
        self.kind = executor.kind
        self.interval = interval
        self.clock = clock
        self._accessor = accessor or self._load_all
        self._stop_event: threading.Event | None = None
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, accessor: EntityAccessor | None = None):
        """Scan once immediately, then keep scanning every ``interval`` seconds.

        Starting a running monitor replaces its timer instead of adding one.
        """
        if accessor is not None:
            self._accessor = accessor
        self.stop()

        self.scan()

        stop_event = threading.Event()
        self._stop_event = stop_event
        self._thread = threading.Thread(
            target=self._run, args=(stop_event,), name=f"deadline-monitor-{self.kind}", daemon=True
        )
        self._thread.start()
        logger.info("Deadline monitor started for %s (every %ss)", self.kind, self.interval)

    def stop(self):
        """Stop the monitor thread. Does nothing when idle."""
        if self._thread is None:
            return
        self._stop_event.set()
        if self._thread is not threading.current_thread():
            self._thread.join(timeout=10)
        self._thread = None
        self._stop_event = None
        logger.info("Deadline monitor stopped for %s", self.kind)

    def _run(self, stop_event: threading.Event):
        while not stop_event.wait(self.interval):
            self.scan()

    def scan(self, now: datetime | None = None) -> list[TransitionOutcome]:
        """Delay every overdue entity. Returns the transitions applied.

        Never raises: a failure on one entity is logged and the scan moves on.
        """
        now = now or self.clock()
        try:
            entities = list(self._accessor())
        except Exception:
            logger.exception("Deadline monitor could not load %s entities", self.kind)
            return []

        applied = []
        for entity in entities:
            if not is_overdue(entity.status, entity.end_date, now):
                continue
            try:
                outcome = self.executor.apply(entity.id, DELAYED, automatic=True, now=now)
            except Exception:
                logger.exception("Deadline monitor failed to delay %s %s", self.kind, entity.id)
                continue
            if outcome.applied:
                logger.info("Marked %s %s as delayed (was %s)", self.kind, entity.id, entity.status)
                applied.append(outcome)
            else:
                logger.debug("Skipped %s %s: %s", self.kind, entity.id, outcome.message)
        return applied

    def _load_all(self) -> list[TrackedEntity]:
        return self.executor.repository.get_all(self.kind)
