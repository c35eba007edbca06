"""Tests for deadline monitoring."""

import logging
from datetime import datetime, timezone

import pytest

from action_tracker.core.entities import RepositoryError, create_action_plan, create_task, get_entity
from action_tracker.core.executor import TransitionExecutor
from action_tracker.core.monitor import DeadlineMonitor
from action_tracker.core.notifications import StatusChangeBus
from action_tracker.core.rules import EntityKind
from action_tracker.core.status_log import AUTOMATIC_SYSTEM_NOTES

from conftest import NOW, FakeClock, days
from test_executor import FailingRepository

HOUR = 3600.0


@pytest.fixture
def monitor(repo, clock):
    executor = TransitionExecutor(EntityKind.TASK, repo, clock=clock)
    m = DeadlineMonitor(executor, interval=HOUR, clock=clock)
    yield m
    m.stop()


class TestScan:
    def test_delays_overdue_in_progress_task(self, db, repo):
        clock = FakeClock(datetime(2024, 1, 5, tzinfo=timezone.utc))
        executor = TransitionExecutor(EntityKind.TASK, repo, clock=clock)
        task = create_task(
            db, "Quarterly report",
            datetime(2024, 1, 1, tzinfo=timezone.utc), datetime(2024, 1, 10, tzinfo=timezone.utc),
        )
        assert executor.apply(task.id, "in_progress", justification="started").applied

        clock.now = datetime(2024, 1, 11, tzinfo=timezone.utc)
        applied = DeadlineMonitor(executor, clock=clock).scan()

        assert [o.entity.id for o in applied] == [task.id]
        stored = get_entity(db, EntityKind.TASK, task.id)
        assert stored.status == "delayed"
        entry = stored.status_logs[-1]
        assert (entry.from_status, entry.to_status) == ("in_progress", "delayed")
        assert entry.automatic is True
        assert entry.system_notes == AUTOMATIC_SYSTEM_NOTES
        assert entry.user_name is None

    def test_scan_is_idempotent(self, db, monitor):
        task = create_task(db, "Late", NOW - days(10), NOW - days(1))
        assert len(monitor.scan()) == 1
        assert monitor.scan() == []
        assert len(get_entity(db, EntityKind.TASK, task.id).status_logs) == 1

    def test_skips_completed_and_future(self, db, monitor):
        executor = monitor.executor
        done = create_task(db, "Done", NOW - days(10), NOW + days(1))
        executor.apply(done.id, "in_progress", justification="go")
        executor.apply(done.id, "completed", justification="done")
        create_task(db, "Future", NOW, NOW + days(5))
        monitor.clock.advance(days(2))

        applied = monitor.scan()
        assert [o.entity.id for o in applied] == []
        assert get_entity(db, EntityKind.TASK, done.id).status == "completed"

    def test_delays_blocked_and_in_review(self, db, monitor):
        executor = monitor.executor
        blocked = create_task(db, "Blocked", NOW - days(10), NOW + days(1))
        review = create_task(db, "Review", NOW - days(10), NOW + days(1))
        executor.apply(blocked.id, "blocked", justification="waiting")
        executor.apply(review.id, "in_progress", justification="go")
        executor.apply(review.id, "in_review", justification="ready")
        monitor.clock.advance(days(2))

        applied = monitor.scan()
        assert sorted(o.entity.id for o in applied) == sorted([blocked.id, review.id])

    def test_scan_with_explicit_now(self, db, monitor):
        create_task(db, "Later", NOW - days(1), NOW + days(1))
        assert monitor.scan(now=NOW) == []

    def test_explicit_now_drives_the_transition(self, db, monitor):
        task = create_task(db, "Later", NOW - days(1), NOW + days(1))
        later = NOW + days(2)

        applied = monitor.scan(now=later)

        assert [o.entity.id for o in applied] == [task.id]
        stored = get_entity(db, EntityKind.TASK, task.id)
        assert stored.status == "delayed"
        assert stored.status_logs[-1].timestamp == later.isoformat()
        assert stored.updated_at == later

    def test_failure_isolated_per_entity(self, db, repo, clock, caplog):
        broken = create_task(db, "Broken", NOW - days(10), NOW - days(2))
        healthy = create_task(db, "Healthy", NOW - days(10), NOW - days(1))
        failing = FailingRepository(repo, [broken.id])
        executor = TransitionExecutor(EntityKind.TASK, failing, clock=clock)

        with caplog.at_level(logging.ERROR, logger="action_tracker.core.monitor"):
            applied = DeadlineMonitor(executor, clock=clock).scan()

        assert [o.entity.id for o in applied] == [healthy.id]
        assert get_entity(db, EntityKind.TASK, broken.id).status == "not_started"
        assert get_entity(db, EntityKind.TASK, healthy.id).status == "delayed"
        assert broken.id in caplog.text

    def test_accessor_failure_returns_empty(self, repo, clock):
        def accessor():
            raise RepositoryError("database locked")

        executor = TransitionExecutor(EntityKind.TASK, repo, clock=clock)
        assert DeadlineMonitor(executor, accessor=accessor, clock=clock).scan() == []

    def test_custom_accessor(self, db, repo, clock):
        overdue = create_task(db, "Overdue", NOW - days(10), NOW - days(1))
        create_task(db, "Also overdue", NOW - days(10), NOW - days(1))
        executor = TransitionExecutor(EntityKind.TASK, repo, clock=clock)
        monitor = DeadlineMonitor(executor, accessor=lambda: [repo.get_by_id("task", overdue.id)], clock=clock)
        assert [o.entity.id for o in monitor.scan()] == [overdue.id]

    def test_action_plans(self, db, repo, clock):
        bus = StatusChangeBus()
        events = []
        bus.subscribe(events.append)
        plan = create_action_plan(db, "Rollout", NOW - days(10), NOW - days(1))
        executor = TransitionExecutor(EntityKind.ACTION_PLAN, repo, bus=bus, clock=clock)

        applied = DeadlineMonitor(executor, clock=clock).scan()
        assert [o.entity.id for o in applied] == [plan.id]
        assert events[0].automatic is True
        assert events[0].kind == "action_plan"


class TestLifecycle:
    def test_start_scans_immediately(self, db, monitor):
        task = create_task(db, "Late", NOW - days(10), NOW - days(1))
        monitor.start()
        assert monitor.running
        assert get_entity(db, EntityKind.TASK, task.id).status == "delayed"

    def test_stop(self, monitor):
        monitor.start()
        monitor.stop()
        assert not monitor.running

    def test_stop_when_idle_is_noop(self, monitor):
        monitor.stop()
        monitor.stop()
        assert not monitor.running

    def test_restart_replaces_thread(self, monitor):
        monitor.start()
        first = monitor._thread
        monitor.start()
        assert monitor.running
        assert monitor._thread is not first
        assert not first.is_alive()

    def test_start_with_accessor(self, db, repo, monitor):
        task = create_task(db, "Late", NOW - days(10), NOW - days(1))
        calls = []

        def accessor():
            calls.append(1)
            return repo.get_all(EntityKind.TASK)

        monitor.start(accessor)
        assert calls == [1]
        assert get_entity(db, EntityKind.TASK, task.id).status == "delayed"
