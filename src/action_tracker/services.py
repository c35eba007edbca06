"""Application wiring: repositories, stores, executors and deadline monitors."""

import logging
from dataclasses import dataclass, field

from action_tracker.config import Config, get_config
from action_tracker.core.clock import Clock, utc_now
from action_tracker.core.entities import SqliteEntityRepository
from action_tracker.core.executor import TransitionExecutor
from action_tracker.core.monitor import DeadlineMonitor
from action_tracker.core.notifications import StatusChangeBus
from action_tracker.core.rules import EntityKind
from action_tracker.core.store import EntityStore
from action_tracker.db.engine import init_db

logger = logging.getLogger(__name__)


@dataclass
class Services:
    config: Config
    repository: SqliteEntityRepository
    bus: StatusChangeBus
    stores: dict[EntityKind, EntityStore] = field(default_factory=dict)
    executors: dict[EntityKind, TransitionExecutor] = field(default_factory=dict)
    monitors: dict[EntityKind, DeadlineMonitor] = field(default_factory=dict)

    def executor(self, kind) -> TransitionExecutor:
        return self.executors[EntityKind(kind)]

    def store(self, kind) -> EntityStore:
        return self.stores[EntityKind(kind)]

    def refresh_stores(self):
        """Reload every store from the database."""
        for kind, store in self.stores.items():
            store.set_all(self.repository.get_all(kind))

    def delete_entity(self, kind, entity_id: str) -> bool:
        """Delete an entity and its status log, and drop it from the store."""
        kind = EntityKind(kind)
        if not self.repository.delete(kind, entity_id):
            return False
        self.stores[kind].remove(entity_id)
        if kind is EntityKind.ACTION_PLAN:
            # Tasks of a deleted plan are detached by the database.
            task_store = self.stores[EntityKind.TASK]
            task_store.set_all(self.repository.get_all(EntityKind.TASK))
        return True

    def start_monitors(self):
        for monitor in self.monitors.values():
            monitor.start()

    def stop_monitors(self):
        for monitor in self.monitors.values():
            monitor.stop()


def create_services(config: Config | None = None, clock: Clock = utc_now) -> Services:
    """Build the service graph. Monitors are created idle; call ``start_monitors``."""
    config = config or get_config()
    init_db(config.db_path).close()

    repository = SqliteEntityRepository(config.db_path)
    bus = StatusChangeBus()
    services = Services(config=config, repository=repository, bus=bus)

    for kind in EntityKind:
        store = EntityStore(kind)
        executor = TransitionExecutor(kind, repository, store=store, bus=bus, clock=clock)
        services.stores[kind] = store
        services.executors[kind] = executor
        services.monitors[kind] = DeadlineMonitor(
            executor, interval=config.monitor_interval, clock=clock
        )

    if config.slack_bot_token and config.slack_channel:
        from action_tracker.integrations.slack import SlackStatusNotifier

        bus.subscribe(SlackStatusNotifier(config.slack_bot_token, config.slack_channel))
        logger.info("Slack status notifications enabled for %s", config.slack_channel)

    return services
