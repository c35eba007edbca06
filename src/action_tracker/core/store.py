"""In-memory observable collection of entities of one kind."""

import logging
import threading
from collections.abc import Callable, Iterable

from action_tracker.core.rules import EntityKind
from action_tracker.db.models import TrackedEntity

logger = logging.getLogger(__name__)

StoreListener = Callable[[list[TrackedEntity]], None]


class EntityStore:
    """Holds the current entities of a kind and notifies listeners on change.

    Listeners receive a snapshot list after every mutation. The store is
    shared between request handlers and monitor threads, so all access goes
    through a lock.
    """

    def __init__(self, kind: EntityKind):
        self.kind = EntityKind(kind)
        self._entities: dict[str, TrackedEntity] = {}
        self._listeners: list[StoreListener] = []
        self._lock = threading.Lock()

    def set_all(self, entities: Iterable[TrackedEntity]):
        with self._lock:
            self._entities = {e.id: e for e in entities}
        self._notify()

    def all(self) -> list[TrackedEntity]:
        with self._lock:
            return list(self._entities.values())

    def get(self, entity_id: str) -> TrackedEntity | None:
        with self._lock:
            return self._entities.get(entity_id)

    def upsert(self, entity: TrackedEntity):
        with self._lock:
            self._entities[entity.id] = entity
        self._notify()

    def remove(self, entity_id: str) -> bool:
        with self._lock:
            removed = self._entities.pop(entity_id, None) is not None
        if removed:
            self._notify()
        return removed

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """Register a listener. Returns a function that unregisters it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self):
        snapshot = self.all()
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Store listener failed for %s", self.kind)
