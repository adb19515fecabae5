"""Publish/subscribe channel for simulation notifications."""
import logging
import threading
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

BUILDING_BUILT = 'building_built'
BUILDING_UPGRADED = 'building_upgraded'
VILLAGER_ADDED = 'villager_added'
AGE_ADVANCED = 'age_advanced'
RESOURCE_DEPLETED = 'resource_depleted'
RESEARCH_DONE = 'research_done'
EXPEDITION_DONE = 'expedition_done'
RANDOM_EVENT = 'random_event'
MILESTONE_COMPLETED = 'milestone_completed'
CHAIN_COMPLETED = 'chain_completed'
PRESTIGE = 'prestige'
GAME_SAVED = 'game_saved'
GAME_LOADED = 'game_loaded'


@dataclass
class GameEvent:
    type: str
    data: dict = field(default_factory=dict)
    tick: int = 0


class EventBus:
    """Fan-out of GameEvents to handlers registered per event type."""

    def __init__(self):
        self._lock = threading.Lock()
        self._handlers = {}

    def subscribe(self, event_type, handler):
        """Register a handler. Returns a callable that removes it again."""
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)

        def unsubscribe():
            with self._lock:
                handlers = self._handlers.get(event_type, [])
                if handler in handlers:
                    handlers.remove(handler)

        return unsubscribe

    def publish(self, event):
        """Deliver an event to every handler subscribed to its type."""
        with self._lock:
            handlers = list(self._handlers.get(event.type, []))
        # Handlers run outside the lock so they may subscribe or publish
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception("Handler %r failed for %s event", handler, event.type)

    def handler_count(self, event_type=None):
        with self._lock:
            if event_type is None:
                return sum(len(h) for h in self._handlers.values())
            return len(self._handlers.get(event_type, []))
