"""
Publish/subscribe channel between the collection store and its consumers.

Handlers run synchronously, in subscription order, before publish() returns.
A failing handler is logged and skipped so that one broken consumer cannot
abort the mutation that published the event.
"""
import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List, Type

from pydantic import BaseModel

from schemas import Badge, DashboardStats, Film, WatchlistItem

logger = logging.getLogger(__name__)


class Event(BaseModel):
    user_id: int


class CollectionChanged(Event):
    films: List[Film]


class WatchlistChanged(Event):
    items: List[WatchlistItem]


class BadgeUnlocked(Event):
    badge: Badge


class DashboardUpdated(Event):
    stats: DashboardStats


Handler = Callable[[Any], None]


class EventBus:
    def __init__(self):
        self._handlers: Dict[Type[Event], List[Handler]] = defaultdict(list)

    def subscribe(self, event_type: Type[Event], handler: Handler) -> Callable[[], None]:
        """Register handler for event_type. Returns a function that unsubscribes it."""
        self._handlers[event_type].append(handler)

        def unsubscribe():
            if handler in self._handlers[event_type]:
                self._handlers[event_type].remove(handler)

        return unsubscribe

    def publish(self, event: Event) -> None:
        handlers = list(self._handlers.get(type(event), []))
        logger.debug(f"Publishing {type(event).__name__} for user {event.user_id} to {len(handlers)} handler(s)")
        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    f"Handler {getattr(handler, '__qualname__', handler)} failed on {type(event).__name__}: {str(e)}",
                    exc_info=True
                )
