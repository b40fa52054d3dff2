"""Cache invalidation events.

Clients cache integration and posting-queue reads. Instead of ambient
global cache state, every mutation publishes an explicit invalidation event
keyed by entity; subscribers (websocket fan-out, HTTP caches, tests) decide
what to drop.

Entity keys:
- "integrations": after connect / disconnect / route changes
- "posting-queue": after enqueue-and-post / retry
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from core.db import utcnow
from core.observability.logging import get_logger


logger = get_logger(__name__)

INTEGRATIONS_KEY = "integrations"
POSTING_QUEUE_KEY = "posting-queue"


@dataclass(frozen=True)
class InvalidationEvent:
    """Tells caches that reads for `entity` in `tenant_id` are stale."""
    entity: str
    tenant_id: str
    entity_id: Optional[str] = None
    occurred_at: datetime = field(default_factory=utcnow)


Subscriber = Callable[[InvalidationEvent], None]


class EventBus:
    """Synchronous in-process publish/subscribe."""

    def __init__(self):
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, handler: Subscriber) -> Callable[[], None]:
        """Register a handler; returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers.append(handler)

        def unsubscribe() -> None:
            with self._lock:
                if handler in self._subscribers:
                    self._subscribers.remove(handler)

        return unsubscribe

    def publish(self, event: InvalidationEvent) -> None:
        with self._lock:
            handlers = list(self._subscribers)
        logger.debug(
            f"Invalidate {event.entity}",
            extra_fields={"tenant_id": event.tenant_id, "entity_id": event.entity_id},
        )
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                # The mutation has already committed
                logger.exception(f"Invalidation subscriber failed for {event.entity}")

    def invalidate(self, entity: str, tenant_id: str, entity_id: Optional[str] = None) -> None:
        self.publish(InvalidationEvent(entity=entity, tenant_id=tenant_id, entity_id=entity_id))
