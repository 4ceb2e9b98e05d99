"""In-process publisher adapters.

These implement ``EventPublisherPort`` without any network calls. The
in-memory publisher keeps every event for inspection and is what tests and
local development use; the logging publisher is for deployments that run
without a bus.
"""

import logging
import threading
from typing import List, Type

from .domain import DomainEvent, EventPublisherPort

logger = logging.getLogger(__name__)


class InMemoryEventPublisher(EventPublisherPort):
    """Record published events in order of emission."""

    def __init__(self):
        self._lock = threading.Lock()
        self.events: List[DomainEvent] = []

    def publish(self, event: DomainEvent) -> None:
        with self._lock:
            self.events.append(event)

    def of_type(self, event_type: Type[DomainEvent]) -> List[DomainEvent]:
        """Return recorded events of ``event_type``."""
        with self._lock:
            return [e for e in self.events if isinstance(e, event_type)]

    def routing_keys(self) -> List[str]:
        with self._lock:
            return [e.routing_key for e in self.events]

    def clear(self) -> None:
        with self._lock:
            self.events.clear()


class LoggingEventPublisher(EventPublisherPort):
    """Write each event to the log instead of a bus."""

    def publish(self, event: DomainEvent) -> None:
        logger.info(
            "event published",
            extra={"exchange": event.exchange, "routing_key": event.routing_key, "payload": event.payload()},
        )
