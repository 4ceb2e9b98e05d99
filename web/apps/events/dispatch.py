"""Best-effort event emission.

The engine hands events to ``EventDispatcher`` only after the unit of work
has committed. A publish failure is logged and the remaining events are
still attempted; nothing here can undo or fail the committed mutation.
"""

import logging
from typing import Iterable

from .domain import DomainEvent, EventPublisherPort, LowStockAlert

logger = logging.getLogger(__name__)


class EventDispatcher:
    """Wrap a publisher so failures never propagate to the caller."""

    def __init__(self, publisher: EventPublisherPort | None):
        self.publisher = publisher

    def emit(self, event: DomainEvent) -> bool:
        """Publish ``event``; return False (after logging) on failure."""
        if self.publisher is None:
            return False
        try:
            self.publisher.publish(event)
        except Exception:
            logger.exception(
                "failed to publish event",
                extra={"exchange": event.exchange, "routing_key": event.routing_key},
            )
            return False
        if isinstance(event, LowStockAlert):
            logger.warning(
                "low stock alert sent",
                extra={
                    "product_id": event.product_id,
                    "product_name": event.product_name,
                    "current_stock": event.current_stock,
                    "threshold": event.threshold,
                },
            )
        return True

    def emit_all(self, events: Iterable[DomainEvent]) -> int:
        """Publish every event in order; return how many were delivered."""
        return sum(1 for event in events if self.emit(event))
