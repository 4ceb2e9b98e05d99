"""Domain events and the publisher port.

Events are immutable dataclasses that know their exchange, routing key and
wire payload. The payload keys are the camelCase names consumed by the
alerting and analytics subscribers; keep them stable.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import ClassVar, Protocol


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DomainEvent:
    """Base class for published events."""

    exchange: ClassVar[str] = ""
    routing_key: ClassVar[str] = ""

    def payload(self) -> dict:
        raise NotImplementedError()


@dataclass(frozen=True)
class StockUpdated(DomainEvent):
    exchange: ClassVar[str] = "stock.events"
    routing_key: ClassVar[str] = "stock.updated"

    product_id: int
    old_quantity: int
    new_quantity: int
    timestamp: datetime = field(default_factory=_utcnow)

    def payload(self) -> dict:
        return {
            "productId": self.product_id,
            "oldQuantity": self.old_quantity,
            "newQuantity": self.new_quantity,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class LowStockAlert(DomainEvent):
    exchange: ClassVar[str] = "alert.events"
    routing_key: ClassVar[str] = "stock.low"

    product_id: int
    product_name: str
    current_stock: int
    threshold: int
    timestamp: datetime = field(default_factory=_utcnow)

    def payload(self) -> dict:
        return {
            "productId": self.product_id,
            "productName": self.product_name,
            "currentStock": self.current_stock,
            "threshold": self.threshold,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class OrderPlaced(DomainEvent):
    exchange: ClassVar[str] = "order.events"
    routing_key: ClassVar[str] = "order.placed"

    order_id: str
    order_number: str
    total_amount: Decimal
    timestamp: datetime = field(default_factory=_utcnow)

    def payload(self) -> dict:
        return {
            "orderId": self.order_id,
            "orderNumber": self.order_number,
            # string keeps the exact decimal on the wire
            "totalAmount": str(self.total_amount),
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class OrderCancelled(DomainEvent):
    exchange: ClassVar[str] = "order.events"
    routing_key: ClassVar[str] = "order.cancelled"

    order_id: str
    order_number: str
    timestamp: datetime = field(default_factory=_utcnow)

    def payload(self) -> dict:
        return {
            "orderId": self.order_id,
            "orderNumber": self.order_number,
            "timestamp": self.timestamp.isoformat(),
        }


class EventPublisherPort(Protocol):
    """Port for emitting domain events to the external bus.

    Implementations raise on failure; deciding whether a failure matters is
    the caller's job (see ``apps.events.dispatch``).
    """

    def publish(self, event: DomainEvent) -> None:
        """Publish a single event.

        Raises:
            DependencyUnavailable: The bus could not accept the event.
        """
        raise NotImplementedError()
