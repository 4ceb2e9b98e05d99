"""Domain types for orders.

This module holds the order status state machine and the plain
dataclasses the lifecycle manager hands back to callers. It has no ORM or
I/O dependencies; ``repository`` converts to and from the Django models.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from apps.common.errors import InvalidStateTransition


# ---- Enums ----
class OrderStatus(str, Enum):
    """Order lifecycle states.

    The happy path is linear (PENDING -> CONFIRMED -> PROCESSING -> SHIPPED
    -> DELIVERED). CANCELLED is terminal and only reachable from PENDING or
    CONFIRMED, through cancellation.
    """

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"

    @property
    def rank(self) -> int:
        return _HAPPY_PATH.index(self) if self in _HAPPY_PATH else len(_HAPPY_PATH)

    @property
    def is_cancellable(self) -> bool:
        return self in (OrderStatus.PENDING, OrderStatus.CONFIRMED)

    def ensure_can_move_to(self, target: "OrderStatus") -> None:
        """Validate an explicit status update.

        Forward moves and same-state updates along the happy path are
        allowed, including skips. Nothing leaves CANCELLED or DELIVERED, and
        CANCELLED is never a target here because cancelling must restore
        stock.

        Raises:
            InvalidStateTransition: For any other move.
        """
        if self is OrderStatus.CANCELLED or target is OrderStatus.CANCELLED:
            raise InvalidStateTransition(self.value, target.value)
        if self is OrderStatus.DELIVERED and target is not OrderStatus.DELIVERED:
            raise InvalidStateTransition(self.value, target.value)
        if target.rank < self.rank:
            raise InvalidStateTransition(self.value, target.value)

    def ensure_can_cancel(self) -> None:
        if not self.is_cancellable:
            raise InvalidStateTransition(self.value, OrderStatus.CANCELLED.value)


_HAPPY_PATH = [
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
]


# ---- Entities / DTOs ----
@dataclass(frozen=True)
class LineRequest:
    """A requested order line: which product and how many units."""

    product_id: int
    quantity: int


@dataclass(frozen=True)
class OrderLine:
    """A persisted order line.

    ``unit_price`` is the product price captured when the order was placed;
    later price changes on the product never touch it.
    """

    product_id: int
    product_name: str
    product_sku: str
    quantity: int
    unit_price: Decimal
    id: Optional[int] = None

    @property
    def total_price(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass
class Order:
    """The order aggregate as seen by callers.

    Attributes:
        total_amount: Exact sum of the line totals.
    """

    id: Optional[str]
    order_number: str
    customer_name: str
    customer_email: str
    items: List[OrderLine] = field(default_factory=list)
    status: OrderStatus = OrderStatus.PENDING
    total_amount: Decimal = Decimal("0.00")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def computed_total(self) -> Decimal:
        return sum((line.total_price for line in self.items), Decimal("0.00"))
