"""Order lifecycle manager.

Owns the order aggregate and its status state machine. Creation and
cancellation each run as one unit of work that also covers the stock
ledger mutations, so stock and order state always commit or roll back
together. Callers that need post-commit side effects read the returned
``StockChange`` list; this module emits nothing itself.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Sequence

from apps.catalog.ledger import StockChange, StockLedger
from apps.common.db import run_in_transaction
from apps.common.errors import ValidationFailed

from .domain import LineRequest, Order, OrderStatus
from .repository import OrderRepository

logger = logging.getLogger(__name__)


@dataclass
class LifecycleResult:
    """An order together with the stock changes made for it."""

    order: Order
    stock_changes: List[StockChange] = field(default_factory=list)


class OrderLifecycleManager:
    """Create, transition and cancel orders."""

    def __init__(self, ledger: StockLedger | None = None, repository: OrderRepository | None = None):
        self.ledger = ledger or StockLedger()
        self.repository = repository or OrderRepository()

    # ---- reads ----

    def get_order(self, order_id) -> Order:
        return self.repository.get(order_id)

    def get_order_by_number(self, order_number: str) -> Order:
        return self.repository.get_by_number(order_number)

    def list_orders(self, offset: int = 0, limit: int | None = None) -> List[Order]:
        return self.repository.list(offset=offset, limit=limit)

    def count_orders(self) -> int:
        return self.repository.count()

    # ---- commands ----

    def create_order(self, customer_name: str, customer_email: str,
                     items: Sequence[LineRequest]) -> LifecycleResult:
        """Reserve stock for every line and persist a CONFIRMED order.

        Lines are reserved in ascending product id order so concurrent
        orders lock rows in the same order; items are stored in request
        order. Any failed reservation aborts the whole unit of work, so no
        partial reservation and no order survive.

        Raises:
            ValidationFailed: No items, or a non-positive quantity.
            ProductNotFound / ProductInactive / InsufficientStock: From the ledger.
            PersistenceFailure: The store aborted the unit of work.
        """
        if not items:
            raise ValidationFailed("At least one order item is required")
        for line in items:
            if line.quantity <= 0:
                raise ValidationFailed(f"Quantity must be at least 1, got {line.quantity}")

        def _create() -> LifecycleResult:
            reserved = {}
            changes: List[StockChange] = []
            for index in sorted(range(len(items)), key=lambda i: (items[i].product_id, i)):
                line = items[index]
                change = self.ledger.reserve(line.product_id, line.quantity)
                reserved[index] = change
                changes.append(change)

            obj = self.repository.create(customer_name, customer_email)
            total = Decimal("0.00")
            for index, line in enumerate(items):
                price = reserved[index].price
                self.repository.add_item(obj, line.product_id, line.quantity, price)
                total += price * line.quantity

            self.repository.save_status(obj, OrderStatus.CONFIRMED, total_amount=total)
            return LifecycleResult(order=self.repository.get(obj.pk), stock_changes=changes)

        result = run_in_transaction(_create, label="create order")
        logger.info(
            "created order",
            extra={"order_number": result.order.order_number, "total_amount": str(result.order.total_amount)},
        )
        return result

    def update_status(self, order_id, new_status: OrderStatus) -> Order:
        """Apply an explicit status update; no stock side effects.

        Raises:
            OrderNotFound: No such order.
            InvalidStateTransition: The state machine forbids the move.
        """

        def _update() -> Order:
            obj = self.repository.lock(order_id)
            OrderStatus(obj.status).ensure_can_move_to(new_status)
            if obj.status != new_status.value:
                self.repository.save_status(obj, new_status)
            return self.repository.get(obj.pk)

        order = run_in_transaction(_update, label="update order status")
        logger.info("updated order status", extra={"order_id": str(order_id), "status": new_status.value})
        return order

    def cancel_order(self, order_id) -> LifecycleResult | None:
        """Restore stock for every line and mark the order CANCELLED.

        Returns:
            The cancelled order and its restorations, or None when the order
            was already cancelled (nothing changes).

        Raises:
            OrderNotFound: No such order.
            InvalidStateTransition: The order is past CONFIRMED.
            ProductNotFound: A line's product row is gone; nothing is restored
                and the order keeps its status.
        """

        def _cancel() -> LifecycleResult | None:
            obj = self.repository.lock(order_id)
            status = OrderStatus(obj.status)
            if status is OrderStatus.CANCELLED:
                return None
            status.ensure_can_cancel()

            changes = [
                self.ledger.restore(item.product_id, item.quantity)
                for item in obj.items.order_by("product_id", "id")
            ]
            self.repository.save_status(obj, OrderStatus.CANCELLED)
            return LifecycleResult(order=self.repository.get(obj.pk), stock_changes=changes)

        result = run_in_transaction(_cancel, label="cancel order")
        if result is not None:
            logger.info("cancelled order and restored stock", extra={"order_number": result.order.order_number})
        return result
