"""Inventory consistency engine.

The composition root that callers talk to. Order creation and cancellation
are delegated to ``OrderLifecycleManager`` and run as one unit of work;
once that unit has committed, the engine invalidates the affected product
cache entries and publishes the stock and order events. Catalog operations
are delegated to ``ProductService``, which follows the same rule.

Side effects are best-effort: a cache or bus failure is logged and never
changes the result already decided by the committed mutation.
"""

import logging
from typing import List, Sequence

from apps.catalog.cache import CacheFacade
from apps.catalog.ledger import StockLedger
from apps.catalog.schemas import ProductCreateIn, ProductOut, ProductUpdateIn
from apps.catalog.service import ProductService, stock_events
from apps.common.db import after_commit
from apps.events.dispatch import EventDispatcher
from apps.events.domain import DomainEvent, EventPublisherPort, OrderCancelled, OrderPlaced

from .domain import LineRequest, Order, OrderStatus
from .lifecycle import LifecycleResult, OrderLifecycleManager
from .repository import OrderRepository

logger = logging.getLogger(__name__)


class InventoryConsistencyEngine:
    """Orchestrate orders, stock, cache and notifications.

    Args:
        publisher: Where events go; None disables publishing.
        cache: Product cache; None runs without a cache.
    """

    def __init__(self, publisher: EventPublisherPort | None = None, cache: CacheFacade | None = None,
                 ledger: StockLedger | None = None, repository: OrderRepository | None = None):
        self.ledger = ledger or StockLedger()
        self.cache = cache
        self.dispatcher = EventDispatcher(publisher)
        self.products = ProductService(ledger=self.ledger, cache=cache, dispatcher=self.dispatcher)
        self.orders = OrderLifecycleManager(ledger=self.ledger, repository=repository)

    def close(self) -> None:
        """Release the publisher's resources, if it holds any."""
        close = getattr(self.dispatcher.publisher, "close", None)
        if callable(close):
            close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    # ---- post-commit ----

    def _schedule(self, result: LifecycleResult, final_event: DomainEvent, label: str) -> None:
        events: List[DomainEvent] = []
        for change in result.stock_changes:
            events.extend(stock_events(change))
        events.append(final_event)
        product_ids = [c.product_id for c in result.stock_changes]

        def _side_effects():
            self.products.invalidate(product_ids)
            self.dispatcher.emit_all(events)

        after_commit(_side_effects, label=label)

    # ---- orders ----

    def create_order(self, customer_name: str, customer_email: str, items: Sequence[LineRequest]) -> Order:
        """Create a CONFIRMED order, reserving stock for every line.

        After commit: ``stock.updated`` per line, ``stock.low`` for each line
        that left its product at or below threshold, then ``order.placed``.
        """
        result = self.orders.create_order(customer_name, customer_email, items)
        order = result.order
        self._schedule(
            result,
            OrderPlaced(order_id=order.id, order_number=order.order_number, total_amount=order.total_amount),
            label="order.placed",
        )
        return order

    def update_order_status(self, order_id, new_status: OrderStatus) -> Order:
        return self.orders.update_status(order_id, new_status)

    def cancel_order(self, order_id) -> bool:
        """Cancel a PENDING or CONFIRMED order and restore its stock.

        Returns:
            True when cancelled, False when the order was already cancelled.

        Raises:
            OrderNotFound, InvalidStateTransition, ProductNotFound.
        """
        result = self.orders.cancel_order(order_id)
        if result is None:
            return False
        order = result.order
        self._schedule(
            result,
            OrderCancelled(order_id=order.id, order_number=order.order_number),
            label="order.cancelled",
        )
        return True

    def get_order(self, order_id) -> Order:
        return self.orders.get_order(order_id)

    def get_order_by_number(self, order_number: str) -> Order:
        return self.orders.get_order_by_number(order_number)

    def list_orders(self, offset: int = 0, limit: int | None = None) -> List[Order]:
        return self.orders.list_orders(offset=offset, limit=limit)

    def count_orders(self) -> int:
        return self.orders.count_orders()

    # ---- catalog ----

    def create_product(self, data: ProductCreateIn) -> ProductOut:
        return self.products.create_product(data)

    def update_product(self, product_id: int, data: ProductUpdateIn) -> ProductOut:
        return self.products.update_product(product_id, data)

    def adjust_stock(self, product_id: int, new_quantity: int) -> ProductOut:
        return self.products.adjust_stock(product_id, new_quantity)

    def deactivate_product(self, product_id: int) -> bool:
        return self.products.deactivate_product(product_id)

    def get_product(self, product_id: int) -> ProductOut:
        return self.products.get_product(product_id)

    def get_product_by_sku(self, sku: str) -> ProductOut:
        return self.products.get_product_by_sku(sku)

    def get_products(self) -> List[ProductOut]:
        return self.products.get_products()

    def get_low_stock_products(self) -> List[ProductOut]:
        return self.products.get_low_stock_products()
