"""Event payloads and best-effort dispatch."""
from datetime import datetime, timezone
from decimal import Decimal

from apps.events.adapters import InMemoryEventPublisher, LoggingEventPublisher
from apps.events.dispatch import EventDispatcher
from apps.events.domain import LowStockAlert, OrderCancelled, OrderPlaced, StockUpdated

TS = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


def test_payloads_use_wire_names():
    assert StockUpdated(product_id=1, old_quantity=10, new_quantity=7, timestamp=TS).payload() == {
        "productId": 1,
        "oldQuantity": 10,
        "newQuantity": 7,
        "timestamp": TS.isoformat(),
    }
    alert = LowStockAlert(product_id=1, product_name="Widget", current_stock=2, threshold=3, timestamp=TS)
    assert alert.exchange == "alert.events" and alert.routing_key == "stock.low"
    assert alert.payload()["productName"] == "Widget"
    assert alert.payload()["currentStock"] == 2

    placed = OrderPlaced(order_id="abc", order_number="ORD-20240115-0000ABCD", total_amount=Decimal("19.98"))
    assert (placed.exchange, placed.routing_key) == ("order.events", "order.placed")
    assert placed.payload()["totalAmount"] == "19.98"
    assert placed.payload()["orderNumber"] == "ORD-20240115-0000ABCD"

    cancelled = OrderCancelled(order_id="abc", order_number="ORD-20240115-0000ABCD")
    assert cancelled.routing_key == "order.cancelled"
    assert set(cancelled.payload()) == {"orderId", "orderNumber", "timestamp"}


def test_emit_all_keeps_order():
    pub = InMemoryEventPublisher()
    dispatcher = EventDispatcher(pub)
    delivered = dispatcher.emit_all([
        StockUpdated(product_id=1, old_quantity=5, new_quantity=4),
        LowStockAlert(product_id=1, product_name="W", current_stock=4, threshold=5),
        OrderCancelled(order_id="x", order_number="ORD-1"),
    ])
    assert delivered == 3
    assert pub.routing_keys() == ["stock.updated", "stock.low", "order.cancelled"]
    assert len(pub.of_type(LowStockAlert)) == 1


def test_publisher_failure_is_swallowed_and_rest_still_sent(caplog):
    class Flaky(InMemoryEventPublisher):
        def publish(self, event):
            if isinstance(event, StockUpdated):
                raise RuntimeError("bus down")
            super().publish(event)

    pub = Flaky()
    dispatcher = EventDispatcher(pub)
    delivered = dispatcher.emit_all([
        StockUpdated(product_id=1, old_quantity=5, new_quantity=4),
        OrderCancelled(order_id="x", order_number="ORD-1"),
    ])
    assert delivered == 1
    assert pub.routing_keys() == ["order.cancelled"]
    assert "failed to publish event" in caplog.text


def test_dispatcher_without_publisher_is_noop():
    assert EventDispatcher(None).emit(OrderCancelled(order_id="x", order_number="ORD-1")) is False


def test_logging_publisher_logs(caplog):
    caplog.set_level("INFO")
    LoggingEventPublisher().publish(OrderCancelled(order_id="x", order_number="ORD-1"))
    assert "event published" in caplog.text
