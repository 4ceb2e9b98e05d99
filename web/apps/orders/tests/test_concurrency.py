"""Competing reservations never oversell.

The threaded test needs a database with real row locks and concurrent
connections, so it only runs on PostgreSQL; the sequential variant runs
everywhere.
"""
import threading

import pytest
from django.db import connection, connections

from apps.catalog.models import Product
from apps.common.errors import InsufficientStock, ValidationFailed
from apps.orders.domain import LineRequest
from apps.orders.engine import InventoryConsistencyEngine
from apps.orders.models import OrderModel
from apps.orders.repository import OrderRepository


@pytest.mark.django_db
def test_two_orders_of_four_against_five_sequential(engine, make_product):
    p = make_product(stock=5)
    engine.create_order("Ada", "ada@example.com", [LineRequest(p.pk, 4)])
    with pytest.raises(InsufficientStock) as exc:
        engine.create_order("Bob", "bob@example.com", [LineRequest(p.pk, 4)])
    assert (exc.value.available, exc.value.requested) == (1, 4)
    assert Product.objects.get(pk=p.pk).stock_quantity == 1
    assert OrderModel.objects.count() == 1


@pytest.mark.django_db(transaction=True)
def test_two_orders_of_four_against_five_threaded(make_product):
    if connection.vendor != "postgresql":
        pytest.skip("needs row-level locking across connections")

    p = make_product(stock=5)
    barrier = threading.Barrier(2)
    outcomes = []
    lock = threading.Lock()

    def worker(name):
        try:
            barrier.wait()
            with InventoryConsistencyEngine() as engine:
                engine.create_order(name, f"{name.lower()}@example.com", [LineRequest(p.pk, 4)])
            result = "ok"
        except InsufficientStock:
            result = "insufficient"
        finally:
            connections.close_all()
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=worker, args=(n,)) for n in ("Ada", "Bob")]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["insufficient", "ok"]
    assert Product.objects.get(pk=p.pk).stock_quantity == 1


@pytest.mark.django_db(transaction=True)
def test_stock_never_negative_after_mixed_operations(engine, make_product):
    p = make_product(stock=3)
    placed = []
    for qty in (2, 2, 1, 1):
        try:
            placed.append(engine.create_order("Ada", "ada@example.com", [LineRequest(p.pk, qty)]))
        except InsufficientStock:
            pass
        assert Product.objects.get(pk=p.pk).stock_quantity >= 0
    for order in placed:
        engine.cancel_order(order.id)
    assert Product.objects.get(pk=p.pk).stock_quantity == 3


@pytest.mark.django_db
def test_order_number_collision_is_retried(engine, make_product, monkeypatch):
    p = make_product(stock=10)
    first = engine.create_order("Ada", "ada@example.com", [LineRequest(p.pk, 1)])

    numbers = iter([first.order_number, "ORD-20240101-0000BEEF"])
    monkeypatch.setattr(OrderRepository, "number_factory", staticmethod(lambda: next(numbers)))

    second = engine.create_order("Bob", "bob@example.com", [LineRequest(p.pk, 1)])
    assert second.order_number == "ORD-20240101-0000BEEF"
    assert Product.objects.get(pk=p.pk).stock_quantity == 8


@pytest.mark.django_db
def test_order_number_collisions_exhausted(engine, make_product, monkeypatch, settings):
    settings.ORDER_NUMBER_MAX_ATTEMPTS = 2
    p = make_product(stock=10)
    first = engine.create_order("Ada", "ada@example.com", [LineRequest(p.pk, 1)])
    monkeypatch.setattr(OrderRepository, "number_factory", staticmethod(lambda: first.order_number))

    from apps.common.errors import DuplicateKey

    with pytest.raises(DuplicateKey):
        engine.create_order("Bob", "bob@example.com", [LineRequest(p.pk, 1)])
    # the reservation rolled back with the failed order
    assert Product.objects.get(pk=p.pk).stock_quantity == 9


def test_invalid_quantity_never_touches_the_store():
    with pytest.raises(ValidationFailed):
        InventoryConsistencyEngine().create_order("Ada", "ada@example.com", [LineRequest(1, -2)])


@pytest.mark.django_db
def test_losing_order_rolls_back_when_row_changed_underneath(engine, make_product, monkeypatch):
    from apps.catalog.ledger import StockLedger

    a = make_product(stock=10)
    b = make_product(stock=5)
    stale_b = Product.objects.get(pk=b.pk)
    Product.objects.filter(pk=b.pk).update(stock_quantity=1)
    real_lock = StockLedger._lock
    monkeypatch.setattr(
        StockLedger, "_lock",
        lambda self, product_id: stale_b if product_id == b.pk else real_lock(self, product_id),
    )

    with pytest.raises(InsufficientStock) as exc:
        engine.create_order("Bob", "bob@example.com", [LineRequest(a.pk, 2), LineRequest(b.pk, 4)])

    assert (exc.value.available, exc.value.requested) == (1, 4)
    assert Product.objects.get(pk=a.pk).stock_quantity == 10
    assert Product.objects.get(pk=b.pk).stock_quantity == 1
    assert OrderModel.objects.count() == 0
