"""Product service: cached reads, mutations and their post-commit effects."""
from decimal import Decimal

import pytest

from apps.catalog.cache import ALL_PRODUCTS_CACHE_KEY, product_key
from apps.catalog.models import Product
from apps.catalog.schemas import ProductCreateIn, ProductUpdateIn
from apps.common.errors import DuplicateKey, ProductInactive, ProductNotFound
from apps.events.domain import LowStockAlert, StockUpdated


def _create_payload(**overrides):
    data = {
        "name": "Widget",
        "sku": "wid-001",
        "price": "9.99",
        "stock_quantity": 10,
        "low_stock_threshold": 3,
    }
    data.update(overrides)
    return ProductCreateIn.model_validate(data)


@pytest.mark.django_db
def test_create_product_normalises_sku(engine):
    out = engine.create_product(_create_payload())
    assert out.sku == "WID-001"
    assert out.price == Decimal("9.99")
    assert out.is_active is True


@pytest.mark.django_db
def test_create_product_duplicate_sku(engine, make_product):
    make_product(sku="WID-001", active=False)
    with pytest.raises(DuplicateKey) as exc:
        engine.create_product(_create_payload())
    assert exc.value.field == "sku"


@pytest.mark.django_db
def test_get_product_reads_through_cache(engine, make_product):
    p = make_product(stock=8)
    first = engine.get_product(p.pk)
    assert engine.cache.get(product_key(p.pk))["stock_quantity"] == 8

    # a write behind the engine's back is not visible until invalidation
    Product.objects.filter(pk=p.pk).update(name="Renamed")
    assert engine.get_product(p.pk).name == first.name


@pytest.mark.django_db
def test_get_product_hides_inactive(engine, make_product):
    p = make_product(active=False)
    with pytest.raises(ProductNotFound):
        engine.get_product(p.pk)
    with pytest.raises(ProductNotFound):
        engine.get_product_by_sku(p.sku.lower())


@pytest.mark.django_db
def test_get_products_active_only_and_cached(engine, make_product):
    make_product(name="B item")
    make_product(name="A item")
    make_product(name="C item", active=False)
    names = [p.name for p in engine.get_products()]
    assert names == ["A item", "B item"]
    assert len(engine.cache.get(ALL_PRODUCTS_CACHE_KEY)) == 2


@pytest.mark.django_db
def test_low_stock_products_ordered_by_stock(engine, make_product):
    make_product(stock=4, threshold=5)
    make_product(stock=1, threshold=5)
    make_product(stock=9, threshold=5)
    make_product(stock=0, threshold=5, active=False)
    assert [p.stock_quantity for p in engine.get_low_stock_products()] == [1, 4]


@pytest.mark.django_db
def test_adjust_stock_invalidates_and_publishes(engine, publisher, make_product,
                                                django_capture_on_commit_callbacks):
    p = make_product(stock=10, threshold=3)
    engine.get_product(p.pk)
    engine.get_products()

    with django_capture_on_commit_callbacks(execute=True):
        out = engine.adjust_stock(p.pk, 2)

    assert out.stock_quantity == 2
    assert engine.cache.get(product_key(p.pk)) is None
    assert engine.cache.get(ALL_PRODUCTS_CACHE_KEY) is None
    assert publisher.routing_keys() == ["stock.updated", "stock.low"]
    alert = publisher.of_type(LowStockAlert)[0]
    assert (alert.current_stock, alert.threshold) == (2, 3)


@pytest.mark.django_db
def test_adjust_stock_to_same_value_publishes_nothing(engine, publisher, make_product,
                                                      django_capture_on_commit_callbacks):
    p = make_product(stock=1, threshold=3)
    with django_capture_on_commit_callbacks(execute=True):
        engine.adjust_stock(p.pk, 1)
    assert publisher.events == []


@pytest.mark.django_db
def test_adjust_stock_inactive(engine, make_product):
    p = make_product(active=False)
    with pytest.raises(ProductInactive):
        engine.adjust_stock(p.pk, 3)


@pytest.mark.django_db
def test_update_product_routes_stock_through_ledger(engine, publisher, make_product,
                                                    django_capture_on_commit_callbacks):
    p = make_product(stock=10, threshold=2, price="5.00")
    data = ProductUpdateIn.model_validate({"price": "6.50", "stock_quantity": 12, "category": "tools"})

    with django_capture_on_commit_callbacks(execute=True):
        out = engine.update_product(p.pk, data)

    assert out.price == Decimal("6.50")
    assert out.stock_quantity == 12
    assert out.category == "tools"
    events = publisher.of_type(StockUpdated)
    assert [(e.old_quantity, e.new_quantity) for e in events] == [(10, 12)]


@pytest.mark.django_db
def test_deactivate_product(engine, make_product, django_capture_on_commit_callbacks):
    p = make_product()
    engine.get_product(p.pk)
    with django_capture_on_commit_callbacks(execute=True):
        assert engine.deactivate_product(p.pk) is True
    assert engine.cache.get(product_key(p.pk)) is None
    assert Product.objects.get(pk=p.pk).is_active is False
    assert engine.deactivate_product(987654) is False


@pytest.mark.django_db
def test_update_checks_low_stock_against_new_threshold(engine, publisher, make_product,
                                                       django_capture_on_commit_callbacks):
    p = make_product(stock=10, threshold=2)
    data = ProductUpdateIn.model_validate({"stock_quantity": 4, "low_stock_threshold": 5})

    with django_capture_on_commit_callbacks(execute=True):
        out = engine.update_product(p.pk, data)

    assert out.is_low_stock is True
    assert publisher.routing_keys() == ["stock.updated", "stock.low"]
    alert = publisher.of_type(LowStockAlert)[0]
    assert (alert.current_stock, alert.threshold) == (4, 5)


@pytest.mark.django_db
def test_update_stock_and_deactivate_together(engine, publisher, make_product,
                                             django_capture_on_commit_callbacks):
    p = make_product(stock=10, threshold=2)
    data = ProductUpdateIn.model_validate({"stock_quantity": 0, "is_active": False})

    with django_capture_on_commit_callbacks(execute=True):
        out = engine.update_product(p.pk, data)

    assert (out.stock_quantity, out.is_active) == (0, False)
    assert publisher.routing_keys() == ["stock.updated", "stock.low"]
