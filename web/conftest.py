from decimal import Decimal

import pytest


@pytest.fixture(autouse=True)
def use_stubs_for_tests(settings):
    settings.USE_HTTP_ADAPTERS = False
    settings.STOCK_TX_RETRY_BACKOFF = 0


@pytest.fixture(autouse=True)
def clear_cache():
    from django.core.cache import cache

    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def publisher():
    from apps.events.adapters import InMemoryEventPublisher

    return InMemoryEventPublisher()


@pytest.fixture
def engine(publisher):
    from apps.catalog.cache import CacheFacade
    from apps.orders.engine import InventoryConsistencyEngine

    with InventoryConsistencyEngine(publisher=publisher, cache=CacheFacade()) as eng:
        yield eng


@pytest.fixture
def make_product(db):
    from apps.catalog.models import Product

    counter = {"n": 0}

    def _make(stock=10, threshold=2, price="10.00", active=True, **kwargs):
        counter["n"] += 1
        n = counter["n"]
        defaults = {
            "name": f"Product {n}",
            "sku": f"SKU-{n:04d}",
            "price": Decimal(price),
            "stock_quantity": stock,
            "low_stock_threshold": threshold,
            "is_active": active,
        }
        defaults.update(kwargs)
        return Product.objects.create(**defaults)

    return _make
