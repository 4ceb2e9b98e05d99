"""Stock ledger: reserve, restore and direct corrections."""
import pytest

from apps.catalog.ledger import StockLedger
from apps.catalog.models import Product
from apps.common.errors import InsufficientStock, ProductInactive, ProductNotFound, ValidationFailed


@pytest.fixture
def ledger():
    return StockLedger()


def _stock(product):
    return Product.objects.get(pk=product.pk).stock_quantity


@pytest.mark.django_db
def test_reserve_decrements_and_reports_change(ledger, make_product):
    p = make_product(stock=10, threshold=3)
    change = ledger.reserve(p.pk, 4)
    assert (change.old_quantity, change.new_quantity, change.delta) == (10, 6, -4)
    assert change.is_low_stock is False
    assert change.price == p.price
    assert _stock(p) == 6


@pytest.mark.django_db
def test_reserve_exactly_all_stock_is_low(ledger, make_product):
    p = make_product(stock=3, threshold=0)
    change = ledger.reserve(p.pk, 3)
    assert change.new_quantity == 0
    assert change.is_low_stock is True


@pytest.mark.django_db
def test_reserve_insufficient_leaves_stock(ledger, make_product):
    p = make_product(stock=2)
    with pytest.raises(InsufficientStock) as exc:
        ledger.reserve(p.pk, 3)
    assert (exc.value.available, exc.value.requested) == (2, 3)
    assert exc.value.to_dict()["detail"] == "INSUFFICIENT_STOCK"
    assert _stock(p) == 2


@pytest.mark.django_db
def test_reserve_inactive_and_missing(ledger, make_product):
    p = make_product(stock=5, active=False)
    with pytest.raises(ProductInactive):
        ledger.reserve(p.pk, 1)
    with pytest.raises(ProductNotFound):
        ledger.reserve(999999, 1)
    assert _stock(p) == 5


@pytest.mark.django_db
@pytest.mark.parametrize("qty", [0, -1])
def test_non_positive_quantities_rejected(ledger, make_product, qty):
    p = make_product(stock=5)
    with pytest.raises(ValidationFailed):
        ledger.reserve(p.pk, qty)
    with pytest.raises(ValidationFailed):
        ledger.restore(p.pk, qty)
    assert _stock(p) == 5


@pytest.mark.django_db
def test_restore_increments_even_when_inactive(ledger, make_product):
    p = make_product(stock=1, active=False)
    change = ledger.restore(p.pk, 4)
    assert (change.old_quantity, change.new_quantity) == (1, 5)
    assert _stock(p) == 5


@pytest.mark.django_db
def test_restore_missing_product(ledger):
    with pytest.raises(ProductNotFound):
        ledger.restore(424242, 1)


@pytest.mark.django_db
def test_set_quantity(ledger, make_product):
    p = make_product(stock=10, threshold=2)
    assert ledger.set_quantity(p.pk, 2).delta == -8
    assert ledger.set_quantity(p.pk, 7).delta == 5
    unchanged = ledger.set_quantity(p.pk, 7)
    assert unchanged.delta == 0
    assert _stock(p) == 7
    with pytest.raises(ValidationFailed):
        ledger.set_quantity(p.pk, -1)


@pytest.mark.django_db
def test_is_low_stock_boundary(make_product):
    assert StockLedger.is_low_stock(make_product(stock=5, threshold=5)) is True
    assert StockLedger.is_low_stock(make_product(stock=6, threshold=5)) is False
    assert StockLedger.is_low_stock(make_product(stock=0, threshold=0)) is True


@pytest.mark.django_db
def test_reserve_loses_race_after_stale_read(ledger, make_product, monkeypatch):
    p = make_product(stock=5)
    stale = Product.objects.get(pk=p.pk)
    # another writer took 4 units after this reservation read the row
    Product.objects.filter(pk=p.pk).update(stock_quantity=1)
    monkeypatch.setattr(StockLedger, "_lock", lambda self, product_id: stale)

    with pytest.raises(InsufficientStock) as exc:
        ledger.reserve(p.pk, 4)

    assert (exc.value.available, exc.value.requested) == (1, 4)
    assert _stock(p) == 1
