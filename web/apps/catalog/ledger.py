"""Stock ledger: the only code allowed to change ``Product.stock_quantity``.

Every change goes through ``reserve`` or ``restore``. Both take a row lock
(``SELECT ... FOR UPDATE``) and then apply a conditional ``UPDATE`` with an
``F()`` expression, so the decrement is a compare-and-swap on the row: even
on a back end that ignores row locks, two concurrent reservations cannot
push stock below zero, and the DB check constraint backs that up.

Each method opens its own ``transaction.atomic()`` block, which becomes a
savepoint when called inside a larger unit of work (order creation,
cancellation) and a full transaction otherwise.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from apps.common.errors import InsufficientStock, ProductInactive, ProductNotFound, ValidationFailed

from .models import Product

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockChange:
    """Result of a ledger mutation, captured while the row was locked."""

    product_id: int
    product_name: str
    sku: str
    price: Decimal
    old_quantity: int
    new_quantity: int
    low_stock_threshold: int

    @property
    def delta(self) -> int:
        return self.new_quantity - self.old_quantity

    @property
    def is_low_stock(self) -> bool:
        return self.new_quantity <= self.low_stock_threshold


class StockLedger:
    """Atomic check-and-decrement / increment primitives on product stock."""

    @staticmethod
    def is_low_stock(product: Product) -> bool:
        """True iff ``stock_quantity <= low_stock_threshold``."""
        return product.stock_quantity <= product.low_stock_threshold

    def _lock(self, product_id: int) -> Product:
        try:
            return Product.objects.select_for_update().get(pk=product_id)
        except Product.DoesNotExist:
            raise ProductNotFound(product_id) from None

    def _current_quantity(self, product_id: int) -> int:
        return Product.objects.filter(pk=product_id).values_list("stock_quantity", flat=True).get()

    def _change(self, product: Product, new_quantity: int) -> StockChange:
        return StockChange(
            product_id=product.pk,
            product_name=product.name,
            sku=product.sku,
            price=product.price,
            old_quantity=product.stock_quantity,
            new_quantity=new_quantity,
            low_stock_threshold=product.low_stock_threshold,
        )

    def reserve(self, product_id: int, quantity: int) -> StockChange:
        """Decrement stock by ``quantity`` if the product is active and has enough.

        Raises:
            ValidationFailed: ``quantity`` is not positive.
            ProductNotFound: No such product.
            ProductInactive: The product is soft-deleted.
            InsufficientStock: Fewer than ``quantity`` units are available.
        """
        if quantity <= 0:
            raise ValidationFailed(f"Quantity must be at least 1, got {quantity}")

        with transaction.atomic():
            product = self._lock(product_id)
            if not product.is_active:
                raise ProductInactive(product_id)
            if product.stock_quantity < quantity:
                raise InsufficientStock(product_id, available=product.stock_quantity, requested=quantity)

            updated = Product.objects.filter(
                pk=product_id, is_active=True, stock_quantity__gte=quantity
            ).update(stock_quantity=F("stock_quantity") - quantity, updated_at=timezone.now())
            if updated == 0:
                # lost the race between the read and the conditional update
                raise InsufficientStock(
                    product_id, available=self._current_quantity(product_id), requested=quantity
                )

            new_quantity = self._current_quantity(product_id)
            product.stock_quantity = new_quantity + quantity
            change = self._change(product, new_quantity)

        logger.info(
            "stock reserved",
            extra={"product_id": product_id, "old_quantity": change.old_quantity, "new_quantity": new_quantity},
        )
        return change

    def restore(self, product_id: int, quantity: int) -> StockChange:
        """Increment stock by ``quantity``. Inactive products are restored too.

        Raises:
            ValidationFailed: ``quantity`` is not positive.
            ProductNotFound: The product row no longer exists; nothing changes.
        """
        if quantity <= 0:
            raise ValidationFailed(f"Quantity must be at least 1, got {quantity}")

        with transaction.atomic():
            product = self._lock(product_id)
            updated = Product.objects.filter(pk=product_id).update(
                stock_quantity=F("stock_quantity") + quantity, updated_at=timezone.now()
            )
            if updated == 0:
                raise ProductNotFound(product_id)

            new_quantity = self._current_quantity(product_id)
            product.stock_quantity = new_quantity - quantity
            change = self._change(product, new_quantity)

        logger.info(
            "stock restored",
            extra={"product_id": product_id, "old_quantity": change.old_quantity, "new_quantity": new_quantity},
        )
        return change

    def set_quantity(self, product_id: int, new_quantity: int) -> StockChange:
        """Direct stock correction, applied as a reserve or restore of the delta.

        Raises:
            ValidationFailed: ``new_quantity`` is negative.
            ProductNotFound: No such product.
            ProductInactive: The product is soft-deleted.
        """
        if new_quantity < 0:
            raise ValidationFailed(f"Stock quantity cannot be negative, got {new_quantity}")

        with transaction.atomic():
            product = self._lock(product_id)
            if not product.is_active:
                raise ProductInactive(product_id)
            delta = new_quantity - product.stock_quantity
            if delta < 0:
                return self.reserve(product_id, -delta)
            if delta > 0:
                return self.restore(product_id, delta)
            return self._change(product, product.stock_quantity)
