"""Catalog management: product reads and mutations.

Reads go through the cache facade; mutations run as a unit of work and,
once committed, invalidate ``product:<id>`` and ``products:all`` and publish
stock events. Stock is never written here directly: quantity changes are
delegated to ``StockLedger``.
"""

import logging
from typing import Iterable, List

from django.db import IntegrityError, transaction
from django.db.models import F

from apps.common.db import after_commit, run_in_transaction
from apps.common.errors import DuplicateKey, ProductNotFound
from apps.events.dispatch import EventDispatcher
from apps.events.domain import DomainEvent, LowStockAlert, StockUpdated

from .cache import ALL_PRODUCTS_CACHE_KEY, CacheFacade, product_key
from .ledger import StockChange, StockLedger
from .models import Product
from .schemas import ProductCreateIn, ProductOut, ProductUpdateIn

logger = logging.getLogger(__name__)


def stock_events(change: StockChange) -> List[DomainEvent]:
    """Events for one ledger mutation: an update, plus an alert when low."""
    if change.delta == 0:
        return []
    events: List[DomainEvent] = [
        StockUpdated(
            product_id=change.product_id,
            old_quantity=change.old_quantity,
            new_quantity=change.new_quantity,
        )
    ]
    if change.is_low_stock:
        events.append(
            LowStockAlert(
                product_id=change.product_id,
                product_name=change.product_name,
                current_stock=change.new_quantity,
                threshold=change.low_stock_threshold,
            )
        )
    return events


class ProductService:
    """Product catalog operations on top of the stock ledger."""

    def __init__(self, ledger: StockLedger | None = None, cache: CacheFacade | None = None,
                 dispatcher: EventDispatcher | None = None):
        self.ledger = ledger or StockLedger()
        self.cache = cache
        self.dispatcher = dispatcher or EventDispatcher(None)

    # ---- side effects ----

    def invalidate(self, product_ids: Iterable[int]) -> None:
        if self.cache is None:
            return
        for product_id in set(product_ids):
            self.cache.invalidate_product(product_id)

    def _after_commit(self, product_ids: Iterable[int], events: Iterable[DomainEvent], label: str) -> None:
        product_ids = list(product_ids)
        events = list(events)

        def _side_effects():
            self.invalidate(product_ids)
            self.dispatcher.emit_all(events)

        after_commit(_side_effects, label=label)

    # ---- reads ----

    def get_products(self) -> List[ProductOut]:
        """Active products ordered by name, read through the cache."""
        if self.cache is not None:
            cached = self.cache.get(ALL_PRODUCTS_CACHE_KEY)
            if cached is not None:
                logger.info("retrieved products from cache")
                return [ProductOut.model_validate(p) for p in cached]

        products = [ProductOut.from_model(p) for p in Product.objects.filter(is_active=True).order_by("name")]
        if self.cache is not None:
            # a read racing a committed write can store the old rows; PRODUCT_CACHE_TTL bounds how long
            self.cache.set(ALL_PRODUCTS_CACHE_KEY, [p.to_cache() for p in products])
        logger.info("retrieved products from database", extra={"count": len(products)})
        return products

    def get_product(self, product_id: int) -> ProductOut:
        """Active product by id, read through the cache.

        Raises:
            ProductNotFound: Missing or soft-deleted.
        """
        key = product_key(product_id)
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return ProductOut.model_validate(cached)

        product = Product.objects.filter(pk=product_id, is_active=True).first()
        if product is None:
            raise ProductNotFound(product_id)
        out = ProductOut.from_model(product)
        if self.cache is not None:
            # same staleness window as get_products
            self.cache.set(key, out.to_cache())
        return out

    def get_product_by_sku(self, sku: str) -> ProductOut:
        product = Product.objects.filter(sku=sku.strip().upper(), is_active=True).first()
        if product is None:
            raise ProductNotFound(sku)
        return ProductOut.from_model(product)

    def get_low_stock_products(self) -> List[ProductOut]:
        """Active products at or below their threshold, lowest stock first."""
        products = [
            ProductOut.from_model(p)
            for p in Product.objects.filter(is_active=True, stock_quantity__lte=F("low_stock_threshold"))
            .order_by("stock_quantity", "pk")
        ]
        logger.info("found low stock products", extra={"count": len(products)})
        return products

    # ---- mutations ----

    def create_product(self, data: ProductCreateIn) -> ProductOut:
        """Create a product.

        Raises:
            DuplicateKey: The SKU is already used by an active or inactive product.
        """

        def _create() -> Product:
            if Product.objects.filter(sku=data.sku).exists():
                raise DuplicateKey("sku", data.sku)
            try:
                with transaction.atomic():
                    product = Product.objects.create(**data.model_dump())
            except IntegrityError:
                raise DuplicateKey("sku", data.sku) from None
            self._after_commit([product.pk], [], label="product.created")
            return product

        product = run_in_transaction(_create, label="create product")
        logger.info("created product", extra={"product_id": product.pk, "sku": product.sku})
        return ProductOut.from_model(product)

    def update_product(self, product_id: int, data: ProductUpdateIn) -> ProductOut:
        """Apply a partial update; a new ``stock_quantity`` goes through the ledger.

        Raises:
            ProductNotFound: Missing or soft-deleted.
        """

        def _update() -> Product:
            product = Product.objects.select_for_update().filter(pk=product_id, is_active=True).first()
            if product is None:
                raise ProductNotFound(product_id)

            changed = {
                name: value
                for name, value in data.model_dump(exclude_unset=True, exclude={"stock_quantity"}).items()
                if value is not None
            }
            deactivate = changed.get("is_active") is False
            if deactivate:
                del changed["is_active"]
            if changed:
                for name, value in changed.items():
                    setattr(product, name, value)
                # stock_quantity stays out of update_fields: the ledger owns it
                product.save(update_fields=[*changed, "updated_at"])

            # the ledger reads the row after the new threshold is saved
            events: List[DomainEvent] = []
            if data.stock_quantity is not None and data.stock_quantity != product.stock_quantity:
                change = self.ledger.set_quantity(product_id, data.stock_quantity)
                events.extend(stock_events(change))

            if deactivate:
                product.is_active = False
                product.save(update_fields=["is_active", "updated_at"])

            self._after_commit([product_id], events, label="product.updated")
            product.refresh_from_db()
            return product

        product = run_in_transaction(_update, label="update product")
        logger.info("updated product", extra={"product_id": product_id})
        return ProductOut.from_model(product)

    def adjust_stock(self, product_id: int, new_quantity: int) -> ProductOut:
        """Set stock to ``new_quantity`` through the ledger.

        Raises:
            ValidationFailed: Negative quantity.
            ProductNotFound / ProductInactive: Unknown or soft-deleted product.
        """

        def _adjust() -> StockChange:
            change = self.ledger.set_quantity(product_id, new_quantity)
            self._after_commit([product_id], stock_events(change), label="stock.adjusted")
            return change

        change = run_in_transaction(_adjust, label="adjust stock")
        logger.info(
            "updated stock",
            extra={"product_id": product_id, "old_quantity": change.old_quantity, "new_quantity": change.new_quantity},
        )
        return ProductOut.from_model(Product.objects.get(pk=product_id))

    def deactivate_product(self, product_id: int) -> bool:
        """Soft delete. Returns False when the product does not exist."""

        def _deactivate() -> bool:
            product = Product.objects.select_for_update().filter(pk=product_id).first()
            if product is None:
                return False
            product.is_active = False
            product.save(update_fields=["is_active", "updated_at"])
            self._after_commit([product_id], [], label="product.deactivated")
            return True

        deleted = run_in_transaction(_deactivate, label="deactivate product")
        if deleted:
            logger.info("soft deleted product", extra={"product_id": product_id})
        return deleted
