"""Repository layer for persisting orders.

The repository keeps Django ORM details out of the lifecycle manager. It
returns domain ``Order`` objects built by ``order_to_domain``, an explicit
field-by-field conversion.
"""

import logging
import secrets
from datetime import datetime, timezone
from typing import List, Optional

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction

from apps.common.errors import DuplicateKey, OrderNotFound

from .domain import Order, OrderLine, OrderStatus
from .models import OrderItemModel, OrderModel

logger = logging.getLogger(__name__)


def generate_order_number(now: Optional[datetime] = None) -> str:
    """``ORD-YYYYMMDD-XXXXXXXX`` with a random uppercase hex suffix."""
    now = now or datetime.now(timezone.utc)
    return f"ORD-{now:%Y%m%d}-{secrets.token_hex(4).upper()}"


def line_to_domain(item: OrderItemModel) -> OrderLine:
    return OrderLine(
        id=item.pk,
        product_id=item.product_id,
        product_name=item.product.name,
        product_sku=item.product.sku,
        quantity=item.quantity,
        unit_price=item.unit_price,
    )


def order_to_domain(obj: OrderModel) -> Order:
    return Order(
        id=str(obj.id),
        order_number=obj.order_number,
        customer_name=obj.customer_name,
        customer_email=obj.customer_email,
        items=[line_to_domain(i) for i in obj.items.all()],
        status=OrderStatus(obj.status),
        total_amount=obj.total_amount,
        created_at=obj.created_at,
        updated_at=obj.updated_at,
    )


class OrderRepository:
    """Persist and load orders with Django ORM."""

    number_factory = staticmethod(generate_order_number)

    def _with_items(self):
        return OrderModel.objects.prefetch_related("items__product")

    def create(self, customer_name: str, customer_email: str) -> OrderModel:
        """Insert a PENDING order under a fresh, unique order number.

        A number collision only rolls back its own savepoint and is retried
        with a new number.

        Raises:
            DuplicateKey: Every attempt collided.
        """
        attempts = max(1, getattr(settings, "ORDER_NUMBER_MAX_ATTEMPTS", 5))
        number = None
        for attempt in range(1, attempts + 1):
            number = self.number_factory()
            try:
                with transaction.atomic():
                    return OrderModel.objects.create(
                        order_number=number,
                        customer_name=customer_name,
                        customer_email=customer_email,
                        status=OrderStatus.PENDING.value,
                    )
            except IntegrityError:
                logger.warning("order number collision", extra={"order_number": number, "attempt": attempt})
        raise DuplicateKey("order_number", number)

    def add_item(self, order: OrderModel, product_id: int, quantity: int, unit_price) -> OrderItemModel:
        return OrderItemModel.objects.create(
            order=order, product_id=product_id, quantity=quantity, unit_price=unit_price
        )

    def save_status(self, order: OrderModel, status: OrderStatus, total_amount=None) -> None:
        order.status = status.value
        fields = ["status", "updated_at"]
        if total_amount is not None:
            order.total_amount = total_amount
            fields.append("total_amount")
        order.save(update_fields=fields)

    def lock(self, order_id) -> OrderModel:
        """Load an order with a row lock for the current transaction.

        Raises:
            OrderNotFound: No such order.
        """
        try:
            return OrderModel.objects.select_for_update().get(pk=order_id)
        except (OrderModel.DoesNotExist, ValidationError, ValueError):
            raise OrderNotFound(order_id) from None

    def get(self, order_id) -> Order:
        try:
            return order_to_domain(self._with_items().get(pk=order_id))
        except (OrderModel.DoesNotExist, ValidationError, ValueError):
            raise OrderNotFound(order_id) from None

    def get_by_number(self, order_number: str) -> Order:
        try:
            return order_to_domain(self._with_items().get(order_number=order_number))
        except OrderModel.DoesNotExist:
            raise OrderNotFound(order_number) from None

    def list(self, offset: int = 0, limit: Optional[int] = None) -> List[Order]:
        qs = self._with_items().order_by("-created_at")
        qs = qs[offset:offset + limit] if limit is not None else qs[offset:]
        return [order_to_domain(o) for o in qs]

    def count(self) -> int:
        return OrderModel.objects.count()
