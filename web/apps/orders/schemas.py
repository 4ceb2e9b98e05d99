"""Pydantic schemas for orders.

Request schemas validate payloads before the engine is invoked; response
schemas are built from domain objects with explicit ``from_domain``
constructors.
"""

import re
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .domain import LineRequest, Order, OrderLine, OrderStatus

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class OrderItemIn(BaseModel):
    """Input schema for a single order line.

    Attributes:
        product_id: Identifier of an active product.
        quantity: Positive number of units requested.
    """

    product_id: int = Field(gt=0)
    quantity: int = Field(gt=0)

    def to_domain(self) -> LineRequest:
        return LineRequest(product_id=self.product_id, quantity=self.quantity)


class CreateOrderDTO(BaseModel):
    """Schema for creating an order.

    Attributes:
        customer_name: Denormalised customer name (max 100 chars).
        customer_email: Customer email, normalised to lowercase.
        items: At least one line.
    """

    model_config = ConfigDict(extra="forbid")

    customer_name: str = Field(min_length=1, max_length=100)
    customer_email: str = Field(min_length=3, max_length=200)
    items: List[OrderItemIn] = Field(min_length=1)

    @field_validator("customer_email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        """Validate the email shape and normalise it.

        Raises:
            ValueError: When the value does not look like an email address.
        """
        v2 = v.strip().lower()
        if not EMAIL_RE.match(v2):
            raise ValueError("Invalid email address")
        return v2

    def lines(self) -> List[LineRequest]:
        return [i.to_domain() for i in self.items]


class UpdateOrderStatusDTO(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: OrderStatus

    @field_validator("status", mode="before")
    @classmethod
    def normalise_status(cls, v):
        return v.upper() if isinstance(v, str) else v


class OrderItemOut(BaseModel):
    id: Optional[int] = None
    product_id: int
    product_name: str
    product_sku: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal

    @classmethod
    def from_domain(cls, line: OrderLine) -> "OrderItemOut":
        return cls(
            id=line.id,
            product_id=line.product_id,
            product_name=line.product_name,
            product_sku=line.product_sku,
            quantity=line.quantity,
            unit_price=line.unit_price,
            total_price=line.total_price,
        )


class OrderOut(BaseModel):
    id: str
    order_number: str
    customer_name: str
    customer_email: str
    total_amount: Decimal
    status: OrderStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    items: List[OrderItemOut] = []

    @classmethod
    def from_domain(cls, order: Order) -> "OrderOut":
        return cls(
            id=order.id,
            order_number=order.order_number,
            customer_name=order.customer_name,
            customer_email=order.customer_email,
            total_amount=order.total_amount,
            status=order.status,
            created_at=order.created_at,
            updated_at=order.updated_at,
            items=[OrderItemOut.from_domain(line) for line in order.items],
        )
