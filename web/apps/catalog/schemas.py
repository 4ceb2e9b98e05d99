"""Pydantic schemas for the product catalog.

Input schemas validate request bodies before the engine is invoked. The
output schema is also the cached representation of a product, converted
explicitly from the ORM model by ``ProductOut.from_model``.
"""

import re
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

SKU_RE = re.compile(r"^[A-Z0-9_-]{3,50}$")


class ProductCreateIn(BaseModel):
    """Input schema for creating a product.

    Attributes:
        sku: Stock-keeping unit, normalised to uppercase. Immutable once
            the product exists.
        price: Positive decimal with at most two fractional digits.
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    sku: str = Field(min_length=3, max_length=50)
    price: Decimal = Field(gt=0, max_digits=18, decimal_places=2)
    stock_quantity: int = Field(ge=0)
    low_stock_threshold: int = Field(ge=0)
    category: Optional[str] = Field(default=None, max_length=50)

    @field_validator("sku")
    @classmethod
    def validate_sku(cls, v: str) -> str:
        v2 = v.strip().upper()
        if not SKU_RE.match(v2):
            raise ValueError("Invalid SKU format")
        return v2


class ProductUpdateIn(BaseModel):
    """Partial update; fields left out keep their current value."""

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    price: Optional[Decimal] = Field(default=None, gt=0, max_digits=18, decimal_places=2)
    stock_quantity: Optional[int] = Field(default=None, ge=0)
    low_stock_threshold: Optional[int] = Field(default=None, ge=0)
    category: Optional[str] = Field(default=None, max_length=50)
    is_active: Optional[bool] = None


class StockAdjustIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    quantity: int = Field(ge=0)


class ProductOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    sku: str
    price: Decimal
    stock_quantity: int
    low_stock_threshold: int
    category: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def is_low_stock(self) -> bool:
        return self.stock_quantity <= self.low_stock_threshold

    @classmethod
    def from_model(cls, product) -> "ProductOut":
        return cls(
            id=product.pk,
            name=product.name,
            description=product.description,
            sku=product.sku,
            price=product.price,
            stock_quantity=product.stock_quantity,
            low_stock_threshold=product.low_stock_threshold,
            category=product.category,
            is_active=product.is_active,
            created_at=product.created_at,
            updated_at=product.updated_at,
        )

    def to_cache(self) -> dict:
        return self.model_dump(mode="json")
