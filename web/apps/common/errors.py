"""Typed errors raised by the StockWise engine.

Every error carries a machine-readable ``code`` and the HTTP status the
transport layer maps it to, plus structured data (``extra``) so callers never
parse messages::

    StockWiseError
    +-- NotFound
    |   +-- ProductNotFound
    |   +-- ProductInactive
    |   +-- OrderNotFound
    +-- InsufficientStock
    +-- InvalidStateTransition
    +-- DuplicateKey
    +-- ValidationFailed
    +-- DependencyUnavailable
    +-- PersistenceFailure

``DependencyUnavailable`` is raised by cache and publisher adapters and is
always caught at the engine boundary; it never reaches a caller of an engine
operation.
"""

from typing import Any


class StockWiseError(Exception):
    """Base class for all engine errors."""

    code = "STOCKWISE_ERROR"
    http_status = 500

    def __init__(self, message: str | None = None, **extra: Any):
        self.message = message or self.code
        self.extra = extra
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Response body for the transport layer."""
        body = {"detail": self.code, "message": self.message}
        body.update(self.extra)
        return body


class NotFound(StockWiseError):
    code = "NOT_FOUND"
    http_status = 404


class ProductNotFound(NotFound):
    code = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: Any):
        self.product_id = product_id
        super().__init__(f"Product {product_id} not found", product_id=product_id)


class ProductInactive(NotFound):
    code = "PRODUCT_INACTIVE"

    def __init__(self, product_id: Any):
        self.product_id = product_id
        super().__init__(f"Product {product_id} is inactive", product_id=product_id)


class OrderNotFound(NotFound):
    code = "ORDER_NOT_FOUND"

    def __init__(self, order_ref: Any):
        self.order_ref = str(order_ref)
        super().__init__(f"Order {order_ref} not found", order=self.order_ref)


class InsufficientStock(StockWiseError):
    code = "INSUFFICIENT_STOCK"
    http_status = 422

    def __init__(self, product_id: Any, available: int, requested: int):
        self.product_id = product_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for product {product_id}. "
            f"Available: {available}, Requested: {requested}",
            product_id=product_id,
            available=available,
            requested=requested,
        )


class InvalidStateTransition(StockWiseError):
    code = "INVALID_STATE_TRANSITION"
    http_status = 409

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(
            f"Cannot move order from {current} to {requested}",
            current=current,
            requested=requested,
        )


class DuplicateKey(StockWiseError):
    code = "DUPLICATE_KEY"
    http_status = 409

    def __init__(self, field: str, value: Any):
        self.field = field
        self.value = value
        super().__init__(f"{field} '{value}' already exists", field=field, value=str(value))


class ValidationFailed(StockWiseError):
    code = "VALIDATION_FAILED"
    http_status = 400


class DependencyUnavailable(StockWiseError):
    code = "DEPENDENCY_UNAVAILABLE"
    http_status = 503

    def __init__(self, dependency: str, message: str | None = None):
        self.dependency = dependency
        super().__init__(message or f"{dependency} unavailable", dependency=dependency)


class PersistenceFailure(StockWiseError):
    code = "PERSISTENCE_FAILURE"
    http_status = 503
