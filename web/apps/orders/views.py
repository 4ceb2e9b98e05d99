"""HTTP views for the orders app.

Views are kept small: they validate requests with pydantic, call the
inventory consistency engine obtained from ``providers.get_engine()``, and
map typed engine errors to responses (see ``apps.common.errors`` for the
status of each code).

Idempotency: when an ``Idempotency-Key`` header is sent with a create
request, the first request is processed and its response stored. Retries
with the same payload replay the stored response (same status, header
``Idempotent-Replay: true``); the same key with a different payload gets
409 ``IDEMPOTENCY_CONFLICT``; a retry that arrives while the first request
is still running gets 409 ``IDEMPOTENCY_IN_PROGRESS``.
"""

from pydantic import ValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle

from apps.common.errors import StockWiseError
from apps.common.responses import error_response, unexpected_error_response, validation_error_response
from apps.common.views import EngineAPIView

from . import providers
from .idempotency import finalize, get_or_create_idempotent
from .schemas import CreateOrderDTO, OrderOut, UpdateOrderStatusDTO


def _order_body(order) -> dict:
    return OrderOut.from_domain(order).model_dump(mode="json")


class OrdersPingView(EngineAPIView):
    """Liveness endpoint for the orders module."""

    def get(self, request):
        return Response({"ok": True})


class OrdersCollectionView(EngineAPIView):
    """List orders (GET) and create an order (POST)."""

    throttle_classes = [ScopedRateThrottle]

    def get_throttles(self):
        # DRF evaluates throttles in initial(), before get/post
        self.throttle_scope = "orders_list" if self.request.method == "GET" else "orders_create"
        return [throttle() for throttle in self.throttle_classes]

    def get(self, request):
        """Newest orders first, paginated with ``page`` and ``page_size``."""
        try:
            page = max(1, int(request.GET.get("page", 1)))
            page_size = min(100, max(1, int(request.GET.get("page_size", 20))))
        except ValueError:
            return Response({"detail": "VALIDATION_FAILED"}, status=status.HTTP_400_BAD_REQUEST)

        with providers.get_engine() as engine:
            count = engine.count_orders()
            orders = engine.list_orders(offset=(page - 1) * page_size, limit=page_size)

        return Response(
            {
                "count": count,
                "page": page,
                "page_size": page_size,
                "results": [_order_body(o) for o in orders],
            },
            status=200,
        )

    def post(self, request):
        """Create an order.

        Returns:
            Response: One of the following.
            - 201 with the created order (status CONFIRMED).
            - 200/4xx replay of a stored response for a repeated
              ``Idempotency-Key``.
            - 400 ``VALIDATION_FAILED`` for an invalid payload.
            - 404 ``PRODUCT_NOT_FOUND`` / ``PRODUCT_INACTIVE``.
            - 409 ``IDEMPOTENCY_CONFLICT`` / ``IDEMPOTENCY_IN_PROGRESS``.
            - 422 ``INSUFFICIENT_STOCK`` with ``available`` and ``requested``.
            - 503 ``PERSISTENCE_FAILURE`` when the store aborted the work.
        """
        idem_key = request.headers.get("Idempotency-Key")

        # 1) Pydantic validation
        try:
            dto = CreateOrderDTO.model_validate(request.data)
        except ValidationError as e:
            return validation_error_response(e)

        # 2) Idempotency get-or-create
        rec = None
        if idem_key:
            try:
                existing, rec = get_or_create_idempotent(idem_key, request.data)
            except ValueError:
                return Response({"detail": "IDEMPOTENCY_CONFLICT"}, status=status.HTTP_409_CONFLICT)
            if existing:
                if not rec.response_status:
                    return Response({"detail": "IDEMPOTENCY_IN_PROGRESS"}, status=status.HTTP_409_CONFLICT)
                resp = Response(rec.response_body, status=rec.response_status)
                resp["Idempotent-Replay"] = "true"
                return resp

        # 3) Engine
        try:
            with providers.get_engine() as engine:
                order = engine.create_order(dto.customer_name, dto.customer_email, dto.lines())
        except StockWiseError as e:
            resp = error_response(e)
            if rec:
                finalize(rec, resp.status_code, resp.data)
            return resp
        except Exception:
            resp = unexpected_error_response()
            if rec:
                finalize(rec, resp.status_code, resp.data)
            return resp

        # 4) Response
        body = _order_body(order)
        if rec:
            finalize(rec, status.HTTP_201_CREATED, body, order_id=order.id)
        return Response(body, status=status.HTTP_201_CREATED)


class RetrieveOrderView(EngineAPIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_detail"

    def get(self, request, oid):
        try:
            with providers.get_engine() as engine:
                order = engine.get_order(oid)
        except StockWiseError as e:
            return error_response(e)
        return Response(_order_body(order), status=200)


class OrderByNumberView(EngineAPIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_detail"

    def get(self, request, order_number: str):
        try:
            with providers.get_engine() as engine:
                order = engine.get_order_by_number(order_number)
        except StockWiseError as e:
            return error_response(e)
        return Response(_order_body(order), status=200)


class OrderStatusView(EngineAPIView):
    """Explicit status update. Cancellation has its own endpoint."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_create"

    def put(self, request, oid):
        try:
            dto = UpdateOrderStatusDTO.model_validate(request.data)
        except ValidationError as e:
            return validation_error_response(e)
        try:
            with providers.get_engine() as engine:
                order = engine.update_order_status(oid, dto.status)
        except StockWiseError as e:
            return error_response(e)
        return Response(_order_body(order), status=200)


class CancelOrderView(EngineAPIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_create"

    def post(self, request, oid):
        """Cancel an order and restore its stock.

        Returns 200 with the cancelled order, 404 when it does not exist,
        409 ``ALREADY_CANCELLED`` or ``INVALID_STATE_TRANSITION`` otherwise.
        """
        try:
            with providers.get_engine() as engine:
                cancelled = engine.cancel_order(oid)
                order = engine.get_order(oid)
        except StockWiseError as e:
            return error_response(e)
        if not cancelled:
            return Response(
                {"detail": "ALREADY_CANCELLED", "order": order.order_number},
                status=status.HTTP_409_CONFLICT,
            )
        return Response(_order_body(order), status=200)
