"""HTTP views for the product catalog.

Reads of single products and of the full list go through the product cache;
every mutation invalidates the affected entries once it has committed.
"""

from pydantic import ValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle

from apps.common.errors import ProductNotFound, StockWiseError
from apps.common.responses import error_response, validation_error_response
from apps.common.views import EngineAPIView
from apps.orders import providers

from .schemas import ProductCreateIn, ProductUpdateIn, StockAdjustIn


def _dump(products) -> list:
    return [p.model_dump(mode="json") for p in products]


class ProductsCollectionView(EngineAPIView):
    """Active products (GET) and product creation (POST)."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "products"

    def get(self, request):
        with providers.get_engine() as engine:
            products = engine.get_products()
        return Response(_dump(products), status=200)

    def post(self, request):
        try:
            data = ProductCreateIn.model_validate(request.data)
        except ValidationError as e:
            return validation_error_response(e)
        try:
            with providers.get_engine() as engine:
                product = engine.create_product(data)
        except StockWiseError as e:
            return error_response(e)
        return Response(product.model_dump(mode="json"), status=status.HTTP_201_CREATED)


class LowStockProductsView(EngineAPIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "products"

    def get(self, request):
        with providers.get_engine() as engine:
            products = engine.get_low_stock_products()
        return Response(_dump(products), status=200)


class ProductBySkuView(EngineAPIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "products"

    def get(self, request, sku: str):
        try:
            with providers.get_engine() as engine:
                product = engine.get_product_by_sku(sku)
        except StockWiseError as e:
            return error_response(e)
        return Response(product.model_dump(mode="json"), status=200)


class ProductDetailView(EngineAPIView):
    """Read (GET), partially update (PATCH) or soft delete (DELETE) a product."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "products"

    def get(self, request, pk: int):
        try:
            with providers.get_engine() as engine:
                product = engine.get_product(pk)
        except StockWiseError as e:
            return error_response(e)
        return Response(product.model_dump(mode="json"), status=200)

    def patch(self, request, pk: int):
        try:
            data = ProductUpdateIn.model_validate(request.data)
        except ValidationError as e:
            return validation_error_response(e)
        try:
            with providers.get_engine() as engine:
                product = engine.update_product(pk, data)
        except StockWiseError as e:
            return error_response(e)
        return Response(product.model_dump(mode="json"), status=200)

    def delete(self, request, pk: int):
        try:
            with providers.get_engine() as engine:
                deleted = engine.deactivate_product(pk)
        except StockWiseError as e:
            return error_response(e)
        if not deleted:
            return error_response(ProductNotFound(pk))
        return Response(status=status.HTTP_204_NO_CONTENT)


class ProductStockView(EngineAPIView):
    """Set the on-hand quantity of a product (manual correction)."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "products"

    def put(self, request, pk: int):
        try:
            data = StockAdjustIn.model_validate(request.data)
        except ValidationError as e:
            return validation_error_response(e)
        try:
            with providers.get_engine() as engine:
                product = engine.adjust_stock(pk, data.quantity)
        except StockWiseError as e:
            return error_response(e)
        return Response(product.model_dump(mode="json"), status=200)
