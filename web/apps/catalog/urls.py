from django.urls import path

from .views import (
    LowStockProductsView,
    ProductBySkuView,
    ProductDetailView,
    ProductsCollectionView,
    ProductStockView,
)

app_name = "catalog"

urlpatterns = [
    path("", ProductsCollectionView.as_view(), name="products-collection"),  # GET list / POST create
    path("low-stock/", LowStockProductsView.as_view(), name="products-low-stock"),
    path("sku/<str:sku>/", ProductBySkuView.as_view(), name="products-by-sku"),
    path("<int:pk>/", ProductDetailView.as_view(), name="products-detail"),
    path("<int:pk>/stock/", ProductStockView.as_view(), name="products-stock"),
]
