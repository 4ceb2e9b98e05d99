from django.urls import include, path

urlpatterns = [
    path("", include("apps.monitoring.urls")),
    path("api/products/", include("apps.catalog.urls")),
    path("api/orders/", include("apps.orders.urls")),
]
