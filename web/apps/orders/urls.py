from django.urls import path

from .views import (
    CancelOrderView,
    OrderByNumberView,
    OrdersCollectionView,
    OrdersPingView,
    OrderStatusView,
    RetrieveOrderView,
)

app_name = "orders"

urlpatterns = [
    path("ping/", OrdersPingView.as_view(), name="ping"),
    path("", OrdersCollectionView.as_view(), name="orders-collection"),  # GET list / POST create
    path("number/<str:order_number>/", OrderByNumberView.as_view(), name="orders-by-number"),
    path("<uuid:oid>/", RetrieveOrderView.as_view(), name="orders-detail"),
    path("<uuid:oid>/status/", OrderStatusView.as_view(), name="orders-status"),
    path("<uuid:oid>/cancel/", CancelOrderView.as_view(), name="orders-cancel"),
]
