from django.db import models


class Product(models.Model):
    name = models.CharField(max_length=100, db_index=True)
    description = models.CharField(max_length=500, blank=True, null=True)
    # immutable once assigned; unique across active and inactive rows
    sku = models.CharField(max_length=50, unique=True)
    price = models.DecimalField(max_digits=18, decimal_places=2)
    stock_quantity = models.IntegerField(default=0)
    low_stock_threshold = models.IntegerField(default=0)
    category = models.CharField(max_length=50, blank=True, null=True, db_index=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "products"
        ordering = ["name"]
        constraints = [
            models.CheckConstraint(condition=models.Q(stock_quantity__gte=0), name="product_stock_non_negative"),
            models.CheckConstraint(condition=models.Q(low_stock_threshold__gte=0), name="product_threshold_non_negative"),
            models.CheckConstraint(condition=models.Q(price__gt=0), name="product_price_positive"),
        ]

    def __str__(self) -> str:
        return f"{self.sku} ({self.stock_quantity})"

    @property
    def is_low_stock(self) -> bool:
        return self.stock_quantity <= self.low_stock_threshold
