import uuid

from django.contrib.auth import get_user_model
from django.db import models
from django.db.models import Q

from marketplace.catalog.domain.models.catalog import Product
from marketplace.catalog.domain.models.pricing import Promotion
from marketplace.catalog.domain.models.store import ShippingMethod, Store

User = get_user_model()

# Scale of every stored order amount; PRICING_PRECISION may not exceed it
MONEY_DECIMAL_PLACES = 2


class Order(models.Model):
    STATUS_CHOICES = [
        ("pending", "Pending"),  # Default status for newly placed orders
        ("processing", "Processing"),
        ("paid", "Paid"),
        ("shipped", "Shipped"),
        ("completed", "Completed"),
        ("cancelled", "Cancelled"),
        ("refunded", "Refunded"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="orders")
    store = models.ForeignKey(Store, on_delete=models.PROTECT, related_name="orders")

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="pending")

    # Pricing (total = subtotal - total_discount_amount + tax_amount + shipping_amount)
    subtotal = models.DecimalField(max_digits=12, decimal_places=MONEY_DECIMAL_PLACES)
    total_discount_amount = models.DecimalField(max_digits=12, decimal_places=MONEY_DECIMAL_PLACES, default=0)
    tax_amount = models.DecimalField(max_digits=12, decimal_places=MONEY_DECIMAL_PLACES, default=0)
    shipping_amount = models.DecimalField(max_digits=12, decimal_places=MONEY_DECIMAL_PLACES, default=0)
    total = models.DecimalField(max_digits=12, decimal_places=MONEY_DECIMAL_PLACES)

    # Shipping
    shipping_address = models.JSONField(null=True, blank=True)
    shipping_method = models.ForeignKey(
        ShippingMethod, on_delete=models.SET_NULL, null=True, blank=True, related_name="orders"
    )

    # Promotion audit
    promotion = models.ForeignKey(Promotion, on_delete=models.SET_NULL, null=True, blank=True, related_name="orders")
    promotion_code_used = models.CharField(max_length=50, null=True, blank=True)
    price_adjustments = models.JSONField(null=True, blank=True)

    # Client-supplied idempotency key
    client_reference = models.CharField(max_length=100, null=True, blank=True)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        app_label = "marketplace"
        indexes = [
            models.Index(fields=["user", "promotion"], name="order_user_promotion_idx"),
            models.Index(fields=["store", "-created_at"], name="order_store_created_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["user", "client_reference"],
                condition=Q(client_reference__isnull=False),
                name="unique_order_client_reference",
            ),
        ]

    def __str__(self):
        return f"Order {str(self.id)[:8]} by {self.user.username}"


class OrderItem(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="order_items")

    quantity = models.PositiveIntegerField(default=1)
    unit_price = models.DecimalField(max_digits=12, decimal_places=MONEY_DECIMAL_PLACES)
    unit_price_final = models.DecimalField(max_digits=12, decimal_places=MONEY_DECIMAL_PLACES)
    line_subtotal = models.DecimalField(max_digits=12, decimal_places=MONEY_DECIMAL_PLACES)
    line_discount = models.DecimalField(max_digits=12, decimal_places=MONEY_DECIMAL_PLACES, default=0)

    # Product snapshot at time of purchase
    product_name = models.CharField(max_length=200)

    class Meta:
        app_label = "marketplace"

    def __str__(self):
        return f"{self.quantity}x {self.product_name} in order {str(self.order.id)[:8]}"
