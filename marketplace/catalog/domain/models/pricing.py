"""
Pricing rule models owned by a store.

Rows here are read models for checkout: they are turned into immutable
engine rules by PricingService and never mutated during a checkout.
"""

import uuid

from django.db import models

from .store import Store

RULE_TYPE_CHOICES = [
    ("percentage", "Percentage"),
    ("fixed", "Fixed amount"),
]

RULE_STATUS_CHOICES = [
    ("active", "Active"),
    ("inactive", "Inactive"),
    ("deleted", "Deleted"),
]


class Discount(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    store = models.ForeignKey(Store, on_delete=models.CASCADE, related_name="discounts")
    name = models.CharField(max_length=100)
    type = models.CharField(max_length=20, choices=RULE_TYPE_CHOICES, default="percentage")
    value = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(max_length=20, choices=RULE_STATUS_CHOICES, default="active")
    is_deleted = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        app_label = "marketplace"

    @property
    def is_applicable(self):
        return self.status == "active" and not self.is_deleted and self.value is not None and self.value > 0

    def __str__(self):
        return f"{self.name} ({self.type} {self.value})"


class Tax(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    store = models.ForeignKey(Store, on_delete=models.CASCADE, related_name="taxes")
    name = models.CharField(max_length=100)
    type = models.CharField(max_length=20, choices=RULE_TYPE_CHOICES, default="percentage")
    rate = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(max_length=20, choices=RULE_STATUS_CHOICES, default="active")
    is_deleted = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        app_label = "marketplace"
        verbose_name_plural = "taxes"

    def __str__(self):
        return f"{self.name} ({self.type} {self.rate})"


class Promotion(models.Model):
    TYPE_CHOICES = [
        ("automatic", "Automatic"),
        ("coupon", "Coupon"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    store = models.ForeignKey(Store, on_delete=models.CASCADE, related_name="promotions")
    name = models.CharField(max_length=100)
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default="coupon")
    value = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True, help_text="Percentage off")
    code = models.CharField(max_length=50, null=True, blank=True)
    starts_at = models.DateTimeField(null=True, blank=True)
    ends_at = models.DateTimeField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=RULE_STATUS_CHOICES, default="active")
    is_deleted = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        app_label = "marketplace"
        indexes = [
            models.Index(fields=["store", "code"], name="promotion_store_code_idx"),
        ]

    def __str__(self):
        return f"{self.name} ({self.code or self.type})"
