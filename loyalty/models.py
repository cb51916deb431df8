import uuid

from django.contrib.auth import get_user_model
from django.db import models
from django.db.models import Q

User = get_user_model()


class LoyaltyAction(models.Model):
    """Named business action with a default point value (e.g. "review", "signup")."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    key = models.CharField(max_length=50, unique=True)
    name = models.CharField(max_length=100)
    description = models.CharField(max_length=255, blank=True)
    default_points = models.IntegerField(default=0)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.key} ({self.default_points} pts)"


class LoyaltyAccount(models.Model):
    """Per-user points balance. balance == lifetime_earned - lifetime_redeemed."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name="loyalty_account")
    balance = models.IntegerField(default=0)
    lifetime_earned = models.IntegerField(default=0)
    lifetime_redeemed = models.IntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.CheckConstraint(condition=Q(balance__gte=0), name="loyalty_balance_non_negative"),
        ]

    def __str__(self):
        return f"{self.user} - {self.balance} pts"


class LoyaltyTransaction(models.Model):
    """Append-only ledger entry. Positive points earn, negative points spend."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    account = models.ForeignKey(LoyaltyAccount, on_delete=models.CASCADE, related_name="transactions")
    action = models.ForeignKey(
        LoyaltyAction, on_delete=models.SET_NULL, null=True, blank=True, related_name="transactions"
    )
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="loyalty_transactions")
    reference_type = models.CharField(max_length=50, null=True, blank=True)
    reference_id = models.CharField(max_length=100, null=True, blank=True)
    points = models.IntegerField()
    description = models.CharField(max_length=255, null=True, blank=True)
    metadata = models.JSONField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["user", "-created_at"], name="loyalty_tx_user_created_idx"),
        ]
        constraints = [
            # One ledger entry per business event
            models.UniqueConstraint(
                fields=["account", "reference_type", "reference_id"],
                condition=Q(reference_type__isnull=False, reference_id__isnull=False),
                name="unique_loyalty_reference",
            ),
        ]

    def __str__(self):
        return f"{self.points:+d} pts for {self.user} ({self.reference_type}:{self.reference_id})"


class LoyaltyRedemption(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    account = models.ForeignKey(LoyaltyAccount, on_delete=models.CASCADE, related_name="redemptions")
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="loyalty_redemptions")
    points = models.PositiveIntegerField()
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    note = models.CharField(max_length=255, null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.points} pts -> {self.amount} for {self.user}"
