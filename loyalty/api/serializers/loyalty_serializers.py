from rest_framework import serializers

from loyalty.models import LoyaltyAccount, LoyaltyAction, LoyaltyRedemption, LoyaltyTransaction


class LoyaltyActionSerializer(serializers.ModelSerializer):
    class Meta:
        model = LoyaltyAction
        fields = ["id", "key", "name", "description", "default_points", "is_active", "created_at", "updated_at"]
        read_only_fields = ["id", "created_at", "updated_at"]

    def validate_key(self, value):
        return value.strip().lower()


class LoyaltyAccountSerializer(serializers.ModelSerializer):
    class Meta:
        model = LoyaltyAccount
        fields = ["id", "user", "balance", "lifetime_earned", "lifetime_redeemed", "created_at", "updated_at"]
        read_only_fields = fields


class LoyaltyTransactionSerializer(serializers.ModelSerializer):
    action_key = serializers.CharField(source="action.key", read_only=True, default=None)

    class Meta:
        model = LoyaltyTransaction
        fields = [
            "id",
            "points",
            "action_key",
            "reference_type",
            "reference_id",
            "description",
            "metadata",
            "created_at",
        ]
        read_only_fields = fields


class LoyaltyRedemptionSerializer(serializers.ModelSerializer):
    class Meta:
        model = LoyaltyRedemption
        fields = ["id", "points", "amount", "note", "created_at"]
        read_only_fields = fields


class AccountSummarySerializer(serializers.Serializer):
    """Account summary response"""

    account = LoyaltyAccountSerializer()
    transactions = LoyaltyTransactionSerializer(many=True)
    redeemable_points = serializers.IntegerField(help_text="Balance rounded down to whole currency units")
    redeemable_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    points_to_currency_ratio = serializers.IntegerField()


class AccountSummaryQuerySerializer(serializers.Serializer):
    limit = serializers.IntegerField(min_value=1, max_value=100, default=20)


class RedeemRequestSerializer(serializers.Serializer):
    """Request body for redeeming points"""

    points = serializers.IntegerField(min_value=1)
    note = serializers.CharField(max_length=255, required=False, allow_blank=True)
    user_id = serializers.IntegerField(required=False, help_text="Staff only: redeem on behalf of another user")


class AwardRequestSerializer(serializers.Serializer):
    """Request body for assigning points to a user"""

    user_id = serializers.IntegerField()
    points = serializers.IntegerField(required=False, allow_null=True)
    action_key = serializers.CharField(max_length=50, required=False, allow_blank=True)
    multiplier = serializers.DecimalField(max_digits=8, decimal_places=2, required=False, min_value=0)
    reference_type = serializers.CharField(max_length=50, required=False, allow_blank=True)
    reference_id = serializers.CharField(max_length=100, required=False, allow_blank=True)
    allow_negative = serializers.BooleanField(default=False)
    description = serializers.CharField(max_length=255, required=False, allow_blank=True)
    metadata = serializers.DictField(required=False)

    def validate(self, attrs):
        if attrs.get("points") is None and not attrs.get("action_key"):
            raise serializers.ValidationError("Either points or action_key is required")
        if bool(attrs.get("reference_type")) != bool(attrs.get("reference_id")):
            raise serializers.ValidationError("reference_type and reference_id must be given together")
        return attrs


class AwardResponseSerializer(serializers.Serializer):
    account = LoyaltyAccountSerializer()
    transaction = LoyaltyTransactionSerializer()


class RedeemResponseSerializer(serializers.Serializer):
    account = LoyaltyAccountSerializer()
    transaction = LoyaltyTransactionSerializer()
    redemption = LoyaltyRedemptionSerializer()
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)


class OrderAwardResponseSerializer(serializers.Serializer):
    skipped = serializers.BooleanField()
    points = serializers.IntegerField()
    account = LoyaltyAccountSerializer(allow_null=True)
    transaction = LoyaltyTransactionSerializer(allow_null=True)
