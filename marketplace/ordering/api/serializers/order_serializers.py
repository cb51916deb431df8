from rest_framework import serializers

from marketplace.api.serializers import PriceAdjustmentSerializer
from marketplace.ordering.domain.models.order import Order, OrderItem
from marketplace.ordering.domain.services.checkout_service import CheckoutCommand, CheckoutLine


class CheckoutLineSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)


class CheckoutRequestSerializer(serializers.Serializer):
    """Request body for placing an order with one store."""

    store_id = serializers.UUIDField()
    items = CheckoutLineSerializer(many=True, allow_empty=False)
    shipping_method_id = serializers.UUIDField(required=False, allow_null=True)
    promotion_code = serializers.CharField(max_length=64, required=False, allow_blank=True, allow_null=True)
    shipping_address = serializers.JSONField(required=False, allow_null=True)
    client_reference = serializers.CharField(
        max_length=100,
        required=False,
        allow_blank=True,
        allow_null=True,
        help_text="Client idempotency key; resending it returns the order it created",
    )

    def validate_items(self, items):
        product_ids = [item["product_id"] for item in items]
        if len(product_ids) != len(set(product_ids)):
            raise serializers.ValidationError("Each product may appear only once per checkout")
        return items

    def validate_shipping_address(self, value):
        if value is not None and not isinstance(value, dict):
            raise serializers.ValidationError("shipping_address must be an object")
        return value

    def to_command(self, user_id) -> CheckoutCommand:
        data = self.validated_data
        shipping_method_id = data.get("shipping_method_id")
        return CheckoutCommand(
            user_id=user_id,
            store_id=str(data["store_id"]),
            lines=tuple(
                CheckoutLine(product_id=str(item["product_id"]), quantity=item["quantity"]) for item in data["items"]
            ),
            shipping_method_id=str(shipping_method_id) if shipping_method_id else None,
            promotion_code=(data.get("promotion_code") or "").strip() or None,
            shipping_address=data.get("shipping_address"),
            client_reference=(data.get("client_reference") or "").strip() or None,
        )


class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = [
            "id",
            "product",
            "product_name",
            "quantity",
            "unit_price",
            "unit_price_final",
            "line_subtotal",
            "line_discount",
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    price_adjustments = PriceAdjustmentSerializer(many=True, read_only=True, allow_null=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "user",
            "store",
            "status",
            "subtotal",
            "total_discount_amount",
            "tax_amount",
            "shipping_amount",
            "total",
            "shipping_address",
            "shipping_method",
            "promotion",
            "promotion_code_used",
            "price_adjustments",
            "client_reference",
            "items",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class CheckoutResponseSerializer(serializers.Serializer):
    """Checkout response body"""

    order = OrderSerializer()
    replayed = serializers.BooleanField(help_text="True when an earlier order with this client_reference was returned")
