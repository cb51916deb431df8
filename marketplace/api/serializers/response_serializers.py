"""
Response Serializers for API Documentation

These serializers define the structure of shared API responses for OpenAPI
schema generation. They are NOT used for data validation, only for
documentation in Swagger/ReDoc.
"""

from rest_framework import serializers


class ErrorResponseSerializer(serializers.Serializer):
    """Standard error response"""

    error = serializers.CharField(help_text="Error code identifier, e.g. insufficient_stock")
    kind = serializers.ChoiceField(
        choices=[
            "invalid_input",
            "not_found",
            "conflict",
            "duplicate_reference",
            "insufficient_balance",
            "forbidden",
            "internal",
        ],
        help_text="Error category; decides the HTTP status",
    )
    detail = serializers.CharField(help_text="Human-readable error message")


class PriceAdjustmentSerializer(serializers.Serializer):
    """One discount, promotion or tax line recorded on an order"""

    type = serializers.CharField(help_text="percentage, fixed or shipping")
    scope = serializers.CharField(help_text="product, store, global, shipping or tax")
    amount = serializers.CharField(help_text="Adjustment amount as a decimal string")
    id = serializers.CharField(required=False)
    code = serializers.CharField(required=False)
    label = serializers.CharField(required=False)
    value = serializers.CharField(required=False)
    metadata = serializers.DictField(required=False)
