from .order_serializers import (
    CheckoutLineSerializer,
    CheckoutRequestSerializer,
    CheckoutResponseSerializer,
    OrderItemSerializer,
    OrderSerializer,
)

__all__ = [
    "CheckoutLineSerializer",
    "CheckoutRequestSerializer",
    "CheckoutResponseSerializer",
    "OrderItemSerializer",
    "OrderSerializer",
]
