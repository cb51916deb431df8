from .order import MONEY_DECIMAL_PLACES, Order, OrderItem


__all__ = [
    "MONEY_DECIMAL_PLACES",
    "Order",
    "OrderItem",
]
