from marketplace.catalog.domain.models import Discount, Product, Promotion, ShippingMethod, Store, Tax
from marketplace.ordering.domain.models import Order, OrderItem


__all__ = [
    "Store",
    "ShippingMethod",
    "Discount",
    "Tax",
    "Promotion",
    "Product",
    "Order",
    "OrderItem",
]
