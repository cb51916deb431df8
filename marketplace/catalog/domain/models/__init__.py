from .catalog import Product
from .pricing import Discount, Promotion, Tax
from .store import ShippingMethod, Store


__all__ = [
    "Store",
    "ShippingMethod",
    "Discount",
    "Tax",
    "Promotion",
    "Product",
]
