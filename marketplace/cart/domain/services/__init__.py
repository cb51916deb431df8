from .inventory_service import InventoryService
from .pricing_service import PricingService

__all__ = [
    "InventoryService",
    "PricingService",
]
