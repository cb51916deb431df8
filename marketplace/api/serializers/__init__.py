# Marketplace API Serializers

# Import response serializers for API documentation
from .response_serializers import ErrorResponseSerializer, PriceAdjustmentSerializer


__all__ = [
    "ErrorResponseSerializer",
    "PriceAdjustmentSerializer",
]
