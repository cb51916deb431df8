from .loyalty_serializers import (
    AccountSummaryQuerySerializer,
    AccountSummarySerializer,
    AwardRequestSerializer,
    AwardResponseSerializer,
    LoyaltyAccountSerializer,
    LoyaltyActionSerializer,
    LoyaltyRedemptionSerializer,
    LoyaltyTransactionSerializer,
    OrderAwardResponseSerializer,
    RedeemRequestSerializer,
    RedeemResponseSerializer,
)

__all__ = [
    "AccountSummaryQuerySerializer",
    "AccountSummarySerializer",
    "AwardRequestSerializer",
    "AwardResponseSerializer",
    "LoyaltyAccountSerializer",
    "LoyaltyActionSerializer",
    "LoyaltyRedemptionSerializer",
    "LoyaltyTransactionSerializer",
    "OrderAwardResponseSerializer",
    "RedeemRequestSerializer",
    "RedeemResponseSerializer",
]
