from .loyalty_views import LoyaltyActionViewSet, award, my_account, order_award, redeem, user_account

__all__ = ["LoyaltyActionViewSet", "award", "my_account", "order_award", "redeem", "user_account"]
