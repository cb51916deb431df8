from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .api.views import LoyaltyActionViewSet, award, my_account, order_award, redeem, user_account

router = DefaultRouter()
router.register(r"actions", LoyaltyActionViewSet, basename="loyalty-action")

app_name = "loyalty"

urlpatterns = [
    path("", include(router.urls)),
    path("account/", my_account, name="account-me"),
    path("accounts/<int:user_id>/", user_account, name="account-detail"),
    path("redeem/", redeem, name="redeem"),
    path("award/", award, name="award"),
    path("orders/<uuid:order_id>/award/", order_award, name="order-award"),
]
