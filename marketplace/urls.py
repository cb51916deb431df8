from django.urls import path

from .api.views import prometheus_metrics
from .ordering.api.views import CheckoutView

app_name = "marketplace"

urlpatterns = [
    path("checkout/", CheckoutView.as_view(), name="checkout"),
    path("metrics/", prometheus_metrics, name="metrics"),
]
