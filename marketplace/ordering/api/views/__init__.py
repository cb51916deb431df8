from .checkout_views import CheckoutView

__all__ = ["CheckoutView"]
