"""
Service container.

One process-wide place that builds the checkout, loyalty and notification
services on first use and hands the same instances to views and tasks.

    from infrastructure.container import container

    result = container.checkout_service().checkout(command)
"""

import logging
from typing import Optional

from .email import EmailFactory, EmailServiceInterface

logger = logging.getLogger(__name__)


class ServiceContainer:
    _instance: Optional["ServiceContainer"] = None
    _ready: bool = False

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if self._ready:
            return
        self._clear()
        self._ready = True
        logger.info("Service container ready")

    def _clear(self):
        self._email: Optional[EmailServiceInterface] = None
        self._inventory = None
        self._pricing = None
        self._checkout = None
        self._loyalty = None
        self._notifications = None

    def email(self, backend: Optional[str] = None) -> EmailServiceInterface:
        """Cached email backend; passing ``backend`` ("smtp" or "mock") swaps it."""
        if backend is not None or self._email is None:
            self._email = EmailFactory.create(backend)
            logger.debug(f"Email backend is now {type(self._email).__name__}")
        return self._email

    def inventory_service(self):
        if self._inventory is None:
            from marketplace.cart.domain.services import InventoryService

            self._inventory = InventoryService()
        return self._inventory

    def pricing_service(self):
        if self._pricing is None:
            from marketplace.cart.domain.services import PricingService

            self._pricing = PricingService()
        return self._pricing

    def checkout_service(self):
        if self._checkout is None:
            from marketplace.ordering.domain.services.checkout_service import CheckoutService

            self._checkout = CheckoutService(
                pricing_service=self.pricing_service(),
                inventory_service=self.inventory_service(),
            )
        return self._checkout

    def loyalty_service(self):
        if self._loyalty is None:
            from loyalty.domain.services.loyalty_service import LoyaltyService

            self._loyalty = LoyaltyService()
        return self._loyalty

    def notification_service(self):
        if self._notifications is None:
            from marketplace.ordering.domain.services.notification_service import OrderNotificationService

            self._notifications = OrderNotificationService(email_service=self.email())
        return self._notifications

    def reset(self):
        """Forget every cached service, e.g. after settings change in a test."""
        self._clear()
        logger.info("Service container reset")

    def configure_for_testing(self):
        self.reset()
        self._email = EmailFactory.create("mock")


container = ServiceContainer()


def get_email() -> EmailServiceInterface:
    return container.email()
