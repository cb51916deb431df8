"""
Marketplace Service Layer

Shared building blocks for the domain services:

- ServiceResult / service_ok / service_err: outcome of every service call
- ErrorCodes / ErrorKinds: error taxonomy, mapped to HTTP statuses by the views
- DomainError: expected failure raised inside a transaction
- BaseService: logger and performance logging

The services themselves live with their bounded context:

- marketplace.cart.domain.services: PricingService, InventoryService
- marketplace.ordering.domain.services: pricing engine, CheckoutService,
  OrderNotificationService
- loyalty.domain.services: LoyaltyService

Usage:
    from marketplace.services import service_ok, service_err

    result = container.checkout_service().checkout(command)
    if result.ok:
        order = result.value.order
    else:
        error = result.error
"""

from .base import (
    BaseService,
    DomainError,
    ErrorCodes,
    ErrorKinds,
    ServiceResult,
    error_kind,
    service_err,
    service_ok,
)

__all__ = [
    # Base classes
    "BaseService",
    "ServiceResult",
    "DomainError",
    # Helper functions
    "service_ok",
    "service_err",
    "error_kind",
    # Error codes
    "ErrorCodes",
    "ErrorKinds",
]
