from marketplace.services.base import DomainError


class CheckoutError(DomainError):
    """Expected checkout failure; aborts the checkout transaction."""

    pass
