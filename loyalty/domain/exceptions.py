from marketplace.services.base import DomainError


class LoyaltyError(DomainError):
    """Expected ledger failure; aborts the ledger transaction."""

    pass
