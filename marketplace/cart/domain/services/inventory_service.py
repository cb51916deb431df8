"""
Stock decrements taken while a checkout transaction is open.

The product row is locked with SELECT FOR UPDATE, so two buyers racing for
the last unit are serialized and exactly one of them wins.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from django.db import transaction

from marketplace.catalog.domain.models import Product
from marketplace.infra.observability.metrics import stock_reservation_failures
from marketplace.services.base import BaseService, ErrorCodes, ServiceResult, service_err, service_ok

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockReservation:
    product_id: str
    product_name: str
    quantity: int
    remaining: int


class InventoryService(BaseService):
    @BaseService.log_performance
    @transaction.atomic
    def reserve_stock(
        self, product_id: str, quantity: int, *, user_id: Optional[str] = None
    ) -> ServiceResult[StockReservation]:
        """
        Take ``quantity`` units of a product out of stock.

        Runs as a savepoint when the caller already holds a transaction, so an
        aborted checkout puts every decrement back.
        """
        if quantity <= 0:
            return service_err(ErrorCodes.INVALID_QUANTITY, "Quantity must be positive")

        try:
            product = Product.objects.select_for_update().get(id=product_id)
        except Product.DoesNotExist:
            stock_reservation_failures.inc()
            return service_err(ErrorCodes.PRODUCT_NOT_FOUND, f"Product {product_id} not found")

        if product.stock < quantity:
            stock_reservation_failures.inc()
            return service_err(
                ErrorCodes.INSUFFICIENT_STOCK,
                f"Insufficient stock for {product.name}: available {product.stock}, requested {quantity}",
            )

        product.stock -= quantity
        product.save(update_fields=["stock", "updated_at"])
        logger.info("Reserved %s x %s for user %s, %s left", quantity, product.name, user_id, product.stock)

        return service_ok(
            StockReservation(
                product_id=str(product_id),
                product_name=product.name,
                quantity=quantity,
                remaining=product.stock,
            )
        )
