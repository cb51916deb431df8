"""
PricingService - Catalog Pricing Adapter

Turns live catalog rows (Product, Discount, Tax, Promotion) into immutable
pricing-engine inputs and runs the engine. All arithmetic lives in
``marketplace.ordering.domain.services.pricing_engine``; this service only
decides which rules apply to a product.
"""

import logging
from decimal import Decimal
from typing import Iterable, Optional, Tuple

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from marketplace.catalog.domain.models import Product, Promotion
from marketplace.ordering.domain.models.order import MONEY_DECIMAL_PLACES
from marketplace.ordering.domain.services.pricing_engine import (
    FIXED,
    PERCENTAGE,
    SCOPE_STORE,
    CouponRule,
    MarketplaceCartInput,
    MarketplaceCartResult,
    ProductDiscountRule,
    ProductPricingInput,
    ProductPricingResult,
    StoreCartInput,
    TaxRule,
    calculate_cart_totals,
    price_product,
    to_decimal,
)
from marketplace.services.base import BaseService

logger = logging.getLogger(__name__)

MANUAL_ADJUSTMENT_LABEL = "Manual price adjustment"


class PricingService(BaseService):
    """
    Service for pricing products and single-store carts.

    Responsibilities:
    - Pick the discount and tax rules that apply to a product
    - Reconcile a seller's manual final price into a fixed discount
    - Build the coupon rule for a validated promotion
    - Price a store cart through the pricing engine
    """

    def __init__(self, precision: Optional[int] = None):
        super().__init__()
        if precision is None:
            precision = getattr(settings, "PRICING_PRECISION", MONEY_DECIMAL_PLACES)
        if not 0 <= precision <= MONEY_DECIMAL_PLACES:
            raise ImproperlyConfigured(
                f"Pricing precision {precision} does not fit order amounts stored with {MONEY_DECIMAL_PLACES} decimals"
            )
        self.precision = precision

    def discount_rules_for(self, product: Product) -> Tuple[ProductDiscountRule, ...]:
        """
        Discount rules for a product.

        The linked Discount wins when it is active, not deleted and positive.
        Otherwise a ``price_final`` below ``price`` becomes a fixed discount of
        the difference, so the checkout honours the seller's listed price.
        """
        discount = product.discount
        if discount is not None and discount.is_applicable:
            return (
                ProductDiscountRule(
                    type=discount.type,
                    value=to_decimal(discount.value),
                    id=str(discount.id),
                    label=discount.name,
                ),
            )

        if product.price_final is not None and product.price_final < product.price:
            gap = to_decimal(product.price) - to_decimal(product.price_final)
            return (
                ProductDiscountRule(
                    type=FIXED,
                    value=gap,
                    label=MANUAL_ADJUSTMENT_LABEL,
                    metadata={"source": "price_final"},
                ),
            )

        return ()

    def tax_rules_for(self, product: Product) -> Tuple[TaxRule, ...]:
        # .all() so prefetched taxes are reused
        return tuple(
            TaxRule(type=tax.type, rate=to_decimal(tax.rate), id=str(tax.id), label=tax.name)
            for tax in product.taxes.all()
            if tax.status == "active" and not tax.is_deleted
        )

    def build_pricing_input(self, product: Product, quantity: int) -> ProductPricingInput:
        return ProductPricingInput(
            product_id=str(product.id),
            store_id=str(product.store_id),
            base_price=to_decimal(product.price),
            quantity=quantity,
            discount_rules=self.discount_rules_for(product),
            tax_rules=self.tax_rules_for(product),
            precision=self.precision,
        )

    def price_line(self, product: Product, quantity: int) -> ProductPricingResult:
        """
        Price one line item.

        Example:
            >>> line = pricing_service.price_line(product, 2)
            >>> line.line_total
            Decimal('187.00')
        """
        return price_product(self.build_pricing_input(product, quantity))

    def coupon_rule_for(self, promotion: Promotion, code: str) -> CouponRule:
        """Promotions are percentage-off coupons applied at store scope."""
        return CouponRule(
            code=code,
            type=PERCENTAGE,
            value=to_decimal(promotion.value),
            id=str(promotion.id),
            scope=SCOPE_STORE,
            metadata={"name": promotion.name, "promotion_type": promotion.type},
        )

    @BaseService.log_performance
    def price_store_cart(
        self,
        store_id: str,
        lines: Iterable[ProductPricingResult],
        coupon: Optional[CouponRule] = None,
        shipping_amount: Decimal = Decimal("0"),
    ) -> MarketplaceCartResult:
        """
        Price a single-store cart: already priced lines, an optional coupon and
        the shipping charge. No store-level discounts or global promotions.
        """
        cart = MarketplaceCartInput(
            stores=(
                StoreCartInput(
                    store_id=str(store_id),
                    items=tuple(lines),
                    coupon=coupon,
                    shipping_amount=to_decimal(shipping_amount),
                    precision=self.precision,
                ),
            ),
            precision=self.precision,
        )
        result = calculate_cart_totals(cart)

        self.logger.info(
            f"Store cart priced: store={store_id}, lines={len(cart.stores[0].items)}, "
            f"discounts={result.discount_total}, total={result.total}"
        )
        return result
