"""
Pricing Engine - Pure Cart Price Calculations

Turns raw product, discount, tax, coupon and promotion data into a priced cart.
Every function here is pure: inputs are immutable dataclasses, nothing touches
the database, and the same input always produces the same output.

Stacking order:
    1. Product discounts (all percentage rules, then all fixed rules)
    2. Product taxes, computed on the discounted unit price
    3. Store cart discounts (percentage, then fixed), then one optional coupon
    4. Marketplace-wide promotions, applied sequentially on the remaining total

Rounding:
    Every intermediate amount is rounded half-up to ``precision`` decimal places
    before it is used by the next step. Amounts are Decimal end to end; floats
    are converted through ``str()`` so 19.995 is treated as written.
"""

from dataclasses import dataclass, replace
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, Optional, Sequence, Tuple, Union

DEFAULT_PRECISION = 2

PERCENTAGE = "percentage"
FIXED = "fixed"
SHIPPING = "shipping"

SCOPE_PRODUCT = "product"
SCOPE_STORE = "store"
SCOPE_GLOBAL = "global"
SCOPE_SHIPPING = "shipping"
SCOPE_TAX = "tax"

ZERO = Decimal("0")
HUNDRED = Decimal("100")

Amount = Union[Decimal, int, float, str]


def to_decimal(value: Optional[Amount]) -> Decimal:
    """Convert a monetary input to Decimal without binary float artifacts."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def round_currency(value: Optional[Amount], precision: int = DEFAULT_PRECISION) -> Decimal:
    """
    Round half-up to ``precision`` fractional digits.

    Example:
        >>> round_currency(19.995)
        Decimal('20.00')
        >>> round_currency("2.345", precision=1)
        Decimal('2.3')
    """
    quantum = Decimal(1).scaleb(-precision)
    return to_decimal(value).quantize(quantum, rounding=ROUND_HALF_UP)


def clamp_percentage(value: Amount) -> Decimal:
    return min(max(to_decimal(value), ZERO), HUNDRED)


def normalize_rule_type(rule_type: Any) -> str:
    return str(getattr(rule_type, "value", rule_type)).lower()


# ===== Rules =====


@dataclass(frozen=True)
class PriceAdjustment:
    """Audit record of one applied discount, tax, coupon or promotion rule."""

    type: str
    scope: str
    amount: Decimal
    id: Optional[str] = None
    code: Optional[str] = None
    label: Optional[str] = None
    value: Optional[Decimal] = None
    metadata: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe representation; monetary values become strings."""
        data: Dict[str, Any] = {"type": self.type, "scope": self.scope, "amount": str(self.amount)}
        if self.id is not None:
            data["id"] = str(self.id)
        if self.code is not None:
            data["code"] = self.code
        if self.label is not None:
            data["label"] = self.label
        if self.value is not None:
            data["value"] = str(self.value)
        if self.metadata:
            data["metadata"] = self.metadata
        return data


@dataclass(frozen=True)
class ProductDiscountRule:
    type: str
    value: Amount
    id: Optional[str] = None
    label: Optional[str] = None
    priority: int = 0
    metadata: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class TaxRule:
    type: str
    rate: Amount
    id: Optional[str] = None
    label: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class StoreCartDiscountRule:
    type: str
    value: Amount
    min_total: Optional[Amount] = None
    id: Optional[str] = None
    label: Optional[str] = None
    priority: int = 0
    metadata: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class CouponRule:
    code: str
    type: str  # percentage | fixed | shipping
    value: Amount
    id: Optional[str] = None
    scope: str = SCOPE_STORE
    min_total: Optional[Amount] = None
    metadata: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class PromotionRule:
    value: Amount
    type: str = "automatic"  # automatic | coupon
    discount_type: str = PERCENTAGE
    id: Optional[str] = None
    code: Optional[str] = None
    label: Optional[str] = None
    scope: str = SCOPE_GLOBAL
    min_total: Optional[Amount] = None
    metadata: Optional[Dict[str, Any]] = None


# ===== Inputs and results =====


@dataclass(frozen=True)
class ProductPricingInput:
    product_id: str
    store_id: str
    base_price: Amount
    quantity: int
    discount_rules: Tuple[ProductDiscountRule, ...] = ()
    tax_rules: Tuple[TaxRule, ...] = ()
    precision: int = DEFAULT_PRECISION


@dataclass(frozen=True)
class ProductDiscountOutcome:
    unit_price: Decimal
    discount_total: Decimal
    adjustments: Tuple[PriceAdjustment, ...]


@dataclass(frozen=True)
class ProductTaxOutcome:
    unit_tax: Decimal
    tax_total: Decimal
    adjustments: Tuple[PriceAdjustment, ...]


@dataclass(frozen=True)
class ProductPricingResult:
    """Priced line item. Adjustment amounts are already scaled to the line."""

    product_id: str
    store_id: str
    quantity: int
    unit_base_price: Decimal
    line_base_amount: Decimal
    unit_price_after_discounts: Decimal
    unit_tax_amount: Decimal
    line_net_amount: Decimal
    line_tax_amount: Decimal
    line_total: Decimal
    discount_total: Decimal
    tax_total: Decimal
    discount_adjustments: Tuple[PriceAdjustment, ...] = ()
    tax_adjustments: Tuple[PriceAdjustment, ...] = ()


@dataclass(frozen=True)
class StoreCartInput:
    store_id: str
    items: Tuple[ProductPricingResult, ...]
    discounts: Tuple[StoreCartDiscountRule, ...] = ()
    coupon: Optional[CouponRule] = None
    shipping_amount: Amount = ZERO
    precision: int = DEFAULT_PRECISION


@dataclass(frozen=True)
class StoreCartResult:
    store_id: str
    items: Tuple[ProductPricingResult, ...]
    subtotal_before_discounts: Decimal
    subtotal_after_discounts: Decimal
    discount_total: Decimal
    shipping_amount: Decimal
    tax_total: Decimal
    adjustments: Tuple[PriceAdjustment, ...]


@dataclass(frozen=True)
class MarketplaceCartInput:
    stores: Tuple[StoreCartInput, ...]
    promotions: Tuple[PromotionRule, ...] = ()
    precision: int = DEFAULT_PRECISION


@dataclass(frozen=True)
class PromotionOutcome:
    promotions_total: Decimal
    adjustments: Tuple[PriceAdjustment, ...]


@dataclass(frozen=True)
class MarketplaceCartResult:
    stores: Tuple[StoreCartResult, ...]
    subtotal: Decimal
    discount_total: Decimal
    tax_total: Decimal
    shipping_total: Decimal
    promotions_total: Decimal
    total: Decimal
    adjustments: Tuple[PriceAdjustment, ...]


# ===== Product level =====


def _by_priority(rules: Iterable, rule_type: str) -> list:
    # sorted() is stable, so rules with equal priority keep their input order
    matching = [rule for rule in rules if normalize_rule_type(rule.type) == rule_type]
    return sorted(matching, key=lambda rule: rule.priority or 0)


def apply_product_discounts(product: ProductPricingInput) -> ProductDiscountOutcome:
    """
    Apply product-level discounts to one unit.

    All percentage rules run first, each against the current running price,
    then fixed rules, each capped at the current price. The base price is
    rounded even when there is nothing to apply.

    Example:
        >>> outcome = apply_product_discounts(ProductPricingInput(
        ...     "p1", "s1", Decimal("100"), 1,
        ...     discount_rules=(ProductDiscountRule("percentage", 10), ProductDiscountRule("fixed", 5)),
        ... ))
        >>> outcome.unit_price
        Decimal('85.00')
    """
    precision = product.precision
    price = round_currency(product.base_price, precision)

    if not product.discount_rules:
        return ProductDiscountOutcome(unit_price=price, discount_total=round_currency(ZERO, precision), adjustments=())

    adjustments = []
    total_discount = ZERO

    for rule in _by_priority(product.discount_rules, PERCENTAGE):
        pct = clamp_percentage(rule.value)
        if pct <= 0:
            continue
        amount = round_currency(price * pct / HUNDRED, precision)
        price = round_currency(price - amount, precision)
        total_discount += amount
        adjustments.append(
            PriceAdjustment(
                id=rule.id,
                label=rule.label,
                type=PERCENTAGE,
                scope=SCOPE_PRODUCT,
                value=pct,
                amount=amount,
                metadata=rule.metadata,
            )
        )

    for rule in _by_priority(product.discount_rules, FIXED):
        value = max(to_decimal(rule.value), ZERO)
        if value <= 0:
            continue
        amount = round_currency(min(price, value), precision)
        price = round_currency(price - amount, precision)
        total_discount += amount
        adjustments.append(
            PriceAdjustment(
                id=rule.id,
                label=rule.label,
                type=FIXED,
                scope=SCOPE_PRODUCT,
                value=value,
                amount=amount,
                metadata=rule.metadata,
            )
        )

    if price < 0:
        price = ZERO

    return ProductDiscountOutcome(
        unit_price=round_currency(price, precision),
        discount_total=round_currency(total_discount, precision),
        adjustments=tuple(adjustments),
    )


def calculate_product_tax(product: ProductPricingInput, unit_net_price: Optional[Amount] = None) -> ProductTaxOutcome:
    """
    Compute unit and line tax.

    The tax base is ``unit_net_price`` (the discounted unit price); the base
    price is only used when no net price is supplied.
    """
    precision = product.precision
    if not product.tax_rules:
        zero = round_currency(ZERO, precision)
        return ProductTaxOutcome(unit_tax=zero, tax_total=zero, adjustments=())

    base = round_currency(product.base_price if unit_net_price is None else unit_net_price, precision)
    unit_tax = ZERO
    adjustments = []

    for tax in product.tax_rules:
        if normalize_rule_type(tax.type) == PERCENTAGE:
            pct = clamp_percentage(tax.rate)
            amount = round_currency(base * pct / HUNDRED, precision)
            adjustments.append(
                PriceAdjustment(
                    id=tax.id,
                    label=tax.label,
                    type=PERCENTAGE,
                    scope=SCOPE_TAX,
                    value=pct,
                    amount=amount,
                    metadata=tax.metadata,
                )
            )
        else:
            value = max(to_decimal(tax.rate), ZERO)
            amount = round_currency(value, precision)
            adjustments.append(
                PriceAdjustment(
                    id=tax.id,
                    label=tax.label,
                    type=FIXED,
                    scope=SCOPE_TAX,
                    value=value,
                    amount=amount,
                    metadata=tax.metadata,
                )
            )
        unit_tax += amount

    unit_tax = round_currency(unit_tax, precision)
    return ProductTaxOutcome(
        unit_tax=unit_tax,
        tax_total=round_currency(unit_tax * product.quantity, precision),
        adjustments=tuple(adjustments),
    )


def _scale(adjustments: Sequence[PriceAdjustment], quantity: int, precision: int) -> Tuple[PriceAdjustment, ...]:
    return tuple(replace(adj, amount=round_currency(adj.amount * quantity, precision)) for adj in adjustments)


def price_product(product: ProductPricingInput) -> ProductPricingResult:
    """Price a full line: discounts, then tax on the discounted unit price."""
    precision = product.precision
    quantity = product.quantity

    discounts = apply_product_discounts(product)
    taxes = calculate_product_tax(product, unit_net_price=discounts.unit_price)

    unit_base_price = round_currency(product.base_price, precision)
    line_base_amount = round_currency(unit_base_price * quantity, precision)
    line_discount = round_currency(discounts.discount_total * quantity, precision)
    line_net_amount = round_currency(max(line_base_amount - line_discount, ZERO), precision)
    line_tax_amount = round_currency(taxes.tax_total, precision)

    return ProductPricingResult(
        product_id=product.product_id,
        store_id=product.store_id,
        quantity=quantity,
        unit_base_price=unit_base_price,
        line_base_amount=line_base_amount,
        unit_price_after_discounts=discounts.unit_price,
        unit_tax_amount=taxes.unit_tax,
        line_net_amount=line_net_amount,
        line_tax_amount=line_tax_amount,
        line_total=round_currency(line_net_amount + line_tax_amount, precision),
        discount_total=line_discount,
        tax_total=line_tax_amount,
        discount_adjustments=_scale(discounts.adjustments, quantity, precision),
        tax_adjustments=_scale(taxes.adjustments, quantity, precision),
    )


# ===== Store level =====


def _meets_min_total(min_total: Optional[Amount], subtotal: Decimal) -> bool:
    return min_total is None or subtotal >= to_decimal(min_total)


def apply_store_cart_discounts(cart: StoreCartInput) -> StoreCartResult:
    """
    Apply store discounts and the optional coupon to one store's cart.

    Thresholds (``min_total``) are always checked against the subtotal before
    any store discount, never against the running subtotal.
    """
    precision = cart.precision
    subtotal_before = round_currency(sum((item.line_net_amount for item in cart.items), ZERO), precision)

    running = subtotal_before
    discount_total = ZERO
    adjustments = []

    def apply_rule(rule_type, value, scope, rule_id=None, label=None, code=None, metadata=None):
        nonlocal running, discount_total
        if rule_type == PERCENTAGE:
            value = clamp_percentage(value)
            if value <= 0:
                return
            amount = round_currency(running * value / HUNDRED, precision)
        else:
            value = max(to_decimal(value), ZERO)
            if value <= 0:
                return
            amount = round_currency(min(running, value), precision)
        running = round_currency(running - amount, precision)
        discount_total += amount
        adjustments.append(
            PriceAdjustment(
                id=rule_id,
                code=code,
                label=label,
                type=rule_type,
                scope=scope,
                value=value,
                amount=amount,
                metadata=metadata,
            )
        )

    for rule_type in (PERCENTAGE, FIXED):
        for rule in _by_priority(cart.discounts, rule_type):
            if not _meets_min_total(rule.min_total, subtotal_before):
                continue
            apply_rule(rule_type, rule.value, SCOPE_STORE, rule.id, rule.label, metadata=rule.metadata)

    shipping_amount = round_currency(cart.shipping_amount, precision)

    coupon = cart.coupon
    if coupon is not None and _meets_min_total(coupon.min_total, subtotal_before):
        coupon_type = normalize_rule_type(coupon.type)
        if coupon_type == SHIPPING:
            removed = shipping_amount
            shipping_amount = round_currency(ZERO, precision)
            if removed > 0:
                adjustments.append(
                    PriceAdjustment(
                        id=coupon.id,
                        code=coupon.code,
                        type=SHIPPING,
                        scope=SCOPE_SHIPPING,
                        amount=removed,
                        metadata=coupon.metadata,
                    )
                )
                discount_total += removed
        elif coupon_type in (PERCENTAGE, FIXED):
            apply_rule(
                coupon_type,
                coupon.value,
                coupon.scope or SCOPE_STORE,
                coupon.id,
                code=coupon.code,
                metadata=coupon.metadata,
            )

    if running < 0:
        running = ZERO

    return StoreCartResult(
        store_id=cart.store_id,
        items=tuple(cart.items),
        subtotal_before_discounts=subtotal_before,
        subtotal_after_discounts=round_currency(running, precision),
        discount_total=round_currency(discount_total, precision),
        shipping_amount=shipping_amount,
        tax_total=round_currency(sum((item.line_tax_amount for item in cart.items), ZERO), precision),
        adjustments=tuple(adjustments),
    )


# ===== Marketplace level =====


def _store_gross(store: StoreCartResult) -> Decimal:
    return store.subtotal_after_discounts + store.tax_total + store.shipping_amount


def apply_global_promotions(cart: MarketplaceCartInput, store_results: Sequence[StoreCartResult]) -> PromotionOutcome:
    """
    Apply marketplace-wide promotions sequentially on a shrinking base.

    The base is every store's discounted subtotal plus tax plus shipping.
    Promotions whose minimum exceeds the base, or whose value is not positive,
    are skipped.
    """
    precision = cart.precision
    if not cart.promotions:
        return PromotionOutcome(promotions_total=round_currency(ZERO, precision), adjustments=())

    base = round_currency(sum((_store_gross(store) for store in store_results), ZERO), precision)
    remaining = base
    promotions_total = ZERO
    adjustments = []

    applicable = [
        promo
        for promo in cart.promotions
        if _meets_min_total(promo.min_total, base) and to_decimal(promo.value) > 0
    ]

    for promotion in applicable:
        discount_type = normalize_rule_type(promotion.discount_type or PERCENTAGE)
        if discount_type == PERCENTAGE:
            amount = round_currency(remaining * clamp_percentage(promotion.value) / HUNDRED, precision)
        else:
            amount = round_currency(min(remaining, max(to_decimal(promotion.value), ZERO)), precision)

        if amount <= 0:
            continue

        remaining = round_currency(remaining - amount, precision)
        promotions_total += amount
        adjustments.append(
            PriceAdjustment(
                id=promotion.id,
                code=promotion.code,
                label=promotion.label,
                type=discount_type,
                scope=SCOPE_GLOBAL,
                value=to_decimal(promotion.value),
                amount=amount,
                metadata=promotion.metadata,
            )
        )

    return PromotionOutcome(
        promotions_total=round_currency(promotions_total, precision), adjustments=tuple(adjustments)
    )


def calculate_cart_totals(cart: MarketplaceCartInput) -> MarketplaceCartResult:
    """
    Price a whole marketplace cart.

    The adjustment list is in canonical audit order: for each store, every
    item's discount adjustments then tax adjustments, then the store's own
    adjustments; global promotion adjustments come last.
    """
    precision = cart.precision
    store_results = tuple(apply_store_cart_discounts(store_cart) for store_cart in cart.stores)
    promotions = apply_global_promotions(cart, store_results)

    subtotal = round_currency(sum((store.subtotal_before_discounts for store in store_results), ZERO), precision)
    product_discount_total = round_currency(
        sum((item.discount_total for store in store_results for item in store.items), ZERO), precision
    )
    store_discount_total = round_currency(sum((store.discount_total for store in store_results), ZERO), precision)
    tax_total = round_currency(sum((store.tax_total for store in store_results), ZERO), precision)
    shipping_total = round_currency(sum((store.shipping_amount for store in store_results), ZERO), precision)
    total_before_promotions = round_currency(sum((_store_gross(store) for store in store_results), ZERO), precision)

    adjustments = []
    for store in store_results:
        for item in store.items:
            adjustments.extend(item.discount_adjustments)
            adjustments.extend(item.tax_adjustments)
        adjustments.extend(store.adjustments)
    adjustments.extend(promotions.adjustments)

    return MarketplaceCartResult(
        stores=store_results,
        subtotal=subtotal,
        discount_total=round_currency(
            product_discount_total + store_discount_total + promotions.promotions_total, precision
        ),
        tax_total=tax_total,
        shipping_total=shipping_total,
        promotions_total=promotions.promotions_total,
        total=round_currency(total_before_promotions - promotions.promotions_total, precision),
        adjustments=tuple(adjustments),
    )
