"""
CheckoutService - Checkout Pricing & Settlement

Turns a validated checkout command into a persisted order:

    validating -> pricing -> persisting -> committed | aborted

Everything between validation and persistence runs inside one database
transaction. Product and promotion rows are locked with SELECT FOR UPDATE, so
the stock check, the coupon single-use check, the stock decrement and the
order insert are serialized against concurrent checkouts. Any failure rolls
the whole transaction back.

Side effects that must not roll the order back (loyalty award, confirmation
email) run from ``transaction.on_commit`` through the post-commit hooks.
"""

import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from django.db import IntegrityError, transaction
from django.utils import timezone

from marketplace.cart.domain.services.inventory_service import InventoryService
from marketplace.cart.domain.services.pricing_service import PricingService
from marketplace.catalog.domain.models import Product, Promotion, ShippingMethod, Store
from marketplace.domain.events import OrderPlacedEvent
from marketplace.infra.observability.metrics import (
    checkout_attempts_total,
    checkout_duration,
    order_value,
    orders_placed_total,
    promotion_rejections_total,
)
from marketplace.infra.observability.tracing import add_span_attributes, tracer
from marketplace.ordering.domain.exceptions import CheckoutError
from marketplace.ordering.domain.models import Order, OrderItem
from marketplace.ordering.domain.services.post_commit import default_order_placed_hooks, dispatch_order_placed
from marketplace.ordering.domain.services.pricing_engine import (
    MarketplaceCartResult,
    ProductPricingResult,
    round_currency,
    to_decimal,
)
from marketplace.services.base import BaseService, ErrorCodes, ServiceResult, service_ok

logger = logging.getLogger(__name__)


class CheckoutState:
    VALIDATING = "validating"
    PRICING = "pricing"
    PERSISTING = "persisting"
    COMMITTED = "committed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class CheckoutLine:
    product_id: str
    quantity: int


@dataclass(frozen=True)
class CheckoutCommand:
    """Already shape-validated checkout request for one store."""

    user_id: Any
    store_id: str
    lines: Tuple[CheckoutLine, ...]
    shipping_method_id: Optional[str] = None
    promotion_code: Optional[str] = None
    shipping_address: Optional[Dict[str, Any]] = None
    client_reference: Optional[str] = None


@dataclass
class CheckoutOutcome:
    order: Order
    pricing: Optional[MarketplaceCartResult] = None
    state: str = CheckoutState.COMMITTED
    replayed: bool = False
    history: List[str] = field(default_factory=list)


def _parse_uuid(value: Any, code: str, label: str) -> uuid.UUID:
    try:
        return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
    except (TypeError, ValueError):
        raise CheckoutError(code, f"{label} {value} not found")


class CheckoutService(BaseService):
    """
    Checkout orchestrator for single-store carts.
    """

    def __init__(
        self,
        pricing_service: PricingService = None,
        inventory_service: InventoryService = None,
        post_commit_hooks: Optional[Sequence[Callable[[dict], None]]] = None,
    ):
        """
        Args:
            pricing_service: Catalog pricing adapter (injected)
            inventory_service: Locked stock decrements (injected)
            post_commit_hooks: Callables receiving the order.placed event dict
                after commit. Defaults to enqueueing the confirmation email and
                the loyalty award.
        """
        super().__init__()
        self.pricing_service = pricing_service or PricingService()
        self.inventory_service = inventory_service or InventoryService()
        self.post_commit_hooks = (
            list(post_commit_hooks) if post_commit_hooks is not None else default_order_placed_hooks()
        )

    @BaseService.log_performance
    def checkout(self, command: CheckoutCommand) -> ServiceResult[CheckoutOutcome]:
        """
        Validate, price and persist an order.

        Returns:
            ServiceResult with a CheckoutOutcome. Replaying a command with a
            ``client_reference`` that already produced an order returns that
            order with ``replayed=True`` and writes nothing.

        Example:
            >>> result = checkout_service.checkout(command)
            >>> if result.ok:
            ...     order = result.value.order
            ... elif result.is_client_error:
            ...     print(result.kind, result.error_detail)
        """
        history = [CheckoutState.VALIDATING]

        with tracer.start_as_current_span("checkout") as span:
            add_span_attributes(
                span,
                {
                    "user.id": command.user_id,
                    "store.id": command.store_id,
                    "checkout.lines": len(command.lines),
                    "checkout.client_reference": command.client_reference,
                },
            )

            try:
                self._validate_lines(command.lines)

                with checkout_duration.time(), transaction.atomic():
                    replayed = self._find_replay(command)
                    if replayed is not None:
                        return self._replay_result(replayed, history, span)

                    with tracer.start_as_current_span("checkout.validate"):
                        store = self._load_store(command.store_id)
                        shipping_method = self._load_shipping_method(store, command.shipping_method_id)
                        products = self._load_products(store, command.lines)
                        promotion = self._load_promotion(store, command)

                    history.append(CheckoutState.PRICING)
                    with tracer.start_as_current_span("checkout.pricing"):
                        lines = [
                            self.pricing_service.price_line(products[line.product_id], line.quantity)
                            for line in command.lines
                        ]
                        net_subtotal = round_currency(
                            sum((line.line_net_amount for line in lines), Decimal("0")),
                            self.pricing_service.precision,
                        )
                        if net_subtotal <= 0:
                            raise CheckoutError(
                                ErrorCodes.NON_POSITIVE_TOTAL, "Order total must be greater than zero"
                            )

                        coupon = (
                            self.pricing_service.coupon_rule_for(promotion, promotion.code or command.promotion_code)
                            if promotion is not None
                            else None
                        )
                        shipping_charge = to_decimal(shipping_method.cost) if shipping_method else Decimal("0")
                        pricing = self.pricing_service.price_store_cart(
                            store.id, lines, coupon=coupon, shipping_amount=shipping_charge
                        )

                    history.append(CheckoutState.PERSISTING)
                    with tracer.start_as_current_span("checkout.persist"):
                        order = self._persist(
                            command, store, shipping_method, promotion, products, lines, pricing, shipping_charge
                        )

                    event = OrderPlacedEvent(
                        order_id=str(order.id),
                        user_id=str(command.user_id),
                        store_id=str(store.id),
                        total_amount=order.total,
                        promotion_id=str(promotion.id) if promotion else None,
                    )
                    transaction.on_commit(partial(dispatch_order_placed, event, self.post_commit_hooks))

            except CheckoutError as e:
                history.append(CheckoutState.ABORTED)
                add_span_attributes(span, {"checkout.state": CheckoutState.ABORTED, "checkout.error": e.code})
                checkout_attempts_total.labels(status="rejected", error=e.code).inc()
                self.logger.warning(
                    f"Checkout aborted for user {command.user_id} in {'/'.join(history)}: {e.code} - {e.detail}"
                )
                return e.to_result()

            except IntegrityError as e:
                # Lost a race with an identical client_reference
                existing = self._find_replay(command)
                if existing is not None:
                    return self._replay_result(existing, history, span)
                history.append(CheckoutState.ABORTED)
                checkout_attempts_total.labels(status="failed", error=ErrorCodes.INTERNAL_ERROR).inc()
                return self.internal_error("Checkout failed", e)

            except Exception as e:
                history.append(CheckoutState.ABORTED)
                span.set_attribute("checkout.state", CheckoutState.ABORTED)
                checkout_attempts_total.labels(status="failed", error=ErrorCodes.INTERNAL_ERROR).inc()
                return self.internal_error("Checkout failed", e)

            history.append(CheckoutState.COMMITTED)
            add_span_attributes(span, {"checkout.state": CheckoutState.COMMITTED, "order.id": order.id})
            checkout_attempts_total.labels(status="committed", error="").inc()
            orders_placed_total.labels(status=order.status).inc()
            order_value.observe(float(order.total))

            self.logger.info(
                f"Order {order.id} placed: user={command.user_id}, store={store.id}, "
                f"items={len(lines)}, total={order.total}"
            )

            return service_ok(CheckoutOutcome(order=order, pricing=pricing, history=history))

    # ===== Validation =====

    def _validate_lines(self, lines: Sequence[CheckoutLine]) -> None:
        if not lines:
            raise CheckoutError(ErrorCodes.EMPTY_CART, "At least one item is required")

        seen = set()
        for line in lines:
            if isinstance(line.quantity, bool) or not isinstance(line.quantity, int) or line.quantity <= 0:
                raise CheckoutError(
                    ErrorCodes.INVALID_QUANTITY, f"Quantity for product {line.product_id} must be a positive integer"
                )
            if line.product_id in seen:
                raise CheckoutError(ErrorCodes.INVALID_INPUT, f"Product {line.product_id} appears more than once")
            seen.add(line.product_id)

    def _find_replay(self, command: CheckoutCommand) -> Optional[Order]:
        if not command.client_reference:
            return None
        return Order.objects.filter(user_id=command.user_id, client_reference=command.client_reference).first()

    def _replay_result(self, order: Order, history: List[str], span) -> ServiceResult[CheckoutOutcome]:
        history.append(CheckoutState.COMMITTED)
        span.set_attribute("checkout.replayed", True)
        checkout_attempts_total.labels(status="replayed", error="").inc()
        self.logger.info(f"Checkout replay for client reference '{order.client_reference}' -> order {order.id}")
        return service_ok(CheckoutOutcome(order=order, replayed=True, history=history))

    def _load_store(self, store_id) -> Store:
        store_uuid = _parse_uuid(store_id, ErrorCodes.STORE_NOT_FOUND, "Store")
        store = Store.objects.filter(id=store_uuid, is_deleted=False).first()
        if store is None:
            raise CheckoutError(ErrorCodes.STORE_NOT_FOUND, f"Store {store_id} not found")
        return store

    def _load_shipping_method(self, store: Store, shipping_method_id) -> Optional[ShippingMethod]:
        if not shipping_method_id:
            return None

        method_uuid = _parse_uuid(shipping_method_id, ErrorCodes.SHIPPING_METHOD_UNAVAILABLE, "Shipping method")
        method = ShippingMethod.objects.filter(
            id=method_uuid, store=store, is_deleted=False, status="active"
        ).first()
        if method is None:
            raise CheckoutError(
                ErrorCodes.SHIPPING_METHOD_UNAVAILABLE,
                f"Shipping method {shipping_method_id} is not available for this store",
            )
        return method

    def _load_products(self, store: Store, lines: Sequence[CheckoutLine]) -> Dict[str, Product]:
        """
        Lock and load every product in the cart.

        Returns a mapping keyed by the product id exactly as the line carries it.
        """
        ids = {line.product_id: _parse_uuid(line.product_id, ErrorCodes.PRODUCT_NOT_FOUND, "Product") for line in lines}

        locked = {
            product.id: product
            for product in Product.objects.select_for_update()
            .filter(id__in=list(ids.values()))
            .exclude(status="deleted")
            .prefetch_related("discount", "taxes")
            .order_by("id")
        }

        products = {}
        for line in lines:
            product = locked.get(ids[line.product_id])
            if product is None:
                raise CheckoutError(ErrorCodes.PRODUCT_NOT_FOUND, f"Product {line.product_id} not found")
            if product.store_id != store.id:
                raise CheckoutError(
                    ErrorCodes.PRODUCT_WRONG_STORE, f"Product {product.name} does not belong to this store"
                )
            if product.stock < line.quantity:
                raise CheckoutError(
                    ErrorCodes.INSUFFICIENT_STOCK,
                    f"Insufficient stock for {product.name}: available {product.stock}",
                )
            products[line.product_id] = product
        return products

    def _load_promotion(self, store: Store, command: CheckoutCommand) -> Optional[Promotion]:
        code = (command.promotion_code or "").strip()
        if not code:
            return None

        # Locked so two checkouts using the same coupon serialize on the usage count
        candidates = list(Promotion.objects.select_for_update().filter(store=store, code=code, is_deleted=False))
        if not candidates:
            promotion_rejections_total.labels(reason="not_found").inc()
            raise CheckoutError(ErrorCodes.PROMOTION_NOT_FOUND, f"Promotion code '{code}' not found")

        now = timezone.now()
        promotion = next((promo for promo in candidates if self._is_redeemable(promo, now)), None)
        if promotion is None:
            promotion_rejections_total.labels(reason="invalid").inc()
            raise CheckoutError(ErrorCodes.PROMOTION_INVALID, f"Promotion code '{code}' is not valid or has expired")

        if promotion.type == "coupon" and Order.objects.filter(user_id=command.user_id, promotion=promotion).exists():
            promotion_rejections_total.labels(reason="already_used").inc()
            raise CheckoutError(
                ErrorCodes.PROMOTION_ALREADY_USED, f"Coupon '{code}' was already used in a previous order"
            )

        return promotion

    @staticmethod
    def _is_redeemable(promotion: Promotion, now) -> bool:
        return (
            promotion.status == "active"
            and promotion.starts_at is not None
            and promotion.ends_at is not None
            and promotion.starts_at <= now <= promotion.ends_at
            and promotion.value is not None
            and promotion.value > 0
        )

    # ===== Persistence =====

    def _persist(
        self,
        command: CheckoutCommand,
        store: Store,
        shipping_method: Optional[ShippingMethod],
        promotion: Optional[Promotion],
        products: Dict[str, Product],
        lines: List[ProductPricingResult],
        pricing: MarketplaceCartResult,
        shipping_charge: Decimal,
    ) -> Order:
        precision = self.pricing_service.precision
        store_totals = pricing.stores[0]

        for line in command.lines:
            reservation = self.inventory_service.reserve_stock(
                line.product_id, line.quantity, user_id=str(command.user_id)
            )
            if not reservation.ok:
                raise CheckoutError(reservation.error, reservation.error_detail)

        product_discount_total = sum((line.discount_total for line in lines), Decimal("0"))
        total_discount = round_currency(
            product_discount_total + store_totals.discount_total + pricing.promotions_total, precision
        )
        adjustments = [adjustment.to_dict() for adjustment in pricing.adjustments if adjustment.amount != 0]

        order = Order.objects.create(
            user_id=command.user_id,
            store=store,
            status="pending",
            subtotal=round_currency(sum((line.line_base_amount for line in lines), Decimal("0")), precision),
            total_discount_amount=total_discount,
            tax_amount=pricing.tax_total,
            # Gross charge; a shipping coupon shows up in total_discount_amount
            shipping_amount=round_currency(shipping_charge, precision),
            total=pricing.total,
            shipping_address=command.shipping_address,
            shipping_method=shipping_method,
            promotion=promotion,
            promotion_code_used=(promotion.code or command.promotion_code) if promotion else None,
            price_adjustments=adjustments or None,
            client_reference=command.client_reference or None,
        )

        OrderItem.objects.bulk_create(
            [
                OrderItem(
                    order=order,
                    product=products[line.product_id],
                    product_name=products[line.product_id].name,
                    quantity=priced.quantity,
                    unit_price=priced.unit_base_price,
                    unit_price_final=priced.unit_price_after_discounts,
                    line_subtotal=priced.line_base_amount,
                    line_discount=priced.discount_total,
                )
                for line, priced in zip(command.lines, lines)
            ]
        )

        return order
