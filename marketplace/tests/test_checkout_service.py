import uuid
from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock, patch

from django.test import TestCase
from django.utils import timezone

from marketplace.cart.domain.services import InventoryService, PricingService
from marketplace.models import Order, OrderItem
from marketplace.ordering.domain.services.checkout_service import (
    CheckoutCommand,
    CheckoutLine,
    CheckoutService,
    CheckoutState,
)
from marketplace.services.base import ErrorCodes, ErrorKinds, service_err
from marketplace.tests.factories import (
    DiscountFactory,
    ProductFactory,
    PromotionFactory,
    ShippingMethodFactory,
    StoreFactory,
    TaxFactory,
    UserFactory,
)


class CheckoutServiceTestBase(TestCase):
    def setUp(self):
        self.buyer = UserFactory(email="buyer@example.com")
        self.store = StoreFactory(status="active")
        self.shipping = ShippingMethodFactory(store=self.store, cost=Decimal("5.00"))

        # Lamp: 100.00, 10% discount, 10% tax -> 90.00 + 9.00 tax per unit
        self.lamp = ProductFactory(
            store=self.store,
            name="Lamp",
            price=Decimal("100.00"),
            stock=5,
            discount=DiscountFactory(store=self.store, type="percentage", value=Decimal("10.00")),
            taxes=[TaxFactory(store=self.store, type="percentage", rate=Decimal("10.00"))],
        )
        # Vase: 50.00, no rules
        self.vase = ProductFactory(store=self.store, name="Vase", price=Decimal("50.00"), stock=2)

        self.hook = MagicMock()
        self.service = CheckoutService(
            pricing_service=PricingService(precision=2),
            inventory_service=InventoryService(),
            post_commit_hooks=[self.hook],
        )

    def command(self, lines=None, **kwargs):
        if lines is None:
            lines = [(self.lamp, 2), (self.vase, 1)]
        defaults = {
            "user_id": self.buyer.id,
            "store_id": str(self.store.id),
            "lines": tuple(CheckoutLine(product_id=str(product.id), quantity=qty) for product, qty in lines),
            "shipping_method_id": str(self.shipping.id),
        }
        defaults.update(kwargs)
        return CheckoutCommand(**defaults)

    def assertStock(self, product, expected):
        product.refresh_from_db()
        self.assertEqual(product.stock, expected)


class CheckoutSuccessTest(CheckoutServiceTestBase):
    def test_order_totals(self):
        result = self.service.checkout(self.command(shipping_address={"city": "Porto"}))

        self.assertTrue(result.ok, result.error_detail)
        order = result.value.order
        self.assertEqual(order.subtotal, Decimal("250.00"))
        self.assertEqual(order.total_discount_amount, Decimal("20.00"))
        self.assertEqual(order.tax_amount, Decimal("18.00"))
        self.assertEqual(order.shipping_amount, Decimal("5.00"))
        self.assertEqual(order.total, Decimal("253.00"))
        self.assertEqual(
            order.total, order.subtotal - order.total_discount_amount + order.tax_amount + order.shipping_amount
        )
        self.assertEqual(order.status, "pending")
        self.assertEqual(order.shipping_method, self.shipping)
        self.assertEqual(order.shipping_address, {"city": "Porto"})
        self.assertIsNone(order.promotion)
        self.assertEqual(
            result.value.history,
            [CheckoutState.VALIDATING, CheckoutState.PRICING, CheckoutState.PERSISTING, CheckoutState.COMMITTED],
        )
        self.assertFalse(result.value.replayed)

    def test_order_items_snapshot_prices(self):
        result = self.service.checkout(self.command())

        item = OrderItem.objects.get(order=result.value.order, product=self.lamp)
        self.assertEqual(item.quantity, 2)
        self.assertEqual(item.product_name, "Lamp")
        self.assertEqual(item.unit_price, Decimal("100.00"))
        self.assertEqual(item.unit_price_final, Decimal("90.00"))
        self.assertEqual(item.line_subtotal, Decimal("200.00"))
        self.assertEqual(item.line_discount, Decimal("20.00"))
        self.assertEqual(result.value.order.items.count(), 2)

    def test_stored_order_matches_priced_cart_at_whole_unit_precision(self):
        desk = ProductFactory(
            store=self.store,
            price=Decimal("10.01"),
            stock=3,
            discount=DiscountFactory(store=self.store, type="percentage", value=Decimal("12.50")),
            taxes=[TaxFactory(store=self.store, type="percentage", rate=Decimal("10.00"))],
        )
        service = CheckoutService(
            pricing_service=PricingService(precision=0), inventory_service=InventoryService(), post_commit_hooks=[]
        )

        result = service.checkout(self.command(lines=[(desk, 1)], shipping_method_id=None))

        self.assertTrue(result.ok, result.error_detail)
        pricing = result.value.pricing
        order = Order.objects.get(id=result.value.order.id)
        self.assertEqual(order.total, pricing.total)
        self.assertEqual(order.tax_amount, pricing.tax_total)
        self.assertEqual(order.total, order.total.to_integral_value())
        self.assertEqual(
            order.total, order.subtotal - order.total_discount_amount + order.tax_amount + order.shipping_amount
        )

    @patch("marketplace.ordering.domain.services.checkout_service.tracer")
    def test_span_records_outcome(self, mock_tracer):
        span = mock_tracer.start_as_current_span.return_value.__enter__.return_value

        result = self.service.checkout(self.command(client_reference="cart-9"))

        span.set_attribute.assert_any_call("user.id", self.buyer.id)
        span.set_attribute.assert_any_call("store.id", str(self.store.id))
        span.set_attribute.assert_any_call("checkout.client_reference", "cart-9")
        span.set_attribute.assert_any_call("checkout.state", CheckoutState.COMMITTED)
        span.set_attribute.assert_any_call("order.id", str(result.value.order.id))

    def test_stock_is_decremented(self):
        self.service.checkout(self.command())

        self.assertStock(self.lamp, 3)
        self.assertStock(self.vase, 1)

    def test_price_adjustments_are_recorded(self):
        result = self.service.checkout(self.command())

        adjustments = result.value.order.price_adjustments
        self.assertEqual([adj["scope"] for adj in adjustments], ["product", "tax"])
        self.assertEqual(adjustments[0]["amount"], "20.00")
        self.assertEqual(adjustments[1]["amount"], "18.00")

    def test_no_adjustments_stored_as_null(self):
        result = self.service.checkout(self.command(lines=[(self.vase, 1)], shipping_method_id=None))

        order = result.value.order
        self.assertIsNone(order.price_adjustments)
        self.assertEqual(order.total, Decimal("50.00"))
        self.assertEqual(order.shipping_amount, Decimal("0.00"))

    def test_manual_final_price_is_honoured(self):
        chair = ProductFactory(store=self.store, price=Decimal("80.00"), price_final=Decimal("60.00"), stock=1)

        result = self.service.checkout(self.command(lines=[(chair, 1)], shipping_method_id=None))

        self.assertEqual(result.value.order.total, Decimal("60.00"))
        self.assertEqual(result.value.order.total_discount_amount, Decimal("20.00"))


class CheckoutPromotionTest(CheckoutServiceTestBase):
    def setUp(self):
        super().setUp()
        self.coupon = PromotionFactory(store=self.store, type="coupon", code="SAVE10", value=Decimal("10.00"))

    def test_coupon_discounts_net_subtotal(self):
        result = self.service.checkout(self.command(promotion_code="SAVE10"))

        self.assertTrue(result.ok, result.error_detail)
        order = result.value.order
        # net 230.00 - 10% = 207.00, + 18.00 tax + 5.00 shipping
        self.assertEqual(order.total, Decimal("230.00"))
        self.assertEqual(order.total_discount_amount, Decimal("43.00"))
        self.assertEqual(order.promotion, self.coupon)
        self.assertEqual(order.promotion_code_used, "SAVE10")
        self.assertEqual(order.price_adjustments[-1]["code"], "SAVE10")
        self.assertEqual(order.price_adjustments[-1]["amount"], "23.00")

    def test_coupon_is_single_use_per_buyer(self):
        first = self.service.checkout(self.command(lines=[(self.lamp, 1)], promotion_code="SAVE10"))
        self.assertTrue(first.ok)

        second = self.service.checkout(self.command(lines=[(self.lamp, 1)], promotion_code="SAVE10"))

        self.assertFalse(second.ok)
        self.assertEqual(second.error, ErrorCodes.PROMOTION_ALREADY_USED)
        self.assertEqual(second.kind, ErrorKinds.CONFLICT)
        self.assertEqual(Order.objects.filter(user=self.buyer).count(), 1)
        self.assertStock(self.lamp, 4)

    def test_coupon_can_be_used_by_another_buyer(self):
        self.service.checkout(self.command(lines=[(self.lamp, 1)], promotion_code="SAVE10"))
        other = UserFactory()

        result = self.service.checkout(
            self.command(lines=[(self.lamp, 1)], promotion_code="SAVE10", user_id=other.id)
        )

        self.assertTrue(result.ok)

    def test_automatic_promotion_can_be_reused(self):
        PromotionFactory(store=self.store, type="automatic", code="WEEKEND", value=Decimal("5.00"))

        first = self.service.checkout(self.command(lines=[(self.vase, 1)], promotion_code="WEEKEND"))
        second = self.service.checkout(self.command(lines=[(self.vase, 1)], promotion_code="WEEKEND"))

        self.assertTrue(first.ok)
        self.assertTrue(second.ok)

    def test_unknown_code(self):
        result = self.service.checkout(self.command(promotion_code="NOPE"))

        self.assertEqual(result.error, ErrorCodes.PROMOTION_NOT_FOUND)
        self.assertEqual(result.kind, ErrorKinds.NOT_FOUND)

    def test_code_of_another_store(self):
        PromotionFactory(code="ELSEWHERE")

        result = self.service.checkout(self.command(promotion_code="ELSEWHERE"))

        self.assertEqual(result.error, ErrorCodes.PROMOTION_NOT_FOUND)

    def test_expired_promotion(self):
        now = timezone.now()
        PromotionFactory(
            store=self.store, code="OLD", starts_at=now - timedelta(days=10), ends_at=now - timedelta(days=1)
        )

        result = self.service.checkout(self.command(promotion_code="OLD"))

        self.assertEqual(result.error, ErrorCodes.PROMOTION_INVALID)
        self.assertEqual(Order.objects.count(), 0)
        self.assertStock(self.lamp, 5)

    def test_promotion_without_dates_is_invalid(self):
        PromotionFactory(store=self.store, code="NODATES", starts_at=None, ends_at=None)

        result = self.service.checkout(self.command(promotion_code="NODATES"))

        self.assertEqual(result.error, ErrorCodes.PROMOTION_INVALID)

    def test_inactive_or_valueless_promotion_is_invalid(self):
        PromotionFactory(store=self.store, code="PAUSED", status="inactive")
        PromotionFactory(store=self.store, code="ZERO", value=Decimal("0.00"))

        paused = self.service.checkout(self.command(promotion_code="PAUSED"))
        zero = self.service.checkout(self.command(promotion_code="ZERO"))

        self.assertEqual(paused.error, ErrorCodes.PROMOTION_INVALID)
        self.assertEqual(zero.error, ErrorCodes.PROMOTION_INVALID)


class CheckoutRejectionTest(CheckoutServiceTestBase):
    def test_empty_cart(self):
        result = self.service.checkout(self.command(lines=[]))

        self.assertEqual(result.error, ErrorCodes.EMPTY_CART)
        self.assertEqual(result.kind, ErrorKinds.INVALID_INPUT)

    def test_non_positive_quantity(self):
        result = self.service.checkout(self.command(lines=[(self.lamp, 0)]))

        self.assertEqual(result.error, ErrorCodes.INVALID_QUANTITY)

    def test_duplicate_product_lines(self):
        result = self.service.checkout(self.command(lines=[(self.lamp, 1), (self.lamp, 1)]))

        self.assertEqual(result.error, ErrorCodes.INVALID_INPUT)

    def test_unknown_store(self):
        result = self.service.checkout(self.command(store_id=str(uuid.uuid4())))

        self.assertEqual(result.error, ErrorCodes.STORE_NOT_FOUND)
        self.assertEqual(result.kind, ErrorKinds.NOT_FOUND)

    def test_deleted_store(self):
        self.store.is_deleted = True
        self.store.save()

        result = self.service.checkout(self.command())

        self.assertEqual(result.error, ErrorCodes.STORE_NOT_FOUND)

    def test_malformed_store_id(self):
        result = self.service.checkout(self.command(store_id="not-a-uuid"))

        self.assertEqual(result.error, ErrorCodes.STORE_NOT_FOUND)

    def test_inactive_shipping_method(self):
        self.shipping.status = "inactive"
        self.shipping.save()

        result = self.service.checkout(self.command())

        self.assertEqual(result.error, ErrorCodes.SHIPPING_METHOD_UNAVAILABLE)

    def test_shipping_method_of_another_store(self):
        other_method = ShippingMethodFactory()

        result = self.service.checkout(self.command(shipping_method_id=str(other_method.id)))

        self.assertEqual(result.error, ErrorCodes.SHIPPING_METHOD_UNAVAILABLE)

    def test_unknown_product(self):
        command = CheckoutCommand(
            user_id=self.buyer.id,
            store_id=str(self.store.id),
            lines=(CheckoutLine(product_id=str(uuid.uuid4()), quantity=1),),
        )

        result = self.service.checkout(command)

        self.assertEqual(result.error, ErrorCodes.PRODUCT_NOT_FOUND)
        self.assertEqual(result.kind, ErrorKinds.NOT_FOUND)

    def test_product_of_another_store(self):
        foreign = ProductFactory()

        result = self.service.checkout(self.command(lines=[(self.lamp, 1), (foreign, 1)]))

        self.assertEqual(result.error, ErrorCodes.PRODUCT_WRONG_STORE)
        self.assertEqual(result.kind, ErrorKinds.INVALID_INPUT)
        self.assertStock(self.lamp, 5)

    def test_insufficient_stock_aborts_everything(self):
        result = self.service.checkout(self.command(lines=[(self.lamp, 1), (self.vase, 3)]))

        self.assertFalse(result.ok)
        self.assertEqual(result.error, ErrorCodes.INSUFFICIENT_STOCK)
        self.assertIn("Vase", result.error_detail)
        self.assertIn("available 2", result.error_detail)
        self.assertEqual(Order.objects.count(), 0)
        self.assertStock(self.lamp, 5)
        self.assertStock(self.vase, 2)
        self.hook.assert_not_called()

    def test_failed_reservation_rolls_back_earlier_decrements(self):
        inventory = InventoryService()
        reserve_stock = inventory.reserve_stock

        def reserve_then_fail(product_id, quantity, **kwargs):
            if product_id == str(self.lamp.id):
                return reserve_stock(product_id, quantity, **kwargs)
            return service_err(ErrorCodes.INSUFFICIENT_STOCK, "Insufficient stock for Vase: available 0")

        service = CheckoutService(
            pricing_service=PricingService(precision=2), inventory_service=inventory, post_commit_hooks=[]
        )

        with patch.object(inventory, "reserve_stock", side_effect=reserve_then_fail) as reserve:
            result = service.checkout(self.command())

        self.assertEqual(reserve.call_count, 2)
        self.assertEqual(result.error, ErrorCodes.INSUFFICIENT_STOCK)
        self.assertEqual(Order.objects.count(), 0)
        self.assertStock(self.lamp, 5)

    def test_non_positive_total(self):
        freebie = ProductFactory(store=self.store, price=Decimal("0.00"), stock=3)

        result = self.service.checkout(self.command(lines=[(freebie, 1)]))

        self.assertEqual(result.error, ErrorCodes.NON_POSITIVE_TOTAL)
        self.assertEqual(result.kind, ErrorKinds.CONFLICT)
        self.assertStock(freebie, 3)

    def test_unexpected_error_is_internal(self):
        pricing = PricingService(precision=2)
        service = CheckoutService(pricing_service=pricing, inventory_service=InventoryService(), post_commit_hooks=[])

        with patch.object(pricing, "price_line", side_effect=RuntimeError("boom")):
            result = service.checkout(self.command())

        self.assertEqual(result.error, ErrorCodes.INTERNAL_ERROR)
        self.assertEqual(result.kind, ErrorKinds.INTERNAL)
        self.assertNotIn("boom", result.error_detail)
        self.assertEqual(Order.objects.count(), 0)


class CheckoutReplayTest(CheckoutServiceTestBase):
    def test_same_client_reference_returns_existing_order(self):
        first = self.service.checkout(self.command(client_reference="cart-42"))
        second = self.service.checkout(self.command(client_reference="cart-42"))

        self.assertTrue(second.ok)
        self.assertTrue(second.value.replayed)
        self.assertEqual(second.value.order.id, first.value.order.id)
        self.assertEqual(Order.objects.count(), 1)
        self.assertStock(self.lamp, 3)

    def test_client_reference_is_scoped_to_buyer(self):
        self.service.checkout(self.command(lines=[(self.lamp, 1)], client_reference="cart-42"))
        other = UserFactory()

        result = self.service.checkout(
            self.command(lines=[(self.lamp, 1)], client_reference="cart-42", user_id=other.id)
        )

        self.assertFalse(result.value.replayed)
        self.assertEqual(Order.objects.count(), 2)


class CheckoutPostCommitTest(CheckoutServiceTestBase):
    def test_hooks_run_after_commit(self):
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            result = self.service.checkout(self.command())

        self.assertEqual(len(callbacks), 1)
        self.hook.assert_called_once()
        event_data = self.hook.call_args[0][0]
        self.assertEqual(event_data["event_type"], "order.placed")
        self.assertEqual(event_data["payload"]["order_id"], str(result.value.order.id))
        self.assertEqual(event_data["payload"]["total_amount"], "253.00")

    def test_hooks_do_not_run_when_checkout_fails(self):
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            self.service.checkout(self.command(lines=[(self.vase, 10)]))

        self.assertEqual(callbacks, [])
        self.hook.assert_not_called()

    def test_failing_hook_does_not_affect_order(self):
        failing = MagicMock(side_effect=ConnectionError("broker down"))
        after = MagicMock()
        service = CheckoutService(
            pricing_service=PricingService(precision=2),
            inventory_service=InventoryService(),
            post_commit_hooks=[failing, after],
        )

        with self.captureOnCommitCallbacks(execute=True):
            result = service.checkout(self.command())

        self.assertTrue(result.ok)
        self.assertTrue(Order.objects.filter(id=result.value.order.id).exists())
        after.assert_called_once()
