import uuid
from decimal import Decimal

from django.test import TestCase, override_settings

from loyalty.domain.services.loyalty_service import LoyaltyService
from loyalty.models import LoyaltyAccount, LoyaltyRedemption, LoyaltyTransaction
from marketplace.services.base import ErrorCodes, ErrorKinds
from marketplace.tests.factories import LoyaltyActionFactory, OrderFactory, UserFactory


class LoyaltyServiceTestBase(TestCase):
    def setUp(self):
        self.user = UserFactory()
        self.service = LoyaltyService(points_per_currency_unit=1, points_to_currency_ratio=100)

    def assertLedgerConsistent(self, user):
        account = LoyaltyAccount.objects.get(user=user)
        ledger_sum = sum(LoyaltyTransaction.objects.filter(account=account).values_list("points", flat=True))
        self.assertEqual(account.balance, ledger_sum)
        self.assertEqual(account.balance, account.lifetime_earned - account.lifetime_redeemed)
        self.assertGreaterEqual(account.balance, 0)
        return account


class AccountTests(LoyaltyServiceTestBase):
    def test_account_is_created_lazily(self):
        self.assertFalse(LoyaltyAccount.objects.filter(user=self.user).exists())

        result = self.service.ensure_account(self.user.id)

        self.assertTrue(result.ok)
        self.assertEqual(result.value.balance, 0)
        self.assertEqual(self.service.ensure_account(self.user.id).value.pk, result.value.pk)

    def test_unknown_user(self):
        result = self.service.ensure_account(987654)

        self.assertEqual(result.error, ErrorCodes.USER_NOT_FOUND)
        self.assertEqual(result.kind, ErrorKinds.NOT_FOUND)

    def test_summary(self):
        self.service.award(self.user.id, points=750, reference_type="manual", reference_id="m-1")
        self.service.award(self.user.id, points=10)

        result = self.service.get_account_summary(self.user.id, limit=1)

        self.assertTrue(result.ok)
        summary = result.value
        self.assertEqual(summary["account"].balance, 760)
        self.assertEqual(summary["redeemable_points"], 700)
        self.assertEqual(summary["redeemable_amount"], Decimal("7.00"))
        self.assertEqual(summary["points_to_currency_ratio"], 100)
        self.assertEqual(len(summary["transactions"]), 1)


class AwardTests(LoyaltyServiceTestBase):
    def test_award_updates_balance_and_ledger(self):
        result = self.service.award(self.user.id, points=10, reference_type="order", reference_id="X")

        self.assertTrue(result.ok)
        self.assertEqual(result.value.account.balance, 10)
        self.assertEqual(result.value.transaction.points, 10)
        self.assertEqual(result.value.transaction.reference_id, "X")
        account = self.assertLedgerConsistent(self.user)
        self.assertEqual(account.lifetime_earned, 10)

    def test_same_reference_is_credited_once(self):
        first = self.service.award(self.user.id, points=10, reference_type="order", reference_id="X")
        second = self.service.award(self.user.id, points=10, reference_type="order", reference_id="X")

        self.assertTrue(first.ok)
        self.assertFalse(second.ok)
        self.assertEqual(second.error, ErrorCodes.DUPLICATE_REFERENCE)
        self.assertEqual(second.kind, ErrorKinds.DUPLICATE_REFERENCE)
        self.assertEqual(LoyaltyTransaction.objects.filter(user=self.user).count(), 1)
        self.assertEqual(self.assertLedgerConsistent(self.user).balance, 10)

    def test_same_reference_for_other_user_is_allowed(self):
        other = UserFactory()
        self.service.award(self.user.id, points=10, reference_type="order", reference_id="X")

        result = self.service.award(other.id, points=10, reference_type="order", reference_id="X")

        self.assertTrue(result.ok)

    def test_reference_pair_must_be_complete(self):
        result = self.service.award(self.user.id, points=10, reference_type="order")

        self.assertEqual(result.error, ErrorCodes.INVALID_REFERENCE)
        self.assertEqual(result.kind, ErrorKinds.INVALID_INPUT)

    def test_points_are_truncated(self):
        result = self.service.award(self.user.id, points=Decimal("10.9"))

        self.assertEqual(result.value.transaction.points, 10)

    def test_non_positive_points_rejected(self):
        for points in (0, -5, Decimal("0.4")):
            result = self.service.award(self.user.id, points=points)
            self.assertEqual(result.error, ErrorCodes.INVALID_POINTS, points)

        self.assertFalse(LoyaltyTransaction.objects.exists())

    def test_action_default_points(self):
        action = LoyaltyActionFactory(key="review", default_points=25, description="Review bonus")

        result = self.service.award(self.user.id, action_key="review")

        self.assertEqual(result.value.transaction.points, 25)
        self.assertEqual(result.value.transaction.action, action)
        self.assertEqual(result.value.transaction.description, "Review bonus")

    def test_action_multiplier_is_floored(self):
        LoyaltyActionFactory(key="review", default_points=25)

        result = self.service.award(self.user.id, action_key="review", multiplier=Decimal("1.5"))

        self.assertEqual(result.value.transaction.points, 37)

    def test_explicit_points_override_action(self):
        LoyaltyActionFactory(key="review", default_points=25)

        result = self.service.award(self.user.id, action_key="review", points=5)

        self.assertEqual(result.value.transaction.points, 5)

    def test_unknown_or_inactive_action(self):
        LoyaltyActionFactory(key="retired", is_active=False)

        missing = self.service.award(self.user.id, action_key="nope")
        inactive = self.service.award(self.user.id, action_key="retired")

        self.assertEqual(missing.error, ErrorCodes.LOYALTY_ACTION_NOT_FOUND)
        self.assertEqual(inactive.error, ErrorCodes.LOYALTY_ACTION_NOT_FOUND)

    def test_points_or_action_required(self):
        result = self.service.award(self.user.id)

        self.assertEqual(result.error, ErrorCodes.INVALID_POINTS)

    def test_negative_adjustment(self):
        self.service.award(self.user.id, points=100)

        result = self.service.award(self.user.id, points=-30, allow_negative=True, description="Correction")

        self.assertTrue(result.ok)
        account = self.assertLedgerConsistent(self.user)
        self.assertEqual(account.balance, 70)
        self.assertEqual(account.lifetime_redeemed, 30)

    def test_negative_adjustment_cannot_overdraw(self):
        self.service.award(self.user.id, points=20)

        result = self.service.award(self.user.id, points=-30, allow_negative=True)

        self.assertEqual(result.error, ErrorCodes.INSUFFICIENT_BALANCE)
        self.assertEqual(self.assertLedgerConsistent(self.user).balance, 20)

    def test_unknown_user(self):
        result = self.service.award(987654, points=10)

        self.assertEqual(result.error, ErrorCodes.USER_NOT_FOUND)


class RedeemTests(LoyaltyServiceTestBase):
    def test_redeem_converts_points_to_cash(self):
        self.service.award(self.user.id, points=750)

        result = self.service.redeem(self.user.id, 500, note="Voucher")

        self.assertTrue(result.ok)
        outcome = result.value
        self.assertEqual(outcome.amount, Decimal("5.00"))
        self.assertEqual(outcome.redemption.points, 500)
        self.assertEqual(outcome.transaction.points, -500)
        self.assertEqual(outcome.transaction.reference_type, "redemption")
        self.assertEqual(outcome.transaction.reference_id, str(outcome.redemption.id))
        self.assertEqual(outcome.transaction.description, "Voucher")
        account = self.assertLedgerConsistent(self.user)
        self.assertEqual(account.balance, 250)
        self.assertEqual(account.lifetime_redeemed, 500)

    def test_insufficient_balance_writes_nothing(self):
        self.service.award(self.user.id, points=100)

        result = self.service.redeem(self.user.id, 500)

        self.assertEqual(result.error, ErrorCodes.INSUFFICIENT_BALANCE)
        self.assertEqual(result.kind, ErrorKinds.INSUFFICIENT_BALANCE)
        self.assertFalse(LoyaltyRedemption.objects.exists())
        self.assertEqual(LoyaltyTransaction.objects.count(), 1)
        self.assertEqual(self.assertLedgerConsistent(self.user).balance, 100)

    def test_non_positive_redemption(self):
        result = self.service.redeem(self.user.id, 0)

        self.assertEqual(result.error, ErrorCodes.INVALID_POINTS)

    def test_redeem_whole_balance(self):
        self.service.award(self.user.id, points=40)

        result = self.service.redeem(self.user.id, 40)

        self.assertEqual(result.value.amount, Decimal("0.40"))
        self.assertEqual(self.assertLedgerConsistent(self.user).balance, 0)


@override_settings(CURRENCY_CODE="EUR")
class AwardForOrderTests(LoyaltyServiceTestBase):
    def test_order_points(self):
        order = OrderFactory(user=self.user, total=Decimal("253.90"))

        result = self.service.award_for_order(str(order.id))

        self.assertTrue(result.ok)
        self.assertFalse(result.value.skipped)
        self.assertEqual(result.value.points, 253)
        entry = result.value.transaction
        self.assertEqual((entry.reference_type, entry.reference_id), ("order", str(order.id)))
        self.assertEqual(entry.description, "Points for purchase (253.90 EUR)")
        self.assertEqual(entry.metadata["order_id"], str(order.id))
        self.assertIsNone(entry.action)

    def test_order_points_are_linked_to_purchase_action(self):
        purchase = LoyaltyActionFactory(key="purchase", default_points=1)
        order = OrderFactory(user=self.user, total=Decimal("42.50"))

        result = self.service.award_for_order(order.id)

        self.assertEqual(result.value.points, 42)
        self.assertEqual(result.value.transaction.action, purchase)

    def test_inactive_purchase_action_is_not_linked(self):
        LoyaltyActionFactory(key="purchase", is_active=False)
        order = OrderFactory(user=self.user, total=Decimal("42.50"))

        result = self.service.award_for_order(order.id)

        self.assertTrue(result.ok)
        self.assertIsNone(result.value.transaction.action)

    def test_order_is_credited_once(self):
        order = OrderFactory(user=self.user, total=Decimal("50.00"))
        self.service.award_for_order(order.id)

        result = self.service.award_for_order(order.id)

        self.assertEqual(result.error, ErrorCodes.DUPLICATE_REFERENCE)
        self.assertEqual(self.assertLedgerConsistent(self.user).balance, 50)

    def test_order_worth_no_points_is_skipped(self):
        order = OrderFactory(user=self.user, total=Decimal("0.99"))

        result = self.service.award_for_order(order.id)

        self.assertTrue(result.ok)
        self.assertTrue(result.value.skipped)
        self.assertFalse(LoyaltyTransaction.objects.exists())

    def test_unknown_order(self):
        self.assertEqual(self.service.award_for_order(uuid.uuid4()).error, ErrorCodes.ORDER_NOT_FOUND)
        self.assertEqual(self.service.award_for_order("not-a-uuid").error, ErrorCodes.ORDER_NOT_FOUND)
