from decimal import Decimal
from unittest.mock import MagicMock, patch

from django.test import TestCase

from infrastructure.container import container
from loyalty.models import LoyaltyTransaction
from loyalty.tasks import award_order_points_task, send_points_earned_task
from marketplace.services.base import ErrorCodes
from marketplace.tests.factories import OrderFactory, UserFactory


class AwardOrderPointsTaskTests(TestCase):
    def setUp(self):
        container.configure_for_testing()
        self.buyer = UserFactory(first_name="Ines", email="ines@example.com")
        self.order = OrderFactory(user=self.buyer, total=Decimal("120.40"))

    def tearDown(self):
        container.reset()

    @patch("loyalty.tasks.send_points_earned_task")
    def test_awards_points_and_queues_email(self, mock_email_task):
        result = award_order_points_task.apply(args=[str(self.order.id)]).get()

        self.assertEqual(result, {"success": True, "order_id": str(self.order.id), "points": 120})
        self.assertEqual(LoyaltyTransaction.objects.get(user=self.buyer).points, 120)
        args = mock_email_task.delay.call_args[0]
        self.assertEqual(args[:3], (str(self.buyer.id), 120, 120))

    @patch("loyalty.tasks.send_points_earned_task")
    def test_retry_after_success_is_a_no_op(self, mock_email_task):
        award_order_points_task.apply(args=[str(self.order.id)]).get()

        result = award_order_points_task.apply(args=[str(self.order.id)]).get()

        self.assertTrue(result["duplicate"])
        self.assertEqual(LoyaltyTransaction.objects.filter(user=self.buyer).count(), 1)
        mock_email_task.delay.assert_called_once()

    @patch("loyalty.tasks.send_points_earned_task")
    def test_order_worth_no_points(self, mock_email_task):
        order = OrderFactory(user=self.buyer, total=Decimal("0.50"))

        result = award_order_points_task.apply(args=[str(order.id)]).get()

        self.assertTrue(result["skipped"])
        mock_email_task.delay.assert_not_called()

    def test_unknown_order_is_not_retried(self):
        result = award_order_points_task.apply(args=["00000000-0000-0000-0000-000000000000"]).get()

        self.assertEqual(result["error"], ErrorCodes.ORDER_NOT_FOUND)


class SendPointsEarnedTaskTests(TestCase):
    def setUp(self):
        container.configure_for_testing()
        self.user = UserFactory(first_name="Ines", email="ines@example.com")

    def tearDown(self):
        container.reset()

    def test_sends_email_with_cash_value(self):
        result = send_points_earned_task.apply(args=[str(self.user.id), 120, 620, "Points for purchase"]).get()

        self.assertTrue(result["success"])
        message = container.email().get_last_message()
        self.assertEqual(message.category, "loyalty_points_earned")
        self.assertEqual(message.context["current_balance"], 620)
        self.assertIn("6.20", message.context["current_balance_value"])

    @patch("infrastructure.container.container.notification_service")
    def test_user_without_email_is_not_retried(self, mock_notification_service):
        mock_notification_service.return_value.send_points_earned.return_value = MagicMock(
            ok=False, error=ErrorCodes.INVALID_INPUT, error_detail="User 1 has no email address"
        )

        result = send_points_earned_task.apply(args=[str(self.user.id), 5, 5]).get()

        self.assertFalse(result["success"])
        self.assertEqual(result["error"], ErrorCodes.INVALID_INPUT)
