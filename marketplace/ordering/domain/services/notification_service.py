"""
OrderNotificationService - Buyer Notifications

Builds plain notification payloads (recipient, line items, formatted currency
strings) for placed orders and loyalty awards, and hands them to the email
infrastructure. Callers run after the order commits; a failed send is
reported in the ServiceResult and never touches the order.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from django.conf import settings
from django.contrib.auth import get_user_model

from infrastructure.email import EmailException, EmailMessage, EmailServiceInterface
from marketplace.ordering.domain.models import Order
from marketplace.ordering.domain.services.pricing_engine import round_currency
from marketplace.services.base import BaseService, ErrorCodes, ServiceResult, service_err, service_ok

User = get_user_model()
logger = logging.getLogger(__name__)


def format_currency(amount: Any, currency: Optional[str] = None) -> str:
    """
    Example:
        >>> format_currency(Decimal("1234.5"), "USD")
        'USD 1,234.50'
    """
    currency = currency or getattr(settings, "CURRENCY_CODE", "USD")
    return f"{currency} {round_currency(amount):,.2f}"


def customer_name(user) -> str:
    first_name = (getattr(user, "first_name", "") or "").strip()
    if len(first_name) >= 2:
        return first_name
    email = (getattr(user, "email", "") or "").strip()
    local_part = email.split("@")[0]
    return local_part or "Customer"


def client_url(path: str) -> Optional[str]:
    base = getattr(settings, "CLIENT_URL", None)
    if not base:
        return None
    return f"{base.rstrip('/')}/{path.lstrip('/')}"


class OrderNotificationService(BaseService):
    """
    Service for buyer-facing order and loyalty emails.
    """

    def __init__(self, email_service: EmailServiceInterface = None):
        super().__init__()
        if email_service is None:
            from infrastructure.container import container

            email_service = container.email()
        self.email_service = email_service

    def build_order_payload(self, order: Order) -> Dict[str, Any]:
        items = [
            {
                "name": item.product_name,
                "quantity": item.quantity,
                "unit_price": format_currency(item.unit_price_final),
                "line_total": format_currency(item.line_subtotal - item.line_discount),
            }
            for item in order.items.all()
        ]
        return {
            "recipient": order.user.email,
            "customer_name": customer_name(order.user),
            "order_id": str(order.id),
            "order_code": str(order.id)[:8].upper(),
            "store_name": order.store.name,
            "items": items,
            "subtotal": format_currency(order.subtotal),
            "discount": format_currency(order.total_discount_amount),
            "tax": format_currency(order.tax_amount),
            "shipping": format_currency(order.shipping_amount),
            "total": format_currency(order.total),
            "promotion_code": order.promotion_code_used,
            "order_url": client_url(f"orders/{order.id}"),
        }

    @BaseService.log_performance
    def send_order_confirmation(self, order_id: str) -> ServiceResult[str]:
        """
        Email the buyer a summary of a placed order.

        Returns:
            ServiceResult with the recipient address
        """
        order = Order.objects.select_related("user", "store").filter(id=order_id).first()
        if order is None:
            return service_err(ErrorCodes.ORDER_NOT_FOUND, f"Order {order_id} not found")

        payload = self.build_order_payload(order)
        if not payload["recipient"]:
            return service_err(ErrorCodes.INVALID_INPUT, f"Buyer of order {order_id} has no email address")

        lines = [f"Hi {payload['customer_name']},", "", f"Thanks for your order #{payload['order_code']}."]
        lines += [f"  {item['quantity']} x {item['name']}  {item['line_total']}" for item in payload["items"]]
        lines += [
            "",
            f"Subtotal: {payload['subtotal']}",
            f"Discounts: -{payload['discount']}",
            f"Tax: {payload['tax']}",
            f"Shipping: {payload['shipping']}",
            f"Total: {payload['total']}",
        ]
        if payload["order_url"]:
            lines += ["", f"Track your order: {payload['order_url']}"]

        message = EmailMessage(
            subject=f"Order #{payload['order_code']} confirmed",
            body="\n".join(lines),
            to=[payload["recipient"]],
            category="order_confirmation",
            context=payload,
        )
        return self._send(message)

    @BaseService.log_performance
    def send_points_earned(
        self, user_id, points: int, balance: int, cash_value: Decimal, description: Optional[str] = None
    ) -> ServiceResult[str]:
        """
        Email a user about points credited to their loyalty account.

        Nothing is sent for non-positive awards.
        """
        if points <= 0:
            return service_err(ErrorCodes.INVALID_POINTS, "Only positive awards are announced")

        user = User.objects.filter(pk=user_id).first()
        if user is None or not user.email:
            return service_err(ErrorCodes.INVALID_INPUT, f"User {user_id} has no email address")

        payload = {
            "recipient": user.email,
            "customer_name": customer_name(user),
            "points_awarded": points,
            "movement_note": description or "",
            "current_balance": balance,
            "current_balance_value": format_currency(cash_value),
            "program_url": client_url("account/loyalty"),
        }
        body = [
            f"Hi {payload['customer_name']},",
            "",
            f"{points} points were credited to your account.",
            f"Your balance is {balance} points ({payload['current_balance_value']}).",
        ]
        if payload["movement_note"]:
            body.append(payload["movement_note"])
        if payload["program_url"]:
            body += ["", f"See your rewards: {payload['program_url']}"]

        message = EmailMessage(
            subject=f"You earned {points} loyalty points",
            body="\n".join(body),
            to=[user.email],
            category="loyalty_points_earned",
            context=payload,
        )
        return self._send(message)

    def _send(self, message: EmailMessage) -> ServiceResult[str]:
        try:
            sent = self.email_service.send(message)
        except EmailException as e:
            self.logger.error(f"Email '{message.category}' to {message.to} failed: {e}")
            return service_err(ErrorCodes.NOTIFICATION_FAILED, str(e))

        if not sent:
            return service_err(ErrorCodes.NOTIFICATION_FAILED, f"Email '{message.category}' was not accepted")
        return service_ok(message.to[0])
