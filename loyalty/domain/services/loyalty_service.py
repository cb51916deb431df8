"""
LoyaltyService - Points Ledger

Accrues and spends loyalty points. Every movement is a LoyaltyTransaction row
and the account's balance and lifetime counters are updated in the same
database transaction, on a locked account row.

Exactly-once awards:
    A movement may carry a reference key (reference_type, reference_id) naming
    the business event that caused it, e.g. ("order", <order id>). A second
    award with the same key is rejected with ``duplicate_reference``, first by
    a read check and, for concurrent writers, by the unique constraint on the
    ledger table. Retrying an award is therefore always safe.

Invariant: balance == lifetime_earned - lifetime_redeemed, and balance >= 0.
"""

import logging
import math
import uuid
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction

from loyalty.domain.exceptions import LoyaltyError
from loyalty.infra.observability.metrics import (
    loyalty_duplicate_references_total,
    loyalty_points_awarded_total,
    loyalty_points_redeemed_total,
)
from loyalty.models import LoyaltyAccount, LoyaltyAction, LoyaltyRedemption, LoyaltyTransaction
from marketplace.ordering.domain.models import Order
from marketplace.ordering.domain.services.pricing_engine import round_currency, to_decimal
from marketplace.services.base import BaseService, ErrorCodes, ServiceResult, service_err, service_ok

User = get_user_model()
logger = logging.getLogger(__name__)

REDEMPTION_REFERENCE_TYPE = "redemption"
PURCHASE_ACTION_KEY = "purchase"


@dataclass
class AwardOutcome:
    account: LoyaltyAccount
    transaction: LoyaltyTransaction
    action: Optional[LoyaltyAction] = None


@dataclass
class RedemptionOutcome:
    account: LoyaltyAccount
    transaction: LoyaltyTransaction
    redemption: LoyaltyRedemption
    amount: Decimal


@dataclass
class OrderAwardOutcome:
    skipped: bool
    points: int = 0
    account: Optional[LoyaltyAccount] = None
    transaction: Optional[LoyaltyTransaction] = None


def _truncate_points(points: Any) -> int:
    """Truncate toward zero; 10.9 -> 10, -3.7 -> -3."""
    try:
        value = to_decimal(points)
    except (InvalidOperation, TypeError, ValueError):
        raise LoyaltyError(ErrorCodes.INVALID_POINTS, f"Invalid point amount: {points!r}")
    if not value.is_finite():
        raise LoyaltyError(ErrorCodes.INVALID_POINTS, f"Invalid point amount: {points!r}")
    return int(value)


class LoyaltyService(BaseService):
    """
    Service for the loyalty points ledger.

    Every public method returns a ServiceResult. Expected failures use the
    codes ``invalid_points``, ``invalid_reference``, ``user_not_found``,
    ``loyalty_action_not_found``, ``order_not_found``, ``duplicate_reference``
    and ``insufficient_balance``.
    """

    def __init__(
        self,
        points_per_currency_unit: Optional[int] = None,
        points_to_currency_ratio: Optional[int] = None,
        order_reference_type: Optional[str] = None,
    ):
        super().__init__()
        self.points_per_currency_unit = (
            points_per_currency_unit
            if points_per_currency_unit is not None
            else getattr(settings, "LOYALTY_POINTS_PER_CURRENCY_UNIT", 1)
        )
        self.points_to_currency_ratio = (
            points_to_currency_ratio
            if points_to_currency_ratio is not None
            else getattr(settings, "LOYALTY_POINTS_TO_CURRENCY_RATIO", 100)
        )
        self.order_reference_type = order_reference_type or getattr(settings, "LOYALTY_ORDER_REFERENCE_TYPE", "order")

    # ===== Conversions =====

    def calculate_points_for_purchase(self, amount: Any) -> int:
        """
        Example:
            >>> LoyaltyService(points_per_currency_unit=1).calculate_points_for_purchase(Decimal("187.99"))
            187
        """
        amount = to_decimal(amount)
        if not amount.is_finite() or amount <= 0:
            return 0
        return math.floor(amount) * self.points_per_currency_unit

    def calculate_cash_from_points(self, points: int) -> Decimal:
        """
        Example:
            >>> LoyaltyService(points_to_currency_ratio=100).calculate_cash_from_points(500)
            Decimal('5.00')
        """
        if points is None or points <= 0:
            return round_currency(0)
        return round_currency(Decimal(points) / Decimal(self.points_to_currency_ratio))

    # ===== Accounts =====

    @BaseService.log_performance
    def ensure_account(self, user_id) -> ServiceResult[LoyaltyAccount]:
        """Get or lazily create the user's account."""
        try:
            with transaction.atomic():
                return service_ok(self._ensure_account(user_id))
        except LoyaltyError as e:
            return e.to_result()
        except Exception as e:
            return self.internal_error("Could not load loyalty account", e)

    def _ensure_account(self, user_id) -> LoyaltyAccount:
        if not User.objects.filter(pk=user_id).exists():
            raise LoyaltyError(ErrorCodes.USER_NOT_FOUND, f"User {user_id} not found")
        account, created = LoyaltyAccount.objects.get_or_create(user_id=user_id)
        if created:
            self.logger.info(f"Loyalty account created for user {user_id}")
        return account

    def _lock_account(self, user_id) -> LoyaltyAccount:
        account = self._ensure_account(user_id)
        return LoyaltyAccount.objects.select_for_update().get(pk=account.pk)

    @BaseService.log_performance
    def get_account_summary(self, user_id, limit: int = 20) -> ServiceResult[Dict[str, Any]]:
        """
        Account, latest ledger entries and how much of the balance can be redeemed.

        ``redeemable_points`` is the balance rounded down to a whole number of
        currency units.
        """
        result = self.ensure_account(user_id)
        if not result.ok:
            return result

        account = result.value
        transactions: List[LoyaltyTransaction] = list(account.transactions.select_related("action")[:limit])
        redeemable_points = (account.balance // self.points_to_currency_ratio) * self.points_to_currency_ratio

        return service_ok(
            {
                "account": account,
                "transactions": transactions,
                "redeemable_points": redeemable_points,
                "redeemable_amount": self.calculate_cash_from_points(redeemable_points),
                "points_to_currency_ratio": self.points_to_currency_ratio,
            }
        )

    # ===== Movements =====

    @BaseService.log_performance
    def award(
        self,
        user_id,
        *,
        points: Optional[Any] = None,
        action_key: Optional[str] = None,
        multiplier: Optional[Any] = None,
        reference_type: Optional[str] = None,
        reference_id: Optional[str] = None,
        allow_negative: bool = False,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ServiceResult[AwardOutcome]:
        """
        Credit (or, with ``allow_negative``, debit) points.

        Points come from ``points`` when given, otherwise from the action's
        ``default_points`` (times ``multiplier``, floored). The amount is
        truncated to an integer.

        Example:
            >>> result = loyalty_service.award(user.id, points=10, reference_type="order", reference_id="X")
            >>> result.ok
            True
            >>> loyalty_service.award(user.id, points=10, reference_type="order", reference_id="X").error
            'duplicate_reference'
        """
        try:
            with transaction.atomic():
                outcome = self._award(
                    user_id,
                    points=points,
                    action_key=action_key,
                    multiplier=multiplier,
                    reference_type=reference_type,
                    reference_id=reference_id,
                    allow_negative=allow_negative,
                    description=description,
                    metadata=metadata,
                )
        except LoyaltyError as e:
            if e.code == ErrorCodes.DUPLICATE_REFERENCE:
                loyalty_duplicate_references_total.labels(reference_type=reference_type).inc()
            self.logger.warning(f"Loyalty award rejected for user {user_id}: {e.code} - {e.detail}")
            return e.to_result()
        except IntegrityError as e:
            if reference_type and reference_id:
                # A concurrent award for the same reference won the insert
                loyalty_duplicate_references_total.labels(reference_type=reference_type).inc()
                self.logger.warning(f"Loyalty reference {reference_type}:{reference_id} already credited: {e}")
                return service_err(
                    ErrorCodes.DUPLICATE_REFERENCE,
                    f"Points were already recorded for {reference_type} {reference_id}",
                )
            return self.internal_error("Loyalty award failed", e)
        except Exception as e:
            return self.internal_error("Loyalty award failed", e)

        if outcome.transaction.points > 0:
            loyalty_points_awarded_total.labels(source=reference_type or action_key or "manual").inc(
                outcome.transaction.points
            )
        return service_ok(outcome)

    def _award(
        self,
        user_id,
        *,
        points=None,
        action_key=None,
        multiplier=None,
        reference_type=None,
        reference_id=None,
        allow_negative=False,
        description=None,
        metadata=None,
    ) -> AwardOutcome:
        """Ledger write; must run inside an atomic block."""
        if bool(reference_type) != bool(reference_id):
            raise LoyaltyError(
                ErrorCodes.INVALID_REFERENCE, "reference_type and reference_id must be given together"
            )
        reference_id = str(reference_id) if reference_id else None

        account = self._lock_account(user_id)

        if reference_type and LoyaltyTransaction.objects.filter(
            account=account, reference_type=reference_type, reference_id=reference_id
        ).exists():
            raise LoyaltyError(
                ErrorCodes.DUPLICATE_REFERENCE,
                f"Points were already recorded for {reference_type} {reference_id}",
            )

        action = None
        if action_key:
            action = LoyaltyAction.objects.filter(key=action_key).first()
            if action is None or not action.is_active:
                raise LoyaltyError(
                    ErrorCodes.LOYALTY_ACTION_NOT_FOUND, f"Loyalty action '{action_key}' does not exist or is inactive"
                )

        if points is None and action is not None:
            if multiplier is not None:
                points = math.floor(to_decimal(multiplier) * action.default_points)
            else:
                points = action.default_points

        if points is None:
            raise LoyaltyError(ErrorCodes.INVALID_POINTS, "Could not determine how many points to award")

        points = _truncate_points(points)

        if not allow_negative and points <= 0:
            raise LoyaltyError(ErrorCodes.INVALID_POINTS, "Points must be greater than zero")
        if allow_negative and points == 0:
            raise LoyaltyError(ErrorCodes.INVALID_POINTS, "Point adjustment cannot be zero")

        new_balance = account.balance + points
        if new_balance < 0:
            raise LoyaltyError(
                ErrorCodes.INSUFFICIENT_BALANCE,
                f"Insufficient points: balance {account.balance}, requested {abs(points)}",
            )

        ledger_entry = LoyaltyTransaction.objects.create(
            account=account,
            action=action,
            user_id=user_id,
            reference_type=reference_type or None,
            reference_id=reference_id,
            points=points,
            description=description or (action.description if action else None) or None,
            metadata=metadata,
        )

        account.balance = new_balance
        if points > 0:
            account.lifetime_earned += points
        else:
            account.lifetime_redeemed += abs(points)
        account.save(update_fields=["balance", "lifetime_earned", "lifetime_redeemed", "updated_at"])

        self.logger.info(
            f"Loyalty {points:+d} pts for user {user_id} "
            f"(ref={reference_type}:{reference_id}), balance={account.balance}"
        )
        return AwardOutcome(account=account, transaction=ledger_entry, action=action)

    @BaseService.log_performance
    def redeem(self, user_id, points: Any, note: Optional[str] = None) -> ServiceResult[RedemptionOutcome]:
        """
        Spend points for their cash value.

        Creates a LoyaltyRedemption and the matching negative ledger entry
        referencing ("redemption", redemption.id). A balance below ``points``
        fails with ``insufficient_balance`` and writes nothing.

        Example:
            >>> loyalty_service.redeem(user.id, 500).value.amount
            Decimal('5.00')
        """
        try:
            points = _truncate_points(points)
            if points <= 0:
                raise LoyaltyError(ErrorCodes.INVALID_POINTS, "Points to redeem must be greater than zero")

            with transaction.atomic():
                account = self._lock_account(user_id)
                if account.balance < points:
                    raise LoyaltyError(
                        ErrorCodes.INSUFFICIENT_BALANCE,
                        f"Insufficient points: balance {account.balance}, requested {points}",
                    )

                amount = self.calculate_cash_from_points(points)
                redemption = LoyaltyRedemption.objects.create(
                    account=account, user_id=user_id, points=points, amount=amount, note=note or None
                )
                award = self._award(
                    user_id,
                    points=-points,
                    allow_negative=True,
                    reference_type=REDEMPTION_REFERENCE_TYPE,
                    reference_id=str(redemption.id),
                    description=note or "Points redemption",
                    metadata={"redemption_id": str(redemption.id), "amount": str(amount)},
                )
        except LoyaltyError as e:
            self.logger.warning(f"Loyalty redemption rejected for user {user_id}: {e.code} - {e.detail}")
            return e.to_result()
        except Exception as e:
            return self.internal_error("Loyalty redemption failed", e)

        loyalty_points_redeemed_total.inc(points)
        return service_ok(
            RedemptionOutcome(
                account=award.account, transaction=award.transaction, redemption=redemption, amount=amount
            )
        )

    @BaseService.log_performance
    def award_for_order(self, order_id) -> ServiceResult[OrderAwardOutcome]:
        """
        Award purchase points for an order, at most once per order.

        ``points = floor(order.total) * points_per_currency_unit``. Orders worth
        no points succeed with ``skipped=True``. The order id is the reference
        key, so retries return ``duplicate_reference``.
        """
        try:
            order_uuid = order_id if isinstance(order_id, uuid.UUID) else uuid.UUID(str(order_id))
        except (TypeError, ValueError):
            return service_err(ErrorCodes.ORDER_NOT_FOUND, f"Order {order_id} not found")

        order = Order.objects.filter(id=order_uuid).first()
        if order is None:
            return service_err(ErrorCodes.ORDER_NOT_FOUND, f"Order {order_id} not found")

        points = self.calculate_points_for_purchase(order.total)
        if points <= 0:
            self.logger.info(f"Order {order.id} total {order.total} earns no points; skipped")
            return service_ok(OrderAwardOutcome(skipped=True))

        currency = getattr(settings, "CURRENCY_CODE", "USD")
        # Linked to the purchase action when one is configured; orders earn points either way
        has_purchase_action = LoyaltyAction.objects.filter(key=PURCHASE_ACTION_KEY, is_active=True).exists()
        result = self.award(
            order.user_id,
            points=points,
            action_key=PURCHASE_ACTION_KEY if has_purchase_action else None,
            reference_type=self.order_reference_type,
            reference_id=str(order.id),
            description=f"Points for purchase ({order.total:.2f} {currency})",
            metadata={"order_id": str(order.id), "store_id": str(order.store_id), "total": str(order.total)},
        )
        if not result.ok:
            return result

        return service_ok(
            OrderAwardOutcome(
                skipped=False, points=points, account=result.value.account, transaction=result.value.transaction
            )
        )
