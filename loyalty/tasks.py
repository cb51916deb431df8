"""
Loyalty Celery Tasks

- Purchase points for committed orders
- "Points earned" email after a positive award
"""

import logging

from celery import shared_task


logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=60, queue="loyalty_tasks")
def award_order_points_task(self, order_id):
    """
    Award purchase points for a committed order.

    Safe to retry: the order id is the ledger reference key, so a repeated
    award is rejected as ``duplicate_reference`` and treated as done.

    Args:
        order_id (str): The UUID of the order

    Returns:
        dict: Award result
    """
    from infrastructure.container import container
    from marketplace.services.base import ErrorCodes, ErrorKinds

    logger.info(f"Awarding loyalty points for order {order_id}")

    loyalty_service = container.loyalty_service()
    result = loyalty_service.award_for_order(order_id)

    if not result.ok:
        if result.error == ErrorCodes.DUPLICATE_REFERENCE:
            logger.info(f"Loyalty points for order {order_id} were already awarded")
            return {"success": True, "order_id": order_id, "duplicate": True}
        if result.kind == ErrorKinds.INTERNAL:
            raise self.retry(exc=RuntimeError(result.error_detail))
        logger.warning(f"Loyalty award for order {order_id} failed: {result.error_detail}")
        return {"success": False, "order_id": order_id, "error": result.error}

    outcome = result.value
    if outcome.skipped:
        return {"success": True, "order_id": order_id, "skipped": True}

    send_points_earned_task.delay(
        str(outcome.account.user_id),
        outcome.points,
        outcome.account.balance,
        outcome.transaction.description,
    )
    return {"success": True, "order_id": order_id, "points": outcome.points}


@shared_task(bind=True, max_retries=3, default_retry_delay=60, queue="loyalty_tasks")
def send_points_earned_task(self, user_id, points, balance, description=None):
    """
    Tell a user about points credited to their account.

    Args:
        user_id (str): Account owner
        points (int): Points credited by the movement
        balance (int): Balance after the movement
        description (str): Ledger description shown to the user
    """
    from infrastructure.container import container
    from infrastructure.email import EmailException
    from marketplace.services.base import ErrorCodes

    cash_value = container.loyalty_service().calculate_cash_from_points(balance)
    result = container.notification_service().send_points_earned(
        user_id, points, balance, cash_value, description=description
    )
    if result.ok:
        return {"success": True, "user_id": user_id, "recipient": result.value}

    if result.error == ErrorCodes.NOTIFICATION_FAILED:
        raise self.retry(exc=EmailException(result.error_detail))

    logger.warning(f"Points earned email for user {user_id} not sent: {result.error_detail}")
    return {"success": False, "user_id": user_id, "error": result.error}
