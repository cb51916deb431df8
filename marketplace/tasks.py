"""
Marketplace Celery Tasks

- Order confirmation email after checkout commits
"""

import logging

from celery import shared_task


logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=60, queue="marketplace_tasks")
def send_order_confirmation_task(self, order_id):
    """
    Send the order confirmation email for a committed order.

    Delivery failures are retried; a missing order is not.

    Args:
        order_id (str): The UUID of the order

    Returns:
        dict: Delivery result
    """
    from infrastructure.container import container
    from infrastructure.email import EmailException
    from marketplace.services.base import ErrorCodes

    logger.info(f"Sending order confirmation for order {order_id}")

    result = container.notification_service().send_order_confirmation(order_id)
    if result.ok:
        return {"success": True, "order_id": order_id, "recipient": result.value}

    if result.error == ErrorCodes.NOTIFICATION_FAILED:
        raise self.retry(exc=EmailException(result.error_detail))

    logger.warning(f"Order confirmation for {order_id} not sent: {result.error_detail}")
    return {"success": False, "order_id": order_id, "error": result.error}
