import logging

from loyalty.tasks import award_order_points_task
from marketplace.tasks import send_order_confirmation_task


logger = logging.getLogger(__name__)


def enqueue_order_confirmation(event_data):
    """Handle order.placed: queue the buyer's confirmation email."""
    order_id = event_data.get("payload", {}).get("order_id")
    send_order_confirmation_task.delay(order_id)
    logger.info(f"[Marketplace Listener] Order placed: {order_id}. Confirmation email queued")


def enqueue_loyalty_award(event_data):
    """Handle order.placed: queue the loyalty award keyed by the order id."""
    order_id = event_data.get("payload", {}).get("order_id")
    award_order_points_task.delay(order_id)
    logger.info(f"[Marketplace Listener] Order placed: {order_id}. Loyalty award queued")
