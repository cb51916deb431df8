"""
Post-commit dispatch for placed orders.

Hooks run after the checkout transaction commits. They receive the
``order.placed`` event envelope (``OrderPlacedEvent.to_dict()``). A failing
hook is logged and counted; it never affects the committed order or the
other hooks.
"""

import logging
from typing import Callable, List, Sequence

from marketplace.domain.events import OrderPlacedEvent
from marketplace.infra.events.listeners import enqueue_loyalty_award, enqueue_order_confirmation
from marketplace.infra.observability.metrics import post_commit_failures_total

logger = logging.getLogger(__name__)

OrderPlacedHook = Callable[[dict], None]


def default_order_placed_hooks() -> List[OrderPlacedHook]:
    return [enqueue_order_confirmation, enqueue_loyalty_award]


def dispatch_order_placed(event: OrderPlacedEvent, hooks: Sequence[OrderPlacedHook]) -> None:
    event_data = event.to_dict()
    for hook in hooks:
        hook_name = getattr(hook, "__name__", repr(hook))
        try:
            hook(event_data)
        except Exception as e:
            post_commit_failures_total.labels(hook=hook_name).inc()
            logger.error(f"Post-commit hook {hook_name} failed for order {event.order_id}: {e}", exc_info=True)
