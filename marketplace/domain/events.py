"""
Domain events published after a checkout commits.

Events are plain dataclasses. ``to_dict`` produces the JSON-safe envelope
that post-commit hooks and Celery tasks receive.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, ClassVar, Dict, Optional

from django.utils import timezone


@dataclass
class DomainEvent:
    event_type: ClassVar[str] = "domain.event"

    event_id: str = field(default_factory=lambda: str(uuid.uuid4()), kw_only=True)
    occurred_at: datetime = field(default_factory=timezone.now, kw_only=True)

    @property
    def payload(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "occurred_at": self.occurred_at.isoformat(),
            "payload": self.payload,
        }


@dataclass
class OrderPlacedEvent(DomainEvent):
    """An order and its stock decrements were committed."""

    event_type: ClassVar[str] = "order.placed"

    order_id: str
    user_id: str
    store_id: str
    total_amount: Decimal
    promotion_id: Optional[str] = None

    @property
    def payload(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "user_id": self.user_id,
            "store_id": self.store_id,
            "total_amount": str(self.total_amount),
            "promotion_id": self.promotion_id,
        }
