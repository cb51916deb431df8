"""
In-memory email backend.

Keeps every accepted message on ``outbox`` so tests and local runs can
inspect what would have been delivered. ``fail_with`` makes the next sends
raise, which is how delivery retries are exercised.
"""

import logging
from typing import List, Optional

from .interface import EmailException, EmailMessage, EmailServiceInterface

logger = logging.getLogger(__name__)


class MockEmailService(EmailServiceInterface):
    def __init__(self):
        self.outbox: List[EmailMessage] = []
        self._pending_failures: List[str] = []

    def fail_with(self, reason: str = "Simulated delivery failure", times: int = 1) -> None:
        self._pending_failures.extend([reason] * times)

    def send(self, message: EmailMessage) -> bool:
        if self._pending_failures:
            reason = self._pending_failures.pop(0)
            logger.warning(f"[MOCK EMAIL] {message.category} to {message.to} failed: {reason}")
            raise EmailException(reason)

        logger.info(f"[MOCK EMAIL] {message.category} to {message.to}: {message.subject}")
        self.outbox.append(message)
        return True

    def clear_sent_messages(self) -> None:
        self.outbox.clear()
        self._pending_failures.clear()

    def get_sent_count(self) -> int:
        return len(self.outbox)

    def get_last_message(self) -> Optional[EmailMessage]:
        return self.outbox[-1] if self.outbox else None

    def messages_for(self, category: str) -> List[EmailMessage]:
        return [message for message in self.outbox if message.category == category]
