"""
Email Service Interface
========================

Contract for delivering transactional email (order confirmations, loyalty
notices). Domain services build an EmailMessage and hand it to whichever
backend EmailFactory selected; they never talk to SMTP directly.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass
class EmailMessage:
    """
    Represents a transactional email.

    Attributes:
        subject: Email subject line
        body: Plain text body
        to: List of recipient email addresses
        from_email: Sender address (uses DEFAULT_FROM_EMAIL if None)
        html_body: Optional HTML alternative
        category: Message kind, e.g. "order_confirmation"
        context: The payload the message was rendered from
    """

    subject: str
    body: str
    to: List[str]
    from_email: Optional[str] = None
    html_body: Optional[str] = None
    category: str = "transactional"
    context: Dict = field(default_factory=dict)


class EmailServiceInterface(ABC):
    """
    Abstract interface for email delivery.

    Concrete implementations:
        - SMTPEmailService: Django's configured mail backend
        - MockEmailService: keeps messages in memory for tests and development
    """

    @abstractmethod
    def send(self, message: EmailMessage) -> bool:
        """
        Send a single email message.

        Returns:
            True if the backend accepted the message

        Raises:
            EmailException: If delivery fails
        """

    def send_bulk(self, messages: List[EmailMessage]) -> int:
        """Send several messages; returns how many were accepted."""
        return sum(1 for message in messages if self.send(message))


class EmailException(Exception):
    """Raised when a backend fails to deliver a message."""
