"""
SMTP Email Service
==================

EmailServiceInterface backed by Django's configured EMAIL_BACKEND.
"""

import logging

from django.conf import settings
from django.core.mail import EmailMultiAlternatives

from .interface import EmailException, EmailMessage, EmailServiceInterface


logger = logging.getLogger(__name__)


class SMTPEmailService(EmailServiceInterface):
    """
    Django mail backend implementation.

    Configuration (in settings.py):
        EMAIL_BACKEND, EMAIL_HOST, EMAIL_PORT, EMAIL_HOST_USER,
        EMAIL_HOST_PASSWORD, EMAIL_USE_TLS, DEFAULT_FROM_EMAIL
    """

    def __init__(self):
        self.default_from = getattr(settings, "DEFAULT_FROM_EMAIL", "noreply@example.com")

    def send(self, message: EmailMessage) -> bool:
        try:
            mail = EmailMultiAlternatives(
                subject=message.subject,
                body=message.body,
                from_email=message.from_email or self.default_from,
                to=message.to,
            )
            if message.html_body:
                mail.attach_alternative(message.html_body, "text/html")

            success = mail.send(fail_silently=False) > 0
            if success:
                logger.info(f"Email '{message.category}' sent to {message.to}")
            else:
                logger.warning(f"Email '{message.category}' was not accepted for {message.to}")
            return success

        except Exception as e:
            logger.error(f"Failed to send email '{message.category}' to {message.to}: {e}")
            raise EmailException(f"Email send failed: {e}") from e
