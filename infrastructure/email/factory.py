"""
Email backend selection.

``EMAIL_SERVICE_BACKEND`` names the backend ("smtp" or "mock"). When it is
unset, test settings get the in-memory backend and everything else gets SMTP.
"""

import logging
from typing import Dict, Optional, Type

from django.conf import settings

from .interface import EmailServiceInterface
from .mock_service import MockEmailService
from .smtp_service import SMTPEmailService


logger = logging.getLogger(__name__)

BACKENDS: Dict[str, Type[EmailServiceInterface]] = {
    "smtp": SMTPEmailService,
    "mock": MockEmailService,
}


def configured_backend() -> str:
    fallback = "mock" if getattr(settings, "TESTING", False) else "smtp"
    return getattr(settings, "EMAIL_SERVICE_BACKEND", None) or fallback


class EmailFactory:
    @staticmethod
    def create(backend: Optional[str] = None) -> EmailServiceInterface:
        """
        Build an email backend; ``backend`` overrides the configured one.

        Raises:
            ValueError: Unknown backend name
        """
        name = backend or configured_backend()
        try:
            backend_class = BACKENDS[name]
        except KeyError:
            raise ValueError(f"Invalid email backend: {name}. Choose one of: {', '.join(sorted(BACKENDS))}")

        logger.debug(f"Using email backend {backend_class.__name__}")
        return backend_class()
