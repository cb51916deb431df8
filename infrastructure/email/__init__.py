"""
Transactional email.

Domain services build an EmailMessage and hand it to the backend that
EmailFactory picks from settings (SMTP through Django's mail framework, or
the in-memory mock).
"""

from .factory import BACKENDS, EmailFactory
from .interface import EmailException, EmailMessage, EmailServiceInterface
from .mock_service import MockEmailService
from .smtp_service import SMTPEmailService

__all__ = [
    "BACKENDS",
    "EmailFactory",
    "EmailMessage",
    "EmailException",
    "EmailServiceInterface",
    "MockEmailService",
    "SMTPEmailService",
]
