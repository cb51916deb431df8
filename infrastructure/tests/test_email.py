"""
Email Infrastructure Tests
===========================

Unit tests for email service abstraction layer.
"""

from unittest.mock import patch

from django.test import TestCase, override_settings

from infrastructure.email import (
    EmailException,
    EmailFactory,
    EmailMessage,
    EmailServiceInterface,
    MockEmailService,
    SMTPEmailService,
)


class EmailInterfaceTest(TestCase):
    """Test EmailServiceInterface contract."""

    def test_interface_is_abstract(self):
        """EmailServiceInterface should not be instantiable."""
        with self.assertRaises(TypeError):
            EmailServiceInterface()


class MockEmailServiceTest(TestCase):
    """Test MockEmailService implementation."""

    def setUp(self):
        self.email_service = MockEmailService()

    def test_send_email(self):
        message = EmailMessage(subject="Test Subject", body="Test body content", to=["test@example.com"])

        result = self.email_service.send(message)

        self.assertTrue(result)
        self.assertEqual(self.email_service.get_sent_count(), 1)
        self.assertEqual(self.email_service.get_last_message(), message)

    def test_send_bulk_emails(self):
        messages = [EmailMessage(subject=f"Test {i}", body=f"Body {i}", to=[f"user{i}@example.com"]) for i in range(5)]

        count = self.email_service.send_bulk(messages)

        self.assertEqual(count, 5)
        self.assertEqual(self.email_service.get_sent_count(), 5)

    def test_messages_for_category(self):
        self.email_service.send(EmailMessage(subject="A", body="", to=["a@example.com"], category="order_confirmation"))
        self.email_service.send(
            EmailMessage(subject="B", body="", to=["b@example.com"], category="loyalty_points_earned")
        )

        confirmations = self.email_service.messages_for("order_confirmation")

        self.assertEqual([message.subject for message in confirmations], ["A"])

    def test_clear_sent_messages(self):
        self.email_service.send(EmailMessage(subject="Test", body="Body", to=["test@example.com"]))

        self.email_service.clear_sent_messages()

        self.assertEqual(self.email_service.get_sent_count(), 0)

    def test_get_last_message_empty(self):
        self.assertIsNone(self.email_service.get_last_message())

    def test_simulated_failure(self):
        message = EmailMessage(subject="Test", body="Body", to=["test@example.com"])
        self.email_service.fail_with("SMTP down")

        with self.assertRaises(EmailException):
            self.email_service.send(message)

        self.assertTrue(self.email_service.send(message))
        self.assertEqual(self.email_service.outbox, [message])


@override_settings(
    EMAIL_BACKEND="django.core.mail.backends.locmem.EmailBackend",
    DEFAULT_FROM_EMAIL="shop@example.com",
)
class SMTPEmailServiceTest(TestCase):
    """Test SMTPEmailService on top of Django's mail backend."""

    def setUp(self):
        self.email_service = SMTPEmailService()

    def test_send_email_success(self):
        from django.core import mail

        message = EmailMessage(
            subject="Order confirmed", body="Thanks", to=["buyer@example.com"], html_body="<p>Thanks</p>"
        )

        result = self.email_service.send(message)

        self.assertTrue(result)
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].from_email, "shop@example.com")
        self.assertEqual(mail.outbox[0].alternatives[0][1], "text/html")

    def test_explicit_sender_wins(self):
        from django.core import mail

        self.email_service.send(
            EmailMessage(subject="Hi", body="Body", to=["buyer@example.com"], from_email="loyalty@example.com")
        )

        self.assertEqual(mail.outbox[0].from_email, "loyalty@example.com")

    @patch("infrastructure.email.smtp_service.EmailMultiAlternatives.send")
    def test_send_email_failure(self, mock_send):
        mock_send.side_effect = ConnectionRefusedError("SMTP down")

        with self.assertRaises(EmailException):
            self.email_service.send(EmailMessage(subject="Hi", body="Body", to=["buyer@example.com"]))


class EmailFactoryTest(TestCase):
    """Test EmailFactory backend selection."""

    def test_create_mock_explicit(self):
        self.assertIsInstance(EmailFactory.create("mock"), MockEmailService)

    def test_create_smtp_explicit(self):
        self.assertIsInstance(EmailFactory.create("smtp"), SMTPEmailService)

    @override_settings(EMAIL_SERVICE_BACKEND="smtp")
    def test_create_from_settings(self):
        self.assertIsInstance(EmailFactory.create(), SMTPEmailService)

    def test_create_invalid_backend(self):
        with self.assertRaises(ValueError):
            EmailFactory.create("carrier-pigeon")
