"""Tests for the pending-signature email notification service.

Tests verify:
- Templates render the procedure and portal link
- Notifications are sent via SMTP with hashed recipients in results
- Delivery failures surface as EmailDeliveryError
"""

from __future__ import annotations

import hashlib
import smtplib
from unittest.mock import MagicMock, patch

import pytest

from qsign.services.email import (
    PENDING_CREDENTIAL_TEMPLATE_KEY,
    TEMPLATE_VERSION,
    EmailConfigurationError,
    EmailDeliveryError,
    EmailNotificationService,
)
from tests.factories import PROCEDURE_ID

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def email_service(mock_smtp_settings: MagicMock) -> EmailNotificationService:
    """Create email service with mock SMTP settings."""
    return EmailNotificationService(smtp_settings=mock_smtp_settings, app_name="Issuer Test")


def make_smtp_connection() -> MagicMock:
    """SMTP client mock usable as its own context manager."""
    connection = MagicMock()
    connection.__enter__.return_value = connection
    return connection


# ---------------------------------------------------------------------------
# Template rendering
# ---------------------------------------------------------------------------


class TestTemplateRendering:
    """Tests for notification templates."""

    def test_pending_signature_template(self, email_service: EmailNotificationService) -> None:
        subject, html_body, text_body = email_service._render_template(
            PENDING_CREDENTIAL_TEMPLATE_KEY, PROCEDURE_ID, "https://issuer.example.test/"
        )

        assert subject == "Credential pending signature"
        for body in (html_body, text_body):
            assert PROCEDURE_ID in body
            assert "https://issuer.example.test" in body
            assert TEMPLATE_VERSION in body
        assert "https://issuer.example.test/\n" not in text_body

    def test_unknown_template_key(self, email_service: EmailNotificationService) -> None:
        with pytest.raises(EmailConfigurationError, match="Unknown notification template"):
            email_service._render_template("email.unknown", PROCEDURE_ID, "https://x.test")


# ---------------------------------------------------------------------------
# Sending
# ---------------------------------------------------------------------------


class TestSendPendingSignatureNotification:
    """Tests for send_pending_signature_notification()."""

    @pytest.mark.asyncio
    @patch("qsign.services.email.EmailNotificationService._send_email")
    async def test_sends_notification(
        self,
        mock_send: MagicMock,
        email_service: EmailNotificationService,
    ) -> None:
        mock_send.return_value = "<abc@issuer.test>"

        result = await email_service.send_pending_signature_notification(
            to_email="Officer@Issuer.test",
            template_key=PENDING_CREDENTIAL_TEMPLATE_KEY,
            procedure_id=PROCEDURE_ID,
            frontend_domain="https://issuer.example.test",
        )

        assert result.message_id == "<abc@issuer.test>"
        assert result.template_version == TEMPLATE_VERSION
        assert result.recipient_hash == hashlib.sha256(b"officer@issuer.test").hexdigest()

        to_email, subject, html_body, text_body = mock_send.call_args.args
        assert to_email == "Officer@Issuer.test"
        assert subject == "Credential pending signature"
        assert PROCEDURE_ID in text_body

    @pytest.mark.asyncio
    @patch("qsign.services.email.EmailNotificationService._send_email")
    async def test_delivery_failure_propagates(
        self,
        mock_send: MagicMock,
        email_service: EmailNotificationService,
    ) -> None:
        mock_send.side_effect = EmailDeliveryError("SMTP error: refused")

        with pytest.raises(EmailDeliveryError):
            await email_service.send_pending_signature_notification(
                to_email="officer@issuer.test",
                template_key=PENDING_CREDENTIAL_TEMPLATE_KEY,
                procedure_id=PROCEDURE_ID,
                frontend_domain="https://issuer.example.test",
            )

    @pytest.mark.asyncio
    @patch("qsign.services.email.EmailNotificationService._send_email")
    async def test_unknown_template_sends_nothing(
        self,
        mock_send: MagicMock,
        email_service: EmailNotificationService,
    ) -> None:
        with pytest.raises(EmailConfigurationError):
            await email_service.send_pending_signature_notification(
                to_email="officer@issuer.test",
                template_key="email.unknown",
                procedure_id=PROCEDURE_ID,
                frontend_domain="https://issuer.example.test",
            )
        mock_send.assert_not_called()


# ---------------------------------------------------------------------------
# SMTP
# ---------------------------------------------------------------------------


class TestSMTPIntegration:
    """Tests for SMTP sending functionality."""

    @patch("qsign.services.email.smtplib.SMTP")
    def test_send_email_plain_smtp(
        self,
        mock_smtp_class: MagicMock,
        email_service: EmailNotificationService,
    ) -> None:
        """Plain SMTP should work without TLS."""
        mock_smtp = make_smtp_connection()
        mock_smtp_class.return_value = mock_smtp

        message_id = email_service._send_email(
            "officer@issuer.test", "Subject", "<p>HTML</p>", "Text"
        )

        mock_smtp_class.assert_called_once_with("localhost", 1025, timeout=30)
        mock_smtp.starttls.assert_not_called()
        mock_smtp.login.assert_not_called()
        mock_smtp.sendmail.assert_called_once()
        assert mock_smtp.sendmail.call_args.args[1] == ["officer@issuer.test"]
        mock_smtp.__exit__.assert_called_once()
        assert message_id.startswith("<")
        assert message_id.endswith("@issuer.test>")

    @patch("qsign.services.email.smtplib.SMTP")
    def test_send_email_with_starttls_and_login(
        self,
        mock_smtp_class: MagicMock,
        mock_smtp_settings: MagicMock,
    ) -> None:
        mock_smtp_settings.use_tls = True
        mock_smtp_settings.username = "mailer"
        mock_smtp_settings.password = MagicMock()
        mock_smtp_settings.password.get_secret_value.return_value = "mailer-secret"
        mock_smtp = make_smtp_connection()
        mock_smtp_class.return_value = mock_smtp

        EmailNotificationService(mock_smtp_settings)._send_email(
            "officer@issuer.test", "Subject", "<p>HTML</p>", "Text"
        )

        mock_smtp.starttls.assert_called_once()
        mock_smtp.login.assert_called_once_with("mailer", "mailer-secret")

    @patch("qsign.services.email.smtplib.SMTP_SSL")
    def test_send_email_with_ssl(
        self,
        mock_smtp_ssl_class: MagicMock,
        mock_smtp_settings: MagicMock,
    ) -> None:
        mock_smtp_settings.use_ssl = True
        mock_smtp_ssl_class.return_value = make_smtp_connection()

        EmailNotificationService(mock_smtp_settings)._send_email(
            "officer@issuer.test", "Subject", "<p>HTML</p>", "Text"
        )

        mock_smtp_ssl_class.assert_called_once()

    @patch("qsign.services.email.smtplib.SMTP")
    def test_smtp_error_raises_delivery_error(
        self,
        mock_smtp_class: MagicMock,
        email_service: EmailNotificationService,
    ) -> None:
        mock_smtp = make_smtp_connection()
        mock_smtp.sendmail.side_effect = smtplib.SMTPException("Connection refused")
        mock_smtp_class.return_value = mock_smtp

        with pytest.raises(EmailDeliveryError, match="SMTP error"):
            email_service._send_email("officer@issuer.test", "Subject", "<p>HTML</p>", "Text")
        mock_smtp.__exit__.assert_called_once()

    @patch("qsign.services.email.smtplib.SMTP")
    def test_connection_error_raises_delivery_error(
        self,
        mock_smtp_class: MagicMock,
        email_service: EmailNotificationService,
    ) -> None:
        mock_smtp_class.side_effect = ConnectionRefusedError("refused")

        with pytest.raises(EmailDeliveryError, match="Connection error"):
            email_service._send_email("officer@issuer.test", "Subject", "<p>HTML</p>", "Text")

    @patch("qsign.services.email.smtplib.SMTP")
    def test_login_failure_closes_connection(
        self,
        mock_smtp_class: MagicMock,
        mock_smtp_settings: MagicMock,
    ) -> None:
        mock_smtp_settings.username = "mailer"
        mock_smtp_settings.password = MagicMock()
        mock_smtp_settings.password.get_secret_value.return_value = "wrong"
        mock_smtp = make_smtp_connection()
        mock_smtp.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")
        mock_smtp_class.return_value = mock_smtp

        with pytest.raises(EmailDeliveryError, match="SMTP error"):
            EmailNotificationService(mock_smtp_settings)._send_email(
                "officer@issuer.test", "Subject", "<p>HTML</p>", "Text"
            )

        mock_smtp.sendmail.assert_not_called()
        mock_smtp.__exit__.assert_called_once()
