"""Email notifications for credentials whose signature was deferred.

When remote signing exhausts its retries for an issued credential, the
procedure switches to asynchronous signing and the responsible user is told
by email. Messages are rendered from Jinja2 templates and sent over SMTP.

Usage:
    from qsign.services.email import EmailNotificationService

    email_service = EmailNotificationService(settings.smtp)
    await email_service.send_pending_signature_notification(
        to_email="officer@example.com",
        template_key=PENDING_CREDENTIAL_TEMPLATE_KEY,
        procedure_id="5f6c...",
        frontend_domain=settings.issuer_frontend_url,
    )
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import secrets
import smtplib
import ssl
from dataclasses import dataclass
from datetime import UTC, datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import TYPE_CHECKING

from jinja2 import Environment, PackageLoader, TemplateError, select_autoescape

if TYPE_CHECKING:
    from qsign.core.config import SMTPSettings

logger = logging.getLogger(__name__)

# Template version for traceability of sent notifications
TEMPLATE_VERSION = "2026.1.0"

PENDING_CREDENTIAL_TEMPLATE_KEY = "email.pending-credential-notification"

# Template key -> (template base name, subject)
_TEMPLATES = {
    PENDING_CREDENTIAL_TEMPLATE_KEY: ("pending_signature", "Credential pending signature"),
}


@dataclass(frozen=True, slots=True)
class NotificationResult:
    """Acknowledgement of a sent notification.

    Attributes:
        message_id: SMTP message ID.
        recipient_hash: SHA-256 hash of the recipient email.
        template_version: Version of the template used.
        sent_at: Timestamp when the notification was sent.
    """

    message_id: str
    recipient_hash: str
    template_version: str
    sent_at: datetime


class EmailError(Exception):
    """Base exception for email operations."""

    pass


class EmailConfigurationError(EmailError):
    """Raised when a template key is unknown or a template cannot render."""

    pass


class EmailDeliveryError(EmailError):
    """Raised when email delivery fails."""

    pass


class EmailNotificationService:
    """Sends pending-signature notifications over SMTP.

    Attributes:
        smtp_settings: SMTP configuration for email delivery.
        app_name: Name shown in the message footer.
    """

    def __init__(self, smtp_settings: SMTPSettings, app_name: str = "qsign") -> None:
        self.smtp_settings = smtp_settings
        self.app_name = app_name

        self._env = Environment(
            loader=PackageLoader("qsign", "templates/email"),
            autoescape=select_autoescape(["html", "xml"]),
        )

    async def send_pending_signature_notification(
        self,
        to_email: str,
        template_key: str,
        procedure_id: str,
        frontend_domain: str,
    ) -> NotificationResult:
        """Tell a user that a credential is waiting for its signature.

        Args:
            to_email: Recipient address.
            template_key: Notification template key.
            procedure_id: Credential procedure that was deferred.
            frontend_domain: Issuer portal base URL linked from the message.

        Returns:
            NotificationResult for the sent message.

        Raises:
            EmailConfigurationError: Unknown template key or rendering failure.
            EmailDeliveryError: The SMTP exchange failed.
        """
        recipient_hash = self._hash_email(to_email)
        subject, html_body, text_body = self._render_template(
            template_key, procedure_id, frontend_domain
        )

        try:
            message_id = await asyncio.to_thread(
                self._send_email, to_email, subject, html_body, text_body
            )
        except EmailDeliveryError as e:
            logger.error(
                "Failed to send pending signature notification",
                extra={
                    "procedure_id": procedure_id,
                    "recipient_hash": recipient_hash[:16],
                    "error": str(e),
                },
            )
            raise

        logger.info(
            "Pending signature notification sent",
            extra={
                "procedure_id": procedure_id,
                "recipient_hash": recipient_hash[:16],
                "message_id": message_id,
                "template_version": TEMPLATE_VERSION,
            },
        )
        return NotificationResult(
            message_id=message_id,
            recipient_hash=recipient_hash,
            template_version=TEMPLATE_VERSION,
            sent_at=datetime.now(UTC),
        )

    def _render_template(
        self,
        template_key: str,
        procedure_id: str,
        frontend_domain: str,
    ) -> tuple[str, str, str]:
        """Render the HTML and text bodies for a template key.

        Returns:
            Tuple of (subject, html_body, text_body).
        """
        if template_key not in _TEMPLATES:
            msg = f"Unknown notification template: {template_key}"
            raise EmailConfigurationError(msg)
        name, subject = _TEMPLATES[template_key]

        context = {
            "subject": subject,
            "procedure_id": procedure_id,
            "portal_link": frontend_domain.rstrip("/"),
            "app_name": self.app_name,
            "lang": "en",
            "template_version": TEMPLATE_VERSION,
        }
        try:
            html_body = self._env.get_template(f"{name}.html").render(**context)
            text_body = self._env.get_template(f"{name}.txt").render(**context)
        except TemplateError as e:
            msg = f"Cannot render template {name}: {e}"
            raise EmailConfigurationError(msg) from e
        return subject, html_body, text_body

    def _send_email(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str,
    ) -> str:
        """Send an email via SMTP.

        Returns:
            SMTP message ID.

        Raises:
            EmailDeliveryError: If the email cannot be sent.
        """
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.smtp_settings.from_name} <{self.smtp_settings.from_address}>"
        msg["To"] = to_email

        message_id = f"<{secrets.token_hex(16)}@{self._get_domain()}>"
        msg["Message-ID"] = message_id

        msg.attach(MIMEText(text_body, "plain", "utf-8"))
        msg.attach(MIMEText(html_body, "html", "utf-8"))

        try:
            with self._connect() as server:
                if self.smtp_settings.use_tls and not self.smtp_settings.use_ssl:
                    server.starttls(context=ssl.create_default_context())

                if self.smtp_settings.username and self.smtp_settings.password:
                    server.login(
                        self.smtp_settings.username,
                        self.smtp_settings.password.get_secret_value(),
                    )

                server.sendmail(
                    self.smtp_settings.from_address,
                    [to_email],
                    msg.as_string(),
                )

            return message_id

        except smtplib.SMTPException as e:
            msg = f"SMTP error: {e}"
            raise EmailDeliveryError(msg) from e
        except OSError as e:
            msg = f"Connection error: {e}"
            raise EmailDeliveryError(msg) from e

    def _connect(self) -> smtplib.SMTP:
        if self.smtp_settings.use_ssl:
            # Implicit TLS (port 465)
            return smtplib.SMTP_SSL(
                self.smtp_settings.host,
                self.smtp_settings.port,
                timeout=self.smtp_settings.timeout,
                context=ssl.create_default_context(),
            )
        return smtplib.SMTP(
            self.smtp_settings.host,
            self.smtp_settings.port,
            timeout=self.smtp_settings.timeout,
        )

    def _hash_email(self, email: str) -> str:
        """SHA-256 hex digest of the lowercased email, for logs."""
        return hashlib.sha256(email.lower().strip().encode()).hexdigest()

    def _get_domain(self) -> str:
        """Domain part of the sender address, used in Message-IDs."""
        _, _, domain = self.smtp_settings.from_address.partition("@")
        return domain or "localhost"
