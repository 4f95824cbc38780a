"""Email channel over SMTP."""

import logging
import smtplib
from email.message import EmailMessage

from tasknotify.channels.base import DeliveryResult, DeliveryStatus, NotificationChannel
from tasknotify.config import Settings
from tasknotify.errors import TransientDeliveryFailure
from tasknotify.events.types import NotificationMessage

logger = logging.getLogger(__name__)


class SmtpEmailSender:
    """Sends plain-text mail through an SMTP relay."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        sender: str = "no-reply@tasknotify.local",
        timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.sender = sender
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "SmtpEmailSender | None":
        """Build a sender, or None when SMTP_HOST is not set."""
        if not settings.email_configured:
            return None
        return cls(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            username=settings.SMTP_USERNAME,
            password=settings.SMTP_PASSWORD,
            use_tls=settings.SMTP_USE_TLS,
            sender=settings.SMTP_FROM,
        )

    def send(self, to: str, subject: str, body: str) -> None:
        mail = EmailMessage()
        mail["From"] = self.sender
        mail["To"] = to
        mail["Subject"] = subject
        mail.set_content(body)

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password)
            smtp.send_message(mail)


class EmailChannel(NotificationChannel):
    """Delivers notifications to the recipient's email address."""

    def __init__(self, sender: SmtpEmailSender | None) -> None:
        self.sender = sender

    @property
    def name(self) -> str:
        return "email"

    def send(self, message: NotificationMessage) -> DeliveryResult:
        if self.sender is None:
            logger.warning(
                "Email is not configured, notification not sent",
                extra=message.log_context(),
            )
            return DeliveryResult(self.name, DeliveryStatus.SKIPPED, "email not configured")

        try:
            self.sender.send(message.recipient, message.subject, message.body)
        except (smtplib.SMTPException, OSError) as e:
            raise TransientDeliveryFailure(
                f"SMTP send failed: {e}", destination=message.recipient
            ) from e

        logger.info("Email sent", extra=message.log_context())
        return DeliveryResult(self.name, DeliveryStatus.SENT)
