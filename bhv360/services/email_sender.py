"""
Email sender abstraction for module notification delivery.

Supports multiple providers:
- SendGrid (production)
- SMTP (development)
- Mock (testing)

Provider is chosen by NOTIFICATION_EMAIL_PROVIDER (sendgrid | smtp | mock).
Senders report delivery as a bool and never raise; callers log and move on.
"""

import os
import logging
import smtplib
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"
DEFAULT_FROM_EMAIL = "modules@bhv360.nl"
DEFAULT_FROM_NAME = "BHV360"


@dataclass
class EmailMessage:
    """Email message data."""
    to_email: str
    subject: str
    text_body: str
    to_name: Optional[str] = None
    html_body: Optional[str] = None
    from_email: Optional[str] = None
    from_name: Optional[str] = None
    reply_to: Optional[str] = None
    tags: List[str] = field(default_factory=list)


class EmailSender(ABC):
    """Abstract base class for email sending."""

    @abstractmethod
    def send(self, message: EmailMessage) -> bool:
        """
        Send an email.

        Args:
            message: Email message to send

        Returns:
            True on success, False on failure
        """
        pass


class SendGridEmailSender(EmailSender):
    """SendGrid v3 mail API over httpx."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        from_email: Optional[str] = None,
        from_name: Optional[str] = None,
        timeout: float = 30.0,
    ):
        """
        Initialize SendGrid sender.

        Args:
            api_key: SendGrid API key (or from SENDGRID_API_KEY env var)
            from_email: Default sender email (or from NOTIFICATION_FROM_EMAIL env var)
            from_name: Default sender name (or from NOTIFICATION_FROM_NAME env var)
            timeout: HTTP timeout in seconds
        """
        self.api_key = api_key or os.getenv("SENDGRID_API_KEY")
        self.from_email = from_email or os.getenv("NOTIFICATION_FROM_EMAIL", DEFAULT_FROM_EMAIL)
        self.from_name = from_name or os.getenv("NOTIFICATION_FROM_NAME", DEFAULT_FROM_NAME)
        self.timeout = timeout

        if not self.api_key:
            logger.warning("SendGrid API key not configured")

    def build_payload(self, message: EmailMessage) -> Dict[str, Any]:
        content = [{"type": "text/plain", "value": message.text_body}]
        if message.html_body:
            content.append({"type": "text/html", "value": message.html_body})

        payload: Dict[str, Any] = {
            "personalizations": [
                {"to": [{"email": message.to_email, "name": message.to_name or ""}]}
            ],
            "from": {
                "email": message.from_email or self.from_email,
                "name": message.from_name or self.from_name,
            },
            "subject": message.subject,
            "content": content,
        }
        if message.reply_to:
            payload["reply_to"] = {"email": message.reply_to}
        if message.tags:
            payload["categories"] = list(message.tags)
        return payload

    def send(self, message: EmailMessage) -> bool:
        if not self.api_key:
            logger.error("Cannot send email: SendGrid API key not configured")
            return False

        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(
                    SENDGRID_SEND_URL,
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=self.build_payload(message),
                )
        except httpx.HTTPError as e:
            logger.error(
                "Failed to send email via SendGrid",
                extra={"to_email": message.to_email, "error": str(e)},
                exc_info=True,
            )
            return False

        if response.status_code in (200, 202):
            logger.info(
                "Email sent successfully",
                extra={"to_email": message.to_email, "subject": message.subject},
            )
            return True

        logger.error(
            "SendGrid API error",
            extra={
                "status_code": response.status_code,
                "response": response.text,
                "to_email": message.to_email,
            },
        )
        return False


class SMTPEmailSender(EmailSender):
    """SMTP email sender for development."""

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        from_email: Optional[str] = None,
        from_name: Optional[str] = None,
    ):
        self.host = host or os.getenv("SMTP_HOST", "localhost")
        self.port = port or int(os.getenv("SMTP_PORT", "587"))
        self.username = username or os.getenv("SMTP_USERNAME")
        self.password = password or os.getenv("SMTP_PASSWORD")
        self.use_tls = use_tls
        self.from_email = from_email or os.getenv("NOTIFICATION_FROM_EMAIL", DEFAULT_FROM_EMAIL)
        self.from_name = from_name or os.getenv("NOTIFICATION_FROM_NAME", DEFAULT_FROM_NAME)

    def send(self, message: EmailMessage) -> bool:
        from_email = message.from_email or self.from_email
        from_name = message.from_name or self.from_name

        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.subject
        msg["From"] = f"{from_name} <{from_email}>"
        msg["To"] = message.to_email
        if message.reply_to:
            msg["Reply-To"] = message.reply_to
        msg.attach(MIMEText(message.text_body, "plain"))
        if message.html_body:
            msg.attach(MIMEText(message.html_body, "html"))

        try:
            with smtplib.SMTP(self.host, self.port) as server:
                if self.use_tls:
                    server.starttls()
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.sendmail(from_email, [message.to_email], msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            logger.error(
                "Failed to send email via SMTP",
                extra={"to_email": message.to_email, "error": str(e)},
                exc_info=True,
            )
            return False

        logger.info(
            "Email sent via SMTP",
            extra={"to_email": message.to_email, "subject": message.subject},
        )
        return True


class MockEmailSender(EmailSender):
    """Records messages instead of sending them."""

    def __init__(self):
        self.sent_messages: List[EmailMessage] = []

    def send(self, message: EmailMessage) -> bool:
        self.sent_messages.append(message)
        logger.info(
            "Mock email sent",
            extra={"to_email": message.to_email, "subject": message.subject},
        )
        return True

    def clear(self) -> None:
        self.sent_messages.clear()


def get_email_sender() -> EmailSender:
    """
    Get configured email sender based on environment.

    Returns:
        Appropriate EmailSender implementation
    """
    provider = os.getenv("NOTIFICATION_EMAIL_PROVIDER", "sendgrid").lower()

    if provider == "smtp":
        return SMTPEmailSender()
    elif provider == "mock":
        return MockEmailSender()
    else:
        return SendGridEmailSender()
