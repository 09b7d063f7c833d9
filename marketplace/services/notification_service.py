"""
Email notification service (fire-and-forget).

send() never raises: delivery problems are retried a few times and then
logged. Callers invoke it after their transaction committed, so a failed
email can never undo a booking or a verification decision.
"""

import logging
from email.message import EmailMessage

import aiosmtplib
from tenacity import (
    RetryError,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from shared.config import get_settings

logger = logging.getLogger(__name__)


class NotificationService:
    """SMTP email sender."""

    def __init__(self):
        settings = get_settings()
        self.smtp_host = settings.SMTP_HOST
        self.smtp_port = settings.SMTP_PORT
        self.smtp_username = settings.SMTP_USERNAME
        self.smtp_password = settings.SMTP_PASSWORD
        self.sender = settings.EMAIL_FROM

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type((aiosmtplib.SMTPException, OSError)),
    )
    async def _deliver(self, message: EmailMessage) -> None:
        await aiosmtplib.send(
            message,
            hostname=self.smtp_host,
            port=self.smtp_port,
            start_tls=True,
            username=self.smtp_username,
            password=self.smtp_password,
            timeout=10,
        )

    async def send(self, to: str, subject: str, body: str) -> bool:
        """
        Send a plain-text email.

        Args:
            to: Recipient address
            subject: Subject line
            body: Plain-text body

        Returns:
            bool: True if the SMTP server accepted the message, False otherwise
        """
        if not to:
            logger.warning(f"Notification '{subject}' skipped: no recipient address")
            return False

        if not (self.smtp_username and self.smtp_password):
            logger.warning("SMTP credentials not configured, email not sent")
            return False

        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)

        try:
            await self._deliver(message)
        except RetryError as e:
            logger.error(f"Failed to send email to {to} after retries: {e.last_attempt.exception()}")
            return False
        except Exception as e:
            logger.error(f"Failed to send email to {to}: {type(e).__name__}: {e}")
            return False

        logger.info(f"Email sent successfully to {to}")
        return True
