"""
Outbound email.

Plain-text messages only. The logging backend is the development default;
the SMTP backend sends through aiosmtplib.
"""

from email.message import EmailMessage
from typing import Optional, Protocol

import aiosmtplib

from app.core.config import Settings, settings as default_settings
from app.core.logging import get_logger

logger = get_logger("email")


class EmailDeliveryError(Exception):
    """Raised when a message could not be handed to the mail server."""


class EmailSender(Protocol):
    async def send(self, to: str, subject: str, body: str) -> None: ...


class LoggingEmailSender:
    """Writes messages to the log instead of sending them."""

    def __init__(self, config: Optional[Settings] = None):
        self.config = config or default_settings

    async def send(self, to: str, subject: str, body: str) -> None:
        if self.config.is_production:
            logger.info(f"Email to {to}: {subject}")
        else:
            logger.info(f"Email to {to}: {subject}\n{body}")


class SmtpEmailSender:
    def __init__(self, config: Optional[Settings] = None):
        self.config = config or default_settings

    async def send(self, to: str, subject: str, body: str) -> None:
        message = EmailMessage()
        message["From"] = self.config.EMAIL_FROM
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)

        try:
            await aiosmtplib.send(
                message,
                hostname=self.config.SMTP_HOST,
                port=self.config.SMTP_PORT,
                username=self.config.SMTP_USERNAME or None,
                password=self.config.SMTP_PASSWORD or None,
                start_tls=self.config.SMTP_USE_TLS,
            )
        except aiosmtplib.SMTPException as e:
            raise EmailDeliveryError(f"SMTP delivery to {to} failed: {e}") from e

        logger.info(f"Email sent to {to}: {subject}")


def build_email_sender(config: Optional[Settings] = None) -> EmailSender:
    config = config or default_settings
    if config.EMAIL_BACKEND.lower() == "smtp":
        return SmtpEmailSender(config)
    return LoggingEmailSender(config)


# ============== Messages ==============


def verification_email(name: str, token: str, config: Optional[Settings] = None) -> tuple[str, str]:
    """Subject and body for the email-verification message."""
    config = config or default_settings
    link = f"{config.FRONTEND_URL.rstrip('/')}/verify-email?token={token}"
    body = (
        f"Hi {name},\n\n"
        f"Please confirm your email address for {config.APP_NAME} by opening this link:\n\n"
        f"{link}\n\n"
        f"The link expires in {config.VERIFICATION_TOKEN_EXPIRE_HOURS} hours.\n"
    )
    return f"Verify your email - {config.APP_NAME}", body


def password_reset_email(name: str, token: str, config: Optional[Settings] = None) -> tuple[str, str]:
    """Subject and body for the password-reset message."""
    config = config or default_settings
    link = f"{config.FRONTEND_URL.rstrip('/')}/reset-password?token={token}"
    body = (
        f"Hi {name},\n\n"
        f"We received a request to reset your {config.APP_NAME} password. "
        f"Open this link to choose a new one:\n\n"
        f"{link}\n\n"
        f"The link expires in {config.RESET_TOKEN_EXPIRE_HOURS} hours. "
        f"If you did not ask for this, you can ignore this email.\n"
    )
    return f"Reset your password - {config.APP_NAME}", body
