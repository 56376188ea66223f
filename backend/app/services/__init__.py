from app.services.auth import AuthResult, AuthService
from app.services.email import (
    EmailDeliveryError,
    EmailSender,
    LoggingEmailSender,
    SmtpEmailSender,
    build_email_sender,
)
from app.services.refresh_tokens import RefreshTokenStore
from app.services.single_use_tokens import EmailVerificationTokens, PasswordResetTokens
from app.services.usage import UsageCounterStore, UsageSnapshot

__all__ = [
    "AuthResult",
    "AuthService",
    "EmailDeliveryError",
    "EmailSender",
    "LoggingEmailSender",
    "SmtpEmailSender",
    "build_email_sender",
    "RefreshTokenStore",
    "EmailVerificationTokens",
    "PasswordResetTokens",
    "UsageCounterStore",
    "UsageSnapshot",
]
