"""
Single-use tokens for email verification and password reset.

Both flows share one pattern: issue a random token with a fixed validity
window, look it up only in its own field, and clear it in the same update
that applies the flow's effect.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from app.core.config import Settings, settings as default_settings
from app.core.exceptions import (
    TokenAlreadyConsumedError,
    TokenExpiredError,
    TokenNotFoundError,
)
from app.core.logging import get_logger
from app.core.security import generate_secure_token
from app.models.user import User, as_utc
from app.repositories.users import UserRepository

logger = get_logger("single_use_tokens")


class SingleUseTokenManager:
    """Base for one token namespace; subclasses bind it to user record fields."""

    flow_name = "token"
    already_done_code: Optional[str] = None
    already_done_message: Optional[str] = None

    def __init__(self, users: UserRepository, validity: timedelta):
        self.users = users
        self.validity = validity

    # Hooks bound to the record fields of one flow
    def _store(self, user_id: int, token: str, expires_at: datetime) -> None:
        raise NotImplementedError

    def _lookup(self, token: str) -> Optional[User]:
        raise NotImplementedError

    def _expires_at(self, user: User) -> Optional[datetime]:
        raise NotImplementedError

    def _already_done(self, user: User) -> bool:
        return False

    def issue(self, user: User) -> tuple[str, datetime]:
        """
        Generate and store a new token, replacing any pending one.

        Returns:
            (plaintext token, expiry) for delivery by email
        """
        token = generate_secure_token()
        expires_at = datetime.now(timezone.utc) + self.validity
        self._store(user.id, token, expires_at)
        logger.info(f"Issued {self.flow_name} token for user {user.id}")
        return token, expires_at

    def lookup(self, token: str) -> User:
        """
        Find the user holding a still-valid token without consuming it.

        Raises:
            TokenNotFoundError: no user holds this token
            TokenExpiredError: the token is past its window (left in place)
            TokenAlreadyConsumedError: the flow's goal is already satisfied
        """
        user = self._lookup(token)
        if user is None:
            raise TokenNotFoundError(f"Invalid {self.flow_name} token")

        expires_at = as_utc(self._expires_at(user))
        if expires_at is None or datetime.now(timezone.utc) > expires_at:
            logger.info(f"Expired {self.flow_name} token presented for user {user.id}")
            raise TokenExpiredError(f"The {self.flow_name} token has expired")

        if self._already_done(user):
            raise TokenAlreadyConsumedError(self.already_done_message, code=self.already_done_code)

        return user


class EmailVerificationTokens(SingleUseTokenManager):
    flow_name = "verification"
    already_done_code = "ALREADY_VERIFIED"
    already_done_message = "Email is already verified"

    def __init__(self, users: UserRepository, config: Optional[Settings] = None):
        config = config or default_settings
        super().__init__(users, timedelta(hours=config.VERIFICATION_TOKEN_EXPIRE_HOURS))

    def _store(self, user_id, token, expires_at):
        self.users.set_verification_token(user_id, token, expires_at)

    def _lookup(self, token):
        return self.users.get_by_verification_token(token)

    def _expires_at(self, user):
        return user.verification_expires_at

    def _already_done(self, user):
        return bool(user.email_verified)

    def consume(self, token: str) -> User:
        """Mark the holder's email verified and clear the token atomically."""
        user = self.lookup(token)
        if not self.users.mark_email_verified(user.id, token):
            # Another request consumed or replaced the token in between
            raise TokenNotFoundError("Invalid verification token")
        logger.info(f"Email verified for user {user.id}")
        return self.users.get_by_id(user.id)


class PasswordResetTokens(SingleUseTokenManager):
    flow_name = "reset"

    def __init__(self, users: UserRepository, config: Optional[Settings] = None):
        config = config or default_settings
        super().__init__(users, timedelta(hours=config.RESET_TOKEN_EXPIRE_HOURS))

    def _store(self, user_id, token, expires_at):
        self.users.set_reset_token(user_id, token, expires_at)

    def _lookup(self, token):
        return self.users.get_by_reset_token(token)

    def _expires_at(self, user):
        return user.reset_token_expires_at

    def consume(self, token: str, password_hash: str) -> User:
        """Replace the holder's password, clear the token and revoke refresh tokens."""
        user = self.lookup(token)
        if not self.users.reset_password(user.id, token, password_hash):
            raise TokenNotFoundError("Invalid reset token")
        logger.info(f"Password reset completed for user {user.id}")
        return self.users.get_by_id(user.id)
