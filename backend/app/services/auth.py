"""
Authentication service.

One component for every account flow: registration, login, refresh
rotation, logout, email verification, password reset and password change.
Whether login requires a verified email is a setting, not a separate path.
"""

from dataclasses import dataclass
from typing import Optional

from app.core.config import Settings, settings as default_settings
from app.core.exceptions import (
    AuthenticationError,
    ConflictError,
    InvalidCredentialsError,
    UserNotFoundError,
    ValidationError,
    VerificationRequiredError,
)
from app.core.logging import get_logger
from app.core.security import dummy_password_hash, hash_password_async, verify_password_async
from app.core.tokens import TokenIssuer
from app.models.user import User
from app.repositories.users import UserRepository, normalize_email
from app.services.email import (
    EmailDeliveryError,
    EmailSender,
    password_reset_email,
    verification_email,
)
from app.services.refresh_tokens import RefreshTokenStore
from app.services.single_use_tokens import EmailVerificationTokens, PasswordResetTokens

logger = get_logger("auth")


@dataclass
class AuthResult:
    user: User
    access_token: str
    refresh_token: str


class AuthService:
    def __init__(
        self,
        users: UserRepository,
        issuer: TokenIssuer,
        email_sender: EmailSender,
        config: Optional[Settings] = None,
    ):
        self.config = config or default_settings
        self.users = users
        self.issuer = issuer
        self.email_sender = email_sender
        self.refresh_tokens = RefreshTokenStore(users, issuer)
        self.verification_tokens = EmailVerificationTokens(users, self.config)
        self.reset_tokens = PasswordResetTokens(users, self.config)

    # ============== Helpers ==============

    def _issue_tokens(self, user: User) -> AuthResult:
        access_token = self.issuer.create_access_token(user.id, user.email)
        refresh_token = self.refresh_tokens.rotate(user)
        return AuthResult(user=user, access_token=access_token, refresh_token=refresh_token)

    async def _deliver(self, to: str, subject: str, body: str) -> bool:
        try:
            await self.email_sender.send(to, subject, body)
        except EmailDeliveryError as e:
            # The token stays pending; the user can ask for it again
            logger.error(f"Failed to send '{subject}' to {to}: {e}")
            return False
        return True

    async def _send_verification(self, user: User) -> None:
        token, _ = self.verification_tokens.issue(user)
        subject, body = verification_email(user.name, token, self.config)
        await self._deliver(user.email, subject, body)

    # ============== Registration & Login ==============

    async def register(self, name: str, email: str, password: str, company_name: str) -> User:
        """
        Create an unverified account and send the verification email.

        Raises:
            ConflictError: the email is already registered
        """
        email = normalize_email(email)
        if self.users.get_by_email(email) is not None:
            raise ConflictError(
                "A user with this email already exists",
                code="EMAIL_ALREADY_REGISTERED",
            )

        password_hash = await hash_password_async(password, self.config.BCRYPT_ROUNDS)
        user = self.users.create(
            name=name.strip(),
            email=email,
            company_name=company_name.strip(),
            password_hash=password_hash,
        )
        logger.info(f"Registered user {user.id}")

        await self._send_verification(user)
        return self.users.get_by_id(user.id)

    async def login(self, email: str, password: str) -> AuthResult:
        """
        Check credentials and start a session.

        Raises:
            InvalidCredentialsError: unknown email or wrong password
            VerificationRequiredError: email not verified (when required)
        """
        user = self.users.get_by_email(email)
        if user is None:
            await verify_password_async(password, dummy_password_hash(self.config.BCRYPT_ROUNDS))
            logger.info("Failed login attempt")
            raise InvalidCredentialsError()
        if not await verify_password_async(password, user.password_hash):
            logger.info("Failed login attempt")
            raise InvalidCredentialsError()

        if self.config.REQUIRE_EMAIL_VERIFICATION and not user.email_verified:
            raise VerificationRequiredError(
                "Please verify your email address before logging in, "
                "or request a new verification email."
            )

        logger.info(f"User {user.id} logged in")
        return self._issue_tokens(user)

    # ============== Session Tokens ==============

    def refresh(self, refresh_token: Optional[str]) -> AuthResult:
        """
        Exchange a refresh token for a new access token and a rotated refresh token.

        Raises:
            AuthenticationError: missing token
            InvalidTokenError: invalid, expired, revoked or already rotated token
        """
        if not refresh_token:
            raise AuthenticationError("Refresh token required", code="REFRESH_TOKEN_REQUIRED")

        user, new_refresh_token = self.refresh_tokens.exchange(refresh_token)
        access_token = self.issuer.create_access_token(user.id, user.email)
        return AuthResult(user=user, access_token=access_token, refresh_token=new_refresh_token)

    def logout(self, refresh_token: Optional[str]) -> None:
        """Revoke the presented refresh token if it is the current one. Idempotent."""
        if self.refresh_tokens.revoke_token(refresh_token):
            logger.info("Refresh token revoked on logout")

    # ============== Email Verification ==============

    async def verify_email(self, token: str) -> AuthResult:
        """Consume a verification token and sign the user in."""
        user = self.verification_tokens.consume(token)
        return self._issue_tokens(user)

    async def resend_verification(self, email: str) -> None:
        """
        Issue a fresh verification token, invalidating any pending one.

        Enumeration-safe: callers respond identically whether or not the
        email exists or is already verified.
        """
        user = self.users.get_by_email(email)
        if user is None or user.email_verified:
            logger.info("Verification resend skipped (unknown or verified account)")
            return
        await self._send_verification(user)

    # ============== Passwords ==============

    async def forgot_password(self, email: str) -> None:
        """Start a password reset. Enumeration-safe, like ``resend_verification``."""
        user = self.users.get_by_email(email)
        if user is None:
            logger.info("Password reset requested for unknown email")
            return

        token, _ = self.reset_tokens.issue(user)
        subject, body = password_reset_email(user.name, token, self.config)
        await self._deliver(user.email, subject, body)

    async def reset_password(self, token: str, new_password: str) -> User:
        """
        Replace the password of the token's holder and end all their sessions.

        Raises:
            TokenNotFoundError / TokenExpiredError: bad token
        """
        self.reset_tokens.lookup(token)
        password_hash = await hash_password_async(new_password, self.config.BCRYPT_ROUNDS)
        return self.reset_tokens.consume(token, password_hash)

    async def change_password(self, user: User, current_password: str, new_password: str) -> None:
        """
        Change the password of a signed-in user and log out other sessions.

        Raises:
            ValidationError: the current password is wrong
        """
        if not await verify_password_async(current_password, user.password_hash):
            raise ValidationError(
                "Current password is incorrect",
                code="INVALID_CURRENT_PASSWORD",
            )

        password_hash = await hash_password_async(new_password, self.config.BCRYPT_ROUNDS)
        self.users.update_password(user.id, password_hash)
        logger.info(f"Password changed for user {user.id}")

    # ============== Profile ==============

    def get_profile(self, user_id: int) -> User:
        user = self.users.get_by_id(user_id)
        if user is None:
            raise UserNotFoundError("User account not found")
        return user
