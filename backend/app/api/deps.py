"""
Shared API dependencies.

Wires the repository, token issuer and services per request, and provides
the authentication guards used by protected routes.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from app.core.config import Settings, settings
from app.core.exceptions import (
    AuthenticationError,
    InvalidTokenError,
    VerificationRequiredError,
)
from app.core.logging import get_logger
from app.core.tokens import TokenIssuer, extract_bearer_token
from app.db.session import get_db
from app.models import User
from app.repositories.users import SqlAlchemyUserRepository, UserRepository
from app.services.auth import AuthService
from app.services.email import EmailSender, build_email_sender
from app.services.usage import UsageCounterStore

logger = get_logger("guard")


@dataclass(frozen=True)
class Identity:
    """Claims resolved from a verified access token."""

    user_id: int
    email: str


# ============== Providers ==============


def get_settings() -> Settings:
    return settings


@lru_cache
def _default_issuer() -> TokenIssuer:
    return TokenIssuer(settings)


def get_token_issuer() -> TokenIssuer:
    return _default_issuer()


@lru_cache
def _default_email_sender() -> EmailSender:
    return build_email_sender(settings)


def get_email_sender() -> EmailSender:
    return _default_email_sender()


def get_user_repository(db: Session = Depends(get_db)) -> UserRepository:
    return SqlAlchemyUserRepository(db)


def get_auth_service(
    users: UserRepository = Depends(get_user_repository),
    issuer: TokenIssuer = Depends(get_token_issuer),
    email_sender: EmailSender = Depends(get_email_sender),
    config: Settings = Depends(get_settings),
) -> AuthService:
    return AuthService(users, issuer, email_sender, config)


def get_usage_store(
    users: UserRepository = Depends(get_user_repository),
    config: Settings = Depends(get_settings),
) -> UsageCounterStore:
    return UsageCounterStore(users, config)


# ============== Guards ==============


def get_current_identity(
    request: Request,
    authorization: Optional[str] = Header(default=None),
    issuer: TokenIssuer = Depends(get_token_issuer),
) -> Identity:
    """
    Resolve the caller from ``Authorization: Bearer <access token>``.

    Missing, malformed, expired and forged tokens all produce the same 401.
    The resolved identity is also attached to ``request.state.identity``.
    """
    token = extract_bearer_token(authorization)
    if token is None:
        raise AuthenticationError("Access token is required")

    try:
        claims = issuer.decode_access_token(token)
    except InvalidTokenError as e:
        logger.info(f"Access denied: token rejected ({e.reason})")
        raise AuthenticationError("Invalid or expired access token")

    identity = Identity(user_id=claims.user_id, email=claims.email)
    request.state.identity = identity
    return identity


def get_current_user(
    identity: Identity = Depends(get_current_identity),
    users: UserRepository = Depends(get_user_repository),
) -> User:
    """Load the record behind the identity; a deleted account is treated as unauthenticated."""
    user = users.get_by_id(identity.user_id)
    if user is None:
        raise AuthenticationError("User not found")
    return user


def require_verified_user(
    user: User = Depends(get_current_user),
    config: Settings = Depends(get_settings),
) -> User:
    """Companion guard: reject unverified accounts with a distinct 403."""
    if config.REQUIRE_EMAIL_VERIFICATION and not user.email_verified:
        raise VerificationRequiredError(
            "You must verify your email address to access this feature. "
            "Please check your email for the verification link."
        )
    return user
