"""
JWT issuance and verification for access and refresh tokens.

Access tokens are stateless: their authority is the signature and the
expiry alone. Refresh tokens carry only the subject and a unique id; the
refresh token store backs them with a stored hash.
"""

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError as JWTInvalidTokenError

from app.core.config import Settings, settings as default_settings
from app.core.exceptions import InvalidTokenError
from app.core.logging import get_logger

logger = get_logger("tokens")

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


@dataclass(frozen=True)
class AccessClaims:
    user_id: int
    email: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class RefreshClaims:
    user_id: int
    token_id: str
    issued_at: datetime
    expires_at: datetime


class TokenIssuer:
    """Mints and verifies signed access and refresh tokens."""

    def __init__(self, config: Optional[Settings] = None):
        config = config or default_settings
        if config.ACCESS_TOKEN_SECRET == config.REFRESH_TOKEN_SECRET:
            raise ValueError("ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET must differ")
        self.access_secret = config.ACCESS_TOKEN_SECRET
        self.refresh_secret = config.REFRESH_TOKEN_SECRET
        self.algorithm = config.JWT_ALGORITHM
        self.access_ttl = timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES)
        self.refresh_ttl = timedelta(days=config.REFRESH_TOKEN_EXPIRE_DAYS)

    # ============== Issuing ==============

    def create_access_token(
        self,
        user_id: int,
        email: str,
        expires_delta: Optional[timedelta] = None,
    ) -> str:
        """
        Create a JWT access token.

        Args:
            user_id: The user's id
            email: The user's normalized email
            expires_delta: Optional custom expiration time

        Returns:
            The encoded JWT token string
        """
        now = datetime.now(timezone.utc)
        payload = {
            "userId": user_id,
            "email": email,
            "type": ACCESS_TOKEN_TYPE,
            "iat": now,
            "exp": now + (expires_delta if expires_delta is not None else self.access_ttl),
        }
        return jwt.encode(payload, self.access_secret, algorithm=self.algorithm)

    def create_refresh_token(
        self,
        user_id: int,
        expires_delta: Optional[timedelta] = None,
    ) -> str:
        """
        Create a JWT refresh token.

        The ``jti`` claim makes every token unique, even when two are minted
        for the same user within the same second.
        """
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "jti": secrets.token_hex(16),
            "type": REFRESH_TOKEN_TYPE,
            "iat": now,
            "exp": now + (expires_delta if expires_delta is not None else self.refresh_ttl),
        }
        return jwt.encode(payload, self.refresh_secret, algorithm=self.algorithm)

    # ============== Verification ==============

    def _decode(self, token: str, secret: str, expected_type: str) -> dict:
        if not token:
            raise InvalidTokenError("missing")
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat"]},
            )
        except ExpiredSignatureError:
            logger.info(f"Rejected {expected_type} token: expired")
            raise InvalidTokenError("expired")
        except JWTInvalidTokenError as e:
            logger.info(f"Rejected {expected_type} token: {type(e).__name__}")
            raise InvalidTokenError(type(e).__name__)

        if payload.get("type") != expected_type:
            logger.info(f"Rejected {expected_type} token: wrong type {payload.get('type')!r}")
            raise InvalidTokenError("wrong_type")

        return payload

    def decode_access_token(self, token: str) -> AccessClaims:
        """
        Decode and validate a JWT access token.

        Raises:
            InvalidTokenError: for any failure (expired, forged, malformed)
        """
        payload = self._decode(token, self.access_secret, ACCESS_TOKEN_TYPE)
        user_id = payload.get("userId")
        email = payload.get("email")
        if not isinstance(user_id, int) or not isinstance(email, str):
            logger.info("Rejected access token: missing identity claims")
            raise InvalidTokenError("missing_claims")

        return AccessClaims(
            user_id=user_id,
            email=email,
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )

    def decode_refresh_token(self, token: str) -> RefreshClaims:
        """Decode and validate a JWT refresh token's signature and expiry."""
        payload = self._decode(token, self.refresh_secret, REFRESH_TOKEN_TYPE)
        try:
            user_id = int(payload["sub"])
            token_id = str(payload["jti"])
        except (KeyError, TypeError, ValueError):
            logger.info("Rejected refresh token: missing subject claims")
            raise InvalidTokenError("missing_claims")

        return RefreshClaims(
            user_id=user_id,
            token_id=token_id,
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """
    Extract the token from an ``Authorization: Bearer <token>`` header value.

    Returns:
        The token, or None when the header is missing or malformed
    """
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
