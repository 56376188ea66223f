"""
Security utilities for authentication and authorization.

Provides password hashing (bcrypt), the password strength policy and
secure random tokens for the email-verification and password-reset flows.
"""

import asyncio
import hashlib
import hmac
import re
import secrets
from functools import lru_cache
from typing import Optional

from passlib.context import CryptContext

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger("security")

# Password hashing context using bcrypt
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)

# bcrypt only looks at the first 72 bytes of its input
MAX_PASSWORD_BYTES = 72
MIN_PASSWORD_LENGTH = 8
SPECIAL_CHARACTERS = r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?`~]"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a plain password against a hashed password.

    Args:
        plain_password: The plain text password to verify
        hashed_password: The hashed password to compare against

    Returns:
        True if password matches, False otherwise (including when the
        stored hash is not a valid bcrypt hash)
    """
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError) as e:
        logger.warning(f"Stored password hash could not be verified: {e}")
        return False


def get_password_hash(password: str, rounds: Optional[int] = None) -> str:
    """
    Hash a password using bcrypt.

    Args:
        password: The plain text password to hash
        rounds: bcrypt cost; defaults to the context's BCRYPT_ROUNDS

    Returns:
        The hashed password string
    """
    if rounds is None:
        return pwd_context.hash(password)
    return pwd_context.using(bcrypt__rounds=rounds).hash(password)


async def hash_password_async(password: str, rounds: Optional[int] = None) -> str:
    """Hash a password in a worker thread so the event loop is not blocked."""
    return await asyncio.to_thread(get_password_hash, password, rounds)


async def verify_password_async(plain_password: str, hashed_password: str) -> bool:
    """Verify a password in a worker thread so the event loop is not blocked."""
    return await asyncio.to_thread(verify_password, plain_password, hashed_password)


@lru_cache
def dummy_password_hash(rounds: Optional[int] = None) -> str:
    """Hash checked when a login names an unknown email, so both paths cost one bcrypt verify."""
    return get_password_hash(secrets.token_hex(16), rounds)


def validate_password_strength(password: str) -> list[str]:
    """
    Check a candidate password against the password policy.

    Returns:
        A list of every violated rule, empty when the password is acceptable
    """
    errors: list[str] = []

    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        errors.append(f"Password must be at most {MAX_PASSWORD_BYTES} bytes long")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"\d", password):
        errors.append("Password must contain at least one number")
    if not re.search(SPECIAL_CHARACTERS, password):
        errors.append("Password must contain at least one special character")

    return errors


def generate_secure_token() -> str:
    """Generate a 256-bit random token as 64 hex characters (URL safe)."""
    return secrets.token_hex(32)


def hash_refresh_token(token: str, secret: Optional[str] = None) -> str:
    """
    Derive the stored form of a refresh token.

    Keyed HMAC-SHA256 with the refresh secret (``secret`` or REFRESH_TOKEN_SECRET).
    Deterministic, so the store can look a user up by it. A JWT is longer
    than bcrypt's 72-byte input.
    """
    key = secret if secret is not None else settings.REFRESH_TOKEN_SECRET
    return hmac.new(
        key.encode("utf-8"),
        token.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def refresh_token_matches(token: str, stored_hash: Optional[str], secret: Optional[str] = None) -> bool:
    """Constant-time comparison of a presented refresh token with a stored hash."""
    if not stored_hash:
        return False
    return hmac.compare_digest(hash_refresh_token(token, secret), stored_hash)
