"""
Refresh token store.

Keeps the keyed hash of the single currently valid refresh token on the
user record. A presented token must pass BOTH the signature/expiry check
and the stored-hash check; rotation is what retires old tokens, not expiry.
"""

from typing import Optional

from app.core.exceptions import InvalidTokenError
from app.core.logging import get_logger
from app.core.security import hash_refresh_token, refresh_token_matches
from app.core.tokens import TokenIssuer
from app.models.user import User
from app.repositories.users import UserRepository

logger = get_logger("refresh_tokens")


class RefreshTokenStore:
    def __init__(self, users: UserRepository, issuer: TokenIssuer):
        self.users = users
        self.issuer = issuer

    def _hash(self, token: str) -> str:
        return hash_refresh_token(token, self.issuer.refresh_secret)

    def rotate(self, user: User) -> str:
        """
        Mint a new refresh token for ``user`` and make it the only valid one.

        Returns:
            The plaintext token; only its hash is persisted
        """
        token = self.issuer.create_refresh_token(user.id)
        self.users.set_refresh_token_hash(user.id, self._hash(token))
        return token

    def validate(self, token: str) -> User:
        """
        Check a presented refresh token.

        Raises:
            InvalidTokenError: if the signature/expiry check fails, the user
                is gone, or the token is not the one currently stored
        """
        claims = self.issuer.decode_refresh_token(token)

        user = self.users.get_by_id(claims.user_id)
        if user is None:
            logger.info(f"Refresh token for unknown user {claims.user_id}")
            raise InvalidTokenError("unknown_user")

        if not refresh_token_matches(token, user.refresh_token_hash, self.issuer.refresh_secret):
            logger.warning(f"Stale or revoked refresh token presented for user {user.id}")
            raise InvalidTokenError("stale")

        return user

    def exchange(self, token: str) -> tuple[User, str]:
        """
        Validate ``token`` and rotate it in one compare-and-swap update.

        Two concurrent requests presenting the same token cannot both win:
        the loser's swap finds the hash already replaced.
        """
        user = self.validate(token)
        new_token = self.issuer.create_refresh_token(user.id)

        swapped = self.users.swap_refresh_token_hash(
            user.id,
            expected_hash=self._hash(token),
            new_hash=self._hash(new_token),
        )
        if not swapped:
            logger.warning(f"Refresh token for user {user.id} was rotated concurrently")
            raise InvalidTokenError("rotated_concurrently")

        return user, new_token

    def revoke(self, user_id: int) -> None:
        """Clear the stored hash, forcing re-authentication everywhere."""
        self.users.set_refresh_token_hash(user_id, None)

    def revoke_token(self, token: Optional[str]) -> bool:
        """
        Revoke whichever user currently holds ``token``.

        Returns:
            True if a stored token was cleared; unknown tokens are ignored
        """
        if not token:
            return False
        user = self.users.get_by_refresh_token_hash(self._hash(token))
        if user is None:
            return False
        self.revoke(user.id)
        return True
