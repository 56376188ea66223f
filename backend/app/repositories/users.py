"""
User repository.

Components depend on the ``UserRepository`` interface; the SQLAlchemy
implementation pushes every multi-step state change into a single
conditional UPDATE so the database, not the process, decides races.
"""

from datetime import datetime
from typing import Optional, Protocol

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import ConflictError
from app.core.logging import get_logger
from app.models.user import User, utcnow

logger = get_logger("repositories.users")

COUNTER_COLUMNS = (
    "files_uploaded",
    "batch_analysis_count",
    "compare_resumes_count",
    "selected_candidate_count",
)


def normalize_email(email: str) -> str:
    """Lowercase and trim an email before any lookup or write."""
    return email.strip().lower()


class UserRepository(Protocol):
    def get_by_id(self, user_id: int) -> Optional[User]: ...

    def get_by_email(self, email: str) -> Optional[User]: ...

    def get_by_verification_token(self, token: str) -> Optional[User]: ...

    def get_by_reset_token(self, token: str) -> Optional[User]: ...

    def get_by_refresh_token_hash(self, token_hash: str) -> Optional[User]: ...

    def create(self, name: str, email: str, company_name: str, password_hash: str) -> User: ...

    def set_refresh_token_hash(self, user_id: int, token_hash: Optional[str]) -> None: ...

    def swap_refresh_token_hash(self, user_id: int, expected_hash: str, new_hash: str) -> bool: ...

    def set_verification_token(self, user_id: int, token: str, expires_at: datetime) -> None: ...

    def mark_email_verified(self, user_id: int, token: str) -> bool: ...

    def set_reset_token(self, user_id: int, token: str, expires_at: datetime) -> None: ...

    def reset_password(self, user_id: int, token: str, password_hash: str) -> bool: ...

    def update_password(self, user_id: int, password_hash: str) -> None: ...

    def increment_counter(self, email: str, column: str, amount: int) -> Optional[User]: ...

    def increment_counter_capped(
        self, email: str, column: str, amount: int, limit: int
    ) -> Optional[User]: ...


class SqlAlchemyUserRepository:
    """``UserRepository`` backed by a SQLAlchemy session (one per request)."""

    def __init__(self, db: Session):
        self.db = db

    # ============== Reads ==============

    def _first(self, *criteria) -> Optional[User]:
        stmt = select(User).where(*criteria).execution_options(populate_existing=True)
        return self.db.execute(stmt).scalars().first()

    def get_by_id(self, user_id: int) -> Optional[User]:
        return self._first(User.id == user_id)

    def get_by_email(self, email: str) -> Optional[User]:
        return self._first(User.email == normalize_email(email))

    def get_by_verification_token(self, token: str) -> Optional[User]:
        if not token:
            return None
        return self._first(User.verification_token == token)

    def get_by_reset_token(self, token: str) -> Optional[User]:
        if not token:
            return None
        return self._first(User.reset_token == token)

    def get_by_refresh_token_hash(self, token_hash: str) -> Optional[User]:
        if not token_hash:
            return None
        return self._first(User.refresh_token_hash == token_hash)

    # ============== Writes ==============

    def _update(self, *criteria, **values) -> int:
        values["updated_at"] = utcnow()
        stmt = (
            update(User)
            .where(*criteria)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return result.rowcount

    def create(self, name: str, email: str, company_name: str, password_hash: str) -> User:
        email = normalize_email(email)
        user = User(
            name=name,
            email=email,
            company_name=company_name,
            password_hash=password_hash,
            email_verified=False,
        )
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            if self.get_by_email(email) is None:
                raise
            logger.info(f"Duplicate registration rejected for {email}")
            raise ConflictError(
                "A user with this email already exists",
                code="EMAIL_ALREADY_REGISTERED",
            )
        self.db.refresh(user)
        return user

    def set_refresh_token_hash(self, user_id: int, token_hash: Optional[str]) -> None:
        self._update(User.id == user_id, refresh_token_hash=token_hash)

    def swap_refresh_token_hash(self, user_id: int, expected_hash: str, new_hash: str) -> bool:
        """Replace the stored hash only if it still equals ``expected_hash``."""
        updated = self._update(
            User.id == user_id,
            User.refresh_token_hash == expected_hash,
            refresh_token_hash=new_hash,
        )
        return updated == 1

    def set_verification_token(self, user_id: int, token: str, expires_at: datetime) -> None:
        self._update(
            User.id == user_id,
            verification_token=token,
            verification_expires_at=expires_at,
        )

    def mark_email_verified(self, user_id: int, token: str) -> bool:
        """Verify the email and clear the token in one statement; False if the token moved on."""
        updated = self._update(
            User.id == user_id,
            User.verification_token == token,
            email_verified=True,
            verification_token=None,
            verification_expires_at=None,
        )
        return updated == 1

    def set_reset_token(self, user_id: int, token: str, expires_at: datetime) -> None:
        self._update(
            User.id == user_id,
            reset_token=token,
            reset_token_expires_at=expires_at,
        )

    def reset_password(self, user_id: int, token: str, password_hash: str) -> bool:
        """Replace the password, clear the reset token and log out every session."""
        updated = self._update(
            User.id == user_id,
            User.reset_token == token,
            password_hash=password_hash,
            reset_token=None,
            reset_token_expires_at=None,
            refresh_token_hash=None,
        )
        return updated == 1

    def update_password(self, user_id: int, password_hash: str) -> None:
        self._update(
            User.id == user_id,
            password_hash=password_hash,
            refresh_token_hash=None,
        )

    def increment_counter(self, email: str, column: str, amount: int) -> Optional[User]:
        """
        Atomically add ``amount`` to a counter column.

        The addition is evaluated by the database (``col = col + :amount``).

        Returns:
            The refreshed user, or None if no user has this email
        """
        counter = self._counter_column(column)
        email = normalize_email(email)
        updated = self._update(User.email == email, **{column: counter + amount})
        if not updated:
            return None
        return self.get_by_email(email)

    def increment_counter_capped(
        self, email: str, column: str, amount: int, limit: int
    ) -> Optional[User]:
        """
        Atomically add ``amount`` only while the result stays within ``limit``.

        Returns:
            The refreshed user, or None if the user is missing or the limit
            would be exceeded (callers read the row again to tell which)
        """
        counter = self._counter_column(column)
        email = normalize_email(email)
        updated = self._update(
            User.email == email,
            counter + amount <= limit,
            **{column: counter + amount},
        )
        if not updated:
            return None
        return self.get_by_email(email)

    @staticmethod
    def _counter_column(column: str):
        if column not in COUNTER_COLUMNS:
            raise ValueError(f"Unknown counter column: {column}")
        return getattr(User, column)
