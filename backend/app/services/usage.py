"""
Usage counter store.

Per-user feature counters with optional ceilings. Every increment is a
single UPDATE evaluated by the database; ceilings are enforced inside the
same statement (``increment only if current + amount <= limit``).
"""

from dataclasses import dataclass, field
from typing import Optional

from app.core.config import Settings, settings as default_settings
from app.core.exceptions import (
    CounterLimitExceededError,
    InvalidCounterNameError,
    UserNotFoundError,
    ValidationError,
)
from app.core.logging import get_logger
from app.models.user import User
from app.repositories.users import UserRepository, normalize_email

logger = get_logger("usage")

# Public counter name -> user column
COUNTERS: dict[str, str] = {
    "filesUploaded": "files_uploaded",
    "batchAnalysisCount": "batch_analysis_count",
    "compareResumesCount": "compare_resumes_count",
    "selectedCandidateCount": "selected_candidate_count",
}

# Largest amount a single increment may add
MAX_INCREMENT = 1000

# Names used by older API clients
COUNTER_ALIASES: dict[str, str] = {
    "files_uploaded": "filesUploaded",
    "batch_analysis": "batchAnalysisCount",
    "compare_resumes": "compareResumesCount",
    "selected_candidate": "selectedCandidateCount",
}


def resolve_counter_name(name: str) -> str:
    """Map a counter name or legacy alias to its canonical name."""
    canonical = COUNTER_ALIASES.get(name, name)
    if canonical not in COUNTERS:
        raise InvalidCounterNameError(
            f"Invalid counter name. Must be one of: {', '.join(COUNTERS)}",
        )
    return canonical


@dataclass
class UsageSnapshot:
    email: str
    counters: dict[str, int]
    limits: dict[str, int]
    remaining: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "email": self.email,
            "counters": self.counters,
            "limits": self.limits,
            "remaining": self.remaining,
        }


class UsageCounterStore:
    def __init__(self, users: UserRepository, config: Optional[Settings] = None):
        config = config or default_settings
        self.users = users
        # Limits reported to clients; only the enforced ones block increments
        self.limits: dict[str, int] = {
            "filesUploaded": config.UPLOAD_LIMIT,
            "selectedCandidateCount": config.SELECTED_CANDIDATE_LIMIT,
        }
        self.enforced_limits: dict[str, int] = {
            "selectedCandidateCount": config.SELECTED_CANDIDATE_LIMIT,
        }

    def _snapshot(self, user: User) -> UsageSnapshot:
        counters = {name: getattr(user, column) or 0 for name, column in COUNTERS.items()}
        remaining = {
            name: max(0, limit - counters[name]) for name, limit in self.limits.items()
        }
        return UsageSnapshot(
            email=user.email,
            counters=counters,
            limits=dict(self.limits),
            remaining=remaining,
        )

    def get(self, email: str) -> UsageSnapshot:
        """Read-only snapshot of a user's counters, limits and remaining quota."""
        user = self.users.get_by_email(email)
        if user is None:
            raise UserNotFoundError()
        return self._snapshot(user)

    def increment(self, email: str, counter: str, amount: int = 1) -> UsageSnapshot:
        """
        Atomically add ``amount`` to one of the user's counters.

        Raises:
            InvalidCounterNameError: unknown counter
            ValidationError: amount is not an integer in 1..MAX_INCREMENT
            UserNotFoundError: no user has this email (nothing is created)
            CounterLimitExceededError: the increment would pass the ceiling
        """
        name = resolve_counter_name(counter)
        if isinstance(amount, bool) or not isinstance(amount, int) or not 1 <= amount <= MAX_INCREMENT:
            raise ValidationError(f"Amount must be an integer between 1 and {MAX_INCREMENT}")

        email = normalize_email(email)
        column = COUNTERS[name]
        limit = self.enforced_limits.get(name)

        if limit is None:
            user = self.users.increment_counter(email, column, amount)
            if user is None:
                raise UserNotFoundError("User not found - must register first")
        else:
            user = self.users.increment_counter_capped(email, column, amount, limit)
            if user is None:
                current_user = self.users.get_by_email(email)
                if current_user is None:
                    raise UserNotFoundError("User not found - must register first")
                current = getattr(current_user, column) or 0
                logger.info(
                    f"[RATE_LIMIT] {email} exceeded {name} limit. "
                    f"Current: {current}, attempted: +{amount}, limit: {limit}"
                )
                raise CounterLimitExceededError(name, current, limit)

        logger.debug(f"Incremented {name} for {email} by {amount}")
        return self._snapshot(user)

    def stats(self, email: str) -> dict:
        """Snapshot plus upload progress for the dashboard."""
        snapshot = self.get(email)
        uploaded = snapshot.counters["filesUploaded"]
        upload_limit = self.limits["filesUploaded"]
        percentage = min(100.0, uploaded / upload_limit * 100) if upload_limit else 100.0
        return {
            **snapshot.to_dict(),
            "percentage": percentage,
            "canUpload": uploaded < upload_limit,
        }
