"""
Application error taxonomy.

Every error carries an HTTP status, a stable machine-readable code and a
human-readable message. The handlers registered in ``app.main`` turn them
into the standard JSON envelope.
"""

from typing import Any, Optional


class AppError(Exception):
    """Base class for errors reported to API clients."""

    status_code: int = 500
    code: str = "SERVER_ERROR"
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        code: Optional[str] = None,
        details: Optional[list[Any]] = None,
        extra: Optional[dict[str, Any]] = None,
    ):
        self.message = message or self.message
        self.code = code or self.code
        self.details = details or []
        self.extra = extra or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "success": False,
            "message": self.message,
            "error": self.code,
        }
        if self.details:
            body["details"] = self.details
        body.update(self.extra)
        return body


# ============== Base Categories ==============


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"
    message = "Validation Error"


class AuthenticationError(AppError):
    status_code = 401
    code = "UNAUTHENTICATED"
    message = "Authentication required"


class AuthorizationError(AppError):
    status_code = 403
    code = "FORBIDDEN"
    message = "You do not have access to this resource"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"
    message = "Resource not found"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"
    message = "Resource already exists"


class RateLimitError(AppError):
    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"
    message = "Usage limit reached"


class InternalError(AppError):
    status_code = 500
    code = "SERVER_ERROR"
    message = "Internal Server Error"


# ============== Authentication ==============


class InvalidTokenError(AuthenticationError):
    """
    A signed token failed verification.

    ``reason`` records why (expired, bad signature, malformed, wrong type)
    for the logs; clients only ever see the generic message.
    """

    code = "INVALID_TOKEN"
    message = "Invalid or expired token"

    def __init__(self, reason: str = "invalid", message: Optional[str] = None):
        self.reason = reason
        super().__init__(message)


class InvalidCredentialsError(AuthenticationError):
    code = "INVALID_CREDENTIALS"
    message = "Invalid email or password"


class VerificationRequiredError(AuthorizationError):
    code = "VERIFICATION_REQUIRED"
    message = "Email verification required"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message, extra={"requiresVerification": True})


# ============== Single-Use Tokens ==============


class TokenNotFoundError(ValidationError):
    code = "INVALID_TOKEN"
    message = "Invalid or unknown token"


class TokenExpiredError(ValidationError):
    code = "TOKEN_EXPIRED"
    message = "Token has expired"


class TokenAlreadyConsumedError(ValidationError):
    code = "ALREADY_CONSUMED"
    message = "Token has already been used"


# ============== Usage Counters ==============


class UserNotFoundError(NotFoundError):
    code = "USER_NOT_FOUND"
    message = "User not found"


class InvalidCounterNameError(ValidationError):
    code = "INVALID_COUNTER"
    message = "Invalid counter name"


class CounterLimitExceededError(RateLimitError):
    def __init__(self, counter: str, current: int, limit: int, message: Optional[str] = None):
        self.counter = counter
        self.current = current
        self.limit = limit
        super().__init__(
            message or f"You've reached your limit of {limit} for {counter}",
            extra={
                "counter": counter,
                "current_count": current,
                "limit": limit,
                "remaining": max(0, limit - current),
            },
        )
