from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from app.db.base import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """User account: credentials, token state and feature usage counters."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)  # always lowercase
    company_name = Column(String(255), nullable=False)
    password_hash = Column(String(255), nullable=False)

    # Keyed hash of the single currently valid refresh token (NULL when logged out)
    refresh_token_hash = Column(String(64), nullable=True, index=True)

    # Email verification flow
    email_verified = Column(Boolean, nullable=False, default=False)
    verification_token = Column(String(64), nullable=True, unique=True, index=True)
    verification_expires_at = Column(DateTime(timezone=True), nullable=True)

    # Password reset flow
    reset_token = Column(String(64), nullable=True, unique=True, index=True)
    reset_token_expires_at = Column(DateTime(timezone=True), nullable=True)

    # Feature usage counters
    files_uploaded = Column(Integer, nullable=False, default=0)
    batch_analysis_count = Column(Integer, nullable=False, default=0)
    compare_resumes_count = Column(Integer, nullable=False, default=0)
    selected_candidate_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
