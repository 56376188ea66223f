from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Callable, Iterator

# Settings are read at import time; keep hashing cheap and the default DB in memory.
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("EMAIL_BACKEND", "console")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from app.api.deps import get_email_sender
from app.core.config import settings
from app.core.security import get_password_hash
from app.core.tokens import TokenIssuer
from app.db.base import Base
from app.db.session import build_engine, get_db
from app.main import app
from app.models import User
from app.repositories.users import SqlAlchemyUserRepository
from app.services.auth import AuthService

TEST_PASSWORD = "Str0ng!Pass"
TOKEN_PATTERN = re.compile(r"token=([0-9a-f]{64})")


class RecordingEmailSender:
    """Email backend that keeps every message in memory."""

    def __init__(self) -> None:
        self.messages: list[dict[str, str]] = []

    async def send(self, to: str, subject: str, body: str) -> None:
        self.messages.append({"to": to, "subject": subject, "body": body})

    def sent_to(self, email: str) -> list[dict[str, str]]:
        return [m for m in self.messages if m["to"] == email]

    def last_token(self, email: str) -> str:
        messages = self.sent_to(email)
        assert messages, f"no email sent to {email}"
        match = TOKEN_PATTERN.search(messages[-1]["body"])
        assert match, "no token in email body"
        return match.group(1)


@pytest.fixture
def session_factory(tmp_path: Path) -> Iterator[sessionmaker[Session]]:
    """Fresh SQLite file database per test (a file so threads can share it)."""
    engine = build_engine(f"sqlite:///{(tmp_path / 'test.db').as_posix()}")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def db(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def users(db: Session) -> SqlAlchemyUserRepository:
    return SqlAlchemyUserRepository(db)


@pytest.fixture
def issuer() -> TokenIssuer:
    return TokenIssuer(settings)


@pytest.fixture
def outbox() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def auth_service(
    users: SqlAlchemyUserRepository,
    issuer: TokenIssuer,
    outbox: RecordingEmailSender,
) -> AuthService:
    return AuthService(users, issuer, outbox, settings)


@pytest.fixture
def make_user(users: SqlAlchemyUserRepository) -> Callable[..., User]:
    """Create a user directly in the store."""

    def _make_user(
        email: str = "alice@example.com",
        password: str = TEST_PASSWORD,
        verified: bool = True,
        name: str = "Alice",
    ) -> User:
        user = users.create(
            name=name,
            email=email,
            company_name="Acme",
            password_hash=get_password_hash(password),
        )
        if verified:
            users.set_verification_token(user.id, "0" * 64, user.created_at)
            users.mark_email_verified(user.id, "0" * 64)
        return users.get_by_id(user.id)

    return _make_user


@pytest.fixture
def client(
    session_factory: sessionmaker[Session],
    outbox: RecordingEmailSender,
) -> Iterator[TestClient]:
    def _get_db() -> Iterator[Session]:
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_email_sender] = lambda: outbox
    yield TestClient(app)
    app.dependency_overrides.clear()
