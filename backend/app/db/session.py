"""
Database engine and session management.

The database URL comes from settings (``DATABASE_URL``). Request handlers
receive a session through the ``get_db`` dependency.
"""

from collections.abc import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import settings


def build_engine(database_url: str) -> Engine:
    """Create an engine, allowing SQLite connections to be shared across threads."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": 30}
    return create_engine(database_url, connect_args=connect_args, future=True)


engine = build_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_db() -> Iterator[Session]:
    """Provide one session per request and always close it."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
