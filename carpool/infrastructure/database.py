"""
Async SQLAlchemy engine and session factory.

Uses ``asyncpg`` as the PostgreSQL driver for non-blocking I/O.
Every service transaction calls ``apply_lock_timeout`` first so a blocked
``SELECT ... FOR UPDATE`` fails fast instead of hanging the request.
"""

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from carpool.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=False,
    pool_size=20,
    max_overflow=10,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""


# lock_not_available, deadlock_detected, serialization_failure
_TRANSIENT_SQLSTATES = {"55P03", "40P01", "40001"}


async def apply_lock_timeout(
    session: AsyncSession, timeout_ms: int | None = None
) -> None:
    """Bound lock waits for the current transaction (PostgreSQL only)."""
    if session.get_bind().dialect.name != "postgresql":
        return
    timeout = settings.lock_timeout_ms if timeout_ms is None else timeout_ms
    await session.execute(text(f"SET LOCAL lock_timeout = {int(timeout)}"))


def is_lock_conflict(exc: DBAPIError) -> bool:
    """True for lock-wait timeouts and serialization failures."""
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in _TRANSIENT_SQLSTATES:
        return True
    return "database is locked" in str(orig)
