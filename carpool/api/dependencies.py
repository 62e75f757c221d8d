"""FastAPI dependency injection helpers."""

from collections.abc import AsyncGenerator

from fastapi import Header
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.config import settings
from carpool.infrastructure.database import async_session_factory
from carpool.infrastructure.redis_client import get_redis
from carpool.services.events import (
    AuditPublisher,
    Notifier,
    RedisAuditPublisher,
    RedisNotificationQueue,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a fresh session; the services open and commit their own transactions."""
    async with async_session_factory() as session:
        yield session


async def get_current_user_id(x_user_id: int = Header(..., alias="X-User-Id")) -> int:
    """Authenticated caller, as resolved by the session layer in front of us."""
    return x_user_id


async def get_audit_publisher() -> AuditPublisher:
    return RedisAuditPublisher(await get_redis(), settings.audit_stream_key)


async def get_notifier() -> Notifier:
    return RedisNotificationQueue(await get_redis(), settings.notification_queue_key)
