"""Transaction boundary shared by the orchestrating services.

``run_transaction`` opens one database transaction, bounds its lock waits,
and runs the unit of work inside it.  A ``CoreError`` raised by the work
rolls the whole transaction back and comes out as a ``Failure``; lock-wait
timeouts and serialization failures come out as ``Failure(Conflict)``.
Nothing is retried here.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.domain.errors import ConflictError, CoreError
from carpool.domain.results import Failure, Ok, Result
from carpool.infrastructure.database import apply_lock_timeout, is_lock_conflict

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_transaction(
    session: AsyncSession,
    work: Callable[[], Awaitable[T]],
    *,
    operation: str,
) -> Result[T]:
    try:
        async with session.begin():
            await apply_lock_timeout(session)
            value = await work()
    except CoreError as exc:
        logger.info("%s rejected [%s]: %s", operation, exc.code.value, exc.message)
        return Failure.from_error(exc)
    except DBAPIError as exc:
        if not is_lock_conflict(exc):
            raise
        logger.warning("%s aborted on lock conflict: %s", operation, exc.orig)
        return Failure.from_error(ConflictError())
    return Ok(value)
