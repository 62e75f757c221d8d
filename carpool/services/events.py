"""
Audit events and passenger notifications.

Both are side effects that run *after* the owning transaction commits.
They are observational: a failure here is logged and dropped, never
propagated into the booking or settlement result.

Backends
--------
* ``RedisAuditPublisher``     -- ``XADD`` to a Redis stream for analytics.
* ``RedisNotificationQueue``  -- ``LPUSH`` JSON jobs consumed by the mail worker.
* ``Logging*``                -- log-only variants for local runs.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Protocol

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

CREDITS_TRANSFERRED = "credits_transferred"
COMMISSION_COLLECTED = "commission_collected"
RIDE_COMPLETED = "ride_completed"
BOOKING_CANCELLED = "booking_cancelled"


def _plain(value: Any) -> str:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


# ── Audit ─────────────────────────────────────────────────────────────


class AuditPublisher(Protocol):
    async def publish(self, event_type: str, payload: dict[str, Any]) -> None: ...


class RedisAuditPublisher:
    def __init__(
        self, client: aioredis.Redis, stream_key: str, maxlen: int = 100_000
    ):
        self.redis = client
        self.stream_key = stream_key
        self.maxlen = maxlen

    async def publish(self, event_type: str, payload: dict[str, Any]) -> None:
        fields = {k: _plain(v) for k, v in payload.items()}
        fields["event_type"] = event_type
        fields["timestamp"] = datetime.now(timezone.utc).isoformat()
        await self.redis.xadd(
            self.stream_key, fields, maxlen=self.maxlen, approximate=True
        )


class LoggingAuditPublisher:
    async def publish(self, event_type: str, payload: dict[str, Any]) -> None:
        logger.info("audit %s %s", event_type, {k: _plain(v) for k, v in payload.items()})


# ── Notifications ─────────────────────────────────────────────────────


class Notifier(Protocol):
    async def send_confirmation_request(
        self, recipient_user_id: int, ride_id: int, token: str
    ) -> None: ...

    async def send_ride_cancelled(
        self, recipient_user_id: int, ride_id: int, refund: Decimal
    ) -> None: ...


class RedisNotificationQueue:
    """Pushes jobs for the external mail worker; delivery is its problem."""

    def __init__(self, client: aioredis.Redis, queue_key: str):
        self.redis = client
        self.queue_key = queue_key

    async def _push(self, job: dict[str, Any]) -> None:
        await self.redis.lpush(self.queue_key, json.dumps(job, default=_plain))

    async def send_confirmation_request(
        self, recipient_user_id: int, ride_id: int, token: str
    ) -> None:
        await self._push(
            {
                "kind": "ride_confirmation",
                "recipient_user_id": recipient_user_id,
                "ride_id": ride_id,
                "token": token,
            }
        )

    async def send_ride_cancelled(
        self, recipient_user_id: int, ride_id: int, refund: Decimal
    ) -> None:
        await self._push(
            {
                "kind": "ride_cancelled",
                "recipient_user_id": recipient_user_id,
                "ride_id": ride_id,
                "refund": refund,
            }
        )


class LoggingNotifier:
    async def send_confirmation_request(
        self, recipient_user_id: int, ride_id: int, token: str
    ) -> None:
        logger.info(
            "Confirmation request for user #%d on ride #%d", recipient_user_id, ride_id
        )

    async def send_ride_cancelled(
        self, recipient_user_id: int, ride_id: int, refund: Decimal
    ) -> None:
        logger.info(
            "Ride #%d cancelled; user #%d refunded %s", ride_id, recipient_user_id, refund
        )


# ── Fire-and-forget ───────────────────────────────────────────────────


async def emit_best_effort(
    description: str, *calls: Callable[[], Awaitable[None]]
) -> int:
    """Run each call, logging failures.  Returns how many succeeded."""
    delivered = 0
    for call in calls:
        try:
            await call()
            delivered += 1
        except Exception:
            logger.exception("Failed to emit %s", description)
    return delivered
