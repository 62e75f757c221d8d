"""Confirmation token minting."""

import secrets
from datetime import datetime, timedelta, timezone


def new_confirmation_token(nbytes: int = 32) -> str:
    """Unguessable, URL-safe token (``nbytes`` of randomness)."""
    return secrets.token_urlsafe(nbytes)


def token_expiry(ttl_hours: int, now: datetime | None = None) -> datetime:
    return (now or datetime.now(timezone.utc)) + timedelta(hours=ttl_hours)
