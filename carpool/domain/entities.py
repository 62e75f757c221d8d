"""
Domain entities with business logic.

Patterns used
-------------
- **State Pattern** on ``Ride`` and ``Booking``: enforces valid lifecycle
  transitions using the shared tables in ``enums``.
- ``Ride.has_capacity_for`` encapsulates the no-oversell invariant.
- ``Booking.fare`` prices an existing booking at the ride's seat price.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from .commission import gross_fare
from .enums import (
    CANCELLABLE_BOOKING_STATUSES,
    BookingStatus,
    RideStatus,
    can_transition_booking,
    can_transition_ride,
)


class InvalidStateTransition(Exception):
    """Raised when a status change violates the state machine."""


# ── Entities ──────────────────────────────────────────────────────────


@dataclass
class Ride:
    id: Optional[int] = None
    driver_id: int = 0
    vehicle_id: Optional[int] = None
    seats_offered: int = 1
    price_per_seat: Decimal = Decimal("0")
    status: RideStatus = RideStatus.PUBLISHED
    total_net_credits_earned: Decimal = Decimal("0")

    @property
    def is_bookable(self) -> bool:
        return self.status == RideStatus.PUBLISHED

    def has_capacity_for(self, seats: int, seats_taken: int) -> bool:
        return seats_taken + seats <= self.seats_offered

    def transition_to(self, new_status: RideStatus) -> None:
        """Move to *new_status* if the transition is legal, else raise."""
        if not can_transition_ride(self.status, new_status):
            raise InvalidStateTransition(
                f"Cannot transition ride from {self.status.value} to {new_status.value}"
            )
        self.status = new_status


@dataclass
class Booking:
    id: Optional[int] = None
    user_id: int = 0
    ride_id: int = 0
    seats_booked: int = 1
    status: BookingStatus = BookingStatus.PENDING
    confirmation_token: Optional[str] = None
    token_expires_at: Optional[datetime] = None
    net_credits_paid: Optional[Decimal] = None
    passenger_confirmed_at: Optional[datetime] = None

    @property
    def is_cancellable(self) -> bool:
        return self.status in CANCELLABLE_BOOKING_STATUSES

    def fare(self, price_per_seat: Decimal) -> Decimal:
        return gross_fare(self.seats_booked, price_per_seat)

    def token_expired(self, now: Optional[datetime] = None) -> bool:
        if self.token_expires_at is None:
            return False
        expires = self.token_expires_at
        # SQLite hands back naive datetimes; they are stored as UTC.
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        return (now or datetime.now(timezone.utc)) > expires

    def transition_to(self, new_status: BookingStatus) -> None:
        if not can_transition_booking(self.status, new_status):
            raise InvalidStateTransition(
                f"Cannot transition booking from {self.status.value} to {new_status.value}"
            )
        self.status = new_status


@dataclass(frozen=True)
class Account:
    user_id: int
    credits: Decimal
