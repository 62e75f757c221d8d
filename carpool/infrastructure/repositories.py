"""
Repository Pattern -- locked reads and guarded writes for rides and bookings.

Each store receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  Stores never open or commit transactions;
the orchestrating service owns the boundary.

Lock order everywhere: ride row, then booking rows, then account rows.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import BookingModel, RideModel
from carpool.domain.entities import Booking, Ride
from carpool.domain.enums import (
    ACTIVE_BOOKING_STATUSES,
    BookingStatus,
    RideStatus,
    booking_predecessors,
    ride_predecessors,
)

_BOOKING_WRITABLE = {
    "confirmation_token",
    "token_expires_at",
    "net_credits_paid",
    "passenger_confirmed_at",
}


def _to_ride(row: RideModel) -> Ride:
    return Ride(
        id=row.id,
        driver_id=row.driver_id,
        vehicle_id=row.vehicle_id,
        seats_offered=row.seats_offered,
        price_per_seat=Decimal(row.price_per_seat),
        status=RideStatus(row.status),
        total_net_credits_earned=Decimal(row.total_net_credits_earned or 0),
    )


def _to_booking(row: BookingModel) -> Booking:
    return Booking(
        id=row.id,
        user_id=row.user_id,
        ride_id=row.ride_id,
        seats_booked=row.seats_booked,
        status=BookingStatus(row.status),
        confirmation_token=row.confirmation_token,
        token_expires_at=row.token_expires_at,
        net_credits_paid=(
            Decimal(row.net_credits_paid) if row.net_credits_paid is not None else None
        ),
        passenger_confirmed_at=row.passenger_confirmed_at,
    )


class RideStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_for_update(self, ride_id: int) -> Optional[Ride]:
        """SELECT ... FOR UPDATE; held until the enclosing transaction ends."""
        result = await self.session.execute(
            select(RideModel)
            .where(RideModel.id == ride_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return _to_ride(row) if row else None

    async def update_status(self, ride_id: int, new_status: RideStatus) -> bool:
        """Single-column transition, applied only from a legal predecessor.

        Returns False when the ride is missing or its current status does not
        allow *new_status*.
        """
        result = await self.session.execute(
            update(RideModel)
            .where(
                RideModel.id == ride_id,
                RideModel.status.in_(list(ride_predecessors(new_status))),
            )
            .values(status=new_status)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def add_net_credits(self, ride_id: int, amount: Decimal) -> None:
        if amount < 0:
            raise ValueError(f"net credits must be non-negative, got {amount}")
        await self.session.execute(
            update(RideModel)
            .where(RideModel.id == ride_id)
            .values(
                total_net_credits_earned=RideModel.total_net_credits_earned + amount
            )
            .execution_options(synchronize_session=False)
        )


class BookingStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, booking_id: int) -> Optional[Booking]:
        result = await self.session.execute(
            select(BookingModel)
            .where(BookingModel.id == booking_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return _to_booking(row) if row else None

    async def get_for_update(self, booking_id: int) -> Optional[Booking]:
        result = await self.session.execute(
            select(BookingModel)
            .where(BookingModel.id == booking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return _to_booking(row) if row else None

    async def find_by_token(self, token: str) -> Optional[Booking]:
        result = await self.session.execute(
            select(BookingModel)
            .where(BookingModel.confirmation_token == token)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return _to_booking(row) if row else None

    async def find_active_for_update(
        self, ride_id: int, user_id: int
    ) -> Optional[Booking]:
        result = await self.session.execute(
            select(BookingModel)
            .where(
                BookingModel.ride_id == ride_id,
                BookingModel.user_id == user_id,
                BookingModel.status != BookingStatus.CANCELLED,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        row = result.scalars().first()
        return _to_booking(row) if row else None

    async def sum_confirmed_seats_for_update(self, ride_id: int) -> int:
        """Seats held by every non-cancelled booking on the ride.

        Locks the rows and sums in Python: PostgreSQL rejects FOR UPDATE
        on aggregate queries.
        """
        result = await self.session.execute(
            select(BookingModel.seats_booked)
            .where(
                BookingModel.ride_id == ride_id,
                BookingModel.status.in_(list(ACTIVE_BOOKING_STATUSES)),
            )
            .with_for_update()
        )
        return sum(result.scalars().all())

    async def list_for_update(
        self, ride_id: int, statuses: Iterable[BookingStatus]
    ) -> list[Booking]:
        result = await self.session.execute(
            select(BookingModel)
            .where(
                BookingModel.ride_id == ride_id,
                BookingModel.status.in_(list(statuses)),
            )
            .order_by(BookingModel.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return [_to_booking(row) for row in result.scalars().all()]

    async def count_with_status(self, ride_id: int, status: BookingStatus) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(BookingModel)
            .where(BookingModel.ride_id == ride_id, BookingModel.status == status)
        )
        return result.scalar() or 0

    async def insert(self, booking: Booking) -> int:
        row = BookingModel(
            user_id=booking.user_id,
            ride_id=booking.ride_id,
            seats_booked=booking.seats_booked,
            status=booking.status,
        )
        self.session.add(row)
        await self.session.flush()
        booking.id = row.id
        return row.id

    async def set_status(
        self,
        booking_id: int,
        new_status: BookingStatus,
        values: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """Apply *new_status* only if the row's current status permits it.

        Returns False (conflict) instead of overwriting: a booking that has
        already moved on is left untouched.  ``values`` may carry the token,
        expiry, payout and confirmation timestamp written with the transition.
        """
        extra = dict(values or {})
        unknown = set(extra) - _BOOKING_WRITABLE
        if unknown:
            raise ValueError(f"cannot write booking columns {sorted(unknown)}")
        result = await self.session.execute(
            update(BookingModel)
            .where(
                BookingModel.id == booking_id,
                BookingModel.status.in_(list(booking_predecessors(new_status))),
            )
            .values(status=new_status, **extra)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
