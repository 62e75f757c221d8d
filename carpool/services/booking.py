"""
Booking Service
===============

Creates and cancels bookings.  Each operation is one transaction.

Concurrency safety
------------------
* The ride row is locked first (``SELECT ... FOR UPDATE``) and held until
  commit, so two bookings on the same ride are fully serialised: the
  second one sums seats only after the first has inserted its booking.
* The passenger debit is a guarded ``UPDATE`` and runs after the capacity
  check; if it fails, the whole transaction rolls back and no seat is held.

Algorithm (create)
------------------
1. Lock ride; it must be PUBLISHED and not driven by the passenger.
2. Lock any active booking for (ride, passenger); there must be none.
3. Lock and sum seats of active bookings; the new seats must fit.
4. Debit ``seats x price_per_seat`` from the passenger.
5. Insert the booking as CONFIRMED.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from carpool.domain.commission import gross_fare
from carpool.domain.entities import Booking
from carpool.domain.enums import BookingStatus, LedgerEntryType
from carpool.domain.errors import (
    AlreadyBookedError,
    ErrorCode,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    RideNotBookableError,
    SeatsUnavailableError,
)
from carpool.domain.results import Cancellation, Failure, Result
from carpool.infrastructure.ledger import AccountLedger
from carpool.infrastructure.repositories import BookingStore, RideStore
from carpool.services.events import (
    BOOKING_CANCELLED,
    AuditPublisher,
    LoggingAuditPublisher,
    emit_best_effort,
)
from carpool.services.transaction import run_transaction

logger = logging.getLogger(__name__)


class BookingService:
    def __init__(
        self,
        session: AsyncSession,
        rides: Optional[RideStore] = None,
        bookings: Optional[BookingStore] = None,
        ledger: Optional[AccountLedger] = None,
        audit: Optional[AuditPublisher] = None,
    ):
        self.session = session
        self.rides = rides or RideStore(session)
        self.bookings = bookings or BookingStore(session)
        self.ledger = ledger or AccountLedger(session)
        self.audit = audit or LoggingAuditPublisher()

    async def create_booking(
        self, ride_id: int, passenger_id: int, seats: int
    ) -> Result[Booking]:
        if seats < 1:
            return Failure(
                ErrorCode.VALIDATION_ERROR, f"Seat count must be at least 1, got {seats}"
            )

        async def work() -> Booking:
            ride = await self.rides.get_for_update(ride_id)
            if ride is None:
                raise NotFoundError("Ride", ride_id)
            if ride.driver_id == passenger_id:
                raise RideNotBookableError("Drivers cannot book their own ride")
            if not ride.is_bookable:
                raise RideNotBookableError(
                    f"Ride {ride_id} is {ride.status.value} and not open for booking",
                )

            existing = await self.bookings.find_active_for_update(ride_id, passenger_id)
            if existing is not None:
                raise AlreadyBookedError(passenger_id, ride_id, existing.id)

            taken = await self.bookings.sum_confirmed_seats_for_update(ride_id)
            if not ride.has_capacity_for(seats, taken):
                left = max(ride.seats_offered - taken, 0)
                raise SeatsUnavailableError(ride_id, seats, left)

            cost = gross_fare(seats, ride.price_per_seat)
            await self.ledger.debit(passenger_id, cost, ride_id=ride_id)

            booking = Booking(
                user_id=passenger_id,
                ride_id=ride_id,
                seats_booked=seats,
                status=BookingStatus.CONFIRMED,
            )
            await self.bookings.insert(booking)
            return booking

        result = await run_transaction(self.session, work, operation="create_booking")
        if result.ok:
            booking = result.value
            logger.info(
                "Booking #%d: user #%d booked %d seat(s) on ride #%d",
                booking.id,
                passenger_id,
                seats,
                ride_id,
            )
        return result

    async def cancel_booking(
        self, booking_id: int, requester_id: int
    ) -> Result[Cancellation]:
        async def work() -> Cancellation:
            # Unlocked lookup only to learn which ride to lock first.
            found = await self.bookings.get_by_id(booking_id)
            if found is None:
                raise NotFoundError("Booking", booking_id)

            ride = await self.rides.get_for_update(found.ride_id)
            booking = await self.bookings.get_for_update(booking_id)
            if ride is None or booking is None:
                raise NotFoundError("Booking", booking_id)

            if requester_id not in (booking.user_id, ride.driver_id):
                raise ForbiddenError(
                    f"User {requester_id} may not cancel booking {booking_id}"
                )
            if not booking.is_cancellable:
                raise InvalidStateError(
                    f"Booking {booking_id} is {booking.status.value} and cannot be cancelled"
                )

            refund = booking.fare(ride.price_per_seat)
            await self.ledger.credit(
                booking.user_id,
                refund,
                LedgerEntryType.BOOKING_REFUND,
                ride_id=ride.id,
                booking_id=booking.id,
            )
            if not await self.bookings.set_status(booking.id, BookingStatus.CANCELLED):
                raise InvalidStateError(f"Booking {booking_id} changed concurrently")
            booking.transition_to(BookingStatus.CANCELLED)
            return Cancellation(booking=booking, refunded=refund)

        result = await run_transaction(self.session, work, operation="cancel_booking")
        if result.ok:
            cancellation = result.value
            booking = cancellation.booking
            logger.info(
                "Booking #%d cancelled by user #%d; refunded %s to user #%d",
                booking.id,
                requester_id,
                cancellation.refunded,
                booking.user_id,
            )
            await emit_best_effort(
                BOOKING_CANCELLED,
                lambda: self.audit.publish(
                    BOOKING_CANCELLED,
                    {
                        "booking_id": booking.id,
                        "ride_id": booking.ride_id,
                        "passenger_id": booking.user_id,
                        "cancelled_by": requester_id,
                        "refund": cancellation.refunded,
                    },
                ),
            )
        return result
