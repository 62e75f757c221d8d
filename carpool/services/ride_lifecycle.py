"""
Ride lifecycle transitions driven by the ride's driver.

* ``start_ride``:  PUBLISHED -> IN_PROGRESS
* ``finish_ride``: IN_PROGRESS -> COMPLETED_PENDING_CONFIRMATION; mints one
  confirmation token per confirmed booking and asks each passenger to
  confirm.  A ride nobody booked goes straight to COMPLETED.
* ``cancel_ride``: PUBLISHED / IN_PROGRESS -> CANCELLED; every booking
  still holding seats is refunded in full and cancelled.

Notifications go out after commit and never affect the outcome.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from carpool.config import settings
from carpool.domain.entities import Ride
from carpool.domain.enums import (
    CANCELLABLE_BOOKING_STATUSES,
    BookingStatus,
    LedgerEntryType,
    RideStatus,
    can_transition_ride,
)
from carpool.domain.errors import ForbiddenError, InvalidStateError, NotFoundError
from carpool.domain.results import Ok, Result, RideTransition
from carpool.domain.tokens import new_confirmation_token, token_expiry
from carpool.infrastructure.ledger import AccountLedger
from carpool.infrastructure.repositories import BookingStore, RideStore
from carpool.services.events import LoggingNotifier, Notifier, emit_best_effort
from carpool.services.transaction import run_transaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Outbox:
    transition: RideTransition
    confirmations: tuple[tuple[int, str], ...] = ()  # (passenger, token)
    refunds: tuple[tuple[int, Decimal], ...] = ()  # (passenger, amount)


class RideLifecycleService:
    def __init__(
        self,
        session: AsyncSession,
        rides: Optional[RideStore] = None,
        bookings: Optional[BookingStore] = None,
        ledger: Optional[AccountLedger] = None,
        notifier: Optional[Notifier] = None,
        token_ttl_hours: Optional[int] = None,
    ):
        self.session = session
        self.rides = rides or RideStore(session)
        self.bookings = bookings or BookingStore(session)
        self.ledger = ledger or AccountLedger(session)
        self.notifier = notifier or LoggingNotifier()
        self.token_ttl_hours = (
            settings.confirmation_token_ttl_hours
            if token_ttl_hours is None
            else token_ttl_hours
        )

    async def _lock_own_ride(
        self, ride_id: int, driver_id: int, target: RideStatus
    ) -> Ride:
        ride = await self.rides.get_for_update(ride_id)
        if ride is None:
            raise NotFoundError("Ride", ride_id)
        if ride.driver_id != driver_id:
            raise ForbiddenError(f"User {driver_id} does not drive ride {ride_id}")
        if not can_transition_ride(ride.status, target):
            raise InvalidStateError(
                f"Ride {ride_id} is {ride.status.value}, cannot move to {target.value}"
            )
        return ride

    async def _move(self, ride: Ride, target: RideStatus) -> None:
        if not await self.rides.update_status(ride.id, target):
            raise InvalidStateError(f"Ride {ride.id} changed concurrently")
        ride.transition_to(target)

    async def start_ride(self, ride_id: int, driver_id: int) -> Result[RideTransition]:
        async def work() -> RideTransition:
            ride = await self._lock_own_ride(ride_id, driver_id, RideStatus.IN_PROGRESS)
            await self._move(ride, RideStatus.IN_PROGRESS)
            return RideTransition(ride_id=ride.id, status=ride.status.value)

        result = await run_transaction(self.session, work, operation="start_ride")
        if result.ok:
            logger.info("Ride #%d started by driver #%d", ride_id, driver_id)
        return result

    async def finish_ride(self, ride_id: int, driver_id: int) -> Result[RideTransition]:
        async def work() -> _Outbox:
            ride = await self._lock_own_ride(
                ride_id, driver_id, RideStatus.COMPLETED_PENDING_CONFIRMATION
            )
            await self._move(ride, RideStatus.COMPLETED_PENDING_CONFIRMATION)

            confirmations = []
            eligible = await self.bookings.list_for_update(
                ride.id, [BookingStatus.CONFIRMED]
            )
            for booking in eligible:
                token = new_confirmation_token(settings.confirmation_token_bytes)
                moved = await self.bookings.set_status(
                    booking.id,
                    BookingStatus.CONFIRMED_PENDING_PASSENGER_CONFIRMATION,
                    {
                        "confirmation_token": token,
                        "token_expires_at": token_expiry(self.token_ttl_hours),
                    },
                )
                if not moved:
                    raise InvalidStateError(f"Booking {booking.id} changed concurrently")
                confirmations.append((booking.user_id, token))

            if not confirmations:
                await self._move(ride, RideStatus.COMPLETED)

            return _Outbox(
                transition=RideTransition(
                    ride_id=ride.id,
                    status=ride.status.value,
                    bookings_affected=len(confirmations),
                ),
                confirmations=tuple(confirmations),
            )

        result = await run_transaction(self.session, work, operation="finish_ride")
        if not result.ok:
            return result

        outbox = result.value
        logger.info(
            "Ride #%d finished by driver #%d; %d passenger(s) asked to confirm",
            ride_id,
            driver_id,
            len(outbox.confirmations),
        )
        await emit_best_effort(
            f"confirmation requests for ride #{ride_id}",
            *[
                (lambda p=passenger, t=token: self.notifier.send_confirmation_request(p, ride_id, t))
                for passenger, token in outbox.confirmations
            ],
        )
        return Ok(outbox.transition)

    async def cancel_ride(self, ride_id: int, driver_id: int) -> Result[RideTransition]:
        async def work() -> _Outbox:
            ride = await self._lock_own_ride(ride_id, driver_id, RideStatus.CANCELLED)

            refunds = []
            held = await self.bookings.list_for_update(
                ride.id, CANCELLABLE_BOOKING_STATUSES
            )
            for booking in held:
                refund = booking.fare(ride.price_per_seat)
                await self.ledger.credit(
                    booking.user_id,
                    refund,
                    LedgerEntryType.BOOKING_REFUND,
                    ride_id=ride.id,
                    booking_id=booking.id,
                )
                if not await self.bookings.set_status(booking.id, BookingStatus.CANCELLED):
                    raise InvalidStateError(f"Booking {booking.id} changed concurrently")
                refunds.append((booking.user_id, refund))

            await self._move(ride, RideStatus.CANCELLED)
            return _Outbox(
                transition=RideTransition(
                    ride_id=ride.id,
                    status=ride.status.value,
                    bookings_affected=len(refunds),
                ),
                refunds=tuple(refunds),
            )

        result = await run_transaction(self.session, work, operation="cancel_ride")
        if not result.ok:
            return result

        outbox = result.value
        logger.info(
            "Ride #%d cancelled by driver #%d; %d passenger(s) refunded",
            ride_id,
            driver_id,
            len(outbox.refunds),
        )
        await emit_best_effort(
            f"cancellation notices for ride #{ride_id}",
            *[
                (lambda p=passenger, r=refund: self.notifier.send_ride_cancelled(p, ride_id, r))
                for passenger, refund in outbox.refunds
            ],
        )
        return Ok(outbox.transition)
