"""
Settlement Service
==================

Pays the driver for one passenger-confirmed booking, exactly once.

Reached from the emailed confirmation link, which mail scanners and
impatient passengers may open many times.  Repeats are harmless: the
booking status is the idempotency gate.  Once a booking is
CONFIRMED_AND_CREDITED, every later call reports ``already_processed``
with the amount paid the first time.

Lock order: ride row, then booking row, then the driver's account.  The
token lookup that precedes them takes no lock.

Payout
------
``net = max(seats x price_per_seat - commission, 0)``.  The commission is
a flat fee per settlement.  A net of zero credits nobody but still marks
the booking settled.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from carpool.config import settings
from carpool.domain.commission import ZERO, commission_taken, net_payout
from carpool.domain.enums import BookingStatus, LedgerEntryType, RideStatus
from carpool.domain.errors import ErrorCode, InvalidStateError, InvalidTokenError
from carpool.domain.results import Failure, Result, Settlement
from carpool.infrastructure.ledger import AccountLedger
from carpool.infrastructure.repositories import BookingStore, RideStore
from carpool.services.events import (
    COMMISSION_COLLECTED,
    CREDITS_TRANSFERRED,
    RIDE_COMPLETED,
    AuditPublisher,
    LoggingAuditPublisher,
    emit_best_effort,
)
from carpool.services.transaction import run_transaction

logger = logging.getLogger(__name__)


class SettlementService:
    def __init__(
        self,
        session: AsyncSession,
        rides: Optional[RideStore] = None,
        bookings: Optional[BookingStore] = None,
        ledger: Optional[AccountLedger] = None,
        audit: Optional[AuditPublisher] = None,
        commission: Optional[Decimal] = None,
    ):
        self.session = session
        self.rides = rides or RideStore(session)
        self.bookings = bookings or BookingStore(session)
        self.ledger = ledger or AccountLedger(session)
        self.audit = audit or LoggingAuditPublisher()
        self.commission = (
            settings.platform_commission if commission is None else Decimal(commission)
        )

    async def confirm_and_settle(self, token: str) -> Result[Settlement]:
        if not token:
            return Failure(ErrorCode.INVALID_TOKEN, "Missing confirmation token")

        async def work() -> Settlement:
            found = await self.bookings.find_by_token(token)
            if found is None:
                raise InvalidTokenError()

            ride = await self.rides.get_for_update(found.ride_id)
            booking = await self.bookings.get_for_update(found.id)
            if ride is None or booking is None:
                raise InvalidTokenError()

            # Idempotency gate
            if booking.status == BookingStatus.CONFIRMED_AND_CREDITED:
                return Settlement(
                    booking_id=booking.id,
                    ride_id=ride.id,
                    passenger_id=booking.user_id,
                    driver_id=ride.driver_id,
                    already_processed=True,
                    net_amount_credited=booking.net_credits_paid or ZERO,
                )
            if booking.status != BookingStatus.CONFIRMED_PENDING_PASSENGER_CONFIRMATION:
                raise InvalidStateError(
                    f"Booking {booking.id} is {booking.status.value} and cannot be settled"
                )
            if booking.token_expired():
                raise InvalidTokenError("Confirmation link has expired")

            gross = booking.fare(ride.price_per_seat)
            net = net_payout(gross, self.commission)
            if net > ZERO:
                await self.ledger.credit(
                    ride.driver_id,
                    net,
                    LedgerEntryType.RIDE_PAYOUT,
                    ride_id=ride.id,
                    booking_id=booking.id,
                )
                await self.rides.add_net_credits(ride.id, net)

            settled = await self.bookings.set_status(
                booking.id,
                BookingStatus.CONFIRMED_AND_CREDITED,
                {
                    "net_credits_paid": net,
                    "passenger_confirmed_at": datetime.now(timezone.utc),
                },
            )
            if not settled:
                raise InvalidStateError(f"Booking {booking.id} changed concurrently")

            ride_completed = False
            outstanding = await self.bookings.count_with_status(
                ride.id, BookingStatus.CONFIRMED_PENDING_PASSENGER_CONFIRMATION
            )
            if outstanding == 0 and ride.status == RideStatus.COMPLETED_PENDING_CONFIRMATION:
                ride_completed = await self.rides.update_status(
                    ride.id, RideStatus.COMPLETED
                )

            return Settlement(
                booking_id=booking.id,
                ride_id=ride.id,
                passenger_id=booking.user_id,
                driver_id=ride.driver_id,
                already_processed=False,
                net_amount_credited=net,
                commission=commission_taken(gross, self.commission),
                ride_completed=ride_completed,
            )

        result = await run_transaction(
            self.session, work, operation="confirm_and_settle"
        )
        if not result.ok:
            return result

        settlement = result.value
        if settlement.already_processed:
            logger.info(
                "Booking #%d already settled; confirmation ignored", settlement.booking_id
            )
            return result

        logger.info(
            "Booking #%d confirmed by passenger #%d; driver #%d credited %s",
            settlement.booking_id,
            settlement.passenger_id,
            settlement.driver_id,
            settlement.net_amount_credited,
        )
        await self._emit(settlement)
        return result

    async def _emit(self, s: Settlement) -> None:
        await emit_best_effort(
            f"settlement events for booking #{s.booking_id}",
            lambda: self.audit.publish(
                CREDITS_TRANSFERRED,
                {
                    "ride_id": s.ride_id,
                    "passenger_id": s.passenger_id,
                    "driver_id": s.driver_id,
                    "amount": s.net_amount_credited,
                },
            ),
            lambda: self.audit.publish(
                COMMISSION_COLLECTED,
                {
                    "ride_id": s.ride_id,
                    "passenger_id": s.passenger_id,
                    "amount": s.commission,
                },
            ),
            lambda: self.audit.publish(
                RIDE_COMPLETED,
                {
                    "ride_id": s.ride_id,
                    "driver_id": s.driver_id,
                    "ride_closed": s.ride_completed,
                },
            ),
        )
