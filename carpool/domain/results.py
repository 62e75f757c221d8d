"""Result values returned by the orchestrating services.

``Ok`` wraps a success payload; ``Failure`` carries an ``ErrorCode`` and a
human-readable message. Callers branch on ``result.ok``.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Generic, TypeVar, Union

from .entities import Booking
from .errors import CoreError, ErrorCode

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T
    ok: bool = True


@dataclass(frozen=True)
class Failure:
    code: ErrorCode
    message: str
    ok: bool = False

    @classmethod
    def from_error(cls, exc: CoreError) -> "Failure":
        return cls(code=exc.code, message=exc.message)


Result = Union[Ok[T], Failure]


@dataclass(frozen=True)
class Settlement:
    booking_id: int
    ride_id: int
    passenger_id: int
    driver_id: int
    already_processed: bool
    net_amount_credited: Decimal
    commission: Decimal = Decimal("0")
    ride_completed: bool = False


@dataclass(frozen=True)
class Cancellation:
    booking: Booking
    refunded: Decimal


@dataclass(frozen=True)
class RideTransition:
    ride_id: int
    status: str
    bookings_affected: int = 0
