"""Pydantic request / response schemas for the REST API.

Wire format is camelCase (``rideId``, ``seatsBooked``); Python code uses
snake_case field names.
"""

from __future__ import annotations

from decimal import Decimal

from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from carpool.domain.entities import Booking
from carpool.domain.errors import ErrorCode
from carpool.domain.results import Failure


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Requests ──────────────────────────────────────────────────────────


class BookingCreateRequest(CamelModel):
    ride_id: int
    seats: int = Field(1, ge=1)


class ConfirmationRequest(CamelModel):
    token: str = Field(..., min_length=1, max_length=128)


# ── Responses ─────────────────────────────────────────────────────────


class BookingOut(CamelModel):
    id: int
    ride_id: int
    seats_booked: int
    status: str

    @classmethod
    def from_entity(cls, booking: Booking) -> "BookingOut":
        return cls(
            id=booking.id,
            ride_id=booking.ride_id,
            seats_booked=booking.seats_booked,
            status=booking.status.value,
        )


class BookingCreatedResponse(CamelModel):
    success: bool = True
    booking: BookingOut


class CancellationResponse(CamelModel):
    success: bool = True
    refunded: Decimal


class ConfirmationResponse(CamelModel):
    success: bool = True
    already_processed: bool
    net_amount_credited: Decimal


class RideTransitionResponse(CamelModel):
    success: bool = True
    ride_id: int
    status: str
    bookings_affected: int = 0


class ErrorResponse(CamelModel):
    success: bool = False
    code: ErrorCode
    message: str


class HealthResponse(BaseModel):
    status: str = "ok"


def failure_response(failure: Failure) -> JSONResponse:
    body = ErrorResponse(code=failure.code, message=failure.message)
    return JSONResponse(
        status_code=failure.code.http_status,
        content=body.model_dump(mode="json", by_alias=True),
    )
