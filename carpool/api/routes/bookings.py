"""
Booking endpoints
=================

POST /api/v1/bookings                      -- book seats on a published ride
POST /api/v1/bookings/{booking_id}/cancel  -- cancel and refund a booking
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.api.dependencies import get_audit_publisher, get_current_user_id, get_db
from carpool.api.middleware import RATE_LIMIT, limiter
from carpool.api.schemas import (
    BookingCreatedResponse,
    BookingCreateRequest,
    BookingOut,
    CancellationResponse,
    ErrorResponse,
    failure_response,
)
from carpool.services.booking import BookingService
from carpool.services.events import AuditPublisher

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post(
    "",
    status_code=201,
    response_model=BookingCreatedResponse,
    summary="Book seats on a ride",
    responses={
        402: {"model": ErrorResponse, "description": "InsufficientCredits"},
        404: {"model": ErrorResponse, "description": "Ride not found"},
        409: {
            "model": ErrorResponse,
            "description": "SeatsUnavailable, AlreadyBooked or RideNotBookable",
        },
    },
)
@limiter.limit(RATE_LIMIT)
async def create_booking(
    request: Request,
    body: BookingCreateRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    audit: AuditPublisher = Depends(get_audit_publisher),
):
    result = await BookingService(db, audit=audit).create_booking(
        body.ride_id, user_id, body.seats
    )
    if not result.ok:
        return failure_response(result)
    return BookingCreatedResponse(booking=BookingOut.from_entity(result.value))


@router.post(
    "/{booking_id}/cancel",
    response_model=CancellationResponse,
    summary="Cancel a booking",
    description=(
        "Cancels a PENDING or CONFIRMED booking and refunds the passenger in "
        "full. Allowed for the passenger and for the ride's driver."
    ),
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
@limiter.limit(RATE_LIMIT)
async def cancel_booking(
    request: Request,
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    audit: AuditPublisher = Depends(get_audit_publisher),
):
    result = await BookingService(db, audit=audit).cancel_booking(booking_id, user_id)
    if not result.ok:
        return failure_response(result)
    return CancellationResponse(refunded=result.value.refunded)
