"""
Ride lifecycle endpoints (driver only)
======================================

POST /api/v1/rides/{ride_id}/start  -- PUBLISHED -> IN_PROGRESS
POST /api/v1/rides/{ride_id}/finish -- IN_PROGRESS -> COMPLETED_PENDING_CONFIRMATION
POST /api/v1/rides/{ride_id}/cancel -- refund every passenger, then CANCELLED
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.api.dependencies import get_current_user_id, get_db, get_notifier
from carpool.api.middleware import RATE_LIMIT, limiter
from carpool.api.schemas import ErrorResponse, RideTransitionResponse, failure_response
from carpool.domain.results import Result, RideTransition
from carpool.services.events import Notifier
from carpool.services.ride_lifecycle import RideLifecycleService

router = APIRouter(prefix="/rides", tags=["rides"])

_ERRORS = {
    403: {"model": ErrorResponse, "description": "Caller does not drive this ride"},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse, "description": "Ride is not in a state allowing this"},
}


def _respond(result: Result[RideTransition]):
    if not result.ok:
        return failure_response(result)
    t = result.value
    return RideTransitionResponse(
        ride_id=t.ride_id, status=t.status, bookings_affected=t.bookings_affected
    )


@router.post(
    "/{ride_id}/start",
    response_model=RideTransitionResponse,
    summary="Start a ride",
    responses=_ERRORS,
)
@limiter.limit(RATE_LIMIT)
async def start_ride(
    request: Request,
    ride_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return _respond(await RideLifecycleService(db).start_ride(ride_id, user_id))


@router.post(
    "/{ride_id}/finish",
    response_model=RideTransitionResponse,
    summary="Finish a ride and ask passengers to confirm",
    responses=_ERRORS,
)
@limiter.limit(RATE_LIMIT)
async def finish_ride(
    request: Request,
    ride_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    service = RideLifecycleService(db, notifier=notifier)
    return _respond(await service.finish_ride(ride_id, user_id))


@router.post(
    "/{ride_id}/cancel",
    response_model=RideTransitionResponse,
    summary="Cancel a ride and refund its passengers",
    responses=_ERRORS,
)
@limiter.limit(RATE_LIMIT)
async def cancel_ride(
    request: Request,
    ride_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    service = RideLifecycleService(db, notifier=notifier)
    return _respond(await service.cancel_ride(ride_id, user_id))
