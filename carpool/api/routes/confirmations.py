"""
Confirmation endpoints
======================

GET  /api/v1/confirmations/{token} -- link from the post-ride email
POST /api/v1/confirmations         -- same, token in the body

Both are safe to repeat: a settled booking answers ``alreadyProcessed``.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.api.dependencies import get_audit_publisher, get_db
from carpool.api.middleware import RATE_LIMIT, limiter
from carpool.api.schemas import (
    ConfirmationRequest,
    ConfirmationResponse,
    ErrorResponse,
    failure_response,
)
from carpool.services.events import AuditPublisher
from carpool.services.settlement import SettlementService

router = APIRouter(prefix="/confirmations", tags=["confirmations"])

_ERRORS = {404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}


async def _settle(token: str, db: AsyncSession, audit: AuditPublisher):
    result = await SettlementService(db, audit=audit).confirm_and_settle(token)
    if not result.ok:
        return failure_response(result)
    return ConfirmationResponse(
        already_processed=result.value.already_processed,
        net_amount_credited=result.value.net_amount_credited,
    )


@router.get(
    "/{token}",
    response_model=ConfirmationResponse,
    summary="Confirm a completed ride from the emailed link",
    responses=_ERRORS,
)
@limiter.limit(RATE_LIMIT)
async def confirm_from_link(
    request: Request,
    token: str,
    db: AsyncSession = Depends(get_db),
    audit: AuditPublisher = Depends(get_audit_publisher),
):
    return await _settle(token, db, audit)


@router.post(
    "",
    response_model=ConfirmationResponse,
    summary="Confirm a completed ride",
    responses=_ERRORS,
)
@limiter.limit(RATE_LIMIT)
async def confirm(
    request: Request,
    body: ConfirmationRequest,
    db: AsyncSession = Depends(get_db),
    audit: AuditPublisher = Depends(get_audit_publisher),
):
    return await _settle(body.token, db, audit)
