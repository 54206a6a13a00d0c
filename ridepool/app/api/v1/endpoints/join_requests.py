"""
Join request decision endpoints.

The party who did not open a join request accepts or rejects it; the
opener may withdraw it while pending, and the driver may remove a
confirmed passenger.
"""

from typing import Optional

from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from ridepool.app.db.session import get_db
from ridepool.app.core.dependencies import Identity, get_current_identity
from ridepool.app.domain.matching.join_engine import join_engine
from ridepool.app.schemas.join_request import JoinRequestCancel, JoinRequestDecisionResponse, JoinRequestResponse

router = APIRouter(prefix="/join-requests", tags=["Join Requests"])


def _decision(join_request, offer) -> JoinRequestDecisionResponse:
    return JoinRequestDecisionResponse(
        join_request=JoinRequestResponse.model_validate(join_request),
        available_seats=offer.available_seats,
        total_seats=offer.total_seats,
    )


@router.post("/{join_request_id}/accept", response_model=JoinRequestDecisionResponse)
async def accept_join_request(
    join_request_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """
    Accept a pending join request.

    Drivers accept passengers' requests; passengers accept invitations.

    Returns 409 if the offer no longer has enough seats; the join request
    then stays pending.
    """
    join_request, offer = await join_engine.accept(db, join_request_id, identity)
    return _decision(join_request, offer)


@router.post("/{join_request_id}/reject", response_model=JoinRequestDecisionResponse)
async def reject_join_request(
    join_request_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Reject a pending join request or invitation."""
    join_request, offer = await join_engine.reject(db, join_request_id, identity)
    return _decision(join_request, offer)


@router.post("/{join_request_id}/cancel", response_model=JoinRequestDecisionResponse)
async def cancel_join_request(
    join_request_id: int,
    cancel_data: Optional[JoinRequestCancel] = Body(None),
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """
    Cancel a join request.

    The opener withdraws a pending request or invitation; drivers may
    also remove a confirmed passenger, which frees their seats.
    """
    reason = cancel_data.reason if cancel_data else None
    join_request, offer = await join_engine.cancel(db, join_request_id, identity, reason)
    return _decision(join_request, offer)
