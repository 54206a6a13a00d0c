"""
"My rides" endpoints: everything the caller has published or asked for.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from ridepool.app.db.session import get_db
from ridepool.app.core.dependencies import Identity, get_current_identity
from ridepool.app.domain.matching.join_engine import join_engine
from ridepool.app.models.ride_enums import JoinInitiator
from ridepool.app.schemas.join_request import JoinRequestListResponse, JoinRequestResponse
from ridepool.app.schemas.listing import OfferListResponse, RideRequestListResponse, RideRequestResponse
from ridepool.app.services import listing_store

router = APIRouter(prefix="/me", tags=["My Rides"])


@router.get("/offers", response_model=OfferListResponse)
async def list_my_offers(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """The caller's offers across all events, including cancelled ones."""
    offers = await listing_store.list_my_offers(db, identity)
    return OfferListResponse(offers=offers, total=len(offers))


@router.get("/requests", response_model=RideRequestListResponse)
async def list_my_ride_requests(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    ride_requests = await listing_store.list_my_ride_requests(db, identity)
    return RideRequestListResponse(
        requests=[RideRequestResponse.model_validate(r) for r in ride_requests],
        total=len(ride_requests)
    )


@router.get("/join-requests", response_model=JoinRequestListResponse)
async def list_my_join_requests(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """The caller's join requests, including invitations received, newest first."""
    join_requests = await join_engine.list_for_requester(db, identity)
    return JoinRequestListResponse(
        requests=[JoinRequestResponse.model_validate(jr) for jr in join_requests],
        total=len(join_requests)
    )


@router.get("/invitations", response_model=JoinRequestListResponse)
async def list_my_invitations(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Invitations drivers have sent to the caller's ride requests."""
    invitations = await join_engine.list_for_requester(db, identity, initiated_by=JoinInitiator.DRIVER)
    return JoinRequestListResponse(
        requests=[JoinRequestResponse.model_validate(jr) for jr in invitations],
        total=len(invitations)
    )
