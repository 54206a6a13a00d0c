"""
Offer API endpoints.

Drivers publish offers, edit or withdraw them, review the join requests
passengers send, and invite ride requests onto their offers.
``listings_router`` accepts either listing variant in one payload,
tagged by ``kind``.
"""

from typing import Annotated, Union

from fastapi import APIRouter, Body, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from ridepool.app.db.session import get_db
from ridepool.app.core.dependencies import Identity, get_current_identity
from ridepool.app.domain.matching.join_engine import join_engine
from ridepool.app.models.offer import Offer
from ridepool.app.schemas.join_request import (
    InvitationCreate, JoinRequestCreate, JoinRequestListResponse, JoinRequestResponse,
)
from ridepool.app.schemas.listing import (
    DeleteResponse, OfferCreate, OfferResponse, OfferUpdate, RideRequestCreate, RideRequestResponse,
)
from ridepool.app.services import listing_store
from ridepool.app.services.geo_adapter import GeoAdapter, get_geo_adapter

router = APIRouter(prefix="/offers", tags=["Offers"])
listings_router = APIRouter(prefix="/listings", tags=["Offers", "Ride Requests"])


@router.post("", response_model=OfferResponse, status_code=status.HTTP_201_CREATED)
async def create_offer(
    offer_data: OfferCreate,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
    geo: GeoAdapter = Depends(get_geo_adapter)
):
    """
    Publish a ride offer for an event.

    Each leg is routed to or from the event destination. A payment, when
    asked for, may not exceed the price cap for the route.
    """
    offer = await listing_store.create_offer(db, offer_data, identity, geo)
    return listing_store.to_offer_response(offer, identity)


@router.put("/{offer_id}", response_model=OfferResponse)
async def update_offer(
    offer_id: int,
    offer_data: OfferUpdate,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
    geo: GeoAdapter = Depends(get_geo_adapter)
):
    """Update an offer (driver only)."""
    offer = await listing_store.update_offer(db, offer_id, offer_data, identity, geo)
    return listing_store.to_offer_response(offer, identity)


@router.delete("/{offer_id}", response_model=DeleteResponse)
async def delete_offer(
    offer_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """
    Withdraw an offer (driver only).

    Offers with open join requests are kept as cancelled history.
    """
    deleted, listing_status = await listing_store.delete_offer(db, offer_id, identity)
    return DeleteResponse(id=offer_id, deleted=deleted, status=listing_status)


@router.post(
    "/{offer_id}/join-requests",
    response_model=JoinRequestResponse,
    status_code=status.HTTP_201_CREATED
)
async def submit_join_request(
    offer_id: int,
    join_data: JoinRequestCreate,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
    geo: GeoAdapter = Depends(get_geo_adapter)
):
    """
    Ask to join an offer.

    The pickup point is snapped onto the driver's route and the detour is
    reported back. Seats are only taken once the driver accepts.
    """
    join_request = await join_engine.submit(db, offer_id, join_data, identity, geo)
    return JoinRequestResponse.model_validate(join_request)


@router.get("/{offer_id}/join-requests", response_model=JoinRequestListResponse)
async def list_offer_join_requests(
    offer_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """All join requests on an offer, newest first (driver only)."""
    join_requests = await join_engine.list_for_offer(db, offer_id, identity)
    return JoinRequestListResponse(
        requests=[JoinRequestResponse.model_validate(jr) for jr in join_requests],
        total=len(join_requests)
    )


@router.post(
    "/{offer_id}/invitations",
    response_model=JoinRequestResponse,
    status_code=status.HTTP_201_CREATED
)
async def invite_ride_request(
    offer_id: int,
    invitation: InvitationCreate,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
    geo: GeoAdapter = Depends(get_geo_adapter)
):
    """
    Invite a passenger's ride request onto the offer (driver only).

    The passenger accepts or rejects through the join request endpoints;
    seats are taken when they accept.
    """
    join_request = await join_engine.invite(db, offer_id, invitation, identity, geo)
    return JoinRequestResponse.model_validate(join_request)


@listings_router.post(
    "",
    response_model=Union[OfferResponse, RideRequestResponse],
    status_code=status.HTTP_201_CREATED
)
async def create_listing(
    listing_data: Annotated[Union[OfferCreate, RideRequestCreate], Body(discriminator="kind")],
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
    geo: GeoAdapter = Depends(get_geo_adapter)
):
    """Create an offer (``kind="offer"``) or a ride request (``kind="request"``)."""
    listing = await listing_store.create_listing(db, listing_data, identity, geo)
    if isinstance(listing, Offer):
        return listing_store.to_offer_response(listing, identity)
    return RideRequestResponse.model_validate(listing)
