"""
Organizer views of an event's participants.

Drivers, passengers and every join request between them, for the event's
organizer only. Cancelled records are included so the organizer sees
the full history.
"""

from typing import List

from sqlalchemy import select, exists
from sqlalchemy.ext.asyncio import AsyncSession

from ridepool.app.core.dependencies import Identity
from ridepool.app.core.guards import ownership_guard
from ridepool.app.models.join_request import JoinRequest
from ridepool.app.models.offer import Offer
from ridepool.app.models.ride_enums import JoinRequestStatus
from ridepool.app.models.ride_request import RideRequest
from ridepool.app.schemas.join_request import JoinRequestResponse
from ridepool.app.schemas.listing import OfferResponse, RideRequestResponse
from ridepool.app.schemas.organizer import EventMatchResponse, EventPassengerResponse
from ridepool.app.services.event_service import get_event
from ridepool.app.services.listing_store import to_offer_response


async def _organized_event(db: AsyncSession, event_id: int, organizer: Identity):
    event = await get_event(db, event_id)
    ownership_guard.enforce(event.organizer_account_id, organizer, "event")
    return event


async def list_drivers(db: AsyncSession, event_id: int, organizer: Identity) -> List[OfferResponse]:
    await _organized_event(db, event_id, organizer)

    result = await db.execute(
        select(Offer)
        .where(Offer.event_id == event_id)
        .order_by(Offer.created_at.desc(), Offer.id.desc())
    )
    return [to_offer_response(offer, reveal_contact=True) for offer in result.scalars().all()]


async def list_passengers(db: AsyncSession, event_id: int, organizer: Identity) -> List[EventPassengerResponse]:
    """Ride requests under the event, flagged when a confirmed join request is linked."""
    await _organized_event(db, event_id, organizer)

    matched = exists().where(
        JoinRequest.ride_request_id == RideRequest.id,
        JoinRequest.status == JoinRequestStatus.CONFIRMED,
    )
    result = await db.execute(
        select(RideRequest, matched.label("matched"))
        .where(RideRequest.event_id == event_id)
        .order_by(RideRequest.created_at.desc(), RideRequest.id.desc())
    )
    return [
        EventPassengerResponse(**RideRequestResponse.model_validate(ride_request).model_dump(), matched=bool(is_matched))
        for ride_request, is_matched in result.all()
    ]


async def list_matches(db: AsyncSession, event_id: int, organizer: Identity) -> List[EventMatchResponse]:
    await _organized_event(db, event_id, organizer)

    result = await db.execute(
        select(JoinRequest, Offer.driver_name, Offer.driver_phone, Offer.driver_email)
        .join(Offer, Offer.id == JoinRequest.offer_id)
        .where(Offer.event_id == event_id)
        .order_by(JoinRequest.created_at.desc(), JoinRequest.id.desc())
    )
    return [
        EventMatchResponse(
            **JoinRequestResponse.model_validate(join_request).model_dump(),
            driver_name=driver_name,
            driver_phone=driver_phone,
            driver_email=driver_email,
        )
        for join_request, driver_name, driver_phone, driver_email in result.all()
    ]
