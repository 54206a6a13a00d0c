"""
Event registry service.

Events scope every offer and request. Deleting an event is soft and
cascades: listings are cancelled and open join requests are closed, so
nothing is left pointing at a dead event.
"""

import logging
import secrets
from contextlib import AsyncExitStack
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from ridepool.app.core.dependencies import Identity
from ridepool.app.core.exceptions import InsufficientPermissionsError, ResourceNotFoundError, ValidationError
from ridepool.app.core.guards import ownership_guard
from ridepool.app.domain.matching.capacity import offer_locks
from ridepool.app.domain.matching.join_engine import join_engine
from ridepool.app.models.event import Event
from ridepool.app.models.join_request import JoinRequest
from ridepool.app.models.offer import Offer
from ridepool.app.models.ride_enums import EventStatus, JoinRequestStatus, ListingStatus
from ridepool.app.models.ride_request import RideRequest
from ridepool.app.schemas.event import EventCreate, EventStatsResponse, EventUpdate
from ridepool.app.services.geo_adapter import GeoAdapter

logger = logging.getLogger(__name__)

EVENT_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
EVENT_CODE_LENGTH = 6


def generate_event_code() -> str:
    return "".join(secrets.choice(EVENT_CODE_ALPHABET) for _ in range(EVENT_CODE_LENGTH))


async def get_event(db: AsyncSession, event_id: int) -> Event:
    result = await db.execute(select(Event).where(Event.id == event_id))
    event = result.scalar_one_or_none()
    if not event:
        raise ResourceNotFoundError("Event", event_id)
    return event


async def get_active_event(db: AsyncSession, event_id: int) -> Event:
    """
    Fetch an event that can still take listings.

    Raises:
        ResourceNotFoundError: Unknown event
        ValidationError: Event was cancelled
    """
    event = await get_event(db, event_id)
    if event.status != EventStatus.ACTIVE:
        raise ValidationError("Event has been cancelled", details={"event_id": event_id})
    return event


async def get_event_by_code(
    db: AsyncSession,
    event_code: str,
    access_code: Optional[str] = None,
    identity: Optional[Identity] = None,
) -> Event:
    """
    Public lookup by event code.

    Private events require the access code unless the caller is the organizer.
    """
    result = await db.execute(select(Event).where(Event.event_code == event_code.upper()))
    event = result.scalar_one_or_none()
    if not event or event.status != EventStatus.ACTIVE:
        raise ResourceNotFoundError("Event", event_code)

    is_organizer = identity is not None and identity.account_id == event.organizer_account_id
    if event.is_private and not is_organizer and access_code != event.access_code:
        raise InsufficientPermissionsError("A valid access code is required for this event")
    return event


async def _resolve_destination(address: str, lat, lng, geo: GeoAdapter):
    if lat is not None and lng is not None:
        return lat, lng
    point = await geo.geocode(address)
    return point.lat, point.lng


async def create_event(db: AsyncSession, data: EventCreate, organizer: Identity, geo: GeoAdapter) -> Event:
    """
    Create an event organized by the caller.

    The destination is geocoded when coordinates are not supplied.
    """
    lat, lng = await _resolve_destination(
        data.destination_address, data.destination_lat, data.destination_lng, geo
    )

    event_code = generate_event_code()
    while (await db.execute(select(Event.id).where(Event.event_code == event_code))).first():
        event_code = generate_event_code()

    event = Event(
        event_code=event_code,
        organizer_account_id=organizer.account_id,
        name=data.name.strip(),
        description=data.description,
        event_date=data.event_date,
        event_time=data.event_time,
        destination_address=data.destination_address.strip(),
        destination_lat=lat,
        destination_lng=lng,
        is_private=data.is_private,
        access_code=data.access_code if data.is_private else None,
        status=EventStatus.ACTIVE,
    )
    db.add(event)
    await db.commit()
    await db.refresh(event)

    logger.info("Event created", extra={"event_id": event.id, "event_code": event.event_code})
    return event


async def update_event(
    db: AsyncSession, event_id: int, patch: EventUpdate, organizer: Identity, geo: GeoAdapter
) -> Event:
    """
    Update schedule, location or privacy of an event (organizer only).

    Moving the destination does not re-route existing offers.
    """
    event = await get_active_event(db, event_id)
    ownership_guard.enforce(event.organizer_account_id, organizer, "event")

    update_data = patch.model_dump(exclude_unset=True)

    if "destination_address" in update_data or "destination_lat" in update_data:
        address = update_data.get("destination_address", event.destination_address)
        lat, lng = await _resolve_destination(
            address, update_data.get("destination_lat"), update_data.get("destination_lng"), geo
        )
        update_data.update(destination_address=address, destination_lat=lat, destination_lng=lng)

    is_private = update_data.get("is_private", event.is_private)
    access_code = update_data.get("access_code", event.access_code)
    if is_private and not access_code:
        raise ValidationError("Private events need an access_code")

    for field, value in update_data.items():
        setattr(event, field, value)
    if not is_private:
        event.access_code = None

    await db.commit()
    await db.refresh(event)

    logger.info("Event updated", extra={"event_id": event.id, "fields": sorted(update_data)})
    return event


async def delete_event(db: AsyncSession, event_id: int, organizer: Identity) -> Event:
    """
    Soft-delete an event and invalidate everything under it.

    Offers and requests become CANCELLED and every open join request is
    closed, releasing confirmed seats. This includes confirmed passengers
    kept on offers the driver had already withdrawn. Each offer's lock is
    held until the cascade is committed, in offer id order.
    """
    event = await get_active_event(db, event_id)
    ownership_guard.enforce(event.organizer_account_id, organizer, "event")

    offer_ids = (await db.execute(
        select(Offer.id).where(Offer.event_id == event_id).order_by(Offer.id)
    )).scalars().all()

    closed = 0
    cancelled_offers = 0
    async with AsyncExitStack() as stack:
        for offer_id in offer_ids:
            await stack.enter_async_context(offer_locks.hold(offer_id))

        offers = (await db.execute(
            select(Offer).where(Offer.id.in_(offer_ids)).execution_options(populate_existing=True)
        )).scalars().all()
        for offer in offers:
            closed += await join_engine.close_for_offer(
                db, offer.id, reason="Event cancelled", include_confirmed=True
            )
            if offer.status != ListingStatus.CANCELLED:
                offer.status = ListingStatus.CANCELLED
                cancelled_offers += 1

        ride_requests = (await db.execute(
            select(RideRequest).where(
                RideRequest.event_id == event_id,
                RideRequest.status != ListingStatus.CANCELLED,
            )
        )).scalars().all()
        for ride_request in ride_requests:
            ride_request.status = ListingStatus.CANCELLED

        event.status = EventStatus.CANCELLED
        await db.commit()

    await db.refresh(event)

    logger.info(
        "Event cancelled",
        extra={
            "event_id": event_id,
            "offers_cancelled": cancelled_offers,
            "requests_cancelled": len(ride_requests),
            "join_requests_closed": closed,
        }
    )
    return event


async def event_stats(db: AsyncSession, event_id: int, organizer: Identity) -> EventStatsResponse:
    """Organizer dashboard counters for an event."""
    event = await get_event(db, event_id)
    ownership_guard.enforce(event.organizer_account_id, organizer, "event")

    offer_row = (await db.execute(
        select(
            func.count(Offer.id),
            func.coalesce(func.sum(Offer.total_seats), 0),
            func.coalesce(func.sum(Offer.available_seats), 0),
        ).where(Offer.event_id == event_id, Offer.status == ListingStatus.ACTIVE)
    )).one()

    request_counts = dict((await db.execute(
        select(RideRequest.status, func.count(RideRequest.id))
        .where(RideRequest.event_id == event_id)
        .group_by(RideRequest.status)
    )).all())

    join_counts = dict((await db.execute(
        select(JoinRequest.status, func.coalesce(func.sum(JoinRequest.passenger_count), 0))
        .join(Offer, Offer.id == JoinRequest.offer_id)
        .where(Offer.event_id == event_id, Offer.status == ListingStatus.ACTIVE)
        .group_by(JoinRequest.status)
    )).all())

    pending_count = (await db.execute(
        select(func.count(JoinRequest.id))
        .join(Offer, Offer.id == JoinRequest.offer_id)
        .where(Offer.event_id == event_id, JoinRequest.status == JoinRequestStatus.PENDING)
    )).scalar()

    return EventStatsResponse(
        event_id=event_id,
        active_offers=offer_row[0],
        active_requests=request_counts.get(ListingStatus.ACTIVE, 0),
        total_seats=offer_row[1],
        available_seats=offer_row[2],
        confirmed_passengers=join_counts.get(JoinRequestStatus.CONFIRMED, 0),
        pending_join_requests=pending_count,
        matched_requests=request_counts.get(ListingStatus.MATCHED, 0),
    )
