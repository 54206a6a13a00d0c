"""
Offer and ride request store.

Creation, owner-only updates and deletes, and per-event listing for both
listing variants. Offer creation geocodes and routes every leg before
writing, and checks any requested payment against the price cap for the
route's one-way distance.
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from ridepool.app.core.dependencies import Identity
from ridepool.app.core.exceptions import CapacityExceededError, ResourceNotFoundError, ValidationError
from ridepool.app.core.guards import ownership_guard
from ridepool.app.domain.matching.capacity import capacity_allocator, offer_locks
from ridepool.app.domain.matching.geometry import Point
from ridepool.app.domain.matching.join_engine import join_engine
from ridepool.app.domain.matching.price_cap import price_cap_calculator
from ridepool.app.models.event import Event
from ridepool.app.models.join_request import JoinRequest
from ridepool.app.models.offer import Offer, OfferLeg
from ridepool.app.models.ride_enums import (
    JoinRequestStatus, ListingStatus, NON_TERMINAL_JOIN_STATUSES, PaymentMode, RidePreference, TripDirection, TripType,
)
from ridepool.app.models.ride_request import RideRequest
from ridepool.app.schemas.listing import (
    ListingCreate, OfferCreate, OfferLegResponse, OfferResponse, OfferUpdate, RideRequestCreate, RideRequestUpdate,
    RouteLegIn,
)
from ridepool.app.services.event_service import get_active_event
from ridepool.app.services.geo_adapter import GeoAdapter

logger = logging.getLogger(__name__)


# ===================== Shared helpers =====================

def resolve_contact(record, identity: Identity) -> Tuple[str, str, Optional[str]]:
    """
    Contact details for a listing: explicit overrides, else the caller's identity.

    Raises:
        ValidationError: If name or phone cannot be resolved
    """
    name = (record.name or identity.name or "").strip()
    phone = (record.phone or identity.phone or "").strip()
    email = record.email or identity.email

    if not name:
        raise ValidationError("Name is required", details={"field": "name"})
    if not phone:
        raise ValidationError("Phone is required", details={"field": "phone"})

    return name[:255], phone, email.strip().lower() if email else None


async def _build_leg(leg_in: RouteLegIn, event: Event, geo: GeoAdapter) -> OfferLeg:
    if leg_in.lat is not None:
        point = Point(leg_in.lat, leg_in.lng)
    else:
        point = await geo.geocode(leg_in.address)

    destination = Point(event.destination_lat, event.destination_lng)
    if leg_in.direction == TripDirection.GOING:
        route = await geo.route(point, destination)
    else:
        route = await geo.route(destination, point)

    polyline = route.polyline
    if not polyline:
        ends = (point, destination) if leg_in.direction == TripDirection.GOING else (destination, point)
        polyline = [list(ends[0]), list(ends[1])]

    return OfferLeg(
        direction=leg_in.direction,
        address=leg_in.address.strip(),
        lat=point.lat,
        lng=point.lng,
        departure_time=leg_in.departure_time,
        distance_km=round(route.distance_km, 3),
        duration_minutes=round(route.duration_minutes, 1),
        polyline=polyline,
    )


async def build_legs(legs_in: List[RouteLegIn], event: Event, geo: GeoAdapter) -> List[OfferLeg]:
    """Geocode and route every leg; nothing is written if any lookup fails."""
    return [await _build_leg(leg_in, event, geo) for leg_in in legs_in]


def route_distance_km(legs) -> float:
    """One-way distance the price cap is based on: the going leg when present."""
    for leg in legs:
        if leg.direction == TripDirection.GOING:
            return leg.distance_km
    return legs[0].distance_km if legs else 0.0


async def confirmed_seats(db: AsyncSession, offer_id: int) -> int:
    result = await db.execute(
        select(func.coalesce(func.sum(JoinRequest.passenger_count), 0)).where(
            JoinRequest.offer_id == offer_id,
            JoinRequest.status == JoinRequestStatus.CONFIRMED,
        )
    )
    return result.scalar()


async def has_open_join_requests(db: AsyncSession, **criteria) -> bool:
    conditions = [getattr(JoinRequest, column) == value for column, value in criteria.items()]
    result = await db.execute(
        select(JoinRequest.id).where(JoinRequest.status.in_(NON_TERMINAL_JOIN_STATUSES), *conditions).limit(1)
    )
    return result.first() is not None


def to_offer_response(
    offer: Offer,
    viewer: Optional[Identity] = None,
    confirmed: Optional[int] = None,
    reveal_contact: bool = False,
) -> OfferResponse:
    """
    Serialize an offer, masking hidden contact fields for anyone but the
    owner unless ``reveal_contact`` (the event organizer's view).

    ``available_seats`` is derived from confirmed join requests when
    ``confirmed`` is given.
    """
    show_contact = reveal_contact or (viewer is not None and viewer.account_id == offer.owner_account_id)
    available = offer.total_seats - confirmed if confirmed is not None else offer.available_seats

    return OfferResponse(
        id=offer.id,
        event_id=offer.event_id,
        owner_account_id=offer.owner_account_id,
        driver_name=offer.driver_name if show_contact or not offer.hide_name else None,
        driver_phone=offer.driver_phone if show_contact or not offer.hide_phone else None,
        driver_email=offer.driver_email if show_contact or not offer.hide_email else None,
        total_seats=offer.total_seats,
        available_seats=available,
        preference=offer.preference,
        description=offer.description,
        payment_mode=offer.payment_mode,
        payment_amount=offer.payment_amount,
        payment_method=offer.payment_method,
        price_cap=price_cap_calculator.cap(route_distance_km(offer.legs)),
        status=offer.status,
        legs=[OfferLegResponse.model_validate(leg) for leg in offer.legs],
        created_at=offer.created_at,
        updated_at=offer.updated_at,
    )


# ===================== Create =====================

async def create_listing(db: AsyncSession, record: ListingCreate, identity: Identity, geo: GeoAdapter):
    """
    Create an offer or ride request, dispatching on the payload's ``kind``.
    """
    if isinstance(record, OfferCreate):
        return await create_offer(db, record, identity, geo)
    if isinstance(record, RideRequestCreate):
        return await create_ride_request(db, record, identity, geo)
    raise ValidationError("Unknown listing kind", details={"kind": getattr(record, "kind", None)})


async def create_offer(db: AsyncSession, record: OfferCreate, identity: Identity, geo: GeoAdapter) -> Offer:
    """
    Create an offer with status ACTIVE and every seat available.

    Raises:
        ValidationError: Missing identity fields or bad seat count
        InvalidPaymentError: Payment outside the price cap or missing method
        ResourceNotFoundError: Unknown event
        ExternalLookupFailedError: A leg could not be geocoded or routed
    """
    event = await get_active_event(db, record.event_id)
    name, phone, email = resolve_contact(record, identity)

    if record.total_seats < 1:
        raise ValidationError("Total seats must be at least 1", details={"total_seats": record.total_seats})

    legs = await build_legs(record.legs, event, geo)

    payment = record.payment
    price_cap_calculator.validate_policy(payment.mode, payment.amount, payment.method, route_distance_km(legs))

    offer = Offer(
        event_id=event.id,
        owner_account_id=identity.account_id,
        driver_name=name,
        driver_phone=phone,
        driver_email=email,
        hide_name=record.hide_name,
        hide_phone=record.hide_phone,
        hide_email=record.hide_email,
        total_seats=record.total_seats,
        available_seats=record.total_seats,
        preference=record.preference,
        description=record.notes.strip() if record.notes else None,
        payment_mode=payment.mode,
        payment_amount=payment.amount if payment.mode != PaymentMode.NOT_REQUIRED else None,
        payment_method=payment.method if payment.mode != PaymentMode.NOT_REQUIRED else None,
        status=ListingStatus.ACTIVE,
        legs=legs,
    )
    db.add(offer)
    await db.commit()
    await db.refresh(offer)

    logger.info(
        "Offer created",
        extra={"offer_id": offer.id, "event_id": event.id, "total_seats": offer.total_seats}
    )
    return offer


async def create_ride_request(
    db: AsyncSession, record: RideRequestCreate, identity: Identity, geo: GeoAdapter
) -> RideRequest:
    """
    Create a ride request with status ACTIVE.

    A pickup address without coordinates is geocoded.
    """
    event = await get_active_event(db, record.event_id)
    name, phone, email = resolve_contact(record, identity)

    if (record.pickup_lat is None) != (record.pickup_lng is None):
        raise ValidationError("pickup_lat and pickup_lng must be given together")

    pickup_lat, pickup_lng = record.pickup_lat, record.pickup_lng
    if pickup_lat is None and record.pickup_address:
        point = await geo.geocode(record.pickup_address)
        pickup_lat, pickup_lng = point.lat, point.lng

    ride_request = RideRequest(
        event_id=event.id,
        owner_account_id=identity.account_id,
        passenger_name=name,
        passenger_phone=phone,
        passenger_email=email,
        trip_type=record.trip_type,
        passenger_count=record.passenger_count,
        preference=record.preference,
        pickup_address=record.pickup_address.strip() if record.pickup_address else None,
        pickup_lat=pickup_lat,
        pickup_lng=pickup_lng,
        notes=record.notes.strip() if record.notes else None,
        status=ListingStatus.ACTIVE,
    )
    db.add(ride_request)
    await db.commit()
    await db.refresh(ride_request)

    logger.info("Ride request created", extra={"ride_request_id": ride_request.id, "event_id": event.id})
    return ride_request


# ===================== Read =====================

async def get_offer(db: AsyncSession, offer_id: int) -> Offer:
    result = await db.execute(select(Offer).where(Offer.id == offer_id))
    offer = result.scalar_one_or_none()
    if not offer:
        raise ResourceNotFoundError("Offer", offer_id)
    return offer


async def get_ride_request(db: AsyncSession, ride_request_id: int) -> RideRequest:
    result = await db.execute(select(RideRequest).where(RideRequest.id == ride_request_id))
    ride_request = result.scalar_one_or_none()
    if not ride_request:
        raise ResourceNotFoundError("Ride request", ride_request_id)
    return ride_request


async def list_offers(
    db: AsyncSession,
    event_id: int,
    viewer: Optional[Identity] = None,
    direction: Optional[TripDirection] = None,
    preference: Optional[RidePreference] = None,
    min_seats: Optional[int] = None,
) -> List[OfferResponse]:
    """
    Active offers for an event, annotated with seats still available.

    Args:
        direction: Only offers with a leg in this direction
        preference: Only offers with this passenger preference
        min_seats: Only offers with at least this many seats available
    """
    await get_active_event(db, event_id)

    confirmed_subquery = (
        select(
            JoinRequest.offer_id,
            func.sum(JoinRequest.passenger_count).label("confirmed"),
        )
        .where(JoinRequest.status == JoinRequestStatus.CONFIRMED)
        .group_by(JoinRequest.offer_id)
        .subquery()
    )
    query = (
        select(Offer, func.coalesce(confirmed_subquery.c.confirmed, 0))
        .outerjoin(confirmed_subquery, confirmed_subquery.c.offer_id == Offer.id)
        .where(Offer.event_id == event_id, Offer.status == ListingStatus.ACTIVE)
        .order_by(Offer.created_at.desc(), Offer.id.desc())
    )
    if preference is not None:
        query = query.where(Offer.preference == preference)
    if direction is not None:
        query = query.where(
            Offer.id.in_(select(OfferLeg.offer_id).where(OfferLeg.direction == direction))
        )

    offers = []
    for offer, confirmed in (await db.execute(query)).all():
        response = to_offer_response(offer, viewer, confirmed=confirmed)
        if min_seats is not None and response.available_seats < min_seats:
            continue
        offers.append(response)
    return offers


async def list_ride_requests(
    db: AsyncSession,
    event_id: int,
    trip_type: Optional[TripType] = None,
    preference: Optional[RidePreference] = None,
) -> List[RideRequest]:
    """Active ride requests for an event. Matched requests are no longer listed."""
    await get_active_event(db, event_id)

    query = (
        select(RideRequest)
        .where(RideRequest.event_id == event_id, RideRequest.status == ListingStatus.ACTIVE)
        .order_by(RideRequest.created_at.desc(), RideRequest.id.desc())
    )
    if trip_type is not None:
        # BOTH requests are interesting for either direction
        query = query.where(RideRequest.trip_type.in_([trip_type, TripType.BOTH]))
    if preference is not None:
        query = query.where(RideRequest.preference == preference)

    return list((await db.execute(query)).scalars().all())


async def list_my_offers(db: AsyncSession, identity: Identity) -> List[OfferResponse]:
    result = await db.execute(
        select(Offer)
        .where(Offer.owner_account_id == identity.account_id)
        .order_by(Offer.created_at.desc(), Offer.id.desc())
    )
    return [to_offer_response(offer, identity) for offer in result.scalars().all()]


async def list_my_ride_requests(db: AsyncSession, identity: Identity) -> List[RideRequest]:
    result = await db.execute(
        select(RideRequest)
        .where(RideRequest.owner_account_id == identity.account_id)
        .order_by(RideRequest.created_at.desc(), RideRequest.id.desc())
    )
    return list(result.scalars().all())


# ===================== Update =====================

async def update_offer(
    db: AsyncSession, offer_id: int, patch: OfferUpdate, identity: Identity, geo: GeoAdapter
) -> Offer:
    """
    Update an offer (owner only).

    ``total_seats`` can never drop below the seats already confirmed.
    New legs are re-routed and any payment is re-checked against the
    resulting price cap.

    Raises:
        InsufficientPermissionsError: Caller does not own the offer
        CapacityExceededError: New total is below the confirmed seat count
        InvalidPaymentError: Payment outside the new cap
    """
    offer = await get_offer(db, offer_id)
    ownership_guard.enforce(offer.owner_account_id, identity, "offer")
    if offer.status != ListingStatus.ACTIVE:
        raise ValidationError("Cancelled offers cannot be updated", details={"offer_id": offer_id})

    update_data = patch.model_dump(exclude_unset=True, exclude={"legs", "payment", "total_seats"})

    legs = offer.legs
    if patch.legs is not None:
        directions = [leg.direction for leg in patch.legs]
        if len(set(directions)) != len(directions):
            raise ValidationError("Each leg direction may appear only once")
        event = await get_active_event(db, offer.event_id)
        legs = await build_legs(patch.legs, event, geo)

    if patch.payment is not None:
        mode, amount, method = patch.payment.mode, patch.payment.amount, patch.payment.method
    else:
        mode, amount, method = offer.payment_mode, offer.payment_amount, offer.payment_method
    if patch.payment is not None or patch.legs is not None:
        price_cap_calculator.validate_policy(mode, amount, method, route_distance_km(legs))

    async with offer_locks.hold(offer_id):
        if patch.total_seats is not None and patch.total_seats != offer.total_seats:
            confirmed = await confirmed_seats(db, offer_id)
            if not await capacity_allocator.resize(db, offer_id, patch.total_seats, confirmed):
                await db.rollback()
                raise CapacityExceededError(offer_id, confirmed, patch.total_seats)

        if patch.legs is not None:
            # Old legs must be gone before new ones reuse their directions
            offer.legs.clear()
            await db.flush()
            offer.legs.extend(legs)
        if patch.payment is not None:
            offer.payment_mode = mode
            offer.payment_amount = amount if mode != PaymentMode.NOT_REQUIRED else None
            offer.payment_method = method if mode != PaymentMode.NOT_REQUIRED else None

        for field, value in update_data.items():
            if field == "name":
                offer.driver_name = value.strip()
            elif field == "phone":
                offer.driver_phone = value.strip()
            elif field == "email":
                offer.driver_email = value.lower() if value else None
            elif field == "notes":
                offer.description = value
            else:
                setattr(offer, field, value)

        await db.commit()
        await db.refresh(offer)

    logger.info("Offer updated", extra={"offer_id": offer_id, "fields": sorted(patch.model_dump(exclude_unset=True))})
    return offer


async def update_ride_request(
    db: AsyncSession, ride_request_id: int, patch: RideRequestUpdate, identity: Identity, geo: GeoAdapter
) -> RideRequest:
    """Update a ride request (owner only)."""
    ride_request = await get_ride_request(db, ride_request_id)
    ownership_guard.enforce(ride_request.owner_account_id, identity, "ride request")
    if ride_request.status == ListingStatus.CANCELLED:
        raise ValidationError("Cancelled requests cannot be updated", details={"ride_request_id": ride_request_id})

    update_data = patch.model_dump(exclude_unset=True)

    if "pickup_address" in update_data and "pickup_lat" not in update_data and update_data["pickup_address"]:
        point = await geo.geocode(update_data["pickup_address"])
        update_data.update(pickup_lat=point.lat, pickup_lng=point.lng)

    renames = {"name": "passenger_name", "phone": "passenger_phone", "email": "passenger_email"}
    for field, value in update_data.items():
        setattr(ride_request, renames.get(field, field), value)

    await db.commit()
    await db.refresh(ride_request)

    logger.info("Ride request updated", extra={"ride_request_id": ride_request_id, "fields": sorted(update_data)})
    return ride_request


# ===================== Delete =====================

async def delete_offer(db: AsyncSession, offer_id: int, identity: Identity) -> Tuple[bool, ListingStatus]:
    """
    Delete an offer (owner only).

    While any join request on the offer is open the offer is kept as
    CANCELLED history; pending join requests are closed. Otherwise the
    row is removed.

    Returns:
        (deleted, status)
    """
    offer = await get_offer(db, offer_id)
    ownership_guard.enforce(offer.owner_account_id, identity, "offer")

    async with offer_locks.hold(offer_id):
        if await has_open_join_requests(db, offer_id=offer_id):
            await join_engine.close_for_offer(db, offer_id, reason="Offer withdrawn by driver")
            offer.status = ListingStatus.CANCELLED
            await db.commit()
            logger.info("Offer cancelled", extra={"offer_id": offer_id})
            return False, ListingStatus.CANCELLED

        await db.delete(offer)
        await db.commit()

    logger.info("Offer deleted", extra={"offer_id": offer_id})
    return True, ListingStatus.CANCELLED


async def delete_ride_request(db: AsyncSession, ride_request_id: int, identity: Identity) -> Tuple[bool, ListingStatus]:
    """
    Delete a ride request (owner only).

    Kept as CANCELLED while a join request made on its behalf is open.
    """
    ride_request = await get_ride_request(db, ride_request_id)
    ownership_guard.enforce(ride_request.owner_account_id, identity, "ride request")

    if await has_open_join_requests(db, ride_request_id=ride_request_id):
        ride_request.status = ListingStatus.CANCELLED
        await db.commit()
        logger.info("Ride request cancelled", extra={"ride_request_id": ride_request_id})
        return False, ListingStatus.CANCELLED

    await db.delete(ride_request)
    await db.commit()

    logger.info("Ride request deleted", extra={"ride_request_id": ride_request_id})
    return True, ListingStatus.CANCELLED
