"""
Join request engine.

Drives the passenger-to-offer lifecycle:

    PENDING -> CONFIRMED   (the other party accepts, seats reserved)
    PENDING -> REJECTED    (the other party declines)
    PENDING -> CANCELLED   (the initiator withdraws)
    CONFIRMED -> CANCELLED (driver removes passenger, seats released)

A join request is opened either by the passenger asking to join an offer
or by the driver inviting a ride request. Whoever did not open it
decides. Accept and cancel run under the offer's lock and change seats
only through the capacity allocator, so the sum of confirmed passenger
counts never exceeds the offer's total seats.
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ridepool.app.core.config import settings
from ridepool.app.core.dependencies import Identity
from ridepool.app.core.exceptions import (
    CapacityExceededError, ResourceNotFoundError, ValidationError,
)
from ridepool.app.core.guards import ownership_guard
from ridepool.app.domain.matching.capacity import CapacityAllocator, OfferLockRegistry, capacity_allocator, offer_locks
from ridepool.app.domain.matching.geometry import Point
from ridepool.app.domain.matching.pickup_projector import project_pickup
from ridepool.app.models.account import Account
from ridepool.app.models.join_request import JoinRequest
from ridepool.app.models.offer import Offer
from ridepool.app.models.ride_enums import (
    Gender, JoinInitiator, JoinRequestStatus, ListingStatus, NON_TERMINAL_JOIN_STATUSES, RidePreference,
    TripDirection, TripType,
)
from ridepool.app.models.ride_request import RideRequest
from ridepool.app.schemas.join_request import InvitationCreate, JoinRequestCreate
from ridepool.app.services.geo_adapter import GeoAdapter

logger = logging.getLogger(__name__)


def preference_allows(preference: RidePreference, gender: Gender) -> bool:
    """An unspecified gender never conflicts with a preference."""
    if preference == RidePreference.ANY or gender == Gender.UNSPECIFIED:
        return True
    return preference.value == gender.value


async def _fresh(db: AsyncSession, model, record_id: int):
    result = await db.execute(
        select(model).where(model.id == record_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


class JoinRequestEngine:
    """Orchestrates submit/invite/accept/reject/cancel for join requests."""

    def __init__(
        self,
        allocator: CapacityAllocator = capacity_allocator,
        locks: OfferLockRegistry = offer_locks,
    ):
        self.allocator = allocator
        self.locks = locks

    # ===================== Lookups =====================

    async def _get_offer(self, db: AsyncSession, offer_id: int) -> Offer:
        offer = await _fresh(db, Offer, offer_id)
        if not offer:
            raise ResourceNotFoundError("Offer", offer_id)
        return offer

    async def _get_join_request(self, db: AsyncSession, join_request_id: int) -> JoinRequest:
        join_request = await _fresh(db, JoinRequest, join_request_id)
        if not join_request:
            raise ResourceNotFoundError("Join request", join_request_id)
        return join_request

    async def _set_ride_request_status(self, db: AsyncSession, ride_request_id: Optional[int], status: ListingStatus):
        if not ride_request_id:
            return
        ride_request = await _fresh(db, RideRequest, ride_request_id)
        if ride_request and ride_request.status != ListingStatus.CANCELLED:
            ride_request.status = status

    @staticmethod
    def _decider_id(join_request: JoinRequest, offer: Offer) -> int:
        """The party who did not open the join request."""
        if join_request.initiated_by == JoinInitiator.DRIVER:
            return join_request.requester_account_id
        return offer.owner_account_id

    @staticmethod
    def _initiator_id(join_request: JoinRequest, offer: Offer) -> int:
        if join_request.initiated_by == JoinInitiator.DRIVER:
            return offer.owner_account_id
        return join_request.requester_account_id

    # ===================== Passenger Operations =====================

    async def submit(
        self,
        db: AsyncSession,
        offer_id: int,
        data: JoinRequestCreate,
        requester: Identity,
        geo: GeoAdapter,
    ) -> JoinRequest:
        """
        Ask to join an offer.

        The seat check here is advisory; seats are only taken at accept.
        Pickup resolution happens before anything is written, so a failed
        geocode leaves no join request behind.

        Raises:
            ResourceNotFoundError: Unknown offer or linked ride request
            ValidationError: Inactive offer, missing leg, bad pickup, duplicate request
            CapacityExceededError: Not enough seats currently available
            ExternalLookupFailedError: Pickup address could not be geocoded
        """
        offer = await self._get_offer(db, offer_id)

        if offer.status != ListingStatus.ACTIVE:
            raise ValidationError("Offer is no longer active", details={"offer_id": offer_id})

        if offer.owner_account_id == requester.account_id:
            raise ValidationError("Drivers cannot join their own offer")

        leg = offer.leg_for(data.direction)
        if leg is None:
            raise ValidationError(
                f"Offer has no {data.direction.value} leg",
                details={"offer_id": offer_id, "direction": data.direction.value}
            )

        ride_request = None
        if data.ride_request_id is not None:
            ride_request = await _fresh(db, RideRequest, data.ride_request_id)
            if not ride_request:
                raise ResourceNotFoundError("Ride request", data.ride_request_id)
            ownership_guard.enforce(ride_request.owner_account_id, requester, "ride request")
            if ride_request.event_id != offer.event_id:
                raise ValidationError("Ride request belongs to a different event")
            if ride_request.status != ListingStatus.ACTIVE:
                raise ValidationError(f"Ride request is {ride_request.status.value}")

        passenger_count = data.passenger_count or (ride_request.passenger_count if ride_request else 1)
        if passenger_count > settings.max_passengers_per_join:
            raise ValidationError(
                f"At most {settings.max_passengers_per_join} passengers per join request",
                details={"passenger_count": passenger_count}
            )

        if not preference_allows(offer.preference, requester.gender):
            raise ValidationError(
                "This ride is limited by the driver's passenger preference",
                details={"preference": offer.preference.value}
            )

        duplicate = "You have already requested to join this ride"
        await self._check_no_open_request(db, offer.id, requester.account_id, duplicate)

        if offer.available_seats < passenger_count:
            raise CapacityExceededError(offer.id, passenger_count, offer.available_seats)

        pickup = await self._resolve_pickup(data.pickup_lat, data.pickup_lng, data.pickup_address, geo)

        join_request = self._project(
            leg,
            pickup,
            offer_id=offer.id,
            requester_account_id=requester.account_id,
            ride_request_id=ride_request.id if ride_request else None,
            requester_name=requester.name,
            requester_phone=requester.phone,
            requester_email=requester.email,
            direction=data.direction,
            passenger_count=passenger_count,
            note=data.note.strip() if data.note else None,
            pickup_address=data.pickup_address.strip() if data.pickup_address else None,
            initiated_by=JoinInitiator.PASSENGER,
        )
        await self._save(db, join_request, duplicate)

        logger.info(
            "Join request submitted",
            extra={
                "join_request_id": join_request.id,
                "offer_id": offer_id,
                "passenger_count": passenger_count,
                "detour_km": join_request.detour_km,
            }
        )
        return join_request

    async def _check_no_open_request(self, db: AsyncSession, offer_id: int, requester_id: int, message: str):
        existing = await db.execute(
            select(JoinRequest.id).where(
                JoinRequest.offer_id == offer_id,
                JoinRequest.requester_account_id == requester_id,
                JoinRequest.status.in_(NON_TERMINAL_JOIN_STATUSES),
            )
        )
        if existing.first():
            raise ValidationError(message)

    @staticmethod
    async def _resolve_pickup(lat: Optional[float], lng: Optional[float], address: Optional[str], geo: GeoAdapter) -> Point:
        if (lat is None) != (lng is None):
            raise ValidationError("pickup_lat and pickup_lng must be given together")
        if lat is not None:
            return Point(lat, lng)
        if address and address.strip():
            return await geo.geocode(address)
        raise ValidationError("A pickup address or pickup coordinates are required")

    @staticmethod
    def _project(leg, pickup: Point, **fields) -> JoinRequest:
        projection = project_pickup(leg.polyline, pickup)
        return JoinRequest(
            pickup_lat=pickup.lat,
            pickup_lng=pickup.lng,
            snapped_lat=projection.snapped.lat,
            snapped_lng=projection.snapped.lng,
            route_segment_index=projection.segment_index,
            offset_km=round(projection.offset_km, 3),
            detour_km=round(projection.detour_km, 3),
            detour_minutes=round(projection.detour_minutes, 1),
            status=JoinRequestStatus.PENDING,
            **fields,
        )

    async def _save(self, db: AsyncSession, join_request: JoinRequest, duplicate_message: str):
        db.add(join_request)
        try:
            await db.commit()
        except IntegrityError as exc:
            # Lost a race against another open request for the same pair
            await db.rollback()
            raise ValidationError(duplicate_message) from exc
        await db.refresh(join_request)

    # ===================== Driver Operations =====================

    async def invite(
        self,
        db: AsyncSession,
        offer_id: int,
        data: InvitationCreate,
        driver: Identity,
        geo: GeoAdapter,
    ) -> JoinRequest:
        """
        Invite a passenger's ride request onto an offer.

        Opens a PENDING join request on the passenger's behalf, using the
        ride request's pickup, passenger count and contact details. The
        passenger then accepts (taking the seats) or rejects it.

        Raises:
            InsufficientPermissionsError: Caller does not own the offer
            ResourceNotFoundError: Unknown offer or ride request
            ValidationError: Inactive offer or request, direction mismatch, duplicate
            CapacityExceededError: Not enough seats currently available
            ExternalLookupFailedError: Pickup address could not be geocoded
        """
        offer = await self._get_offer(db, offer_id)
        ownership_guard.enforce(offer.owner_account_id, driver, "offer")

        if offer.status != ListingStatus.ACTIVE:
            raise ValidationError("Offer is no longer active", details={"offer_id": offer_id})

        ride_request = await _fresh(db, RideRequest, data.ride_request_id)
        if not ride_request:
            raise ResourceNotFoundError("Ride request", data.ride_request_id)
        if ride_request.event_id != offer.event_id:
            raise ValidationError("Ride request belongs to a different event")
        if ride_request.status != ListingStatus.ACTIVE:
            raise ValidationError(f"Ride request is {ride_request.status.value}")
        if ride_request.owner_account_id == offer.owner_account_id:
            raise ValidationError("Drivers cannot invite their own ride request")

        direction = data.direction or (
            TripDirection.RETURN if ride_request.trip_type == TripType.RETURN else TripDirection.GOING
        )
        if ride_request.trip_type not in (TripType.BOTH, TripType(direction.value)):
            raise ValidationError(
                f"Ride request does not need a {direction.value} ride",
                details={"trip_type": ride_request.trip_type.value}
            )
        leg = offer.leg_for(direction)
        if leg is None:
            raise ValidationError(
                f"Offer has no {direction.value} leg",
                details={"offer_id": offer_id, "direction": direction.value}
            )

        passenger = await _fresh(db, Account, ride_request.owner_account_id)
        if not preference_allows(offer.preference, passenger.gender):
            raise ValidationError(
                "This passenger does not match the offer's preference",
                details={"preference": offer.preference.value}
            )

        duplicate = "This passenger already has an open join request on this ride"
        await self._check_no_open_request(db, offer.id, ride_request.owner_account_id, duplicate)

        if offer.available_seats < ride_request.passenger_count:
            raise CapacityExceededError(offer.id, ride_request.passenger_count, offer.available_seats)

        pickup = await self._resolve_pickup(
            ride_request.pickup_lat, ride_request.pickup_lng, ride_request.pickup_address, geo
        )

        join_request = self._project(
            leg,
            pickup,
            offer_id=offer.id,
            requester_account_id=ride_request.owner_account_id,
            ride_request_id=ride_request.id,
            requester_name=ride_request.passenger_name,
            requester_phone=ride_request.passenger_phone,
            requester_email=ride_request.passenger_email,
            direction=direction,
            passenger_count=ride_request.passenger_count,
            note=data.note.strip() if data.note else None,
            pickup_address=ride_request.pickup_address,
            initiated_by=JoinInitiator.DRIVER,
        )
        await self._save(db, join_request, duplicate)

        logger.info(
            "Invitation sent",
            extra={"join_request_id": join_request.id, "offer_id": offer_id, "ride_request_id": ride_request.id}
        )
        return join_request

    # ===================== Decisions =====================

    async def accept(self, db: AsyncSession, join_request_id: int, actor: Identity) -> Tuple[JoinRequest, Offer]:
        """
        Confirm a pending join request, reserving its seats.

        The driver accepts a passenger's request; the passenger accepts a
        driver's invitation.

        On insufficient capacity the join request stays PENDING.

        Raises:
            ValidationError: Join request is not PENDING or the offer is inactive
            CapacityExceededError: Seats are no longer available
        """
        offer_id = (await self._get_join_request(db, join_request_id)).offer_id

        async with self.locks.hold(offer_id):
            join_request = await self._get_join_request(db, join_request_id)
            offer = await self._get_offer(db, offer_id)
            ownership_guard.enforce(self._decider_id(join_request, offer), actor, "join request")

            if join_request.status != JoinRequestStatus.PENDING:
                raise ValidationError(
                    f"Only PENDING join requests can be accepted (current: {join_request.status.value})"
                )
            if offer.status != ListingStatus.ACTIVE:
                raise ValidationError("Offer is no longer active", details={"offer_id": offer_id})

            requested, available = join_request.passenger_count, offer.available_seats
            if not await self.allocator.try_reserve(db, offer_id, requested):
                await db.rollback()
                raise CapacityExceededError(offer_id, requested, available)

            join_request.status = JoinRequestStatus.CONFIRMED
            join_request.decided_at = datetime.utcnow()
            await self._set_ride_request_status(db, join_request.ride_request_id, ListingStatus.MATCHED)

            await db.commit()
            await db.refresh(offer)
            await db.refresh(join_request)

        logger.info(
            "Join request accepted",
            extra={"join_request_id": join_request_id, "offer_id": offer_id, "available_seats": offer.available_seats}
        )
        return join_request, offer

    async def reject(self, db: AsyncSession, join_request_id: int, actor: Identity) -> Tuple[JoinRequest, Offer]:
        """
        Decline a pending join request or invitation. No capacity effect.

        Raises:
            ValidationError: Join request is not PENDING
        """
        offer_id = (await self._get_join_request(db, join_request_id)).offer_id

        async with self.locks.hold(offer_id):
            join_request = await self._get_join_request(db, join_request_id)
            offer = await self._get_offer(db, offer_id)
            ownership_guard.enforce(self._decider_id(join_request, offer), actor, "join request")

            if join_request.status != JoinRequestStatus.PENDING:
                raise ValidationError(
                    f"Only PENDING join requests can be rejected (current: {join_request.status.value})"
                )

            join_request.status = JoinRequestStatus.REJECTED
            join_request.decided_at = datetime.utcnow()

            await db.commit()
            await db.refresh(join_request)

        logger.info("Join request rejected", extra={"join_request_id": join_request_id, "offer_id": offer_id})
        return join_request, offer

    async def cancel(
        self,
        db: AsyncSession,
        join_request_id: int,
        actor: Identity,
        reason: Optional[str] = None,
    ) -> Tuple[JoinRequest, Offer]:
        """
        Close a join request.

        PENDING requests are withdrawn by whoever opened them; the other
        party rejects instead. CONFIRMED requests are removed by the driver
        and their seats released. Cancelling a terminal request changes
        nothing.
        """
        offer_id = (await self._get_join_request(db, join_request_id)).offer_id

        async with self.locks.hold(offer_id):
            join_request = await self._get_join_request(db, join_request_id)
            offer = await self._get_offer(db, offer_id)
            parties = (join_request.requester_account_id, offer.owner_account_id)

            if join_request.is_terminal:
                ownership_guard.enforce_any(parties, actor, "join request")
                return join_request, offer

            if join_request.status == JoinRequestStatus.CONFIRMED:
                ownership_guard.enforce(offer.owner_account_id, actor, "offer")
                await self._release_seats(db, join_request)
                await self._set_ride_request_status(db, join_request.ride_request_id, ListingStatus.ACTIVE)
            else:
                ownership_guard.enforce(self._initiator_id(join_request, offer), actor, "join request")

            join_request.status = JoinRequestStatus.CANCELLED
            join_request.cancelled_at = datetime.utcnow()
            join_request.cancel_reason = reason.strip() if reason else None

            await db.commit()
            await db.refresh(offer)
            await db.refresh(join_request)

        logger.info(
            "Join request cancelled",
            extra={"join_request_id": join_request_id, "offer_id": offer_id, "available_seats": offer.available_seats}
        )
        return join_request, offer

    async def _release_seats(self, db: AsyncSession, join_request: JoinRequest):
        if not await self.allocator.release(db, join_request.offer_id, join_request.passenger_count):
            logger.error(
                "Seat release would overflow offer",
                extra={"join_request_id": join_request.id, "offer_id": join_request.offer_id}
            )
            raise RuntimeError(f"Seat accounting broken for offer {join_request.offer_id}")

    async def close_for_offer(
        self,
        db: AsyncSession,
        offer_id: int,
        reason: str,
        include_confirmed: bool = False,
    ) -> int:
        """
        Cancel an offer's open join requests without committing.

        Used when the offer or its event is withdrawn. Confirmed requests are
        only closed (and their seats released) when ``include_confirmed``.

        Returns:
            Number of join requests closed
        """
        statuses = NON_TERMINAL_JOIN_STATUSES if include_confirmed else (JoinRequestStatus.PENDING,)
        result = await db.execute(
            select(JoinRequest).where(
                JoinRequest.offer_id == offer_id,
                JoinRequest.status.in_(statuses),
            ).execution_options(populate_existing=True)
        )
        closed = 0
        now = datetime.utcnow()
        for join_request in result.scalars().all():
            if join_request.status == JoinRequestStatus.CONFIRMED:
                await self._release_seats(db, join_request)
                await self._set_ride_request_status(db, join_request.ride_request_id, ListingStatus.ACTIVE)
            join_request.status = JoinRequestStatus.CANCELLED
            join_request.cancelled_at = now
            join_request.cancel_reason = reason
            closed += 1
        return closed

    # ===================== Views =====================

    async def list_for_offer(self, db: AsyncSession, offer_id: int, driver: Identity) -> List[JoinRequest]:
        """Driver view of every join request on an offer, newest first."""
        offer = await self._get_offer(db, offer_id)
        ownership_guard.enforce(offer.owner_account_id, driver, "offer")

        result = await db.execute(
            select(JoinRequest)
            .where(JoinRequest.offer_id == offer_id)
            .order_by(JoinRequest.created_at.desc(), JoinRequest.id.desc())
        )
        return list(result.scalars().all())

    async def list_for_requester(
        self, db: AsyncSession, requester: Identity, initiated_by: Optional[JoinInitiator] = None
    ) -> List[JoinRequest]:
        """The passenger's join requests, or only the invitations they received."""
        query = (
            select(JoinRequest)
            .where(JoinRequest.requester_account_id == requester.account_id)
            .order_by(JoinRequest.created_at.desc(), JoinRequest.id.desc())
        )
        if initiated_by is not None:
            query = query.where(JoinRequest.initiated_by == initiated_by)
        result = await db.execute(query)
        return list(result.scalars().all())


join_engine = JoinRequestEngine()
