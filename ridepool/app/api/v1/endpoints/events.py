"""
Event API endpoints.

Organizers create and manage events; anyone holding an event code (plus
the access code for private events) can look one up and browse its
offers and ride requests.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from ridepool.app.db.session import get_db
from ridepool.app.core.dependencies import Identity, get_current_identity, get_optional_identity
from ridepool.app.models.ride_enums import RidePreference, TripDirection, TripType
from ridepool.app.schemas.event import (
    EventCreate, EventUpdate, EventResponse, EventOrganizerResponse, EventStatsResponse,
)
from ridepool.app.schemas.listing import OfferListResponse, RideRequestListResponse, RideRequestResponse
from ridepool.app.schemas.organizer import EventDriversResponse, EventMatchesResponse, EventPassengersResponse
from ridepool.app.services import event_service, listing_store, organizer_service
from ridepool.app.services.geo_adapter import GeoAdapter, get_geo_adapter

router = APIRouter(prefix="/events", tags=["Events"])


@router.post("", response_model=EventOrganizerResponse, status_code=status.HTTP_201_CREATED)
async def create_event(
    event_data: EventCreate,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
    geo: GeoAdapter = Depends(get_geo_adapter)
):
    """
    Create a new event organized by the caller.

    The response carries the generated event code to share with guests.
    """
    event = await event_service.create_event(db, event_data, identity, geo)
    return EventOrganizerResponse.model_validate(event)


@router.get("/{event_code}", response_model=EventResponse)
async def get_event_by_code(
    event_code: str,
    access_code: Optional[str] = Query(None, description="Required for private events"),
    identity: Optional[Identity] = Depends(get_optional_identity),
    db: AsyncSession = Depends(get_db)
):
    """Look up an event by its shareable code."""
    event = await event_service.get_event_by_code(db, event_code, access_code, identity)
    return EventResponse.model_validate(event)


@router.put("/{event_id}", response_model=EventOrganizerResponse)
async def update_event(
    event_id: int,
    event_data: EventUpdate,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
    geo: GeoAdapter = Depends(get_geo_adapter)
):
    """Update an event (organizer only)."""
    event = await event_service.update_event(db, event_id, event_data, identity, geo)
    return EventOrganizerResponse.model_validate(event)


@router.delete("/{event_id}", response_model=EventOrganizerResponse)
async def delete_event(
    event_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """
    Cancel an event (organizer only).

    All offers, requests and open join requests under it are cancelled.
    """
    event = await event_service.delete_event(db, event_id, identity)
    return EventOrganizerResponse.model_validate(event)


@router.get("/{event_id}/stats", response_model=EventStatsResponse)
async def get_event_stats(
    event_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Seat and request counters for the organizer."""
    return await event_service.event_stats(db, event_id, identity)


@router.get("/{event_id}/drivers", response_model=EventDriversResponse)
async def list_event_drivers(
    event_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Every offer under the event with full driver contact (organizer only)."""
    drivers = await organizer_service.list_drivers(db, event_id, identity)
    return EventDriversResponse(drivers=drivers, total=len(drivers))


@router.get("/{event_id}/passengers", response_model=EventPassengersResponse)
async def list_event_passengers(
    event_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Every ride request under the event, flagged when matched (organizer only)."""
    passengers = await organizer_service.list_passengers(db, event_id, identity)
    return EventPassengersResponse(passengers=passengers, total=len(passengers))


@router.get("/{event_id}/matches", response_model=EventMatchesResponse)
async def list_event_matches(
    event_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Every join request and invitation under the event (organizer only)."""
    matches = await organizer_service.list_matches(db, event_id, identity)
    return EventMatchesResponse(matches=matches, total=len(matches))


@router.get("/{event_id}/offers", response_model=OfferListResponse)
async def list_event_offers(
    event_id: int,
    direction: Optional[TripDirection] = Query(None, description="Only offers driving this way"),
    preference: Optional[RidePreference] = Query(None),
    min_seats: Optional[int] = Query(None, ge=1, description="Minimum seats still available"),
    identity: Optional[Identity] = Depends(get_optional_identity),
    db: AsyncSession = Depends(get_db)
):
    """
    List active offers for an event.

    Contact fields the driver chose to hide are omitted unless the caller
    is the driver.
    """
    offers = await listing_store.list_offers(
        db, event_id, viewer=identity, direction=direction, preference=preference, min_seats=min_seats
    )
    return OfferListResponse(offers=offers, total=len(offers))


@router.get("/{event_id}/requests", response_model=RideRequestListResponse)
async def list_event_ride_requests(
    event_id: int,
    trip_type: Optional[TripType] = Query(None),
    preference: Optional[RidePreference] = Query(None),
    db: AsyncSession = Depends(get_db)
):
    """List active ride requests for an event."""
    ride_requests = await listing_store.list_ride_requests(
        db, event_id, trip_type=trip_type, preference=preference
    )
    return RideRequestListResponse(
        requests=[RideRequestResponse.model_validate(r) for r in ride_requests],
        total=len(ride_requests)
    )
