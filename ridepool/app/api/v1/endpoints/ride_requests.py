"""
Ride request API endpoints.

Passengers advertise that they need a ride to or from an event.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from ridepool.app.db.session import get_db
from ridepool.app.core.dependencies import Identity, get_current_identity
from ridepool.app.schemas.listing import DeleteResponse, RideRequestCreate, RideRequestResponse, RideRequestUpdate
from ridepool.app.services import listing_store
from ridepool.app.services.geo_adapter import GeoAdapter, get_geo_adapter

router = APIRouter(prefix="/requests", tags=["Ride Requests"])


@router.post("", response_model=RideRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_ride_request(
    request_data: RideRequestCreate,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
    geo: GeoAdapter = Depends(get_geo_adapter)
):
    """Publish a ride request for an event."""
    ride_request = await listing_store.create_ride_request(db, request_data, identity, geo)
    return RideRequestResponse.model_validate(ride_request)


@router.put("/{ride_request_id}", response_model=RideRequestResponse)
async def update_ride_request(
    ride_request_id: int,
    request_data: RideRequestUpdate,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
    geo: GeoAdapter = Depends(get_geo_adapter)
):
    """Update a ride request (owner only)."""
    ride_request = await listing_store.update_ride_request(db, ride_request_id, request_data, identity, geo)
    return RideRequestResponse.model_validate(ride_request)


@router.delete("/{ride_request_id}", response_model=DeleteResponse)
async def delete_ride_request(
    ride_request_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Withdraw a ride request (owner only)."""
    deleted, listing_status = await listing_store.delete_ride_request(db, ride_request_id, identity)
    return DeleteResponse(id=ride_request_id, deleted=deleted, status=listing_status)
