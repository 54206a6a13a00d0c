"""
Join request Pydantic schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import List, Optional
from ridepool.app.models.ride_enums import JoinInitiator, JoinRequestStatus, TripDirection


class JoinRequestCreate(BaseModel):
    """
    Schema for asking to join an offer.

    The pickup is either a clicked point (lat/lng) or a typed address that
    is geocoded first.
    """
    direction: TripDirection = TripDirection.GOING
    pickup_address: Optional[str] = Field(None, max_length=500)
    pickup_lat: Optional[float] = Field(None, ge=-90, le=90)
    pickup_lng: Optional[float] = Field(None, ge=-180, le=180)
    passenger_count: Optional[int] = Field(None, ge=1, description="Defaults to the linked request's count, else 1")
    note: Optional[str] = Field(None, max_length=500)
    ride_request_id: Optional[int] = Field(None, description="The requester's own ride request, if any")


class InvitationCreate(BaseModel):
    """
    Schema for a driver inviting a ride request onto their offer.

    Pickup, passenger count and contact details come from the ride request.
    """
    ride_request_id: int
    direction: Optional[TripDirection] = Field(None, description="Defaults from the request's trip type")
    note: Optional[str] = Field(None, max_length=500)


class JoinRequestCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500, description="Shown to the passenger")


class JoinRequestResponse(BaseModel):
    """Schema for join request response."""
    id: int
    offer_id: int
    requester_account_id: int
    ride_request_id: Optional[int]
    requester_name: str
    requester_phone: str
    requester_email: Optional[str]
    direction: TripDirection
    passenger_count: int
    note: Optional[str]
    pickup_address: Optional[str]
    pickup_lat: float
    pickup_lng: float
    snapped_lat: float
    snapped_lng: float
    route_segment_index: int
    offset_km: float
    detour_km: float
    detour_minutes: float
    initiated_by: JoinInitiator
    status: JoinRequestStatus
    cancel_reason: Optional[str]
    created_at: datetime
    decided_at: Optional[datetime]
    cancelled_at: Optional[datetime]

    class Config:
        from_attributes = True


class JoinRequestDecisionResponse(BaseModel):
    """Result of accept/reject/cancel, with the offer's seat count after the change."""
    join_request: JoinRequestResponse
    available_seats: int
    total_seats: int


class JoinRequestListResponse(BaseModel):
    requests: List[JoinRequestResponse]
    total: int
