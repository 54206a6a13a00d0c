"""
Event Pydantic schemas.

Defines request and response models for event management.
"""

from pydantic import BaseModel, Field, model_validator
from datetime import date, time, datetime
from typing import ClassVar, Optional, Tuple
from ridepool.app.models.ride_enums import EventStatus
from ridepool.app.schemas.patch import PatchModel


class EventCreate(BaseModel):
    """Schema for creating a new event."""
    name: str = Field(..., min_length=1, max_length=255, description="Event name")
    description: Optional[str] = Field(None, max_length=2000)
    event_date: date
    event_time: Optional[time] = None

    # Destination; coordinates are geocoded from the address when omitted
    destination_address: str = Field(..., min_length=1, max_length=500)
    destination_lat: Optional[float] = Field(None, ge=-90, le=90)
    destination_lng: Optional[float] = Field(None, ge=-180, le=180)

    is_private: bool = False
    access_code: Optional[str] = Field(None, min_length=4, max_length=50)

    @model_validator(mode="after")
    def check_privacy(self):
        if self.is_private and not self.access_code:
            raise ValueError("Private events need an access_code")
        if (self.destination_lat is None) != (self.destination_lng is None):
            raise ValueError("destination_lat and destination_lng must be given together")
        return self


class EventUpdate(PatchModel):
    """Schema for updating an existing event."""
    not_null_fields: ClassVar[Tuple[str, ...]] = ("name", "event_date", "destination_address", "is_private")

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    event_date: Optional[date] = None
    event_time: Optional[time] = None
    destination_address: Optional[str] = Field(None, min_length=1, max_length=500)
    destination_lat: Optional[float] = Field(None, ge=-90, le=90)
    destination_lng: Optional[float] = Field(None, ge=-180, le=180)
    is_private: Optional[bool] = None
    access_code: Optional[str] = Field(None, min_length=4, max_length=50)


class EventResponse(BaseModel):
    """Schema for event response."""
    id: int
    event_code: str
    organizer_account_id: int
    name: str
    description: Optional[str]
    event_date: date
    event_time: Optional[time]
    destination_address: str
    destination_lat: float
    destination_lng: float
    is_private: bool
    status: EventStatus
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class EventOrganizerResponse(EventResponse):
    """Event response including the access code, for the organizer only."""
    access_code: Optional[str]


class EventStatsResponse(BaseModel):
    """Organizer dashboard counters."""
    event_id: int
    active_offers: int
    active_requests: int
    total_seats: int
    available_seats: int
    confirmed_passengers: int
    pending_join_requests: int
    matched_requests: int
