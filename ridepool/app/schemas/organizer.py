"""
Organizer dashboard schemas.
"""

from pydantic import BaseModel
from typing import List, Optional
from ridepool.app.schemas.join_request import JoinRequestResponse
from ridepool.app.schemas.listing import OfferResponse, RideRequestResponse


class EventDriversResponse(BaseModel):
    """Every offer under an event, contact fields unmasked."""
    drivers: List[OfferResponse]
    total: int


class EventPassengerResponse(RideRequestResponse):
    matched: bool


class EventPassengersResponse(BaseModel):
    passengers: List[EventPassengerResponse]
    total: int


class EventMatchResponse(JoinRequestResponse):
    """A join request with the driver's contact details."""
    driver_name: str
    driver_phone: str
    driver_email: Optional[str]


class EventMatchesResponse(BaseModel):
    matches: List[EventMatchResponse]
    total: int
