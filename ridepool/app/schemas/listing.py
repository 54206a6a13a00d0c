"""
Offer and ride request Pydantic schemas.

Offer-shaped and request-shaped payloads are two variants of one tagged
union sharing ``ListingBase``; ``ListingCreate`` dispatches on ``kind``.
"""

from pydantic import BaseModel, EmailStr, Field, model_validator
from datetime import time, datetime
from typing import Annotated, ClassVar, List, Literal, Optional, Tuple, Union
from ridepool.app.schemas.patch import PatchModel
from ridepool.app.models.ride_enums import (
    ListingStatus, PaymentMethod, PaymentMode, RidePreference, TripDirection, TripType,
)


class RouteLegIn(BaseModel):
    """One direction of a driver's route."""
    direction: TripDirection = TripDirection.GOING
    address: str = Field(..., min_length=1, max_length=500)
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lng: Optional[float] = Field(None, ge=-180, le=180)
    departure_time: Optional[time] = None

    @model_validator(mode="after")
    def check_coordinates(self):
        if (self.lat is None) != (self.lng is None):
            raise ValueError("lat and lng must be given together")
        return self


class PaymentPolicyIn(BaseModel):
    mode: PaymentMode = PaymentMode.NOT_REQUIRED
    amount: Optional[float] = None
    method: Optional[PaymentMethod] = None


class ListingBase(BaseModel):
    """Fields common to offers and ride requests."""
    event_id: int
    # Contact overrides; the caller's verified identity fills anything omitted
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    phone: Optional[str] = Field(None, min_length=6, max_length=50)
    email: Optional[EmailStr] = None
    preference: RidePreference = RidePreference.ANY
    notes: Optional[str] = Field(None, max_length=1000)


class OfferCreate(ListingBase):
    """Schema for creating a new offer."""
    kind: Literal["offer"] = "offer"
    total_seats: int = Field(..., ge=1, le=50)
    legs: List[RouteLegIn] = Field(..., min_length=1, max_length=2)
    payment: PaymentPolicyIn = Field(default_factory=PaymentPolicyIn)
    hide_name: bool = False
    hide_phone: bool = False
    hide_email: bool = False

    @model_validator(mode="after")
    def check_leg_directions(self):
        directions = [leg.direction for leg in self.legs]
        if len(set(directions)) != len(directions):
            raise ValueError("Each leg direction may appear only once")
        return self


class RideRequestCreate(ListingBase):
    """Schema for creating a new ride request."""
    kind: Literal["request"] = "request"
    trip_type: TripType = TripType.GOING
    passenger_count: int = Field(1, ge=1, le=10)
    pickup_address: Optional[str] = Field(None, max_length=500)
    pickup_lat: Optional[float] = Field(None, ge=-90, le=90)
    pickup_lng: Optional[float] = Field(None, ge=-180, le=180)


ListingCreate = Annotated[Union[OfferCreate, RideRequestCreate], Field(discriminator="kind")]


class OfferUpdate(PatchModel):
    """Schema for updating an existing offer."""
    not_null_fields: ClassVar[Tuple[str, ...]] = (
        "name", "phone", "total_seats", "legs", "payment", "preference", "hide_name", "hide_phone", "hide_email",
    )

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    phone: Optional[str] = Field(None, min_length=6, max_length=50)
    email: Optional[EmailStr] = None
    total_seats: Optional[int] = Field(None, ge=1, le=50)
    legs: Optional[List[RouteLegIn]] = Field(None, min_length=1, max_length=2)
    payment: Optional[PaymentPolicyIn] = None
    preference: Optional[RidePreference] = None
    notes: Optional[str] = Field(None, max_length=1000)
    hide_name: Optional[bool] = None
    hide_phone: Optional[bool] = None
    hide_email: Optional[bool] = None


class RideRequestUpdate(PatchModel):
    """Schema for updating an existing ride request."""
    not_null_fields: ClassVar[Tuple[str, ...]] = ("name", "phone", "trip_type", "passenger_count", "preference")

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    phone: Optional[str] = Field(None, min_length=6, max_length=50)
    email: Optional[EmailStr] = None
    trip_type: Optional[TripType] = None
    passenger_count: Optional[int] = Field(None, ge=1, le=10)
    preference: Optional[RidePreference] = None
    notes: Optional[str] = Field(None, max_length=1000)
    pickup_address: Optional[str] = Field(None, max_length=500)
    pickup_lat: Optional[float] = Field(None, ge=-90, le=90)
    pickup_lng: Optional[float] = Field(None, ge=-180, le=180)


class OfferLegResponse(BaseModel):
    direction: TripDirection
    address: str
    lat: float
    lng: float
    departure_time: Optional[time]
    distance_km: float
    duration_minutes: float
    polyline: List[List[float]]

    class Config:
        from_attributes = True


class OfferResponse(BaseModel):
    """Schema for offer response. Hidden contact fields are None for non-owners."""
    kind: Literal["offer"] = "offer"
    id: int
    event_id: int
    owner_account_id: int
    driver_name: Optional[str]
    driver_phone: Optional[str]
    driver_email: Optional[str]
    total_seats: int
    available_seats: int
    preference: RidePreference
    description: Optional[str]
    payment_mode: PaymentMode
    payment_amount: Optional[float]
    payment_method: Optional[PaymentMethod]
    price_cap: float
    status: ListingStatus
    legs: List[OfferLegResponse]
    created_at: datetime
    updated_at: datetime


class RideRequestResponse(BaseModel):
    """Schema for ride request response."""
    kind: Literal["request"] = "request"
    id: int
    event_id: int
    owner_account_id: int
    passenger_name: str
    passenger_phone: str
    passenger_email: Optional[str]
    trip_type: TripType
    passenger_count: int
    preference: RidePreference
    pickup_address: Optional[str]
    pickup_lat: Optional[float]
    pickup_lng: Optional[float]
    notes: Optional[str]
    status: ListingStatus
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class OfferListResponse(BaseModel):
    offers: List[OfferResponse]
    total: int


class RideRequestListResponse(BaseModel):
    requests: List[RideRequestResponse]
    total: int


class DeleteResponse(BaseModel):
    """Outcome of a delete: physically removed or kept as cancelled history."""
    id: int
    deleted: bool
    status: ListingStatus
