"""
Ride request database model.

A passenger's advertisement of need for a ride to or from an event.
"""

from sqlalchemy import Column, Integer, String, DateTime, Float, ForeignKey, Enum, Text, CheckConstraint
from sqlalchemy.sql import func
from ridepool.app.db.session import Base
from ridepool.app.models.ride_enums import ListingStatus, RidePreference, TripType


class RideRequest(Base):
    """
    Ride request model.

    Becomes MATCHED when a join request linked to it is confirmed and
    returns to ACTIVE if that seat is later cancelled.
    """
    __tablename__ = "ride_requests"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    event_id = Column(Integer, ForeignKey('events.id'), nullable=False, index=True)
    owner_account_id = Column(Integer, ForeignKey('accounts.id'), nullable=False, index=True)

    # Passenger identity
    passenger_name = Column(String(255), nullable=False)
    passenger_phone = Column(String(50), nullable=False)
    passenger_email = Column(String(255), nullable=True)

    trip_type = Column(Enum(TripType), default=TripType.GOING, nullable=False)
    passenger_count = Column(Integer, default=1, nullable=False)
    preference = Column(Enum(RidePreference), default=RidePreference.ANY, nullable=False)

    # Where the passenger would like to be picked up (optional)
    pickup_address = Column(String(500), nullable=True)
    pickup_lat = Column(Float, nullable=True)
    pickup_lng = Column(Float, nullable=True)

    notes = Column(Text, nullable=True)

    status = Column(Enum(ListingStatus), default=ListingStatus.ACTIVE, nullable=False, index=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint('passenger_count >= 1', name='ck_ride_requests_passenger_count_positive'),
    )

    def __repr__(self):
        return f"<RideRequest(id={self.id}, event_id={self.event_id}, status='{self.status.value}')>"
