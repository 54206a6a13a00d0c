"""
Offer database models.

A driver's advertisement of seats for an event, with one or two route legs.
"""

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Float, ForeignKey, Enum, Text, Time, JSON,
    CheckConstraint, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ridepool.app.db.session import Base
from ridepool.app.models.ride_enums import (
    ListingStatus, RidePreference, PaymentMode, PaymentMethod, TripDirection,
)


class Offer(Base):
    """
    Offer model.

    ``available_seats`` is only ever changed through the capacity
    allocator's conditional updates; the check constraint keeps it inside
    ``[0, total_seats]``.
    """
    __tablename__ = "offers"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    event_id = Column(Integer, ForeignKey('events.id'), nullable=False, index=True)
    owner_account_id = Column(Integer, ForeignKey('accounts.id'), nullable=False, index=True)

    # Driver identity, each field independently hideable
    driver_name = Column(String(255), nullable=False)
    driver_phone = Column(String(50), nullable=False)
    driver_email = Column(String(255), nullable=True)
    hide_name = Column(Boolean, default=False, nullable=False)
    hide_phone = Column(Boolean, default=False, nullable=False)
    hide_email = Column(Boolean, default=False, nullable=False)

    # Capacity
    total_seats = Column(Integer, nullable=False)
    available_seats = Column(Integer, nullable=False)

    preference = Column(Enum(RidePreference), default=RidePreference.ANY, nullable=False)
    description = Column(Text, nullable=True)

    # Payment policy
    payment_mode = Column(Enum(PaymentMode), default=PaymentMode.NOT_REQUIRED, nullable=False)
    payment_amount = Column(Float, nullable=True)
    payment_method = Column(Enum(PaymentMethod), nullable=True)

    status = Column(Enum(ListingStatus), default=ListingStatus.ACTIVE, nullable=False, index=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    legs = relationship(
        "OfferLeg",
        back_populates="offer",
        cascade="all, delete-orphan",
        order_by="OfferLeg.direction",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint('total_seats >= 1', name='ck_offers_total_seats_positive'),
        CheckConstraint(
            'available_seats >= 0 AND available_seats <= total_seats',
            name='ck_offers_available_seats_range'
        ),
    )

    def leg_for(self, direction: TripDirection):
        for leg in self.legs:
            if leg.direction == direction:
                return leg
        return None

    def __repr__(self):
        return f"<Offer(id={self.id}, event_id={self.event_id}, seats={self.available_seats}/{self.total_seats})>"


class OfferLeg(Base):
    """
    One direction of an offer's route.

    The routed path is stored at creation so pickup projection never
    needs a second routing call.
    """
    __tablename__ = "offer_legs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    offer_id = Column(Integer, ForeignKey('offers.id', ondelete='CASCADE'), nullable=False, index=True)

    direction = Column(Enum(TripDirection), nullable=False)
    address = Column(String(500), nullable=False)
    lat = Column(Float, nullable=False)
    lng = Column(Float, nullable=False)
    departure_time = Column(Time, nullable=True)

    # Routed path between address and event destination
    distance_km = Column(Float, nullable=False)
    duration_minutes = Column(Float, nullable=False)
    polyline = Column(JSON, nullable=False)  # [[lat, lng], ...] in travel order

    offer = relationship("Offer", back_populates="legs")

    __table_args__ = (
        UniqueConstraint('offer_id', 'direction', name='uq_offer_legs_direction'),
    )

    def __repr__(self):
        return f"<OfferLeg(offer_id={self.offer_id}, direction='{self.direction.value}', km={self.distance_km})>"
