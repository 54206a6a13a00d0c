"""
Join request database model.

A specific passenger's ask to fill seat(s) on a specific offer, or a
driver's invitation to a passenger's ride request.
"""

from sqlalchemy import (
    Column, Integer, String, DateTime, Float, ForeignKey, Enum, Text, Index, CheckConstraint, text,
)
from sqlalchemy.sql import func
from ridepool.app.db.session import Base
from ridepool.app.models.ride_enums import JoinInitiator, JoinRequestStatus, TripDirection


# Only one PENDING/CONFIRMED join request per (offer, requester)
_ACTIVE_JOIN_WHERE = text("status IN ('PENDING', 'CONFIRMED')")


class JoinRequest(Base):
    """
    Join request model.

    Owned by its offer. Identity fields are a snapshot of the requester at
    submit time.
    """
    __tablename__ = "join_requests"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    offer_id = Column(Integer, ForeignKey('offers.id', ondelete='CASCADE'), nullable=False, index=True)
    requester_account_id = Column(Integer, ForeignKey('accounts.id'), nullable=False, index=True)
    ride_request_id = Column(Integer, ForeignKey('ride_requests.id', ondelete='SET NULL'), nullable=True, index=True)

    # Requester identity snapshot
    requester_name = Column(String(255), nullable=False)
    requester_phone = Column(String(50), nullable=False)
    requester_email = Column(String(255), nullable=True)

    direction = Column(Enum(TripDirection), default=TripDirection.GOING, nullable=False)
    passenger_count = Column(Integer, default=1, nullable=False)
    note = Column(Text, nullable=True)

    # Pickup point as chosen by the passenger
    pickup_address = Column(String(500), nullable=True)
    pickup_lat = Column(Float, nullable=False)
    pickup_lng = Column(Float, nullable=False)

    # Projection onto the driver's route
    snapped_lat = Column(Float, nullable=False)
    snapped_lng = Column(Float, nullable=False)
    route_segment_index = Column(Integer, nullable=False)
    offset_km = Column(Float, nullable=False)
    detour_km = Column(Float, nullable=False)
    detour_minutes = Column(Float, nullable=False)

    initiated_by = Column(Enum(JoinInitiator), default=JoinInitiator.PASSENGER, nullable=False)
    status = Column(Enum(JoinRequestStatus), default=JoinRequestStatus.PENDING, nullable=False, index=True)
    cancel_reason = Column(Text, nullable=True)

    # Lifecycle timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    decided_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint('passenger_count >= 1', name='ck_join_requests_passenger_count_positive'),
        Index(
            'ix_join_requests_active', 'offer_id', 'requester_account_id', unique=True,
            postgresql_where=_ACTIVE_JOIN_WHERE,
            sqlite_where=_ACTIVE_JOIN_WHERE,
        ),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in (JoinRequestStatus.REJECTED, JoinRequestStatus.CANCELLED)

    def __repr__(self):
        return f"<JoinRequest(id={self.id}, offer_id={self.offer_id}, status='{self.status.value}')>"
