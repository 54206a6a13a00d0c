"""
Event database model.

An event is the time-boxed gathering that every offer and request belongs to.
"""

from sqlalchemy import Column, Integer, String, Boolean, Date, Time, DateTime, Float, ForeignKey, Enum, Text
from sqlalchemy.sql import func
from ridepool.app.db.session import Base
from ridepool.app.models.ride_enums import EventStatus


class Event(Base):
    """
    Event model.

    Created by an organizer. Private events require the access code to be
    looked up. Deletion is soft: status becomes CANCELLED and every
    listing under the event is invalidated.
    """
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    event_code = Column(String(20), unique=True, index=True, nullable=False)

    # Ownership - Event belongs to its organizer
    organizer_account_id = Column(Integer, ForeignKey('accounts.id'), nullable=False, index=True)

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    # Schedule
    event_date = Column(Date, nullable=False)
    event_time = Column(Time, nullable=True)

    # Destination
    destination_address = Column(String(500), nullable=False)
    destination_lat = Column(Float, nullable=False)
    destination_lng = Column(Float, nullable=False)

    # Privacy
    is_private = Column(Boolean, default=False, nullable=False)
    access_code = Column(String(50), nullable=True)

    status = Column(Enum(EventStatus), default=EventStatus.ACTIVE, nullable=False, index=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Event(id={self.id}, code='{self.event_code}', status='{self.status.value}')>"
