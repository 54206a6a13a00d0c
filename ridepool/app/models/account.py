"""
Account database model.

An account is the verified identity behind offers, requests and join requests.
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum
from sqlalchemy.sql import func
from ridepool.app.db.session import Base
from ridepool.app.models.ride_enums import Gender


class Account(Base):
    """
    Account model for authentication and contact details.

    Contact fields are copied onto listings at creation time so later
    profile edits never rewrite ride history.
    """
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    phone = Column(String(50), unique=True, index=True, nullable=False)
    email = Column(String(255), nullable=True)
    gender = Column(Enum(Gender), default=Gender.UNSPECIFIED, nullable=False)
    hashed_password = Column(String(255), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Account(id={self.id}, name='{self.name}', phone='{self.phone}')>"
