"""
Authentication Pydantic schemas.

Defines request and response schemas for the identity endpoints.
"""

from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from typing import Optional
from ridepool.app.models.ride_enums import Gender


class AccountRegister(BaseModel):
    """
    Schema for account registration.

    Used by POST /auth/register endpoint.
    """
    name: str = Field(..., min_length=1, max_length=255, description="Display name")
    phone: str = Field(..., min_length=6, max_length=50, description="Phone number, unique per account")
    email: Optional[EmailStr] = Field(default=None, description="Contact email")
    gender: Gender = Field(default=Gender.UNSPECIFIED, description="Used by ride preference filters")
    password: str = Field(..., min_length=6, max_length=72, description="Password (6-72 characters)")


class AccountLogin(BaseModel):
    """Schema for login with phone and password."""
    phone: str = Field(..., description="Phone number")
    password: str = Field(..., description="Password")


class TokenResponse(BaseModel):
    """
    Schema for JWT token response.

    Returned by successful login/register operations.
    """
    access_token: str = Field(..., description="JWT access token")
    token_type: str = Field(default="bearer", description="Token type")
    account_id: int = Field(..., description="Account ID")
    name: str
    phone: str


class AccountResponse(BaseModel):
    """Schema for GET /auth/me."""
    id: int
    name: str
    phone: str
    email: Optional[str] = None
    gender: Gender
    created_at: datetime

    class Config:
        from_attributes = True
