"""
Authentication dependencies for FastAPI.

The identity adapter: turns a bearer token into the caller's verified
contact details. The matching core receives the resulting ``Identity``
as an explicit argument and never reads profile state on its own.
"""

from dataclasses import dataclass
from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from ridepool.app.core.exceptions import AuthenticationError
from ridepool.app.core.jwt import decode_access_token
from ridepool.app.db.session import get_db
from ridepool.app.models.account import Account
from ridepool.app.models.ride_enums import Gender

# HTTP Bearer security scheme
security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    """Verified contact details of the caller."""
    account_id: int
    name: str
    phone: str
    email: Optional[str] = None
    gender: Gender = Gender.UNSPECIFIED

    @classmethod
    def from_account(cls, account: Account) -> "Identity":
        return cls(
            account_id=account.id,
            name=account.name,
            phone=account.phone,
            email=account.email,
            gender=account.gender,
        )


async def _resolve_identity(token: str, db: AsyncSession) -> Identity:
    # 1. Decode and validate JWT
    payload = decode_access_token(token)
    if payload is None:
        raise AuthenticationError("Could not validate credentials")

    account_id = payload.get("account_id")
    if not account_id:
        raise AuthenticationError("Invalid token payload")

    # 2. Real-time database check: the account must still exist
    result = await db.execute(select(Account).where(Account.id == account_id))
    account = result.scalar_one_or_none()

    if not account:
        raise AuthenticationError("Account not found")

    return Identity.from_account(account)


async def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> Identity:
    """
    FastAPI dependency for JWT authentication.

    Raises:
        AuthenticationError: 401 if the token is missing, invalid, or its account is gone
    """
    if credentials is None:
        raise AuthenticationError("Not authenticated")
    return await _resolve_identity(credentials.credentials, db)


async def get_optional_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> Optional[Identity]:
    """
    Like ``get_current_identity`` but anonymous callers get ``None``.

    Used by public listing endpoints that only reveal hidden fields to owners.
    """
    if credentials is None:
        return None
    return await _resolve_identity(credentials.credentials, db)
