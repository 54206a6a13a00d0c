"""
Authentication API endpoints.

Register, login, and current account info. Tokens carry only the
account id; contact details are re-read on every request.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from ridepool.app.db.session import get_db
from ridepool.app.models.account import Account
from ridepool.app.schemas.auth import AccountRegister, AccountLogin, TokenResponse, AccountResponse
from ridepool.app.core.security import get_password_hash, verify_password
from ridepool.app.core.jwt import create_access_token
from ridepool.app.core.dependencies import Identity, get_current_identity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _token_for(account: Account) -> TokenResponse:
    access_token = create_access_token(data={"sub": account.phone, "account_id": account.id})
    return TokenResponse(
        access_token=access_token,
        token_type="bearer",
        account_id=account.id,
        name=account.name,
        phone=account.phone,
    )


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(
    account_data: AccountRegister,
    db: AsyncSession = Depends(get_db)
):
    """
    Register a new account.

    The phone number is the login handle and must be unique.
    """
    phone = account_data.phone.strip()
    result = await db.execute(select(Account).where(Account.phone == phone))
    if result.scalar_one_or_none():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Phone number already registered"
        )

    new_account = Account(
        name=account_data.name.strip(),
        phone=phone,
        email=account_data.email.lower() if account_data.email else None,
        gender=account_data.gender,
        hashed_password=get_password_hash(account_data.password),
    )

    db.add(new_account)
    await db.commit()
    await db.refresh(new_account)

    logger.info("Account registered", extra={"account_id": new_account.id})
    return _token_for(new_account)


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: AccountLogin,
    db: AsyncSession = Depends(get_db)
):
    """Login with phone and password and return a JWT token."""
    result = await db.execute(select(Account).where(Account.phone == credentials.phone.strip()))
    account = result.scalar_one_or_none()

    if not account or not verify_password(credentials.password, account.hashed_password):
        logger.warning("Login failed", extra={"phone": credentials.phone})
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return _token_for(account)


@router.get("/me", response_model=AccountResponse)
async def get_me(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Return the authenticated account."""
    result = await db.execute(select(Account).where(Account.id == identity.account_id))
    return AccountResponse.model_validate(result.scalar_one())
