"""
JWT access tokens.

Tokens identify an account and nothing else: ``account_id`` plus the
phone number as ``sub``. Contact details are looked up fresh on each
request by the identity dependency.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from ridepool.app.core.config import settings

TOKEN_TYPE = "access"


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Sign an access token.

    Args:
        data: Claims to carry; must include ``account_id``
        expires_delta: Lifetime, defaults to ``settings.access_token_expire_minutes``

    Example payload:
        {"sub": "0501234567", "account_id": 123, "type": "access", "exp": 1234567890}
    """
    if "account_id" not in data:
        raise ValueError("Access tokens must carry an account_id")

    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    claims = {**data, "type": TOKEN_TYPE, "exp": datetime.now(timezone.utc) + lifetime}
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Verify signature, expiry and token type.

    Returns:
        The claims, or None if the token is unusable
    """
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None

    if payload.get("type") != TOKEN_TYPE or not isinstance(payload.get("account_id"), int):
        return None
    return payload
