"""
JWT Token Handling

Access and refresh tokens issued after OTP verification.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

import jwt
from jwt.exceptions import InvalidTokenError

from spare_finance.api.config import settings


def _encode(claims: Dict[str, Any], lifetime: timedelta, token_type: str) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        **claims,
        "iat": now,
        "exp": now + lifetime,
        "type": token_type,
    }
    return jwt.encode(
        payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM
    )


def create_access_token(
    user_id: UUID,
    email: str,
    is_admin: bool = False,
    plan_id: str = "free",
) -> str:
    """
    Create a short-lived access token.

    Args:
        user_id: User's UUID
        email: User's email
        is_admin: Whether user is admin
        plan_id: Current plan identifier

    Returns:
        Encoded JWT access token
    """
    return _encode(
        {
            "sub": str(user_id),
            "email": email,
            "is_admin": is_admin,
            "plan": plan_id,
        },
        timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        "access",
    )


def create_refresh_token(user_id: UUID) -> str:
    """Create a refresh token with a unique jti."""
    return _encode(
        {"sub": str(user_id), "jti": str(uuid4())},
        timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        "refresh",
    )


def verify_token(token: str, token_type: str = "access") -> Optional[dict]:
    """
    Verify and decode a JWT token.

    Returns:
        Decoded payload if valid and of the expected type, None otherwise
    """
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except InvalidTokenError:
        # ExpiredSignatureError is a subclass
        return None

    if payload.get("type") != token_type:
        return None
    return payload


def get_token_expiry_seconds() -> int:
    """Get access token expiry in seconds."""
    return settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
