"""JWT token creation and verification.

- Access token: short-lived, sent as `Authorization: Bearer <token>` or
  as `?token=` on the WebSocket
- Refresh token: long-lived, only accepted by /auth/refresh

`sub` is the user id; `type` tells the two apart.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from murmur.config import settings

ACCESS = "access"
REFRESH = "refresh"


class TokenError(Exception):
    """Raised when token verification fails."""


def _encode(user_id: str, token_type: str, expires: datetime) -> str:
    payload = {
        "sub": user_id,
        "type": token_type,
        "exp": expires,
        "iat": datetime.now(timezone.utc),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_access_token(user_id: str, expires_minutes: Optional[int] = None) -> str:
    expires = datetime.now(timezone.utc) + timedelta(
        minutes=expires_minutes or settings.access_token_expire_minutes
    )
    return _encode(user_id, ACCESS, expires)


def create_refresh_token(user_id: str, expires_days: Optional[int] = None) -> str:
    expires = datetime.now(timezone.utc) + timedelta(
        days=expires_days or settings.refresh_token_expire_days
    )
    return _encode(user_id, REFRESH, expires)


def verify_token(token: str, expected_type: str = ACCESS) -> dict:
    """Verify and decode a JWT token.

    Returns the payload dict on success.
    Raises TokenError on failure, including a token of the wrong type.
    """
    try:
        payload = jwt.decode(
            token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
    except jwt.ExpiredSignatureError:
        raise TokenError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenError(f"Invalid token: {e}")

    if payload.get("type") != expected_type:
        raise TokenError(f"Expected a {expected_type} token")
    if not payload.get("sub"):
        raise TokenError("Token has no subject")
    return payload
