"""FastAPI auth dependencies.

Used as Depends() in route handlers to resolve the caller. The token is a
Bearer JWT in the Authorization header; the IdentityDirectory turns it
into a User row.
"""

from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from murmur.auth.directory import IdentityDirectory
from murmur.db.engine import get_db
from murmur.db.models import User
from murmur.errors import Unauthenticated


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:].strip() or None
    return None


async def get_current_user_optional(
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """The caller, or None when no (valid) token was sent."""
    token = bearer_token(authorization)
    if token is None:
        return None
    return await IdentityDirectory(db).verify_credential(token)


async def get_current_user(
    user: Optional[User] = Depends(get_current_user_optional),
) -> User:
    """The caller — raises Unauthenticated (401) without a valid token."""
    if user is None:
        raise Unauthenticated()
    return user
