"""User service — signup, login, token refresh, and peer search.

Service layer separates business logic from HTTP routing: routes call
services, services call the database and raise ChatErrors.
"""

import uuid
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from murmur.auth.directory import IdentityDirectory
from murmur.auth.jwt import (
    REFRESH,
    TokenError,
    create_access_token,
    create_refresh_token,
    verify_token,
)
from murmur.auth.password import hash_password, verify_password
from murmur.config import settings
from murmur.db.models import User
from murmur.errors import Conflict, Unauthenticated

logger = structlog.get_logger()


class UserService:
    """Business logic for accounts and user lookup."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.directory = IdentityDirectory(db)

    # ─── Accounts ───────────────────────────────────────

    async def signup(
        self,
        name: str,
        email: str,
        password: str,
        pic: Optional[str] = None,
    ) -> tuple[User, dict]:
        """Create an account and return it with a fresh token pair.

        The email must be unused (Conflict otherwise). The UNIQUE
        constraint catches the race between two signups for one address.
        """
        email = email.strip().lower()
        if await self.directory.find_by_email(email):
            raise Conflict("Email already registered")

        user = User(
            name=name.strip(),
            email=email,
            password_hash=hash_password(password),
            pic=pic or settings.default_avatar_url,
        )
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise Conflict("Email already registered")

        logger.info("murmur.user_signed_up", user_id=str(user.id))
        return user, self.issue_tokens(user)

    async def login(self, email: str, password: str) -> tuple[User, dict]:
        user = await self.directory.find_by_email(email)
        # Same message for unknown email and wrong password.
        if user is None or not verify_password(password, user.password_hash):
            logger.info("murmur.login_failed")
            raise Unauthenticated("Invalid email or password")
        logger.info("murmur.user_logged_in", user_id=str(user.id))
        return user, self.issue_tokens(user)

    async def refresh(self, refresh_token: str) -> dict:
        """Exchange a refresh token for a new token pair."""
        try:
            payload = verify_token(refresh_token, expected_type=REFRESH)
            user_id = uuid.UUID(payload["sub"])
        except (TokenError, ValueError) as e:
            raise Unauthenticated(str(e))

        user = await self.directory.find_by_id(user_id)
        if user is None:
            raise Unauthenticated("User no longer exists")
        return self.issue_tokens(user)

    @staticmethod
    def issue_tokens(user: User) -> dict:
        return {
            "access_token": create_access_token(str(user.id)),
            "refresh_token": create_refresh_token(str(user.id)),
        }

    # ─── Search ─────────────────────────────────────────

    async def search_users(
        self, caller: User, search: str = "", limit: Optional[int] = None
    ) -> list[User]:
        """Everyone matching `search` except the caller."""
        return await self.directory.find_matching(
            search,
            exclude_id=caller.id,
            limit=limit or settings.search_limit,
        )
