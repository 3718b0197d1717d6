"""Identity directory — credential → user, plus user lookup and search.

The rest of the app never decodes tokens or queries the users table for
identity itself; it goes through this class.
"""

import uuid
from typing import Optional

import structlog
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from murmur.auth.jwt import TokenError, verify_token
from murmur.db.models import User

logger = structlog.get_logger()


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class IdentityDirectory:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def verify_credential(self, token: Optional[str]) -> Optional[User]:
        """Resolve an access token to its user, or None."""
        if not token:
            return None
        try:
            payload = verify_token(token)
            user_id = uuid.UUID(payload["sub"])
        except (TokenError, ValueError) as e:
            logger.info("murmur.credential_rejected", reason=str(e))
            return None
        return await self.find_by_id(user_id)

    async def find_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        return await self.db.get(User, user_id)

    async def find_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.email == email.strip().lower())
        )
        return result.scalars().first()

    async def find_matching(
        self,
        substring: str = "",
        exclude_id: Optional[uuid.UUID] = None,
        limit: int = 50,
    ) -> list[User]:
        """Users whose name or email contains `substring` (case-insensitive).

        An empty substring matches everyone.
        """
        q = select(User)
        term = substring.strip()
        if term:
            pattern = f"%{_escape_like(term)}%"
            q = q.where(
                or_(
                    User.name.ilike(pattern, escape="\\"),
                    User.email.ilike(pattern, escape="\\"),
                )
            )
        if exclude_id is not None:
            q = q.where(User.id != exclude_id)
        result = await self.db.execute(q.order_by(User.name, User.email).limit(limit))
        return list(result.scalars().all())
