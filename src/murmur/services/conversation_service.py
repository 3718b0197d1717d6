"""Conversation service — direct chats, groups, membership and admins.

Learn: Two invariants live here.

1. One direct conversation per unordered user pair. The check-then-create
   in get_or_create_direct runs inside a per-pair KeyedLock section, and
   the UNIQUE direct_key column backs it up across processes: a losing
   insert rolls back and re-reads the winner's row. Either way the caller
   just gets the conversation; the race is never surfaced.

2. Admins are a subset of members. The admin flag sits on the membership
   row, so removing a member removes their admin right with it.

Every mutating operation first loads the conversation and runs an
authorization predicate (services/authorization.py).
"""

import uuid
from typing import Optional

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from murmur.auth.directory import IdentityDirectory
from murmur.config import settings
from murmur.db.models import (
    Conversation,
    ConversationMember,
    Message,
    User,
    direct_key_for,
    utcnow,
)
from murmur.errors import Conflict, Internal, InvalidInput, NotFound
from murmur.realtime import Broadcaster, KeyedLock
from murmur.services.authorization import (
    require_admin,
    require_group,
    require_member,
)

logger = structlog.get_logger()

# Everything ConversationRead needs, loaded up front (async: no lazy loads).
CONVERSATION_LOAD = (
    selectinload(Conversation.members).selectinload(ConversationMember.user),
    selectinload(Conversation.latest_message).selectinload(Message.sender),
)


class ConversationService:
    """Business logic for conversations and their membership."""

    def __init__(
        self,
        db: AsyncSession,
        broadcaster: Broadcaster,
        locks: KeyedLock,
    ):
        self.db = db
        self.broadcaster = broadcaster
        self.locks = locks
        self.directory = IdentityDirectory(db)

    # ─── Reads ──────────────────────────────────────────

    async def load(self, conversation_id: uuid.UUID) -> Optional[Conversation]:
        result = await self.db.execute(
            select(Conversation)
            .where(Conversation.id == conversation_id)
            .options(*CONVERSATION_LOAD)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def get(self, conversation_id: uuid.UUID) -> Conversation:
        conversation = await self.load(conversation_id)
        if conversation is None:
            raise NotFound("Conversation not found")
        return conversation

    async def get_for_member(
        self, caller: User, conversation_id: uuid.UUID
    ) -> Conversation:
        conversation = await self.get(conversation_id)
        require_member(conversation, caller)
        return conversation

    async def list_for_user(self, caller: User) -> list[Conversation]:
        """The caller's conversations, most recently active first."""
        result = await self.db.execute(
            select(Conversation)
            .join(ConversationMember)
            .where(ConversationMember.user_id == caller.id)
            .options(*CONVERSATION_LOAD)
            .order_by(Conversation.updated_at.desc(), Conversation.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().unique().all())

    # ─── Direct conversations ───────────────────────────

    async def _find_direct(self, key: str) -> Optional[Conversation]:
        result = await self.db.execute(
            select(Conversation)
            .where(Conversation.direct_key == key)
            .options(*CONVERSATION_LOAD)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def get_or_create_direct(
        self, caller: User, other_user_id: uuid.UUID
    ) -> Conversation:
        """Return the caller's direct conversation with another user,
        creating it on first use."""
        if other_user_id == caller.id:
            raise InvalidInput("You cannot start a conversation with yourself")
        other = await self.directory.find_by_id(other_user_id)
        if other is None:
            raise NotFound("User not found")

        key = direct_key_for(caller.id, other.id)
        async with self.locks.hold(f"direct:{key}"):
            existing = await self._find_direct(key)
            if existing is not None:
                return existing

            conversation = Conversation(
                is_group=False,
                direct_key=key,
                members=[
                    ConversationMember(user_id=caller.id),
                    ConversationMember(user_id=other.id),
                ],
            )
            self.db.add(conversation)
            try:
                await self.db.commit()
            except IntegrityError:
                # Another process created the pair first; use theirs.
                await self.db.rollback()
                logger.info("murmur.direct_conversation_reused", direct_key=key)
                existing = await self._find_direct(key)
                if existing is None:
                    raise Internal("Could not create conversation")
                return existing

        logger.info(
            "murmur.direct_conversation_created",
            conversation_id=str(conversation.id),
        )
        return await self.get(conversation.id)

    # ─── Groups ─────────────────────────────────────────

    async def create_group(
        self, caller: User, name: str, user_ids: list[uuid.UUID]
    ) -> Conversation:
        """Create a group of the caller plus `user_ids`. The caller is
        its first member and only admin."""
        name = name.strip()
        if not name:
            raise InvalidInput("Group name must not be empty")

        others: list[uuid.UUID] = []
        for uid in user_ids:
            if uid != caller.id and uid not in others:
                others.append(uid)
        if len(others) < settings.min_group_members:
            raise InvalidInput(
                f"At least {settings.min_group_members} other users are "
                "required to make a group"
            )

        result = await self.db.execute(select(User.id).where(User.id.in_(others)))
        found = set(result.scalars().all())
        missing = [str(uid) for uid in others if uid not in found]
        if missing:
            raise NotFound(f"Users not found: {', '.join(missing)}")

        conversation = Conversation(
            name=name,
            is_group=True,
            members=[ConversationMember(user_id=caller.id, is_admin=True)]
            + [ConversationMember(user_id=uid) for uid in others],
        )
        self.db.add(conversation)
        await self.db.commit()

        logger.info(
            "murmur.group_created",
            conversation_id=str(conversation.id),
            members=len(others) + 1,
        )
        return await self.get(conversation.id)

    async def rename_group(
        self, caller: User, conversation_id: uuid.UUID, name: str
    ) -> Conversation:
        """Any member may rename a group."""
        name = name.strip()
        if not name:
            raise InvalidInput("Group name must not be empty")

        conversation = await self.get(conversation_id)
        require_group(conversation)
        require_member(conversation, caller)

        conversation.name = name
        conversation.updated_at = utcnow()
        await self.db.commit()
        return await self.get(conversation_id)

    async def add_member(
        self, caller: User, conversation_id: uuid.UUID, user_id: uuid.UUID
    ) -> Conversation:
        conversation = await self.get(conversation_id)
        require_group(conversation)
        require_admin(conversation, caller)

        if conversation.has_member(user_id):
            raise Conflict("User is already in the group")
        if await self.directory.find_by_id(user_id) is None:
            raise NotFound("User not found")

        self.db.add(ConversationMember(conversation_id=conversation.id, user_id=user_id))
        conversation.updated_at = utcnow()
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise Conflict("User is already in the group")

        logger.info(
            "murmur.member_added",
            conversation_id=str(conversation_id),
            user_id=str(user_id),
            by=str(caller.id),
        )
        return await self.get(conversation_id)

    async def remove_member(
        self, caller: User, conversation_id: uuid.UUID, user_id: uuid.UUID
    ) -> Conversation:
        """Remove a member (and their admin right). Their open
        subscriptions to this conversation are closed.

        Runs in the conversation's lock section, so no send or subscribe
        that already checked membership can complete after the removal.
        """
        async with self.locks.hold(conversation_id):
            conversation = await self.get(conversation_id)
            require_group(conversation)
            require_admin(conversation, caller)

            member = conversation.member(user_id)
            if member is None:
                raise NotFound("User is not a member of this conversation")

            await self.db.delete(member)
            conversation.updated_at = utcnow()
            await self.db.commit()

            closed = await self.broadcaster.close_owner(conversation.id, user_id)

        logger.info(
            "murmur.member_removed",
            conversation_id=str(conversation_id),
            user_id=str(user_id),
            by=str(caller.id),
            subscriptions_closed=closed,
        )
        return await self.get(conversation_id)

    async def grant_admin(
        self, caller: User, conversation_id: uuid.UUID, user_id: uuid.UUID
    ) -> Conversation:
        """Make a member an admin. Granting twice is a no-op."""
        conversation = await self.get(conversation_id)
        require_group(conversation)
        require_admin(conversation, caller)

        member = conversation.member(user_id)
        if member is None:
            raise InvalidInput("Only members can be made admins")
        if member.is_admin:
            return conversation

        member.is_admin = True
        conversation.updated_at = utcnow()
        await self.db.commit()

        logger.info(
            "murmur.admin_granted",
            conversation_id=str(conversation_id),
            user_id=str(user_id),
            by=str(caller.id),
        )
        return await self.get(conversation_id)

    async def delete_group(
        self, caller: User, conversation_id: uuid.UUID
    ) -> Conversation:
        """Delete a group with its memberships and messages, then close
        every live subscription to it. Returns the deleted conversation."""
        async with self.locks.hold(conversation_id):
            conversation = await self.get(conversation_id)
            require_group(conversation)
            require_admin(conversation, caller)

            await self.db.execute(
                delete(Message).where(Message.conversation_id == conversation_id)
            )
            await self.db.execute(
                delete(ConversationMember).where(
                    ConversationMember.conversation_id == conversation_id
                )
            )
            await self.db.execute(
                delete(Conversation).where(Conversation.id == conversation_id)
            )
            await self.db.commit()

            closed = await self.broadcaster.close_topic(conversation_id)

        logger.info(
            "murmur.group_deleted",
            conversation_id=str(conversation_id),
            name=conversation.name,
            by=str(caller.id),
            subscriptions_closed=closed,
        )
        return conversation
