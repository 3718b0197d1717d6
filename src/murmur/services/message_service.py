"""Message service — send, history, and live subscription.

Learn: The send path is

    validate → [per-conversation section: persist + move latest pointer
    (one transaction) → publish] → return

The message row, the conversation's latest_message_id and its updated_at
are committed together, so history and "latest" can never disagree. Only
a committed message is published. Holding the conversation's KeyedLock
from persist through publish makes broadcast order equal to message id
order, so the last message a subscriber saw is the one stored as latest.
Subscribe, member removal and group deletion take the same section, so a
removed member can neither slip in a late send nor keep a subscription.

Publishing is best-effort: whatever goes wrong there is logged and the
sender still gets their message back.
"""

import uuid
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from murmur.db.models import Conversation, Message, User, utcnow
from murmur.errors import Internal, InvalidInput, NotFound
from murmur.realtime import Broadcaster, KeyedLock, Subscription
from murmur.schemas.message import MessageRead
from murmur.schemas.user import UserRead
from murmur.services.authorization import require_member

logger = structlog.get_logger()


class MessageService:
    """Business logic for messages and their real-time fan-out."""

    def __init__(
        self,
        db: AsyncSession,
        broadcaster: Broadcaster,
        locks: KeyedLock,
    ):
        self.db = db
        self.broadcaster = broadcaster
        self.locks = locks

    async def _conversation(self, conversation_id: uuid.UUID) -> Conversation:
        """Conversation with fresh membership (no users, no latest message)."""
        result = await self.db.execute(
            select(Conversation)
            .where(Conversation.id == conversation_id)
            .options(selectinload(Conversation.members))
            .execution_options(populate_existing=True)
        )
        conversation = result.scalars().first()
        if conversation is None:
            raise NotFound("Conversation not found")
        return conversation

    # ─── Send ───────────────────────────────────────────

    async def send_message(
        self, caller: User, conversation_id: uuid.UUID, content: Optional[str]
    ) -> MessageRead:
        if not content or not content.strip():
            raise InvalidInput("Message content must not be empty")

        async with self.locks.hold(conversation_id):
            conversation = await self._conversation(conversation_id)
            require_member(conversation, caller)

            message = Message(
                conversation_id=conversation.id,
                sender_id=caller.id,
                content=content,
            )
            self.db.add(message)
            try:
                await self.db.flush()
                conversation.latest_message_id = message.id
                conversation.updated_at = utcnow()
                await self.db.commit()
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.exception(
                    "murmur.send_failed",
                    conversation_id=str(conversation_id),
                    sender_id=str(caller.id),
                )
                raise Internal("Message could not be stored") from e

            payload = MessageRead(
                id=message.id,
                conversation_id=conversation.id,
                sender=UserRead.model_validate(caller),
                content=message.content,
                created_at=message.created_at,
            )

            try:
                reached = await self.broadcaster.publish(conversation.id, payload)
            except Exception:
                logger.exception(
                    "murmur.publish_failed",
                    conversation_id=str(conversation_id),
                    message_id=message.id,
                )
                reached = 0

        logger.info(
            "murmur.message_sent",
            conversation_id=str(conversation_id),
            message_id=message.id,
            sender_id=str(caller.id),
            subscribers=reached,
        )
        return payload

    # ─── History ────────────────────────────────────────

    async def list_messages(
        self,
        caller: User,
        conversation_id: uuid.UUID,
        limit: int = 100,
        before_id: Optional[int] = None,
    ) -> list[Message]:
        """Members only. Oldest first; `before_id` pages backwards."""
        conversation = await self._conversation(conversation_id)
        require_member(conversation, caller)

        q = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .options(selectinload(Message.sender))
            .order_by(Message.id.desc())
            .limit(limit)
        )
        if before_id is not None:
            q = q.where(Message.id < before_id)
        result = await self.db.execute(q)
        return list(reversed(result.scalars().all()))

    # ─── Live ───────────────────────────────────────────

    async def subscribe(
        self, caller: User, conversation_id: uuid.UUID
    ) -> Subscription:
        """Open a live subscription for a member of the conversation.

        Non-members are rejected here, before the broadcaster is involved.
        The membership check and registration share the conversation's lock
        section with removal and deletion, so a subscriber is always a member.
        The caller owns the subscription and must aclose() it.
        """
        async with self.locks.hold(conversation_id):
            conversation = await self._conversation(conversation_id)
            require_member(conversation, caller)
            sub = await self.broadcaster.subscribe(conversation.id, owner=caller.id)
        logger.info(
            "murmur.subscription_opened",
            conversation_id=str(conversation_id),
            user_id=str(caller.id),
            subscription=sub.id,
        )
        return sub
