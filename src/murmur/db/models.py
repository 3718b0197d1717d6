"""SQLAlchemy ORM models — single source of truth for the database schema.

Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
Each class = one table. Relationships, constraints, and indexes defined here.
Alembic migrations mirror these models.

Key concepts:
- UUID primary keys for users and conversations (a conversation id is also
  the real-time topic key)
- Integer autoincrement ids for messages, so id order is persisted order
- Membership lives in its own table; the admin set is a flag on the row,
  which keeps admins a subset of members by construction
- Direct conversations carry a `direct_key` (sorted user pair) with a
  UNIQUE constraint, so a pair can never get two rows
- Portable column types only: production runs on PostgreSQL, tests on SQLite
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_uuid() -> uuid.UUID:
    return uuid.uuid4()


def direct_key_for(user_a: uuid.UUID, user_b: uuid.UUID) -> str:
    """Order-independent key for the unordered pair {user_a, user_b}."""
    low, high = sorted((str(user_a), str(user_b)))
    return f"{low}:{high}"


# ══════════════════════════════════════════════════════════════
# Users
# ══════════════════════════════════════════════════════════════


class User(Base):
    """A chat participant.

    The password is stored as a bcrypt hash, never in clear text.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=new_uuid
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    pic: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_admin: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )  # site-wide flag, unrelated to conversation admins
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )


# ══════════════════════════════════════════════════════════════
# Conversations
# ══════════════════════════════════════════════════════════════


class Conversation(Base):
    """A direct (two-person) or group conversation."""

    __tablename__ = "conversations"
    __table_args__ = (
        Index("idx_conversations_updated", "updated_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=new_uuid
    )
    name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    is_group: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    direct_key: Mapped[Optional[str]] = mapped_column(
        String(80), unique=True, nullable=True
    )  # NULL for groups
    latest_message_id: Mapped[Optional[int]] = mapped_column(
        Integer, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    # Relationships
    members: Mapped[list["ConversationMember"]] = relationship(
        back_populates="conversation",
        order_by="ConversationMember.id",
        cascade="all, delete-orphan",
        lazy="raise",
    )
    latest_message: Mapped[Optional["Message"]] = relationship(
        primaryjoin="foreign(Conversation.latest_message_id) == Message.id",
        viewonly=True,
        lazy="raise",
    )

    @property
    def users(self) -> list[User]:
        """Members in join order."""
        return [m.user for m in self.members]

    @property
    def admins(self) -> list[User]:
        return [m.user for m in self.members if m.is_admin]

    def member(self, user_id: uuid.UUID) -> Optional["ConversationMember"]:
        for m in self.members:
            if m.user_id == user_id:
                return m
        return None

    def has_member(self, user_id: uuid.UUID) -> bool:
        return self.member(user_id) is not None

    def is_admin(self, user_id: uuid.UUID) -> bool:
        m = self.member(user_id)
        return m is not None and m.is_admin


class ConversationMember(Base):
    """Membership row — links a user to a conversation.

    The autoincrement id keeps membership ordered by join time.
    """

    __tablename__ = "conversation_members"
    __table_args__ = (
        UniqueConstraint(
            "conversation_id", "user_id", name="uq_conversation_members"
        ),
        Index("idx_conversation_members_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    conversation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )
    is_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    # Relationships
    conversation: Mapped["Conversation"] = relationship(back_populates="members")
    user: Mapped["User"] = relationship(lazy="raise")


# ══════════════════════════════════════════════════════════════
# Messages
# ══════════════════════════════════════════════════════════════


class Message(Base):
    """A chat message. Append-only: never updated, never deleted on its own.

    Messages go away only together with their (group) conversation.
    """

    __tablename__ = "messages"
    __table_args__ = (
        Index("idx_messages_conversation", "conversation_id", "id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    conversation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    sender_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    # Relationships
    sender: Mapped["User"] = relationship(lazy="raise")
