"""Pydantic schemas for conversations."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from murmur.schemas.message import MessageRead
from murmur.schemas.user import UserRead


class DirectCreate(BaseModel):
    user_id: uuid.UUID


class GroupCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    user_ids: list[uuid.UUID] = Field(default_factory=list)


class GroupRename(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class MemberRef(BaseModel):
    user_id: uuid.UUID


class ConversationRead(BaseModel):
    id: uuid.UUID
    name: Optional[str] = None
    is_group: bool
    users: list[UserRead]
    admins: list[UserRead]
    latest_message: Optional[MessageRead] = None
    updated_at: datetime

    model_config = {"from_attributes": True}


class ConversationDeleted(BaseModel):
    detail: str = "Conversation deleted"
    id: uuid.UUID
    name: Optional[str] = None
