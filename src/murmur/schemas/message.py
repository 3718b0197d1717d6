"""Pydantic schemas for messages.

MessageRead is also the payload the broadcaster fans out, so every
subscriber gets exactly what the HTTP API returns for the same message.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from murmur.schemas.user import UserRead


class MessageCreate(BaseModel):
    content: str = Field(..., max_length=10_000)


class MessageRead(BaseModel):
    id: int
    conversation_id: uuid.UUID
    sender: UserRead
    content: str
    created_at: datetime

    model_config = {"from_attributes": True, "frozen": True}
