"""Message API routes — history and send.

Live delivery is not here; see murmur.realtime.websocket.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query

from murmur.api.deps import message_svc
from murmur.auth.dependencies import get_current_user
from murmur.db.models import User
from murmur.schemas.message import MessageCreate, MessageRead
from murmur.services.message_service import MessageService

router = APIRouter()


@router.get(
    "/conversations/{conversation_id}/messages",
    response_model=list[MessageRead],
)
async def list_messages(
    conversation_id: uuid.UUID,
    limit: int = Query(100, ge=1, le=500),
    before_id: Optional[int] = Query(None, description="Page backwards from this id"),
    user: User = Depends(get_current_user),
    svc: MessageService = Depends(message_svc),
):
    return await svc.list_messages(
        user, conversation_id, limit=limit, before_id=before_id
    )


@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=MessageRead,
    status_code=201,
)
async def send_message(
    conversation_id: uuid.UUID,
    body: MessageCreate,
    user: User = Depends(get_current_user),
    svc: MessageService = Depends(message_svc),
):
    """Store the message and push it to everyone watching the conversation."""
    return await svc.send_message(user, conversation_id, body.content)
