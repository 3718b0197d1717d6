"""Conversation API routes — direct chats, groups, membership, admins.

Routes translate HTTP into service calls; authorization and validation
live in the service layer, which raises ChatErrors (see murmur.errors).
"""

import uuid

from fastapi import APIRouter, Depends

from murmur.api.deps import conversation_svc
from murmur.auth.dependencies import get_current_user
from murmur.db.models import User
from murmur.schemas.conversation import (
    ConversationDeleted,
    ConversationRead,
    DirectCreate,
    GroupCreate,
    GroupRename,
    MemberRef,
)
from murmur.services.conversation_service import ConversationService

router = APIRouter(prefix="/conversations")


@router.get("", response_model=list[ConversationRead])
async def list_my_conversations(
    user: User = Depends(get_current_user),
    svc: ConversationService = Depends(conversation_svc),
):
    """The caller's conversations, most recent activity first."""
    return await svc.list_for_user(user)


@router.post("/direct", response_model=ConversationRead)
async def get_or_create_direct_conversation(
    body: DirectCreate,
    user: User = Depends(get_current_user),
    svc: ConversationService = Depends(conversation_svc),
):
    """Open the direct conversation with another user (created on first use)."""
    return await svc.get_or_create_direct(user, body.user_id)


@router.get("/{conversation_id}", response_model=ConversationRead)
async def get_conversation(
    conversation_id: uuid.UUID,
    user: User = Depends(get_current_user),
    svc: ConversationService = Depends(conversation_svc),
):
    return await svc.get_for_member(user, conversation_id)


# ─── Groups ─────────────────────────────────────────────

@router.post("/groups", response_model=ConversationRead, status_code=201)
async def create_group(
    body: GroupCreate,
    user: User = Depends(get_current_user),
    svc: ConversationService = Depends(conversation_svc),
):
    return await svc.create_group(user, body.name, body.user_ids)


@router.patch("/{conversation_id}", response_model=ConversationRead)
async def rename_group(
    conversation_id: uuid.UUID,
    body: GroupRename,
    user: User = Depends(get_current_user),
    svc: ConversationService = Depends(conversation_svc),
):
    return await svc.rename_group(user, conversation_id, body.name)


@router.delete("/{conversation_id}", response_model=ConversationDeleted)
async def delete_group(
    conversation_id: uuid.UUID,
    user: User = Depends(get_current_user),
    svc: ConversationService = Depends(conversation_svc),
):
    """Admins only. Messages and memberships go with it."""
    deleted = await svc.delete_group(user, conversation_id)
    return ConversationDeleted(id=deleted.id, name=deleted.name)


# ─── Membership ─────────────────────────────────────────

@router.post("/{conversation_id}/members", response_model=ConversationRead)
async def add_member(
    conversation_id: uuid.UUID,
    body: MemberRef,
    user: User = Depends(get_current_user),
    svc: ConversationService = Depends(conversation_svc),
):
    return await svc.add_member(user, conversation_id, body.user_id)


@router.delete(
    "/{conversation_id}/members/{user_id}", response_model=ConversationRead
)
async def remove_member(
    conversation_id: uuid.UUID,
    user_id: uuid.UUID,
    user: User = Depends(get_current_user),
    svc: ConversationService = Depends(conversation_svc),
):
    return await svc.remove_member(user, conversation_id, user_id)


@router.post("/{conversation_id}/admins", response_model=ConversationRead)
async def grant_admin(
    conversation_id: uuid.UUID,
    body: MemberRef,
    user: User = Depends(get_current_user),
    svc: ConversationService = Depends(conversation_svc),
):
    return await svc.grant_admin(user, conversation_id, body.user_id)
