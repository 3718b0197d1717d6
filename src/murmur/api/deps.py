"""Service providers for route handlers.

The broadcaster and the keyed locks are process-wide objects created in
create_app() and kept on app.state; services get them injected here
instead of importing a global.
"""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from murmur.db.engine import get_db
from murmur.realtime import Broadcaster, KeyedLock
from murmur.services.conversation_service import ConversationService
from murmur.services.message_service import MessageService
from murmur.services.user_service import UserService


def get_broadcaster(request: Request) -> Broadcaster:
    return request.app.state.broadcaster


def get_locks(request: Request) -> KeyedLock:
    return request.app.state.locks


def user_svc(db: AsyncSession = Depends(get_db)) -> UserService:
    return UserService(db)


def conversation_svc(
    db: AsyncSession = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
    locks: KeyedLock = Depends(get_locks),
) -> ConversationService:
    return ConversationService(db, broadcaster, locks)


def message_svc(
    db: AsyncSession = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
    locks: KeyedLock = Depends(get_locks),
) -> MessageService:
    return MessageService(db, broadcaster, locks)
