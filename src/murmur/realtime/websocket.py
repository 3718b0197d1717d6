"""WebSocket endpoint — live delivery of a conversation's new messages.

Learn: Each client connects to /ws/conversations/{id}?token=JWT. The handler:
1. Authenticates the token through the IdentityDirectory
2. Checks membership (MessageService.subscribe) BEFORE accepting, so a
   non-member never reaches the broadcaster
3. Forwards every published message as one JSON text frame
4. Releases the subscription however the connection ends

Close codes: 4001 unauthenticated, 4003 not a member, 4004 no such
conversation. When the server ends the subscription (member removed,
group deleted, shutdown) the socket is closed with 1000.
"""

import asyncio
import json
import uuid

import structlog
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.websockets import WebSocketState

from murmur.auth.dependencies import bearer_token
from murmur.auth.directory import IdentityDirectory
from murmur.db.engine import get_db
from murmur.errors import Forbidden, NotFound
from murmur.services.message_service import MessageService

logger = structlog.get_logger()
router = APIRouter()

CLOSE_UNAUTHENTICATED = 4001
CLOSE_FORBIDDEN = 4003
CLOSE_NOT_FOUND = 4004


@router.websocket("/ws/conversations/{conversation_id}")
async def conversation_websocket(
    websocket: WebSocket,
    conversation_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    """Stream a conversation's new messages to one client."""
    # ── Authentication + membership ─────────────────────────
    token = websocket.query_params.get("token") or bearer_token(
        websocket.headers.get("authorization")
    )
    user = await IdentityDirectory(db).verify_credential(token)
    if user is None:
        await websocket.close(
            code=CLOSE_UNAUTHENTICATED, reason="Authentication required"
        )
        return

    svc = MessageService(
        db, websocket.app.state.broadcaster, websocket.app.state.locks
    )
    try:
        sub = await svc.subscribe(user, conversation_id)
    except NotFound as e:
        await websocket.close(code=CLOSE_NOT_FOUND, reason=e.message)
        return
    except Forbidden as e:
        await websocket.close(code=CLOSE_FORBIDDEN, reason=e.message)
        return
    finally:
        # Don't pin a pooled connection for the lifetime of the socket.
        await db.close()

    # ── Connection accepted ─────────────────────────────────
    await websocket.accept()
    log = logger.bind(
        conversation_id=str(conversation_id),
        user_id=str(user.id),
        subscription=sub.id,
    )

    async def forward():
        """Subscription → client. Ends when the subscription is closed."""
        try:
            async for message in sub:
                await websocket.send_text(message.model_dump_json())
        except (WebSocketDisconnect, RuntimeError) as e:
            log.debug("murmur.ws_send_stopped", error=str(e))

    async def listen():
        """Client → server. Only pings for now; ends on disconnect."""
        try:
            while True:
                data = await websocket.receive_text()
                try:
                    msg = json.loads(data)
                except json.JSONDecodeError:
                    continue
                if isinstance(msg, dict) and msg.get("type") == "ping":
                    await websocket.send_text(json.dumps({"type": "pong"}))
        except WebSocketDisconnect:
            pass

    forward_task = asyncio.create_task(forward(), name="forward")
    listen_task = asyncio.create_task(listen(), name="listen")

    try:
        done, pending = await asyncio.wait(
            [forward_task, listen_task],
            return_when=asyncio.FIRST_COMPLETED,
        )
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        for task in done:
            error = task.exception()
            if error is not None:
                log.warning(
                    "murmur.ws_task_failed",
                    task=task.get_name(),
                    error=repr(error),
                )
    finally:
        await sub.aclose()
        log.info("murmur.subscription_closed", dropped=sub.dropped)
        if websocket.client_state == WebSocketState.CONNECTED:
            await websocket.close(code=1000, reason="Subscription closed")
