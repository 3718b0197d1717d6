"""Message service tests — send, history, live delivery.

Learn: The send path stores first and publishes second, so these check
both halves: what the database holds afterwards and what a subscriber
receives.
"""

import asyncio
import uuid

import pytest

from murmur.errors import InvalidInput, NotAMember, NotFound
from murmur.services.conversation_service import ConversationService
from murmur.services.message_service import MessageService


@pytest.fixture()
def conversations(db_session, broadcaster, locks):
    return ConversationService(db_session, broadcaster, locks)


@pytest.fixture()
def messages(db_session, broadcaster, locks):
    return MessageService(db_session, broadcaster, locks)


@pytest.fixture()
async def chat(make_user, conversations):
    """Two users with a direct conversation, plus an outsider."""
    u1 = await make_user("Una")
    u2 = await make_user("Duo")
    u3 = await make_user("Tri")
    conv = await conversations.get_or_create_direct(u1, u2.id)
    return u1, u2, u3, conv


# ═══════════════════════════════════════════════════════════
# Live delivery
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_subscriber_receives_sent_message(messages, chat):
    u1, u2, _, conv = chat
    sub = await messages.subscribe(u2, conv.id)

    sent = await messages.send_message(u1, conv.id, "hi")
    got = await asyncio.wait_for(sub.get(), timeout=1)

    assert got == sent
    assert got.content == "hi"
    assert got.sender.id == u1.id
    assert got.conversation_id == conv.id
    await sub.aclose()


@pytest.mark.asyncio
async def test_sender_own_subscription_also_receives(messages, chat):
    u1, _, _, conv = chat
    sub = await messages.subscribe(u1, conv.id)

    await messages.send_message(u1, conv.id, "echo")

    got = await asyncio.wait_for(sub.get(), timeout=1)
    assert got.content == "echo"


@pytest.mark.asyncio
async def test_non_member_cannot_subscribe(messages, chat, broadcaster):
    _, _, u3, conv = chat
    with pytest.raises(NotAMember):
        await messages.subscribe(u3, conv.id)
    assert broadcaster.subscriber_count(conv.id) == 0


@pytest.mark.asyncio
async def test_subscribe_unknown_conversation(messages, chat):
    u1, _, _, _ = chat
    with pytest.raises(NotFound):
        await messages.subscribe(u1, uuid.uuid4())


@pytest.mark.asyncio
async def test_broadcast_order_matches_stored_order(messages, chat):
    """Concurrent sends: subscribers see them in message id order."""
    u1, u2, _, conv = chat
    sub = await messages.subscribe(u2, conv.id)

    await asyncio.gather(
        *(messages.send_message(u1, conv.id, f"m{i}") for i in range(5))
    )

    received = [await asyncio.wait_for(sub.get(), timeout=1) for _ in range(5)]
    ids = [m.id for m in received]
    assert ids == sorted(ids)

    history = await messages.list_messages(u2, conv.id)
    assert [m.id for m in history] == ids


@pytest.mark.asyncio
async def test_publish_failure_does_not_fail_send(messages, chat, broadcaster, monkeypatch):
    u1, u2, _, conv = chat

    async def broken_publish(topic, item):
        raise RuntimeError("fan-out down")

    monkeypatch.setattr(broadcaster, "publish", broken_publish)

    sent = await messages.send_message(u1, conv.id, "still stored")

    history = await messages.list_messages(u2, conv.id)
    assert [m.id for m in history] == [sent.id]


# ═══════════════════════════════════════════════════════════
# Send validation + persistence
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_empty_message_rejected(messages, chat):
    u1, _, _, conv = chat
    for content in ("", "   ", None):
        with pytest.raises(InvalidInput):
            await messages.send_message(u1, conv.id, content)
    assert await messages.list_messages(u1, conv.id) == []


@pytest.mark.asyncio
async def test_non_member_cannot_send(messages, chat):
    _, _, u3, conv = chat
    with pytest.raises(NotAMember):
        await messages.send_message(u3, conv.id, "let me in")


@pytest.mark.asyncio
async def test_send_moves_latest_pointer(messages, conversations, chat):
    u1, u2, _, conv = chat
    await messages.send_message(u1, conv.id, "first")
    second = await messages.send_message(u2, conv.id, "second")

    reloaded = await conversations.get(conv.id)
    assert reloaded.latest_message_id == second.id
    assert reloaded.latest_message.content == "second"
    assert reloaded.latest_message.sender.id == u2.id


# ═══════════════════════════════════════════════════════════
# History
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_history_oldest_first_with_paging(messages, chat):
    u1, u2, _, conv = chat
    sent = [await messages.send_message(u1, conv.id, f"m{i}") for i in range(6)]

    everything = await messages.list_messages(u2, conv.id)
    assert [m.content for m in everything] == [f"m{i}" for i in range(6)]

    last_two = await messages.list_messages(u2, conv.id, limit=2)
    assert [m.content for m in last_two] == ["m4", "m5"]

    older = await messages.list_messages(u2, conv.id, limit=2, before_id=sent[4].id)
    assert [m.content for m in older] == ["m2", "m3"]


@pytest.mark.asyncio
async def test_history_is_members_only(messages, chat):
    u1, _, u3, conv = chat
    await messages.send_message(u1, conv.id, "private")
    with pytest.raises(NotAMember):
        await messages.list_messages(u3, conv.id)
