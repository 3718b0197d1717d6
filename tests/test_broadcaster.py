"""Broadcaster + KeyedLock tests — no database, no HTTP.

Learn: These pin down the delivery contract the WebSocket layer relies on:
1. Subscribers see only what is published after they subscribe
2. Each subscriber sees publishes in publish order
3. A full queue drops its oldest item, never blocks the publisher
4. One failing subscriber doesn't stop delivery to the others
5. Topics exist only while they have subscribers
"""

import asyncio

import pytest

from murmur.realtime import Broadcaster, KeyedLock, SubscriptionClosed


async def drain(sub, n: int) -> list:
    return [await asyncio.wait_for(sub.get(), timeout=1) for _ in range(n)]


# ═══════════════════════════════════════════════════════════
# Subscribe / publish
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_publish_without_subscribers_is_noop(broadcaster):
    assert await broadcaster.publish("room", "hello") == 0
    assert broadcaster.topics() == []


@pytest.mark.asyncio
async def test_publish_reaches_every_subscriber_in_order(broadcaster):
    a = await broadcaster.subscribe("room")
    b = await broadcaster.subscribe("room")

    for i in range(5):
        assert await broadcaster.publish("room", i) == 2

    assert await drain(a, 5) == [0, 1, 2, 3, 4]
    assert await drain(b, 5) == [0, 1, 2, 3, 4]


@pytest.mark.asyncio
async def test_late_subscriber_gets_no_replay(broadcaster):
    early = await broadcaster.subscribe("room")
    await broadcaster.publish("room", "before")

    late = await broadcaster.subscribe("room")
    await broadcaster.publish("room", "after")

    assert await drain(early, 2) == ["before", "after"]
    assert await drain(late, 1) == ["after"]


@pytest.mark.asyncio
async def test_topics_are_isolated(broadcaster):
    one = await broadcaster.subscribe("one")
    two = await broadcaster.subscribe("two")

    await broadcaster.publish("one", "for-one")

    assert await drain(one, 1) == ["for-one"]
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(two.get(), timeout=0.05)


@pytest.mark.asyncio
async def test_concurrent_publishers_seen_in_same_order_by_all():
    """Publishes are serialized per topic: every subscriber agrees on order."""
    # Room for every item, so nothing is dropped.
    broadcaster = Broadcaster(queue_size=32)
    subs = [await broadcaster.subscribe("room") for _ in range(3)]

    await asyncio.gather(*(broadcaster.publish("room", i) for i in range(20)))

    seen = [await drain(sub, 20) for sub in subs]
    assert seen[0] == seen[1] == seen[2]
    assert sorted(seen[0]) == list(range(20))


# ═══════════════════════════════════════════════════════════
# Closing
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_aclose_is_idempotent_and_removes_topic(broadcaster):
    sub = await broadcaster.subscribe("room")
    assert broadcaster.subscriber_count("room") == 1

    await sub.aclose()
    await sub.aclose()

    assert sub.closed
    assert broadcaster.subscriber_count("room") == 0
    assert "room" not in broadcaster.topics()


@pytest.mark.asyncio
async def test_closed_subscription_receives_nothing(broadcaster):
    keep = await broadcaster.subscribe("room")
    gone = await broadcaster.subscribe("room")
    await gone.aclose()

    assert await broadcaster.publish("room", "x") == 1
    with pytest.raises(SubscriptionClosed):
        await gone.get()
    assert await drain(keep, 1) == ["x"]


@pytest.mark.asyncio
async def test_async_iteration_ends_on_close(broadcaster):
    sub = await broadcaster.subscribe("room")
    received = []

    async def consume():
        async for item in sub:
            received.append(item)

    task = asyncio.create_task(consume())
    await broadcaster.publish("room", "a")
    await broadcaster.publish("room", "b")
    while len(received) < 2:
        await asyncio.sleep(0)

    await sub.aclose()
    await asyncio.wait_for(task, timeout=1)
    assert received == ["a", "b"]


@pytest.mark.asyncio
async def test_context_manager_closes_subscription(broadcaster):
    async with await broadcaster.subscribe("room") as sub:
        assert broadcaster.subscriber_count("room") == 1
    assert sub.closed
    assert broadcaster.topics() == []


@pytest.mark.asyncio
async def test_close_topic_wakes_blocked_reader(broadcaster):
    sub = await broadcaster.subscribe("room")
    waiter = asyncio.create_task(sub.get())
    await asyncio.sleep(0)

    assert await broadcaster.close_topic("room") == 1

    with pytest.raises(SubscriptionClosed):
        await asyncio.wait_for(waiter, timeout=1)
    assert broadcaster.topics() == []


@pytest.mark.asyncio
async def test_close_owner_only_closes_that_owner(broadcaster):
    alice_1 = await broadcaster.subscribe("room", owner="alice")
    alice_2 = await broadcaster.subscribe("room", owner="alice")
    bob = await broadcaster.subscribe("room", owner="bob")

    assert await broadcaster.close_owner("room", "alice") == 2

    assert alice_1.closed and alice_2.closed
    assert not bob.closed
    assert await broadcaster.publish("room", "still here") == 1


@pytest.mark.asyncio
async def test_close_shuts_every_topic(broadcaster):
    subs = [
        await broadcaster.subscribe("one"),
        await broadcaster.subscribe("two"),
    ]
    await broadcaster.close()
    assert all(s.closed for s in subs)
    assert broadcaster.topics() == []


# ═══════════════════════════════════════════════════════════
# Slow and failing subscribers
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_overflow_drops_oldest():
    broadcaster = Broadcaster(queue_size=2)
    slow = await broadcaster.subscribe("room")

    for i in range(5):
        await broadcaster.publish("room", i)

    assert slow.dropped == 3
    assert await drain(slow, 2) == [3, 4]


@pytest.mark.asyncio
async def test_failing_subscriber_is_isolated(broadcaster):
    good = await broadcaster.subscribe("room")
    bad = await broadcaster.subscribe("room")

    def boom(item):
        raise RuntimeError("consumer exploded")

    bad._push = boom

    assert await broadcaster.publish("room", "hello") == 1
    assert await drain(good, 1) == ["hello"]
    assert bad.closed
    assert broadcaster.subscriber_count("room") == 1


def test_queue_size_must_be_positive():
    with pytest.raises(ValueError):
        Broadcaster(queue_size=0)


# ═══════════════════════════════════════════════════════════
# KeyedLock
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_keyed_lock_serializes_same_key(locks):
    events = []

    async def worker(name):
        async with locks.hold("k"):
            events.append(f"{name}-in")
            await asyncio.sleep(0.01)
            events.append(f"{name}-out")

    await asyncio.gather(worker("a"), worker("b"))

    assert events in (
        ["a-in", "a-out", "b-in", "b-out"],
        ["b-in", "b-out", "a-in", "a-out"],
    )
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_keyed_lock_different_keys_do_not_block(locks):
    async with locks.hold("a"):
        async def other():
            async with locks.hold("b"):
                return "done"

        assert await asyncio.wait_for(other(), timeout=1) == "done"
        assert len(locks) == 1
    assert len(locks) == 0
