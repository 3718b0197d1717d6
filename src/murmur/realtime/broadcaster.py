"""In-process pub/sub — fan-out of new messages to live subscribers.

Learn: A topic is a conversation id. It exists only while it has at least
one subscriber: the first subscribe creates it, the last unsubscribe
removes it. Nothing is persisted here — messages are already stored by
the time they are published, and a subscriber that connects later reads
history through the API instead of getting a replay.

Each topic owns an asyncio.Lock. Subscribe, unsubscribe and publish for
the same topic all take it, so a publish sees one consistent subscriber
set and publishes complete in lock order (asyncio locks are FIFO). Topics
never contend with each other.

Each subscription has a bounded queue. Publish never awaits a consumer:
when a queue is full the OLDEST pending item is dropped to make room and
the subscription's `dropped` counter goes up. A slow reader loses old
messages, it never slows the sender or the other subscribers down.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any, Hashable, Optional

import structlog

logger = structlog.get_logger()

# Pushed into a queue to wake a reader blocked in get() after close.
_CLOSED = object()


class SubscriptionClosed(Exception):
    """Raised by Subscription.get() once the subscription is closed."""


@dataclass(eq=False)
class _Topic:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    subscribers: set["Subscription"] = field(default_factory=set)


class Subscription:
    """One live registration on a topic.

    Iterate it (``async for item in sub``) or call ``get()``. The
    iteration ends only when the subscription is closed — by ``aclose()``,
    by leaving an ``async with`` block, or by the broadcaster (member
    removed, conversation deleted, shutdown).
    """

    def __init__(
        self,
        broadcaster: "Broadcaster",
        topic: Hashable,
        owner: Optional[Hashable],
        queue_size: int,
    ):
        self.id = uuid.uuid4().hex[:12]
        self.topic = topic
        self.owner = owner
        self.dropped = 0
        self._broadcaster = broadcaster
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    # ─── Delivery side (called by the broadcaster) ─────────

    def _push(self, item: Any) -> None:
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
            logger.warning(
                "murmur.subscriber_overflow",
                topic=str(self.topic),
                subscription=self.id,
                dropped=self.dropped,
            )
        self._queue.put_nowait(item)

    def _mark_closed(self) -> None:
        """Stop accepting items and wake a blocked reader. Idempotent."""
        if self._closed:
            return
        self._closed = True
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)

    # ─── Consumer side ───────────────────────────────────

    async def get(self) -> Any:
        """Wait for the next item. Raises SubscriptionClosed when closed."""
        if self._closed:
            raise SubscriptionClosed(self.id)
        item = await self._queue.get()
        if item is _CLOSED or self._closed:
            # Leave the marker for any other waiter.
            self._queue.put_nowait(_CLOSED)
            raise SubscriptionClosed(self.id)
        return item

    async def aclose(self) -> None:
        """Deregister from the topic. Safe to call any number of times."""
        self._mark_closed()
        await self._broadcaster._remove(self)

    def __aiter__(self):
        return self

    async def __anext__(self) -> Any:
        try:
            return await self.get()
        except SubscriptionClosed:
            raise StopAsyncIteration

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<Subscription {self.id} topic={self.topic} {state}>"


class Broadcaster:
    """Topic registry + fan-out. One instance per process, built explicitly
    and handed to whoever needs it (see main.create_app)."""

    def __init__(self, queue_size: int = 100):
        if queue_size < 1:
            raise ValueError("queue_size must be at least 1")
        self.queue_size = queue_size
        self._topics: dict[Hashable, _Topic] = {}

    # ─── Registry ────────────────────────────────────────

    async def subscribe(
        self, topic: Hashable, owner: Optional[Hashable] = None
    ) -> Subscription:
        """Register a new subscription. It sees only later publishes."""
        sub = Subscription(self, topic, owner, self.queue_size)
        while True:
            entry = self._topics.get(topic)
            if entry is None:
                entry = self._topics[topic] = _Topic()
            async with entry.lock:
                # The topic may have been dropped while we waited.
                if self._topics.get(topic) is not entry:
                    continue
                entry.subscribers.add(sub)
                break
        logger.debug(
            "murmur.subscribed",
            topic=str(topic),
            subscription=sub.id,
            subscribers=len(entry.subscribers),
        )
        return sub

    async def _remove(self, sub: Subscription) -> None:
        entry = self._topics.get(sub.topic)
        if entry is None:
            return
        async with entry.lock:
            if sub not in entry.subscribers:
                return
            entry.subscribers.discard(sub)
            if not entry.subscribers and self._topics.get(sub.topic) is entry:
                del self._topics[sub.topic]
        logger.debug(
            "murmur.unsubscribed",
            topic=str(sub.topic),
            subscription=sub.id,
            subscribers=len(entry.subscribers),
        )

    def subscriber_count(self, topic: Hashable) -> int:
        entry = self._topics.get(topic)
        return len(entry.subscribers) if entry else 0

    def topics(self) -> list[Hashable]:
        return list(self._topics)

    # ─── Fan-out ─────────────────────────────────────────

    async def publish(self, topic: Hashable, item: Any) -> int:
        """Deliver `item` to every current subscriber of `topic`.

        Returns how many subscribers received it. A topic without
        subscribers is a no-op. Never raises because of a subscriber:
        a subscriber that fails to take the item is closed and logged.
        """
        entry = self._topics.get(topic)
        if entry is None:
            return 0

        failed: list[Subscription] = []
        delivered = 0
        async with entry.lock:
            for sub in entry.subscribers:
                if sub.closed:
                    continue
                try:
                    sub._push(item)
                    delivered += 1
                except Exception as e:
                    logger.warning(
                        "murmur.delivery_failed",
                        topic=str(topic),
                        subscription=sub.id,
                        error=str(e),
                    )
                    failed.append(sub)

        for sub in failed:
            await sub.aclose()
        return delivered

    # ─── Forced teardown ─────────────────────────────────

    async def close_owner(self, topic: Hashable, owner: Hashable) -> int:
        """Close every subscription `owner` holds on `topic`."""
        entry = self._topics.get(topic)
        if entry is None:
            return 0
        targets = [s for s in list(entry.subscribers) if s.owner == owner]
        for sub in targets:
            await sub.aclose()
        return len(targets)

    async def close_topic(self, topic: Hashable) -> int:
        """Close every subscription on `topic`; the topic disappears."""
        entry = self._topics.get(topic)
        if entry is None:
            return 0
        targets = list(entry.subscribers)
        for sub in targets:
            await sub.aclose()
        return len(targets)

    async def close(self) -> None:
        """Shutdown: close all subscriptions on all topics."""
        for topic in list(self._topics):
            await self.close_topic(topic)
