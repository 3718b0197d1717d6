"""Real-time infrastructure — in-process pub/sub + WebSocket.

Messages flow through two hops:
1. send_message → Broadcaster.publish(conversation_id, message)
2. Subscription → WebSocket → client (one JSON frame per message)

This decouples message producers (the send path) from consumers (open
WebSocket connections watching a conversation).
"""

from murmur.realtime.broadcaster import (
    Broadcaster,
    Subscription,
    SubscriptionClosed,
)
from murmur.realtime.locks import KeyedLock

__all__ = ["Broadcaster", "KeyedLock", "Subscription", "SubscriptionClosed"]
