"""Per-key exclusive sections for one process.

Two uses in the gateway:
- "direct:<pair>" keys make check-then-create of a direct conversation
  atomic for one user pair (the UNIQUE direct_key column is the backstop).
- conversation ids serialize sends to one conversation from persist
  through publish, so broadcast order equals stored order. Subscribe,
  member removal and group deletion take the same key, so membership
  changes and live subscriptions never interleave.

Unrelated keys never wait on each other. An entry is dropped as soon as
nobody holds or waits on it, so the map stays as small as the set of
keys currently in use.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Hashable


class KeyedLock:
    """A lazily-populated map of asyncio.Lock objects keyed by any hashable."""

    def __init__(self):
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._users: dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
