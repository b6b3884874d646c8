"""
Per-key locks for async code that may run on several event loops.

The Streamlit front end drives the cached services from one thread per
browser session, each with its own event loop, so an asyncio.Lock shared
between sessions would be bound to whichever loop touched it first.

DESIGN DECISION: A threading.Lock per key, acquired without blocking.
Waiters poll with asyncio.sleep, so a waiting coroutine never blocks
its loop and can be cancelled without leaving the lock held. A key's
lock is dropped as soon as nobody holds or waits for it.
"""

import asyncio
import threading
from contextlib import asynccontextmanager
from typing import AsyncIterator


class KeyedLocks:
    """Mutual exclusion per key (user id, voucher code), safe across threads."""

    def __init__(self, poll_interval: float = 0.005):
        self._poll_interval = poll_interval
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _enter(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._users[key] = self._users.get(key, 0) + 1
            return lock

    def _leave(self, key: str) -> None:
        with self._guard:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Hold the lock for `key` for the duration of the block."""
        lock = self._enter(key)
        try:
            while not lock.acquire(blocking=False):
                await asyncio.sleep(self._poll_interval)
            try:
                yield
            finally:
                lock.release()
        finally:
            self._leave(key)
