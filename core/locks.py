"""Keyed in-process locks for per-class critical sections."""

import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator


class ClassLockRegistry:
    """
    Hands out one ``asyncio.Lock`` per key.

    Locks are held in a weak-value map, so a key's lock lives exactly as
    long as some coroutine holds or waits on it. Different keys never share
    a lock. A registry must only be used from a single event loop.
    """

    def __init__(self) -> None:
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def get(self, key: str) -> asyncio.Lock:
        """Return the lock for ``key``, creating it on first use."""
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Hold the lock for ``key`` for the duration of the block."""
        lock = self.get(key)
        async with lock:
            yield

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)


def class_key(class_id: str) -> str:
    return f"class:{class_id}"


def overflow_key(root_class_id: str) -> str:
    return f"overflow:{root_class_id}"
