"""Per-owner write serialization."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from coach_memory.core.logging import get_logger

logger = get_logger(__name__)


class OwnerLockRegistry:
    """Hands out one asyncio.Lock per owner id.

    Serializes merge/consolidate/compact work for a single owner inside one
    process. Cross-process safety comes from the version compare-and-swap in
    the repository; this registry only keeps one process from racing itself.
    Locks are dropped once no task holds or waits on them.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, owner_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(owner_id, asyncio.Lock())
        self._waiters[owner_id] = self._waiters.get(owner_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[owner_id] -= 1
            if self._waiters[owner_id] == 0:
                del self._waiters[owner_id]
                self._locks.pop(owner_id, None)

    def is_locked(self, owner_id: str) -> bool:
        lock = self._locks.get(owner_id)
        return lock is not None and lock.locked()
