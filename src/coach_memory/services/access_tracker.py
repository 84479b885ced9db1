"""Background access-time bookkeeping."""

import asyncio
from collections.abc import Sequence
from uuid import UUID

from coach_memory.core.logging import get_logger
from coach_memory.domain.models import utc_now
from coach_memory.services import MemoryStore

logger = get_logger(__name__)


class AccessTracker:
    """Marks returned memories as accessed without holding up the response.

    Each call spawns a task; failures are logged from inside the task and
    never reach the caller. ``drain`` waits for whatever is still in flight.
    """

    def __init__(self, store: MemoryStore):
        self.store = store
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def track(self, owner_id: str, memory_ids: Sequence[UUID]) -> asyncio.Task[None] | None:
        if not memory_ids:
            return None
        task = asyncio.create_task(self._touch(owner_id, list(memory_ids)))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _touch(self, owner_id: str, memory_ids: list[UUID]) -> None:
        try:
            touched = await self.store.touch(owner_id, memory_ids, utc_now())
        except Exception as e:
            logger.warning("Failed to record memory access", owner_id=owner_id, error=str(e), count=len(memory_ids))
            return
        logger.debug(f"Recorded access for {touched} memories", owner_id=owner_id)

    async def drain(self) -> None:
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
