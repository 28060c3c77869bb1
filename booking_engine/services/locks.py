"""
Per-professional writer locks.

Reservation and reschedule writes for one professional run one at a
time inside this process. Locks are created on demand and dropped once
nobody holds or waits for them.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class ProfessionalLockRegistry:
    """Keyed ``asyncio.Lock`` registry, one lock per professional id."""

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, professional_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(professional_id, asyncio.Lock())
        self._holders[professional_id] = self._holders.get(professional_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[professional_id] -= 1
            if not self._holders[professional_id]:
                del self._holders[professional_id]
                del self._locks[professional_id]

    def __len__(self) -> int:
        return len(self._locks)


reservation_locks = ProfessionalLockRegistry()
