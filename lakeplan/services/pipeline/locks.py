"""
Blueprint admission lock.

Creating a pipeline for a blueprint is a check-then-insert: look for a
non-terminal pipeline of the blueprint, then insert a new one. The locker
serializes that sequence per blueprint inside the process.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class BlueprintLocker:
    """Keyed mutual exclusion, one asyncio lock per blueprint ID.

    Example:
        locker = BlueprintLocker()
        async with locker.hold(blueprint_id):
            ...  # check and create
    """

    def __init__(self) -> None:
        self._locks: dict[int, asyncio.Lock] = {}
        self._holders: dict[int, int] = {}

    @asynccontextmanager
    async def hold(self, blueprint_id: int) -> AsyncIterator[None]:
        """Hold the lock of a blueprint for the duration of the block.

        The lock is released however the block exits.
        """
        lock = self._locks.setdefault(blueprint_id, asyncio.Lock())
        self._holders[blueprint_id] = self._holders.get(blueprint_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[blueprint_id] -= 1
            if self._holders[blueprint_id] == 0:
                # Nobody holds or waits for it
                del self._holders[blueprint_id]
                del self._locks[blueprint_id]

    def locked(self, blueprint_id: int) -> bool:
        lock = self._locks.get(blueprint_id)
        return lock is not None and lock.locked()


blueprint_locker = BlueprintLocker()
