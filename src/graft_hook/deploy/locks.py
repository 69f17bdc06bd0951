"""Per-project mutual exclusion for deployments."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class ProjectLocks:
    """One asyncio.Lock per project name, created on first use.

    Deployments of the same project run one after another; different
    projects never wait on each other. With `enabled=False` nothing is
    serialized and concurrent compose runs against one directory can race.
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._locks: Dict[str, asyncio.Lock] = {}

    def lock_for(self, name: str) -> asyncio.Lock:
        # No await between lookup and insert, so this is atomic on the event loop
        lock = self._locks.get(name)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[name] = lock
        return lock

    def is_locked(self, name: str) -> bool:
        lock = self._locks.get(name)
        return bool(lock and lock.locked())

    @asynccontextmanager
    async def hold(self, name: str) -> AsyncIterator[None]:
        if not self.enabled:
            yield
            return
        async with self.lock_for(name):
            yield
