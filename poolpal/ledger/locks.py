"""
Ledger - Per-record mutual exclusion.

``KeyedLock`` hands out one asyncio.Lock per key. Re-entry from the
task that already holds a key is allowed, so a payment transition
holding its order's key can call back into the order store.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional


class KeyedLock:
    """Task-reentrant locks keyed by record id. Idle keys are dropped."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._owners: Dict[str, Optional[asyncio.Task]] = {}
        self._refs: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        task = asyncio.current_task()
        if key in self._owners and self._owners[key] is task:
            yield
            return

        lock = self._locks.setdefault(key, asyncio.Lock())
        self._refs[key] = self._refs.get(key, 0) + 1
        try:
            async with lock:
                self._owners[key] = task
                try:
                    yield
                finally:
                    self._owners.pop(key, None)
        finally:
            self._refs[key] -= 1
            if self._refs[key] == 0:
                del self._refs[key]
                del self._locks[key]
