"""
Per-token execution lock coordinator.

Provides a single asyncio.Lock per token so concurrent buy/sell requests
for the same token run one at a time instead of racing on the shared
preload cache. Different tokens never block each other.

A token's lock only lives while someone holds or waits on it, so the
registry stays as small as the set of tokens currently executing.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class ExecutionLocks:
    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled
        # map token -> asyncio.Lock
        self._locks: Dict[str, asyncio.Lock] = {}
        # map token -> holders plus waiters
        self._users: Dict[str, int] = {}
        # guard for creating locks
        self._guard = asyncio.Lock()

    def _release(self, token: str) -> None:
        remaining = self._users.get(token, 1) - 1
        if remaining > 0:
            self._users[token] = remaining
            return
        self._users.pop(token, None)
        self._locks.pop(token, None)

    @asynccontextmanager
    async def hold(self, token: str) -> AsyncIterator[None]:
        if not self.enabled:
            yield
            return
        async with self._guard:
            lock = self._locks.get(token)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[token] = lock
            self._users[token] = self._users.get(token, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._release(token)

    def __len__(self) -> int:
        return len(self._locks)
