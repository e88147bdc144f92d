"""
Per-account locks.

A transfer holds the locks of every account it touches for the whole
check-then-commit sequence. Locks are always taken in ascending account id
order, so two transfers over the same pair can never deadlock, while
transfers over disjoint pairs never wait on each other.
"""

import asyncio
import threading
from contextlib import asynccontextmanager
from typing import AsyncIterator


class AccountLockRegistry:
    """Hands out one asyncio.Lock per account id."""

    def __init__(self):
        self._locks: dict[int, asyncio.Lock] = {}
        self._guard = threading.Lock()

    def lock_for(self, account_id: int) -> asyncio.Lock:
        with self._guard:
            lock = self._locks.get(account_id)
            if lock is None:
                lock = self._locks[account_id] = asyncio.Lock()
            return lock

    @asynccontextmanager
    async def hold(self, *account_ids: int) -> AsyncIterator[None]:
        """Acquire the locks for account_ids (deduplicated, ascending)."""
        acquired: list[asyncio.Lock] = []
        try:
            for account_id in sorted(set(account_ids)):
                lock = self.lock_for(account_id)
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()

    def __len__(self) -> int:
        return len(self._locks)
