from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class TicketLockRegistry:
    """Per-ticket ``asyncio.Lock`` registry.

    Locks are created on first use and dropped once no task holds or waits
    on them, so the registry only grows with the number of tickets being
    mutated concurrently.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, ticket_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(ticket_id)
        if lock is None:
            lock = self._locks[ticket_id] = asyncio.Lock()
        self._users[ticket_id] = self._users.get(ticket_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._users[ticket_id] - 1
            if remaining:
                self._users[ticket_id] = remaining
            else:
                del self._users[ticket_id]
                del self._locks[ticket_id]

    def __len__(self) -> int:
        return len(self._locks)
