import asyncio
from contextlib import asynccontextmanager
from typing import Dict


class SellerLocks:
    """
    Per-seller mutual exclusion.

    Every mutation for one seller (status transition, dispute, withdrawal)
    runs inside scope(seller_id). Different sellers never contend.
    A seller's lock is dropped once nobody holds or waits for it.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def scope(self, seller_id: str):
        lock = self._locks.setdefault(seller_id, asyncio.Lock())
        self._users[seller_id] = self._users.get(seller_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[seller_id] -= 1
            if not self._users[seller_id]:
                del self._users[seller_id]
                del self._locks[seller_id]

    def __len__(self) -> int:
        return len(self._locks)
