import logging
import time
from typing import Dict, Iterable, Optional, Tuple

from models.ledger import LedgerSnapshot
from models.order import ESCROW_STATUSES, Order, OrderStatus
from models.withdrawal import WithdrawalRecord

logger = logging.getLogger(__name__)


# ==============================
# Derivation (pure)
# ==============================

def derive_ledger(
    seller_id: str,
    orders: Iterable[Order],
    withdrawals: Iterable[WithdrawalRecord],
) -> LedgerSnapshot:
    """
    Recompute the four ledger buckets from scratch.

    Each order contributes its amount to at most one bucket:
    paid/delivered/disputed -> in_escrow, refunded -> refunded,
    completed -> available (minus everything withdrawn so far).
    awaiting_payment, canceled and deleted orders contribute nothing.
    """
    in_escrow = 0
    refunded = 0
    completed = 0

    for order in orders:
        if order.seller_id != seller_id:
            continue
        status = OrderStatus(order.status)
        if status in ESCROW_STATUSES:
            in_escrow += order.amount
        elif status == OrderStatus.REFUNDED:
            refunded += order.amount
        elif status == OrderStatus.COMPLETED:
            completed += order.amount

    withdrawn = sum(w.amount for w in withdrawals if w.seller_id == seller_id)

    return LedgerSnapshot(
        seller_id=seller_id,
        available=max(0, completed - withdrawn),
        in_escrow=in_escrow,
        refunded=refunded,
        withdrawn=withdrawn,
    )


async def derive_fresh(store, seller_id: str) -> LedgerSnapshot:
    orders = await store.find_orders(seller_id, include_deleted=True)
    withdrawals = await store.find_withdrawals(seller_id)
    return derive_ledger(seller_id, orders, withdrawals)


# ==============================
# Read cache (invalidated on every mutation)
# ==============================

class LedgerCache:
    def __init__(self, ttl_seconds: int = 30):
        self.ttl_seconds = ttl_seconds
        self._entries: Dict[str, Tuple[LedgerSnapshot, float]] = {}
        # one counter per seller ever mutated; never reset, or a stale put could match again
        self._generations: Dict[str, int] = {}

    def generation(self, seller_id: str) -> int:
        return self._generations.get(seller_id, 0)

    def get(self, seller_id: str) -> Optional[LedgerSnapshot]:
        entry = self._entries.get(seller_id)
        if entry is None:
            return None
        snapshot, cached_at = entry
        if time.monotonic() - cached_at > self.ttl_seconds:
            self._entries.pop(seller_id, None)
            return None
        return snapshot

    def put(self, seller_id: str, snapshot: LedgerSnapshot, generation: int) -> None:
        # a mutation since the read started makes this snapshot stale
        if self.ttl_seconds <= 0 or generation != self.generation(seller_id):
            return
        self._entries[seller_id] = (snapshot, time.monotonic())

    def invalidate(self, seller_id: str) -> None:
        self._generations[seller_id] = self.generation(seller_id) + 1
        self._entries.pop(seller_id, None)


async def get_ledger(store, seller_id: str) -> LedgerSnapshot:
    cached = store.ledger_cache.get(seller_id)
    if cached is not None:
        return cached

    generation = store.ledger_cache.generation(seller_id)
    snapshot = await derive_fresh(store, seller_id)
    store.ledger_cache.put(seller_id, snapshot, generation)
    return snapshot
