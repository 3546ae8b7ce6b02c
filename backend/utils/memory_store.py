import asyncio
import copy
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from models.dispute import Dispute
from models.order import Order
from models.withdrawal import WithdrawalRecord
from utils.order_store import OrderStore


class MemoryOrderStore(OrderStore):
    """
    Process-local store with the same contract as MongoOrderStore.
    Used for local runs (STORE_BACKEND=memory) and the test suite.
    """

    backend = "memory"

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.users: Dict[str, dict] = {}
        self.orders: Dict[str, dict] = {}
        self.disputes: Dict[str, dict] = {}
        self.withdrawals: List[dict] = []
        self.ledger_heads: Dict[str, int] = {}
        self.order_timeline: List[dict] = []
        self.audit_logs: List[dict] = []

    async def _yield(self):
        # let other tasks interleave the way a network round trip would
        await asyncio.sleep(0)

    async def ping(self):
        return True

    # ---------- users ----------

    async def insert_user(self, doc: dict):
        self.users[doc["id"]] = copy.deepcopy(doc)

    async def find_user(self, user_id: str) -> Optional[dict]:
        await self._yield()
        doc = self.users.get(user_id)
        return copy.deepcopy(doc) if doc else None

    # ---------- orders ----------

    async def insert_order(self, order: Order):
        await self._yield()
        if order.id in self.orders:
            raise KeyError(f"duplicate order id {order.id}")
        self.orders[order.id] = order.model_dump()

    async def find_order(self, order_id: str) -> Optional[Order]:
        await self._yield()
        return self._order(copy.deepcopy(self.orders.get(order_id)))

    async def find_orders(
        self,
        seller_id: str,
        status: Optional[str] = None,
        include_deleted: bool = False,
    ) -> List[Order]:
        await self._yield()
        docs = [
            d for d in self.orders.values()
            if d["seller_id"] == seller_id
            and (d["status"] == status if status else (include_deleted or d["status"] != "deleted"))
        ]
        docs.sort(key=lambda d: d["created_at"], reverse=True)
        return self._orders(copy.deepcopy(docs))

    async def find_orders_due(self, status: str, field: str, cutoff: datetime, limit: int = 500) -> List[Order]:
        await self._yield()
        docs = [
            d for d in self.orders.values()
            if d["status"] == status and d.get(field) is not None and d[field] <= cutoff
        ]
        docs.sort(key=lambda d: d[field])
        return self._orders(copy.deepcopy(docs[:limit]))

    async def update_order(self, order_id: str, expected_status: str, changes: dict) -> Optional[Order]:
        await self._yield()
        doc = self.orders.get(order_id)
        if doc is None or doc["status"] != expected_status:
            return None
        self._check_update(doc, changes)
        doc.update(copy.deepcopy(changes))
        return self._order(copy.deepcopy(doc))

    # ---------- disputes ----------

    async def insert_dispute(self, dispute: Dispute):
        await self._yield()
        self.disputes[dispute.id] = dispute.model_dump()

    async def find_dispute(self, order_id: str) -> Optional[Dispute]:
        await self._yield()
        docs = [d for d in self.disputes.values() if d["order_id"] == order_id]
        if not docs:
            return None
        latest = max(docs, key=lambda d: d["opened_at"])
        return self._dispute(copy.deepcopy(latest))

    async def find_disputes(self, status: Optional[str] = None, seller_id: Optional[str] = None) -> List[Dispute]:
        await self._yield()
        docs = [
            d for d in self.disputes.values()
            if (not status or d["status"] == status)
            and (not seller_id or d["seller_id"] == seller_id)
        ]
        docs.sort(key=lambda d: d["opened_at"], reverse=True)
        return [self._dispute(copy.deepcopy(d)) for d in docs]

    async def update_dispute(
        self,
        dispute_id: str,
        expected_statuses: Iterable[str],
        changes: dict,
        event: Optional[dict] = None,
    ) -> Optional[Dispute]:
        await self._yield()
        doc = self.disputes.get(dispute_id)
        if doc is None or doc["status"] not in set(expected_statuses):
            return None
        doc.update(copy.deepcopy(changes))
        if event:
            doc.setdefault("timeline", []).append(copy.deepcopy(event))
        return self._dispute(copy.deepcopy(doc))

    # ---------- withdrawals (append-only) ----------

    async def find_withdrawals(self, seller_id: str) -> List[WithdrawalRecord]:
        await self._yield()
        docs = sorted(
            (d for d in self.withdrawals if d["seller_id"] == seller_id),
            key=lambda d: d["seq"],
        )
        return [self._withdrawal(copy.deepcopy(d)) for d in docs]

    async def find_withdrawal_by_request(self, seller_id: str, request_id: str) -> Optional[WithdrawalRecord]:
        await self._yield()
        for d in self.withdrawals:
            if d["seller_id"] == seller_id and d.get("request_id") == request_id:
                return self._withdrawal(copy.deepcopy(d))
        return None

    async def withdrawal_seq(self, seller_id: str) -> int:
        await self._yield()
        return self.ledger_heads.get(seller_id, 0)

    async def append_withdrawal(self, record: WithdrawalRecord) -> bool:
        await self._yield()
        if self.ledger_heads.get(record.seller_id, 0) != record.seq - 1:
            return False
        self.ledger_heads[record.seller_id] = record.seq
        self.withdrawals.append(record.model_dump())
        return True

    # ---------- timeline / audit ----------

    async def insert_event(self, doc: dict):
        self.order_timeline.append(copy.deepcopy(doc))

    async def find_events(self, order_id: str) -> List[dict]:
        await self._yield()
        events = [copy.deepcopy(e) for e in self.order_timeline if e["order_id"] == order_id]
        events.sort(key=lambda e: e["created_at"])
        return events

    async def insert_audit(self, doc: dict):
        self.audit_logs.append(copy.deepcopy(doc))

    async def delete_audit_before(self, cutoff: datetime) -> int:
        before = len(self.audit_logs)
        self.audit_logs = [a for a in self.audit_logs if a["created_at"] >= cutoff]
        return before - len(self.audit_logs)
