from datetime import datetime
from typing import Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from config.env import LEDGER_CACHE_TTL_SECONDS
from models.dispute import Dispute
from models.order import Order
from models.withdrawal import WithdrawalRecord
from utils.errors import ValidationError
from utils.ledger import LedgerCache
from utils.seller_locks import SellerLocks


# ==============================
# Shared store behaviour
# ==============================

class OrderStore:
    """
    Persistence collaborator for orders, disputes and withdrawal records.

    Besides the collections, a store owns the per-seller serialization
    scope and the ledger read cache, so nothing in the core is global.
    """

    backend = "base"

    def __init__(self, ledger_cache_ttl: int = LEDGER_CACHE_TTL_SECONDS):
        self.locks = SellerLocks()
        self.ledger_cache = LedgerCache(ledger_cache_ttl)

    def seller_scope(self, seller_id: str):
        return self.locks.scope(seller_id)

    @staticmethod
    def _strip(doc: Optional[dict]) -> Optional[dict]:
        if doc is None:
            return None
        doc = dict(doc)
        doc.pop("_id", None)
        return doc

    def _order(self, doc: Optional[dict]) -> Optional[Order]:
        doc = self._strip(doc)
        if doc is None:
            return None
        try:
            return Order.model_validate(doc)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Stored order {doc.get('id')} is malformed",
                errors=[err["msg"] for err in e.errors()],
            )

    def _check_update(self, doc: dict, changes: dict) -> None:
        # the merged document must still be a valid Order before anything is written
        merged = {**self._strip(doc), **changes}
        try:
            Order.model_validate(merged)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid update for order {merged.get('id')}",
                errors=[err["msg"] for err in e.errors()],
            )

    def _dispute(self, doc: Optional[dict]) -> Optional[Dispute]:
        doc = self._strip(doc)
        if doc is None:
            return None
        return Dispute.model_validate(doc)

    def _withdrawal(self, doc: Optional[dict]) -> Optional[WithdrawalRecord]:
        doc = self._strip(doc)
        if doc is None:
            return None
        return WithdrawalRecord.model_validate(doc)

    def _orders(self, docs: Iterable[dict]) -> List[Order]:
        return [self._order(d) for d in docs]


# ==============================
# MongoDB (motor)
# ==============================

class MongoOrderStore(OrderStore):
    backend = "mongo"

    def __init__(self, db, **kwargs):
        super().__init__(**kwargs)
        self.db = db

    async def ping(self):
        await self.db.command("ping")

    # ---------- users ----------

    async def insert_user(self, doc: dict):
        await self.db.users.insert_one({"_id": doc["id"], **doc})

    async def find_user(self, user_id: str) -> Optional[dict]:
        return self._strip(await self.db.users.find_one({"_id": user_id}))

    # ---------- orders ----------

    async def insert_order(self, order: Order):
        doc = order.model_dump()
        await self.db.orders.insert_one({"_id": order.id, **doc})

    async def find_order(self, order_id: str) -> Optional[Order]:
        return self._order(await self.db.orders.find_one({"_id": order_id}))

    async def find_orders(
        self,
        seller_id: str,
        status: Optional[str] = None,
        include_deleted: bool = False,
    ) -> List[Order]:
        query = {"seller_id": seller_id}
        if status:
            query["status"] = status
        elif not include_deleted:
            query["status"] = {"$ne": "deleted"}

        docs = await self.db.orders.find(query).sort("created_at", DESCENDING).to_list(None)
        return self._orders(docs)

    async def find_orders_due(self, status: str, field: str, cutoff: datetime, limit: int = 500) -> List[Order]:
        docs = await self.db.orders.find({
            "status": status,
            field: {"$lte": cutoff},
        }).sort(field, ASCENDING).to_list(limit)
        return self._orders(docs)

    async def update_order(self, order_id: str, expected_status: str, changes: dict) -> Optional[Order]:
        """
        Conditional write: applies only while the order is still in
        expected_status. Returns None when another writer got there first.
        """
        query = {"_id": order_id, "status": expected_status}
        current = await self.db.orders.find_one(query)
        if current is None:
            return None
        self._check_update(current, changes)

        doc = await self.db.orders.find_one_and_update(
            query,
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
        return self._order(doc)

    # ---------- disputes ----------

    async def insert_dispute(self, dispute: Dispute):
        await self.db.disputes.insert_one({"_id": dispute.id, **dispute.model_dump()})

    async def find_dispute(self, order_id: str) -> Optional[Dispute]:
        docs = await self.db.disputes.find({"order_id": order_id}).sort("opened_at", DESCENDING).to_list(1)
        return self._dispute(docs[0]) if docs else None

    async def find_disputes(self, status: Optional[str] = None, seller_id: Optional[str] = None) -> List[Dispute]:
        query = {}
        if status:
            query["status"] = status
        if seller_id:
            query["seller_id"] = seller_id
        docs = await self.db.disputes.find(query).sort("opened_at", DESCENDING).to_list(None)
        return [self._dispute(d) for d in docs]

    async def update_dispute(
        self,
        dispute_id: str,
        expected_statuses: Iterable[str],
        changes: dict,
        event: Optional[dict] = None,
    ) -> Optional[Dispute]:
        update = {"$set": changes}
        if event:
            update["$push"] = {"timeline": event}
        doc = await self.db.disputes.find_one_and_update(
            {"_id": dispute_id, "status": {"$in": list(expected_statuses)}},
            update,
            return_document=ReturnDocument.AFTER,
        )
        return self._dispute(doc)

    # ---------- withdrawals (append-only) ----------

    async def find_withdrawals(self, seller_id: str) -> List[WithdrawalRecord]:
        docs = await self.db.withdrawals.find({"seller_id": seller_id}).sort("seq", ASCENDING).to_list(None)
        return [self._withdrawal(d) for d in docs]

    async def find_withdrawal_by_request(self, seller_id: str, request_id: str) -> Optional[WithdrawalRecord]:
        doc = await self.db.withdrawals.find_one({"seller_id": seller_id, "request_id": request_id})
        return self._withdrawal(doc)

    async def withdrawal_seq(self, seller_id: str) -> int:
        head = await self.db.ledger_heads.find_one({"_id": seller_id})
        return head.get("withdrawal_seq", 0) if head else 0

    async def append_withdrawal(self, record: WithdrawalRecord) -> bool:
        """
        Compare-and-set on the seller's withdrawal sequence, then insert.
        False means another process appended after our balance check.
        """
        expected = record.seq - 1
        if expected == 0:
            try:
                await self.db.ledger_heads.insert_one({"_id": record.seller_id, "withdrawal_seq": 1})
            except DuplicateKeyError:
                return False
        else:
            result = await self.db.ledger_heads.update_one(
                {"_id": record.seller_id, "withdrawal_seq": expected},
                {"$inc": {"withdrawal_seq": 1}},
            )
            if result.modified_count == 0:
                return False

        await self.db.withdrawals.insert_one({"_id": record.id, **record.model_dump()})
        return True

    # ---------- timeline / audit ----------

    async def insert_event(self, doc: dict):
        await self.db.order_timeline.insert_one(dict(doc))

    async def find_events(self, order_id: str) -> List[dict]:
        return await self.db.order_timeline.find(
            {"order_id": order_id},
            {"_id": 0},
        ).sort("created_at", ASCENDING).to_list(None)

    async def insert_audit(self, doc: dict):
        await self.db.audit_logs.insert_one(dict(doc))

    async def delete_audit_before(self, cutoff: datetime) -> int:
        result = await self.db.audit_logs.delete_many({"created_at": {"$lt": cutoff}})
        return result.deleted_count
