from pymongo import ASCENDING, DESCENDING
from pymongo.errors import OperationFailure


def _normalize_key_pairs(keys):
    return [(k, v) for k, v in keys]


async def _create_index_safe(collection, keys, **kwargs):
    """
    Create index safely.
    If Mongo reports IndexOptionsConflict/IndexKeySpecsConflict for the same
    key pattern, drop the conflicting index and recreate with our options.
    """
    desired_key = _normalize_key_pairs(keys)
    desired_name = kwargs.get("name")
    try:
        await collection.create_index(keys, **kwargs)
        return
    except OperationFailure as e:
        if getattr(e, "code", None) not in {85, 86}:
            raise

        stale = []
        async for idx in collection.list_indexes():
            if _normalize_key_pairs(list(idx.get("key", {}).items())) == desired_key:
                name = idx.get("name")
                if name and name != desired_name:
                    stale.append(name)

        for name in stale:
            await collection.drop_index(name)

        await collection.create_index(keys, **kwargs)


async def ensure_indexes(db):
    # Users
    await _create_index_safe(
        db.users,
        [("email", ASCENDING)],
        name="users_email_unique_idx",
        unique=True,
        sparse=True,
    )

    # Orders
    await _create_index_safe(
        db.orders,
        [("seller_id", ASCENDING), ("created_at", DESCENDING)],
        name="orders_seller_created_idx",
    )
    await _create_index_safe(
        db.orders,
        [("seller_id", ASCENDING), ("status", ASCENDING)],
        name="orders_seller_status_idx",
    )
    # worker scans: unpaid links by expiry, deliveries by age
    await _create_index_safe(
        db.orders,
        [("status", ASCENDING), ("expires_at", ASCENDING)],
        name="orders_status_expires_idx",
    )
    await _create_index_safe(
        db.orders,
        [("status", ASCENDING), ("delivered_at", ASCENDING)],
        name="orders_status_delivered_idx",
    )

    # Disputes
    await _create_index_safe(
        db.disputes,
        [("order_id", ASCENDING), ("opened_at", DESCENDING)],
        name="disputes_order_opened_idx",
    )
    await _create_index_safe(
        db.disputes,
        [("status", ASCENDING), ("opened_at", DESCENDING)],
        name="disputes_status_opened_idx",
    )
    await _create_index_safe(
        db.disputes,
        [("seller_id", ASCENDING), ("opened_at", DESCENDING)],
        name="disputes_seller_opened_idx",
    )

    # Withdrawals (append-only)
    await _create_index_safe(
        db.withdrawals,
        [("seller_id", ASCENDING), ("seq", ASCENDING)],
        name="withdrawals_seller_seq_unique_idx",
        unique=True,
    )
    await _create_index_safe(
        db.withdrawals,
        [("seller_id", ASCENDING), ("request_id", ASCENDING)],
        name="withdrawals_seller_request_unique_idx",
        unique=True,
        partialFilterExpression={"request_id": {"$type": "string"}},
    )

    # Timeline / audit
    await _create_index_safe(
        db.order_timeline,
        [("order_id", ASCENDING), ("created_at", ASCENDING)],
        name="order_timeline_order_created_idx",
    )
    await _create_index_safe(
        db.audit_logs,
        [("created_at", ASCENDING)],
        name="audit_logs_created_idx",
    )
