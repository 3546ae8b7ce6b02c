from datetime import datetime


async def record_order_event(
    store,
    *,
    order_id: str,
    event: str,
    actor_role: str,
    actor_id: str | None = None,
    metadata: dict | None = None,
    at: datetime | None = None,
):
    """
    Single source of truth for order timeline events.
    """

    doc = {
        "order_id": order_id,
        "event": event,
        "actor_role": actor_role,
        "actor_id": actor_id,
        "metadata": metadata or {},
        "created_at": at or datetime.utcnow(),
    }

    await store.insert_event(doc)


async def get_order_timeline(store, order_id: str) -> list[dict]:
    return await store.find_events(order_id)
