import logging
from contextlib import asynccontextmanager
from datetime import datetime
from enum import Enum

from models.order import TERMINAL_STATUSES, Order, OrderStatus
from utils.errors import Conflict, InvalidTransition, NotFound
from utils.order_timeline import record_order_event

logger = logging.getLogger(__name__)

S = OrderStatus


class Trigger(str, Enum):
    PAYMENT_CAPTURED = "payment_captured"
    SELLER_CANCELED = "seller_canceled"
    LINK_EXPIRED = "link_expired"
    SELLER_DELETED = "seller_deleted"
    SELLER_DELIVERED = "seller_delivered"
    DISPUTE_OPENED = "dispute_opened"
    BUYER_CONFIRMED = "buyer_confirmed"
    GRACE_PERIOD_ELAPSED = "grace_period_elapsed"
    ADMIN_RELEASED = "admin_released"
    ADMIN_REFUNDED = "admin_refunded"


# ==============================
# Transition table
# ==============================

TRANSITIONS = {
    S.AWAITING_PAYMENT: {S.PAID, S.CANCELED, S.DELETED},
    S.PAID: {S.DELIVERED, S.DISPUTED},
    S.DELIVERED: {S.COMPLETED, S.DISPUTED},
    S.DISPUTED: {S.COMPLETED, S.REFUNDED},
    S.COMPLETED: set(),
    S.REFUNDED: set(),
    S.CANCELED: set(),
    S.DELETED: set(),
}

EDGE_TRIGGERS = {
    (S.AWAITING_PAYMENT, S.PAID): {Trigger.PAYMENT_CAPTURED},
    (S.AWAITING_PAYMENT, S.CANCELED): {Trigger.SELLER_CANCELED, Trigger.LINK_EXPIRED},
    (S.AWAITING_PAYMENT, S.DELETED): {Trigger.SELLER_DELETED},
    (S.PAID, S.DELIVERED): {Trigger.SELLER_DELIVERED},
    (S.PAID, S.DISPUTED): {Trigger.DISPUTE_OPENED},
    (S.DELIVERED, S.DISPUTED): {Trigger.DISPUTE_OPENED},
    (S.DELIVERED, S.COMPLETED): {Trigger.BUYER_CONFIRMED, Trigger.GRACE_PERIOD_ELAPSED},
    (S.DISPUTED, S.COMPLETED): {Trigger.ADMIN_RELEASED},
    (S.DISPUTED, S.REFUNDED): {Trigger.ADMIN_REFUNDED},
}

# External triggers arrive over an unreliable channel. A duplicate that
# finds the order in one of these statuses was already applied.
REPLAYABLE = {
    Trigger.PAYMENT_CAPTURED: {S.PAID, S.DELIVERED, S.DISPUTED, S.COMPLETED, S.REFUNDED},
    Trigger.BUYER_CONFIRMED: {S.COMPLETED},
    Trigger.GRACE_PERIOD_ELAPSED: {S.COMPLETED},
}

TIMESTAMP_FIELDS = {
    S.PAID: "paid_at",
    S.DELIVERED: "delivered_at",
    S.COMPLETED: "completed_at",
    S.REFUNDED: "refunded_at",
    S.CANCELED: "canceled_at",
    S.DELETED: "deleted_at",
}


def is_replay(order: Order, trigger: Trigger) -> bool:
    return S(order.status) in REPLAYABLE.get(trigger, set())


def plan_transition(order: Order, target: OrderStatus, trigger: Trigger) -> bool:
    """
    Decide what a trigger does to an order.

    Returns True when the transition must be applied, False when the
    trigger is a replay of one already applied. Raises InvalidTransition
    for everything else.
    """
    current = S(order.status)
    target = S(target)

    if is_replay(order, trigger):
        return False

    allowed = TRANSITIONS[current]
    if target not in allowed:
        if current in TERMINAL_STATUSES:
            reason = f"{current.value} is a terminal state"
        else:
            reason = f"allowed targets from {current.value}: {', '.join(sorted(s.value for s in allowed))}"
        raise InvalidTransition(current.value, target.value, reason)

    if trigger not in EDGE_TRIGGERS[(current, target)]:
        raise InvalidTransition(
            current.value,
            target.value,
            f"{trigger.value} cannot drive this transition",
        )

    return True


# ==============================
# Locked access
# ==============================

async def load_order(store, order_id: str) -> Order:
    order = await store.find_order(order_id)
    if order is None:
        raise NotFound(f"Order {order_id} not found", order_id=order_id)
    return order


@asynccontextmanager
async def locked_order(store, order_id: str):
    """
    Enter the owning seller's scope and yield a fresh copy of the order.
    seller_id never changes, so the first read is enough to pick the lock.
    """
    order = await load_order(store, order_id)
    async with store.seller_scope(order.seller_id):
        yield await load_order(store, order_id)


# ==============================
# Apply (only writer of Order.status)
# ==============================

async def apply_transition(
    store,
    order: Order,
    target: OrderStatus,
    trigger: Trigger,
    *,
    actor_role: str,
    actor_id: str | None = None,
    changes: dict | None = None,
    metadata: dict | None = None,
    now: datetime | None = None,
) -> Order:
    """
    Must run inside the seller scope with a freshly loaded order.
    """
    if not plan_transition(order, target, trigger):
        logger.info(
            "TRANSITION_REPLAY order=%s status=%s trigger=%s",
            order.id, order.status, trigger.value,
        )
        return order

    target = S(target)
    now = now or datetime.utcnow()
    fields = {
        "status": target.value,
        "updated_at": now,
        TIMESTAMP_FIELDS[target]: now,
    }
    fields.update(changes or {})

    updated = await store.update_order(order.id, order.status, fields)
    if updated is None:
        raise Conflict(
            f"Order {order.id} changed concurrently",
            order_id=order.id,
            expected_status=order.status,
        )

    store.ledger_cache.invalidate(order.seller_id)

    await record_order_event(
        store,
        order_id=order.id,
        event=trigger.value.upper(),
        actor_role=actor_role,
        actor_id=actor_id,
        metadata={"from": order.status, "to": target.value, **(metadata or {})},
        at=now,
    )

    logger.info(
        "ORDER_TRANSITION order=%s %s->%s trigger=%s",
        order.id, order.status, target.value, trigger.value,
    )
    return updated
