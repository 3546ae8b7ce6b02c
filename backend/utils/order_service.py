import logging
from datetime import datetime, timedelta
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from config.env import (
    DELIVERY_GRACE_HOURS,
    FRONTEND_URL,
    MIN_ORDER_AMOUNT,
    PAYMENT_LINK_EXPIRY_HOURS,
)
from models.order import DeliveryInfo, Order, OrderCreate, OrderStatus
from models.user import Role
from utils.errors import InvalidTransition, NotFound, Unauthorized, ValidationError
from utils.ids import generate_reference
from utils.lifecycle import Trigger, apply_transition, load_order, locked_order, plan_transition
from utils.order_timeline import record_order_event

logger = logging.getLogger(__name__)


def payment_link(order_id: str) -> str:
    return f"{FRONTEND_URL.rstrip('/')}/buyer/pay/{order_id}"


def _require_owner(order: Order, requester_id: str):
    if order.seller_id != requester_id:
        raise Unauthorized("Order belongs to another seller", order_id=order.id)


# ======================================================
# QUERIES
# ======================================================

async def get_orders(store, seller_id: str, status: Optional[str] = None) -> List[Order]:
    if status is not None:
        try:
            status = OrderStatus(status).value
        except ValueError:
            raise ValidationError(
                f"Unknown order status {status!r}",
                field="status",
                allowed=[s.value for s in OrderStatus],
            )
    return await store.find_orders(seller_id, status=status)


async def get_order(store, order_id: str, seller_id: Optional[str] = None) -> Order:
    """
    With seller_id, another seller's order is reported as missing
    rather than forbidden.
    """
    order = await load_order(store, order_id)
    if seller_id is not None and order.seller_id != seller_id:
        raise NotFound(f"Order {order_id} not found", order_id=order_id)
    return order


async def order_stats(store, seller_id: str) -> dict:
    orders = await store.find_orders(seller_id)

    by_status = {s.value: {"count": 0, "value": 0} for s in OrderStatus if s != OrderStatus.DELETED}
    for order in orders:
        bucket = by_status[order.status]
        bucket["count"] += 1
        bucket["value"] += order.amount

    sold = (OrderStatus.PAID, OrderStatus.DELIVERED, OrderStatus.DISPUTED, OrderStatus.COMPLETED)
    return {
        "total_orders": len(orders),
        "total_sales": sum(by_status[s.value]["value"] for s in sold),
        "by_status": by_status,
    }


# ======================================================
# CREATE (SELLER)
# ======================================================

async def create_order(store, seller_id: str, data: OrderCreate, now: Optional[datetime] = None) -> Order:
    if data.amount < MIN_ORDER_AMOUNT:
        raise ValidationError(
            f"Minimum order amount is {MIN_ORDER_AMOUNT}",
            field="amount",
            minimum=MIN_ORDER_AMOUNT,
        )

    seller = await store.find_user(seller_id)
    if not seller or seller.get("role") != Role.SELLER.value:
        raise NotFound("Seller not found", seller_id=seller_id)

    now = now or datetime.utcnow()
    order = Order(
        id=generate_reference("ORD"),
        seller_id=seller_id,
        buyer=data.buyer,
        product_name=data.product_name.strip(),
        product_description=data.product_description.strip(),
        amount=data.amount,
        status=OrderStatus.AWAITING_PAYMENT,
        created_at=now,
        updated_at=now,
        expires_at=now + timedelta(hours=PAYMENT_LINK_EXPIRY_HOURS),
    )
    await store.insert_order(order)

    await record_order_event(
        store,
        order_id=order.id,
        event="ORDER_CREATED",
        actor_role="seller",
        actor_id=seller_id,
        metadata={"amount": order.amount},
        at=now,
    )

    logger.info("ORDER_CREATED order=%s seller=%s amount=%s", order.id, seller_id, order.amount)
    return order


# ======================================================
# PAYMENT (EXTERNAL)
# ======================================================

async def record_payment(
    store,
    order_id: str,
    amount: Optional[int] = None,
    payment_ref: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Order:
    if payment_ref is not None and not isinstance(payment_ref, str):
        raise ValidationError("payment_ref must be a string", field="payment_ref")
    now = now or datetime.utcnow()

    async with locked_order(store, order_id) as order:
        if not plan_transition(order, OrderStatus.PAID, Trigger.PAYMENT_CAPTURED):
            logger.info("PAYMENT_REPLAY order=%s status=%s", order.id, order.status)
            return order

        if amount is not None and amount != order.amount:
            raise ValidationError(
                "Captured amount does not match the order amount",
                field="amount",
                expected=order.amount,
                received=amount,
            )

        if order.expires_at and now > order.expires_at:
            raise InvalidTransition(order.status, OrderStatus.PAID.value, "payment link expired")

        return await apply_transition(
            store,
            order,
            OrderStatus.PAID,
            Trigger.PAYMENT_CAPTURED,
            actor_role="system",
            changes={"payment_ref": payment_ref},
            metadata={"payment_ref": payment_ref},
            now=now,
        )


# ======================================================
# DELIVERY (SELLER)
# ======================================================

def validate_delivery_info(raw, now: datetime) -> DeliveryInfo:
    """
    Delivery evidence is all-or-nothing: destination, carrier, an ETA
    not before today and at least one receipt.
    """
    if isinstance(raw, DeliveryInfo):
        raw = raw.model_dump()
    if not isinstance(raw, dict):
        raise ValidationError("Delivery info must be an object", field="delivery_info")

    try:
        info = DeliveryInfo.model_validate(raw)
    except PydanticValidationError as e:
        raise ValidationError(
            "Delivery info is incomplete",
            fields=sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()}),
        )

    missing = []
    if not info.destination.strip():
        missing.append("destination")
    if not info.carrier.strip():
        missing.append("carrier")
    receipts = [r.strip() for r in info.receipts if r and r.strip()]
    if not receipts:
        missing.append("receipts")
    if missing:
        raise ValidationError("Delivery info is incomplete", fields=missing)

    if info.estimated_arrival.date() < now.date():
        raise ValidationError(
            "Estimated arrival cannot be in the past",
            fields=["estimated_arrival"],
        )

    return info.model_copy(update={
        "destination": info.destination.strip(),
        "carrier": info.carrier.strip(),
        "tracking_number": info.tracking_number.strip(),
        "receipts": receipts,
        "notes": info.notes.strip(),
    })


async def mark_delivered(
    store,
    order_id: str,
    requester_id: str,
    delivery_info,
    now: Optional[datetime] = None,
) -> Order:
    now = now or datetime.utcnow()

    async with locked_order(store, order_id) as order:
        _require_owner(order, requester_id)
        plan_transition(order, OrderStatus.DELIVERED, Trigger.SELLER_DELIVERED)
        info = validate_delivery_info(delivery_info, now)

        return await apply_transition(
            store,
            order,
            OrderStatus.DELIVERED,
            Trigger.SELLER_DELIVERED,
            actor_role="seller",
            actor_id=requester_id,
            changes={"delivery_info": info.model_dump()},
            metadata={"carrier": info.carrier, "tracking_number": info.tracking_number},
            now=now,
        )


# ======================================================
# COMPLETION
# ======================================================

async def confirm_receipt(store, order_id: str, now: Optional[datetime] = None) -> Order:
    async with locked_order(store, order_id) as order:
        return await apply_transition(
            store,
            order,
            OrderStatus.COMPLETED,
            Trigger.BUYER_CONFIRMED,
            actor_role="buyer",
            now=now,
        )


async def complete_after_grace(
    store,
    order_id: str,
    now: Optional[datetime] = None,
    grace_hours: int = DELIVERY_GRACE_HOURS,
) -> Order:
    now = now or datetime.utcnow()

    async with locked_order(store, order_id) as order:
        if not plan_transition(order, OrderStatus.COMPLETED, Trigger.GRACE_PERIOD_ELAPSED):
            return order

        due_at = order.delivered_at + timedelta(hours=grace_hours)
        if now < due_at:
            raise InvalidTransition(
                order.status,
                OrderStatus.COMPLETED.value,
                f"delivery grace period runs until {due_at.isoformat()}",
            )

        return await apply_transition(
            store,
            order,
            OrderStatus.COMPLETED,
            Trigger.GRACE_PERIOD_ELAPSED,
            actor_role="system",
            metadata={"grace_hours": grace_hours},
            now=now,
        )


# ======================================================
# CANCEL / DELETE (SELLER, SYSTEM)
# ======================================================

async def cancel_order(
    store,
    order_id: str,
    requester_id: Optional[str] = None,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Order:
    """
    requester_id None means the system (link expiry) is canceling.
    """
    trigger = Trigger.LINK_EXPIRED if requester_id is None else Trigger.SELLER_CANCELED

    async with locked_order(store, order_id) as order:
        if requester_id is not None:
            _require_owner(order, requester_id)
        plan_transition(order, OrderStatus.CANCELED, trigger)

        if order.paid_at is not None:
            raise InvalidTransition(order.status, OrderStatus.CANCELED.value, "payment already captured")

        return await apply_transition(
            store,
            order,
            OrderStatus.CANCELED,
            trigger,
            actor_role="system" if requester_id is None else "seller",
            actor_id=requester_id,
            changes={"cancel_reason": reason},
            metadata={"reason": reason},
            now=now,
        )


async def delete_order(store, order_id: str, requester_id: str, now: Optional[datetime] = None) -> Order:
    async with locked_order(store, order_id) as order:
        _require_owner(order, requester_id)
        return await apply_transition(
            store,
            order,
            OrderStatus.DELETED,
            Trigger.SELLER_DELETED,
            actor_role="seller",
            actor_id=requester_id,
            now=now,
        )
