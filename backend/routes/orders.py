from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from typing import Optional

from database import get_store
from models.order import OrderCreate
from models.user import Identity
from utils.audit import log_audit
from utils.order_service import (
    cancel_order,
    confirm_receipt,
    create_order,
    delete_order,
    get_order,
    get_orders,
    mark_delivered,
    order_stats,
    payment_link,
)
from utils.order_timeline import get_order_timeline
from utils.security import get_current_seller


router = APIRouter(
    prefix="/api/orders",
    tags=["Orders"]
)


# ======================================================
# SCHEMAS
# ======================================================

class CancelRequest(BaseModel):
    reason: Optional[str] = None


def _with_link(order) -> dict:
    data = order.model_dump()
    data["payment_link"] = payment_link(order.id)
    return data


# ======================================================
# CREATE / LIST (SELLER)
# ======================================================

@router.post("", status_code=201)
async def create_order_route(
    data: OrderCreate,
    seller: Identity = Depends(get_current_seller),
    store=Depends(get_store),
):
    order = await create_order(store, seller.user_id, data)
    return _with_link(order)


@router.get("")
async def list_orders(
    status: Optional[str] = Query(None),
    seller: Identity = Depends(get_current_seller),
    store=Depends(get_store),
):
    orders = await get_orders(store, seller.user_id, status=status)
    return {"orders": [o.model_dump() for o in orders], "count": len(orders)}


@router.get("/stats")
async def seller_order_stats(
    seller: Identity = Depends(get_current_seller),
    store=Depends(get_store),
):
    return await order_stats(store, seller.user_id)


# ======================================================
# BUYER (HOLDS THE PAYMENT LINK)
# ======================================================

@router.get("/{order_id}/public")
async def public_order(order_id: str, store=Depends(get_store)):
    order = await get_order(store, order_id)
    return order.summary()


@router.post("/{order_id}/confirm-receipt")
async def buyer_confirm_receipt(order_id: str, store=Depends(get_store)):
    order = await confirm_receipt(store, order_id)
    return order.summary()


# ======================================================
# SINGLE ORDER (SELLER)
# ======================================================

@router.get("/{order_id}")
async def seller_get_order(
    order_id: str,
    seller: Identity = Depends(get_current_seller),
    store=Depends(get_store),
):
    order = await get_order(store, order_id, seller_id=seller.user_id)
    return _with_link(order)


@router.get("/{order_id}/timeline")
async def seller_order_timeline(
    order_id: str,
    seller: Identity = Depends(get_current_seller),
    store=Depends(get_store),
):
    await get_order(store, order_id, seller_id=seller.user_id)
    return {
        "order_id": order_id,
        "events": await get_order_timeline(store, order_id),
    }


@router.post("/{order_id}/deliver")
async def seller_mark_delivered(
    order_id: str,
    delivery_info: dict,
    seller: Identity = Depends(get_current_seller),
    store=Depends(get_store),
):
    # validated as a whole by the service so missing fields come back together
    order = await mark_delivered(store, order_id, seller.user_id, delivery_info)
    return order.model_dump()


@router.post("/{order_id}/cancel")
async def seller_cancel_order(
    order_id: str,
    data: CancelRequest,
    seller: Identity = Depends(get_current_seller),
    store=Depends(get_store),
):
    order = await cancel_order(store, order_id, requester_id=seller.user_id, reason=data.reason)

    await log_audit(
        store,
        actor_id=seller.user_id,
        actor_role="seller",
        action="ORDER_CANCELED",
        metadata={"order_id": order_id, "reason": data.reason},
    )
    return order.model_dump()


@router.delete("/{order_id}")
async def seller_delete_order(
    order_id: str,
    seller: Identity = Depends(get_current_seller),
    store=Depends(get_store),
):
    await delete_order(store, order_id, seller.user_id)

    await log_audit(
        store,
        actor_id=seller.user_id,
        actor_role="seller",
        action="ORDER_DELETED",
        metadata={"order_id": order_id},
    )
    return {"message": "Order deleted", "order_id": order_id}
