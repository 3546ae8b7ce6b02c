from fastapi import APIRouter, Depends

from database import get_store
from models.dispute import DisputeOpen, DisputeResponse
from models.user import Identity
from utils.disputes import get_dispute, open_dispute, respond_to_dispute
from utils.security import get_current_seller

router = APIRouter(prefix="/api/disputes", tags=["Disputes"])


# ======================================================
# BUYER
# ======================================================

@router.post("/{order_id}", status_code=201)
async def buyer_open_dispute(order_id: str, data: DisputeOpen, store=Depends(get_store)):
    dispute = await open_dispute(store, order_id, data.reason, data.description)
    return dispute.model_dump()


@router.get("/{order_id}")
async def buyer_view_dispute(order_id: str, store=Depends(get_store)):
    dispute = await get_dispute(store, order_id)
    return dispute.model_dump()


# ======================================================
# SELLER
# ======================================================

@router.post("/{order_id}/response")
async def seller_respond(
    order_id: str,
    data: DisputeResponse,
    seller: Identity = Depends(get_current_seller),
    store=Depends(get_store),
):
    dispute = await respond_to_dispute(store, order_id, seller.user_id, data.response)
    return dispute.model_dump()
