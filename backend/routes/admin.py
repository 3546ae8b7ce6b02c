from fastapi import APIRouter, Depends, Query
from typing import Optional

from database import get_store
from models.dispute import DisputeDecision
from models.user import Identity
from utils.disputes import list_disputes, resolve_dispute
from utils.ledger import derive_fresh
from utils.security import get_current_admin


router = APIRouter(prefix="/api/admin", tags=["Admin"])


# =====================================================
# DISPUTES
# =====================================================

@router.get("/disputes")
async def admin_disputes(
    status: Optional[str] = Query(None),
    admin: Identity = Depends(get_current_admin),
    store=Depends(get_store),
):
    disputes = await list_disputes(store, status=status)
    return {"disputes": [d.model_dump() for d in disputes], "count": len(disputes)}


@router.post("/disputes/{order_id}/resolve")
async def admin_resolve_dispute(
    order_id: str,
    data: DisputeDecision,
    admin: Identity = Depends(get_current_admin),
    store=Depends(get_store),
):
    order = await resolve_dispute(store, order_id, data.verdict, admin, comment=data.comment)
    return order.model_dump()


# =====================================================
# SELLER LEDGER (ALWAYS FRESH)
# =====================================================

@router.get("/sellers/{seller_id}/ledger")
async def admin_seller_ledger(
    seller_id: str,
    admin: Identity = Depends(get_current_admin),
    store=Depends(get_store),
):
    snapshot = await derive_fresh(store, seller_id)
    return snapshot.model_dump()
