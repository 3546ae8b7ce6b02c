from fastapi import APIRouter, Depends, Query
from typing import Optional

from config.constants import WITHDRAWAL_MAX_REQUESTS, WITHDRAWAL_WINDOW_SECONDS
from database import get_store
from models.user import AuthProof, Identity
from models.withdrawal import WithdrawalCreate
from utils.disputes import list_disputes
from utils.ledger import get_ledger
from utils.rate_limiter import SlidingWindowLimiter
from utils.security import get_current_seller
from utils.withdrawals import list_withdrawals, request_withdrawal

router = APIRouter(
    prefix="/api/seller",
    tags=["Seller"]
)

withdrawal_limiter = SlidingWindowLimiter(WITHDRAWAL_MAX_REQUESTS, WITHDRAWAL_WINDOW_SECONDS)


# ----------------------------------------
# LEDGER
# ----------------------------------------

@router.get("/ledger")
async def seller_ledger(
    seller: Identity = Depends(get_current_seller),
    store=Depends(get_store),
):
    snapshot = await get_ledger(store, seller.user_id)
    return snapshot.model_dump()


# ----------------------------------------
# WITHDRAWALS
# ----------------------------------------

@router.post("/withdrawals", status_code=201)
async def seller_request_withdrawal(
    data: WithdrawalCreate,
    seller: Identity = Depends(get_current_seller),
    store=Depends(get_store),
):
    withdrawal_limiter.hit(f"withdrawal:{seller.user_id}")

    record = await request_withdrawal(
        store,
        seller.user_id,
        data.amount,
        data.destination,
        AuthProof(identity=seller, password=data.password),
        request_id=data.request_id,
    )
    return record.public()


@router.get("/withdrawals")
async def seller_withdrawals(
    seller: Identity = Depends(get_current_seller),
    store=Depends(get_store),
):
    records = await list_withdrawals(store, seller.user_id)
    return {"withdrawals": [r.public() for r in records]}


# ----------------------------------------
# DISPUTES
# ----------------------------------------

@router.get("/disputes")
async def seller_disputes(
    status: Optional[str] = Query(None),
    seller: Identity = Depends(get_current_seller),
    store=Depends(get_store),
):
    disputes = await list_disputes(store, status=status, seller_id=seller.user_id)
    return {"disputes": [d.model_dump() for d in disputes]}
