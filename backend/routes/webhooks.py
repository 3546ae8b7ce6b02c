import json
import logging

from fastapi import APIRouter, Depends, Request

from database import get_store
from utils.errors import Unauthorized, ValidationError
from utils.order_service import record_payment
from utils.security import verify_payment_signature

router = APIRouter(prefix="/api/webhooks", tags=["Webhooks"])
logger = logging.getLogger(__name__)

SUCCESS_STATUSES = {"success", "succeeded", "completed"}


# =========================================================
# PAYMENT CAPTURE (IDEMPOTENT, SAFE)
# =========================================================

@router.post("/payment")
async def payment_webhook(request: Request, store=Depends(get_store)):
    """
    Payment notifier callback.

    Guarantees:
    - Signature verified over the raw body
    - Replays of a capture already applied succeed without effect
    - Non-success events are acknowledged and ignored
    """

    raw_body = await request.body()
    if not verify_payment_signature(
        raw_body=raw_body,
        received_signature=request.headers.get("X-Payment-Signature"),
    ):
        raise Unauthorized("Invalid webhook signature")

    try:
        payload = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise ValidationError("Invalid JSON payload")
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    order_id = payload.get("order_id")
    event_status = str(payload.get("status") or "").lower()

    if not order_id:
        raise ValidationError("order_id is required", field="order_id")

    if event_status not in SUCCESS_STATUSES:
        logger.info("PAYMENT_WEBHOOK_IGNORED order=%s status=%s", order_id, event_status)
        return {"ok": True, "ignored": True}

    amount = payload.get("amount")
    if amount is not None and (isinstance(amount, bool) or not isinstance(amount, int)):
        raise ValidationError("amount must be a whole number", field="amount")

    transaction_ref = payload.get("transaction_ref")
    if transaction_ref is not None and not isinstance(transaction_ref, str):
        raise ValidationError("transaction_ref must be a string", field="transaction_ref")

    order = await record_payment(
        store,
        order_id,
        amount=amount,
        payment_ref=transaction_ref,
    )
    return {"ok": True, "order_id": order.id, "status": order.status}
