import logging
from datetime import datetime
from typing import List, Optional

from config.constants import DISPUTE_DESCRIPTION_MAX_LENGTH, DISPUTE_REASON_MAX_LENGTH
from models.dispute import (
    VERDICT_RESOLUTION,
    Dispute,
    DisputeEvent,
    DisputeStatus,
    Verdict,
)
from models.order import Order, OrderStatus
from models.user import Identity
from utils.audit import log_audit
from utils.errors import Conflict, NotFound, Unauthorized, ValidationError
from utils.ids import generate_reference
from utils.lifecycle import Trigger, apply_transition, locked_order, plan_transition
from utils.order_timeline import record_order_event

logger = logging.getLogger(__name__)

OPEN_STATUSES = [DisputeStatus.OPENED.value, DisputeStatus.IN_REVIEW.value]

VERDICT_TRANSITIONS = {
    Verdict.RELEASE: (OrderStatus.COMPLETED, Trigger.ADMIN_RELEASED),
    Verdict.REFUND: (OrderStatus.REFUNDED, Trigger.ADMIN_REFUNDED),
}


def _event(action: str, actor_role: str, details: str, at: datetime) -> dict:
    return DisputeEvent(action=action, actor_role=actor_role, details=details, at=at).model_dump()


# ======================================================
# QUERIES
# ======================================================

async def get_dispute(store, order_id: str) -> Dispute:
    dispute = await store.find_dispute(order_id)
    if dispute is None:
        raise NotFound(f"No dispute for order {order_id}", order_id=order_id)
    return dispute


async def list_disputes(store, status: Optional[str] = None, seller_id: Optional[str] = None) -> List[Dispute]:
    if status is not None:
        try:
            status = DisputeStatus(status).value
        except ValueError:
            raise ValidationError(
                f"Unknown dispute status {status!r}",
                field="status",
                allowed=[s.value for s in DisputeStatus],
            )
    return await store.find_disputes(status=status, seller_id=seller_id)


# ======================================================
# OPEN (BUYER)
# ======================================================

async def open_dispute(
    store,
    order_id: str,
    reason: str,
    description: str = "",
    now: Optional[datetime] = None,
) -> Dispute:
    now = now or datetime.utcnow()

    async with locked_order(store, order_id) as order:
        existing = await store.find_dispute(order_id)
        if existing is not None and existing.is_open:
            raise Conflict(
                f"Order {order_id} already has an unresolved dispute",
                order_id=order_id,
                dispute_id=existing.id,
            )

        plan_transition(order, OrderStatus.DISPUTED, Trigger.DISPUTE_OPENED)

        reason = (reason or "").strip()
        description = (description or "").strip()
        if not reason:
            raise ValidationError("Dispute reason is required", field="reason")
        if len(reason) > DISPUTE_REASON_MAX_LENGTH:
            raise ValidationError("Dispute reason is too long", field="reason", max_length=DISPUTE_REASON_MAX_LENGTH)
        if len(description) > DISPUTE_DESCRIPTION_MAX_LENGTH:
            raise ValidationError(
                "Dispute description is too long",
                field="description",
                max_length=DISPUTE_DESCRIPTION_MAX_LENGTH,
            )

        dispute = Dispute(
            id=generate_reference("DSP"),
            order_id=order.id,
            seller_id=order.seller_id,
            reason=reason,
            description=description,
            opened_at=now,
            updated_at=now,
            timeline=[DisputeEvent(action="opened", actor_role="buyer", details=reason, at=now)],
        )

        # order first: a dangling dispute_ref is visible, an orphan dispute is not
        await apply_transition(
            store,
            order,
            OrderStatus.DISPUTED,
            Trigger.DISPUTE_OPENED,
            actor_role="buyer",
            changes={"dispute_ref": dispute.id},
            metadata={"dispute_id": dispute.id, "reason": reason},
            now=now,
        )
        await store.insert_dispute(dispute)

    logger.info("DISPUTE_OPENED order=%s dispute=%s", order_id, dispute.id)
    return dispute


# ======================================================
# SELLER RESPONSE
# ======================================================

async def respond_to_dispute(
    store,
    order_id: str,
    seller_id: str,
    response: str,
    now: Optional[datetime] = None,
) -> Dispute:
    now = now or datetime.utcnow()

    async with locked_order(store, order_id) as order:
        if order.seller_id != seller_id:
            raise Unauthorized("Order belongs to another seller", order_id=order_id)

        dispute = await store.find_dispute(order_id)
        if dispute is None or not dispute.is_open:
            raise NotFound(f"No open dispute for order {order_id}", order_id=order_id)

        response = (response or "").strip()
        if not response:
            raise ValidationError("Response is required", field="response")
        if len(response) > DISPUTE_DESCRIPTION_MAX_LENGTH:
            raise ValidationError("Response is too long", field="response", max_length=DISPUTE_DESCRIPTION_MAX_LENGTH)

        updated = await store.update_dispute(
            dispute.id,
            OPEN_STATUSES,
            {
                "seller_response": response,
                "responded_at": now,
                "status": DisputeStatus.IN_REVIEW.value,
                "updated_at": now,
            },
            event=_event("seller_responded", "seller", response, now),
        )
        if updated is None:
            raise Conflict(f"Dispute {dispute.id} changed concurrently", dispute_id=dispute.id)

        await record_order_event(
            store,
            order_id=order_id,
            event="DISPUTE_RESPONDED",
            actor_role="seller",
            actor_id=seller_id,
            metadata={"dispute_id": dispute.id},
            at=now,
        )

    return updated


# ======================================================
# RESOLVE (ADMIN)
# ======================================================

async def resolve_dispute(
    store,
    order_id: str,
    verdict,
    admin: Identity,
    comment: str = "",
    now: Optional[datetime] = None,
) -> Order:
    """
    Only path out of disputed. Re-sending the verdict already recorded
    returns the order as it is.
    """
    if admin is None or not admin.is_admin:
        raise Unauthorized("Only an admin can resolve disputes")

    try:
        verdict = Verdict(verdict)
    except ValueError:
        raise ValidationError(
            f"Unknown verdict {verdict!r}",
            field="verdict",
            allowed=[v.value for v in Verdict],
        )

    target, trigger = VERDICT_TRANSITIONS[verdict]
    resolution = VERDICT_RESOLUTION[verdict]
    now = now or datetime.utcnow()

    async with locked_order(store, order_id) as order:
        dispute = await store.find_dispute(order_id)

        if (
            dispute is not None
            and dispute.status == DisputeStatus.RESOLVED.value
            and dispute.resolution == resolution.value
            and order.status == target.value
        ):
            logger.info("DISPUTE_RESOLVE_REPLAY order=%s verdict=%s", order_id, verdict.value)
            return order

        if dispute is None or not dispute.is_open or order.status != OrderStatus.DISPUTED.value:
            raise NotFound(f"No open dispute for order {order_id}", order_id=order_id)

        updated = await apply_transition(
            store,
            order,
            target,
            trigger,
            actor_role="admin",
            actor_id=admin.user_id,
            metadata={"dispute_id": dispute.id, "verdict": verdict.value},
            now=now,
        )

        closed = await store.update_dispute(
            dispute.id,
            OPEN_STATUSES,
            {
                "status": DisputeStatus.RESOLVED.value,
                "resolution": resolution.value,
                "resolved_at": now,
                "resolved_by": admin.user_id,
                "admin_comment": (comment or "").strip(),
                "updated_at": now,
            },
            event=_event("resolved", "admin", verdict.value, now),
        )
        if closed is None:
            raise Conflict(f"Dispute {dispute.id} changed concurrently", dispute_id=dispute.id)

        await log_audit(
            store,
            actor_id=admin.user_id,
            actor_role="admin",
            action="DISPUTE_RESOLVED",
            metadata={"order_id": order_id, "dispute_id": dispute.id, "verdict": verdict.value},
        )

    logger.info("DISPUTE_RESOLVED order=%s verdict=%s", order_id, verdict.value)
    return updated
