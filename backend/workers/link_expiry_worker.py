import asyncio
import logging
from datetime import datetime

from database import get_store
from models.order import OrderStatus
from utils.errors import EscrowError
from utils.order_service import cancel_order

CHECK_INTERVAL_SECONDS = 60 * 5  # every 5 minutes
logger = logging.getLogger(__name__)


async def expire_stale_links(store, now: datetime | None = None) -> int:
    """
    Cancel unpaid orders whose payment link has expired.
    Returns how many were canceled.
    """
    now = now or datetime.utcnow()
    due = await store.find_orders_due(OrderStatus.AWAITING_PAYMENT.value, "expires_at", now)

    expired = 0
    for order in due:
        try:
            await cancel_order(store, order.id, reason="PAYMENT_LINK_EXPIRED", now=now)
            expired += 1
        except EscrowError as e:
            # paid or deleted between the scan and the lock
            logger.info("ORDER_EXPIRY_SKIPPED order=%s reason=%s", order.id, e.message)
        except Exception:
            logger.exception("ORDER_EXPIRY_ERROR")

    if expired:
        logger.info("ORDER_EXPIRY_DONE canceled=%s", expired)
    return expired


async def link_expiry_worker():
    store = get_store()

    while True:
        try:
            await expire_stale_links(store)
        except Exception:
            logger.exception("ORDER_EXPIRY_ERROR")

        await asyncio.sleep(CHECK_INTERVAL_SECONDS)
