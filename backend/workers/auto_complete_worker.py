import asyncio
import logging
from datetime import datetime, timedelta

from config.env import DELIVERY_GRACE_HOURS
from database import get_store
from models.order import OrderStatus
from utils.errors import EscrowError
from utils.order_service import complete_after_grace

CHECK_INTERVAL_SECONDS = 60 * 15
logger = logging.getLogger(__name__)


async def complete_due_orders(store, now: datetime | None = None, grace_hours: int = DELIVERY_GRACE_HOURS) -> int:
    """
    Release escrow for delivered orders the buyer never confirmed
    once the grace period has passed.
    """
    now = now or datetime.utcnow()
    cutoff = now - timedelta(hours=grace_hours)
    due = await store.find_orders_due(OrderStatus.DELIVERED.value, "delivered_at", cutoff)

    completed = 0
    for order in due:
        try:
            await complete_after_grace(store, order.id, now=now, grace_hours=grace_hours)
            completed += 1
        except EscrowError as e:
            # disputed or confirmed in the meantime
            logger.info("AUTO_COMPLETE_SKIPPED order=%s reason=%s", order.id, e.message)
        except Exception:
            logger.exception("AUTO_COMPLETE_ERROR")

    if completed:
        logger.info("AUTO_COMPLETE_DONE completed=%s", completed)
    return completed


async def auto_complete_worker():
    store = get_store()

    while True:
        try:
            await complete_due_orders(store)
        except Exception:
            logger.exception("AUTO_COMPLETE_ERROR")

        await asyncio.sleep(CHECK_INTERVAL_SECONDS)
