import asyncio
import logging
from datetime import datetime, timedelta

from database import get_store
from utils.audit import AUDIT_RETENTION_DAYS

CHECK_INTERVAL_SECONDS = 60 * 60  # hourly
logger = logging.getLogger(__name__)


async def purge_audit_logs(store, now: datetime | None = None, retention_days: int = AUDIT_RETENTION_DAYS) -> int:
    cutoff = (now or datetime.utcnow()) - timedelta(days=retention_days)
    return await store.delete_audit_before(cutoff)


async def audit_cleanup_worker():
    store = get_store()

    while True:
        try:
            removed = await purge_audit_logs(store)
            if removed:
                logger.info("AUDIT_CLEANUP removed=%s", removed)
        except Exception:
            logger.exception("AUDIT_CLEANUP_ERROR")

        await asyncio.sleep(CHECK_INTERVAL_SECONDS)
