import logging
from datetime import datetime

# money-movement trail; purged by the audit cleanup worker
AUDIT_RETENTION_DAYS = 365

logger = logging.getLogger(__name__)


async def log_audit(
    store,
    actor_id: str | None,
    actor_role: str,
    action: str,
    metadata: dict | None = None,
    at: datetime | None = None,
):
    entry = {
        "actor_id": actor_id,
        "actor_role": actor_role,
        "action": action,
        "metadata": metadata or {},
        "created_at": at or datetime.utcnow(),
    }
    await store.insert_audit(entry)
    logger.debug("AUDIT %s actor=%s/%s", action, actor_role, actor_id)
