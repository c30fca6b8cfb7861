# tenant_auth/services/housekeeping.py
import asyncio
import logging

from starlette.concurrency import run_in_threadpool

from tenant_auth.core.config import settings
from tenant_auth.crud import device_session as session_store
from tenant_auth.db.session import SessionLocal

logger = logging.getLogger(__name__)


def purge_dead_sessions() -> int:
    with SessionLocal() as db:
        return session_store.purge_expired(db, settings.SESSION_RETENTION_DAYS)


async def purge_loop(interval_hours: float) -> None:
    """Roda até ser cancelado no shutdown."""
    while True:
        await asyncio.sleep(interval_hours * 3600)
        try:
            await run_in_threadpool(purge_dead_sessions)
        except Exception:
            logger.exception("session purge failed; retrying next cycle")
