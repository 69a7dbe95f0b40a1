import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from pricing_engine.core.config import settings
from pricing_engine.repositories.rule_history_repository import RuleHistoryRepository

logger = logging.getLogger(__name__)


async def purge_expired_history(
    session_factory: Callable[..., AsyncSession],
    retention_days: int = settings.HISTORY_RETENTION_DAYS,
    now: datetime | None = None,
) -> int:
    """One-shot: delete history entries older than the retention horizon.

    Returns the number of purged entries.
    """
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=retention_days)
    async with session_factory() as session:
        repo = RuleHistoryRepository(session)
        purged = await repo.purge_older_than(cutoff)
        await repo.commit()
    if purged:
        logger.info("Purged %d rule history entr(ies) older than %s", purged, cutoff)
    return purged


async def start_history_retention_loop(
    session_factory: Callable[..., AsyncSession],
) -> None:
    """Infinite loop that purges expired rule history on a fixed interval."""
    logger.info(
        "History retention task started (interval=%ds, retention=%dd)",
        settings.HISTORY_PURGE_INTERVAL_SECONDS,
        settings.HISTORY_RETENTION_DAYS,
    )
    while True:
        try:
            await purge_expired_history(session_factory)
        except Exception:
            logger.error("History retention cycle failed", exc_info=True)
        await asyncio.sleep(settings.HISTORY_PURGE_INTERVAL_SECONDS)
