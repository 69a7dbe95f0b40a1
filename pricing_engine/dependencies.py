import logging
from typing import Optional

from fastapi import Depends, Request
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from pricing_engine.core.config import settings
from pricing_engine.core.database import get_db
from pricing_engine.core.locks import RuleWriteLock
from pricing_engine.repositories.pricing_rule_repository import PricingRuleRepository
from pricing_engine.repositories.rule_backup_repository import RuleBackupRepository
from pricing_engine.repositories.rule_history_repository import RuleHistoryRepository
from pricing_engine.schemas.rule_history import Actor
from pricing_engine.services.estimate_service import EstimateService
from pricing_engine.services.pricing_rule_service import PricingRuleService
from pricing_engine.services.rule_test_harness import RuleTestHarness
from pricing_engine.services.rule_transfer_service import RuleTransferService

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Redis client factory
# ---------------------------------------------------------------------------


async def get_redis_client() -> Optional[Redis]:
    """Get an async Redis client, or ``None`` when Redis is unreachable."""
    try:
        client = Redis.from_url(settings.REDIS_URL, decode_responses=True)
        await client.ping()
        return client
    except Exception:
        logger.warning("Redis unavailable – falling back to in-process rule lock")
        return None


async def get_rule_write_lock(
    redis_client: Optional[Redis] = Depends(get_redis_client),
) -> RuleWriteLock:
    return RuleWriteLock(redis_client=redis_client)


# ---------------------------------------------------------------------------
# Acting user
# ---------------------------------------------------------------------------


async def get_actor(request: Request) -> Actor:
    """Build the acting user from ``X-User-Id`` / ``X-User-Name`` headers.

    Authentication happens upstream; the headers are trusted as-is.
    """
    return Actor(
        user_id=request.headers.get("x-user-id") or "system",
        user_name=request.headers.get("x-user-name") or "System User",
        client_ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


# ---------------------------------------------------------------------------
# Repository factory functions (one per repository, each gets the shared db)
# ---------------------------------------------------------------------------


async def get_rule_repo(db: AsyncSession = Depends(get_db)) -> PricingRuleRepository:
    return PricingRuleRepository(db)


async def get_history_repo(db: AsyncSession = Depends(get_db)) -> RuleHistoryRepository:
    return RuleHistoryRepository(db)


async def get_backup_repo(db: AsyncSession = Depends(get_db)) -> RuleBackupRepository:
    return RuleBackupRepository(db)


# ---------------------------------------------------------------------------
# Service factory functions
# ---------------------------------------------------------------------------


async def get_estimate_service(
    rule_repo: PricingRuleRepository = Depends(get_rule_repo),
) -> EstimateService:
    return EstimateService(rule_repo=rule_repo)


async def get_pricing_rule_service(
    rule_repo: PricingRuleRepository = Depends(get_rule_repo),
    history_repo: RuleHistoryRepository = Depends(get_history_repo),
    lock: RuleWriteLock = Depends(get_rule_write_lock),
) -> PricingRuleService:
    """Build a :class:`PricingRuleService` with injected repositories."""
    return PricingRuleService(rule_repo=rule_repo, history_repo=history_repo, lock=lock)


async def get_rule_transfer_service(
    rule_repo: PricingRuleRepository = Depends(get_rule_repo),
    history_repo: RuleHistoryRepository = Depends(get_history_repo),
    backup_repo: RuleBackupRepository = Depends(get_backup_repo),
    lock: RuleWriteLock = Depends(get_rule_write_lock),
) -> RuleTransferService:
    """Build a :class:`RuleTransferService` with injected repositories."""
    return RuleTransferService(
        rule_repo=rule_repo,
        history_repo=history_repo,
        backup_repo=backup_repo,
        lock=lock,
    )


async def get_rule_test_harness() -> RuleTestHarness:
    return RuleTestHarness()
