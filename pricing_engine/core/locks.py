import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from redis.asyncio import Redis
from redis.exceptions import LockError, RedisError

from pricing_engine.core.config import settings
from pricing_engine.core.exceptions import RuleSetBusyError, StoreError

logger = logging.getLogger(__name__)

RULE_SET_LOCK_NAME = "pricing_rules:write_lock"

# In-process fallback when Redis is unavailable
_local_lock = asyncio.Lock()


class RuleWriteLock:
    """Serializes every administrative write to the rule set.

    Backed by a Redis lock so that several API instances share it.  If
    *redis_client* is ``None`` (Redis unavailable) a process-local
    ``asyncio.Lock`` is used instead, which only serializes writers in
    this process.
    """

    def __init__(
        self,
        redis_client: Optional[Redis] = None,
        name: str = RULE_SET_LOCK_NAME,
        timeout: int = settings.RULE_LOCK_TIMEOUT_SECONDS,
        wait: int = settings.RULE_LOCK_WAIT_SECONDS,
    ) -> None:
        self._redis = redis_client
        self._name = name
        self._timeout = timeout
        self._wait = wait

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[None]:
        if self._redis is None:
            async with self._hold_local():
                yield
            return

        lock = self._redis.lock(
            self._name, timeout=self._timeout, blocking_timeout=self._wait
        )
        try:
            acquired = await lock.acquire()
        except RedisError as exc:
            logger.error("Failed to acquire rule-set lock from Redis", exc_info=True)
            raise StoreError("Rule-set lock unavailable") from exc
        if not acquired:
            logger.warning("Timed out waiting for rule-set lock %s", self._name)
            raise RuleSetBusyError()
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                logger.warning(
                    "Rule-set lock %s expired before release (timeout=%ds)",
                    self._name,
                    self._timeout,
                )

    @asynccontextmanager
    async def _hold_local(self) -> AsyncIterator[None]:
        try:
            await asyncio.wait_for(_local_lock.acquire(), timeout=self._wait)
        except asyncio.TimeoutError:
            logger.warning("Timed out waiting for local rule-set lock")
            raise RuleSetBusyError() from None
        try:
            yield
        finally:
            _local_lock.release()
