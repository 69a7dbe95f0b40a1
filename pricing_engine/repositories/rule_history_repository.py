from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select

from pricing_engine.models.rule_history import RuleHistoryRecord
from pricing_engine.repositories.base import BaseRepository
from pricing_engine.schemas.common import HistoryAction
from pricing_engine.schemas.rule_history import Actor


class RuleHistoryRepository(BaseRepository):
    """Append-only access to the ``pricing_rule_history`` table."""

    async def append(
        self,
        rule_id: str,
        action: HistoryAction,
        actor: Actor,
        changes: Optional[Dict[str, Any]] = None,
        reason: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> RuleHistoryRecord:
        entry = RuleHistoryRecord(
            rule_id=rule_id,
            action=action.value,
            changes=changes or {},
            user_id=actor.user_id,
            user_name=actor.user_name,
            reason=reason,
            client_metadata=actor.client_metadata(),
            # now() is per transaction; entries written together need distinct times
            timestamp=timestamp or datetime.now(timezone.utc),
        )
        self._db.add(entry)
        return entry

    async def query_by_rule_id(
        self, rule_id: str, limit: int
    ) -> List[RuleHistoryRecord]:
        """Return up to *limit* entries for *rule_id*, newest first."""
        result = await self._db.execute(
            select(RuleHistoryRecord)
            .where(RuleHistoryRecord.rule_id == rule_id)
            .order_by(RuleHistoryRecord.timestamp.desc(), RuleHistoryRecord.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def purge_older_than(self, cutoff: datetime) -> int:
        """Delete entries recorded before *cutoff*; returns the row count."""
        result = await self._db.execute(
            delete(RuleHistoryRecord).where(RuleHistoryRecord.timestamp < cutoff)
        )
        return result.rowcount or 0
