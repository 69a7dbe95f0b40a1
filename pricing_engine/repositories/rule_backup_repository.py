from typing import List, Optional

from sqlalchemy import select

from pricing_engine.models.rule_backup import RuleBackupRecord
from pricing_engine.repositories.base import BaseRepository


class RuleBackupRepository(BaseRepository):
    """Encapsulates queries against the ``pricing_rule_backups`` table."""

    async def add(self, backup: RuleBackupRecord) -> RuleBackupRecord:
        self._db.add(backup)
        return backup

    async def get(self, backup_id: str) -> Optional[RuleBackupRecord]:
        result = await self._db.execute(
            select(RuleBackupRecord).where(RuleBackupRecord.id == backup_id)
        )
        return result.scalar_one_or_none()

    async def list_all(self) -> List[RuleBackupRecord]:
        """Return every backup, newest first."""
        result = await self._db.execute(
            select(RuleBackupRecord).order_by(RuleBackupRecord.timestamp.desc())
        )
        return list(result.scalars().all())
