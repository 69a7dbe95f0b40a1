import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError

from pricing_engine.core.config import settings
from pricing_engine.core.constants import INITIAL_RULE_VERSION
from pricing_engine.core.exceptions import (
    BackupNotFoundError,
    InvalidImportDocumentError,
    RuleConflictError,
    RuleValidationError,
    StoreError,
)
from pricing_engine.core.locks import RuleWriteLock
from pricing_engine.models.rule_backup import RuleBackupRecord
from pricing_engine.repositories.pricing_rule_repository import PricingRuleRepository
from pricing_engine.repositories.rule_backup_repository import RuleBackupRepository
from pricing_engine.repositories.rule_history_repository import RuleHistoryRepository
from pricing_engine.schemas.common import HistoryAction
from pricing_engine.schemas.pricing_rule import PricingRule
from pricing_engine.schemas.rule_history import Actor
from pricing_engine.schemas.rule_transfer import (
    BackupSummary,
    ImportResult,
    RuleBackup,
    RuleExportDocument,
)
from pricing_engine.services.pricing_rule_service import (
    AUDIT_FIELDS,
    guarded_write,
    to_rule,
    wire,
)
from pricing_engine.services.rule_validator import RuleValidator

logger = logging.getLogger(__name__)


def new_backup_id() -> str:
    return f"backup_{int(time.time() * 1000)}_{uuid4().hex[:8]}"


class RuleTransferService:
    """Export, import, backup and restore of the whole rule set.

    Import replaces the live rule set in a single transaction: a backup of
    the current rules is written, every live rule is soft-deleted, and the
    incoming rules are inserted at version ``1.0.0``.  Every incoming rule
    is validated before anything is written, so a bad document leaves the
    store untouched and readers never see an empty rule set.
    """

    def __init__(
        self,
        rule_repo: PricingRuleRepository,
        history_repo: RuleHistoryRepository,
        backup_repo: RuleBackupRepository,
        lock: Optional[RuleWriteLock] = None,
        validator: Optional[RuleValidator] = None,
    ) -> None:
        self._rule_repo = rule_repo
        self._history_repo = history_repo
        self._backup_repo = backup_repo
        self._lock = lock or RuleWriteLock()
        self._validator = validator or RuleValidator()

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    async def export_rules(self, actor: Actor) -> RuleExportDocument:
        """Serialize the active rules, ordered by priority."""
        try:
            records = await self._rule_repo.list_live(active_only=True)
            rules = [to_rule(r) for r in records]
            for rule in rules:
                await self._history_repo.append(
                    rule.id, HistoryAction.exported, actor, reason="Rule set exported"
                )
            await self._history_repo.commit()
        except SQLAlchemyError as exc:
            await self._history_repo.rollback()
            logger.error("Failed to export pricing rules", exc_info=True)
            raise StoreError("Failed to export rules") from exc

        logger.info("Exported %d pricing rule(s)", len(rules))
        return RuleExportDocument(
            version=settings.EXPORT_FORMAT_VERSION,
            export_date=datetime.now(timezone.utc),
            rules_count=len(rules),
            rules=rules,
        )

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def validate_document(self, document: Any) -> List[PricingRule]:
        """Validate every incoming rule; nothing is written.

        Priority uniqueness is checked among the incoming rules only,
        since they replace the current generation wholesale.
        """
        if not isinstance(document, Mapping) or not isinstance(
            document.get("rules"), list
        ):
            raise InvalidImportDocumentError()

        accepted: List[PricingRule] = []
        seen_ids = set()
        for index, raw in enumerate(document["rules"]):
            candidate = raw
            if isinstance(raw, Mapping):
                candidate = {k: v for k, v in raw.items() if k not in AUDIT_FIELDS}
                candidate["version"] = INITIAL_RULE_VERSION
            try:
                rule = self._validator.validate(candidate, accepted)
            except RuleValidationError as exc:
                field = f"rules[{index}].{exc.field}" if exc.field else f"rules[{index}]"
                raise RuleValidationError(
                    f"rules[{index}]: {exc.detail}", field=field
                ) from exc
            except RuleConflictError as exc:
                raise RuleConflictError(f"rules[{index}]: {exc.detail}") from exc
            if rule.id in seen_ids:
                raise RuleConflictError(
                    f"rules[{index}]: duplicate rule id '{rule.id}' in import"
                )
            seen_ids.add(rule.id)
            accepted.append(rule)
        return accepted

    async def import_rules(
        self, document: Any, actor: Actor, reason: Optional[str] = None
    ) -> ImportResult:
        incoming = self.validate_document(document)

        async with guarded_write(self._lock, self._rule_repo, "import rules"):
            backup = await self._write_backup(
                actor, f"Auto-backup before import of {len(incoming)} rule(s)"
            )
            replaced = await self._rule_repo.list_live()
            deleted_at = datetime.now(timezone.utc)
            for record in replaced:
                was_active = record.is_active
                await self._rule_repo.soft_delete(record, actor.user_id, deleted_at)
                await self._history_repo.append(
                    record.rule_id,
                    HistoryAction.deactivated,
                    actor,
                    changes={
                        "isActive": {"old": was_active, "new": False},
                        "deletedAt": {"old": None, "new": deleted_at.isoformat()},
                    },
                    reason=f"Replaced by import (backup {backup.id})",
                )
            # Old generation must leave the unique indexes before inserts
            await self._rule_repo.flush()

            records = []
            for rule in incoming:
                records.append(await self._rule_repo.insert(rule, actor.user_id))
                await self._history_repo.append(
                    rule.id,
                    HistoryAction.imported,
                    actor,
                    changes={"version": {"old": None, "new": INITIAL_RULE_VERSION}},
                    reason=reason or f"Imported (backup {backup.id})",
                )
            await self._rule_repo.flush()
            imported = [to_rule(r) for r in records]

        logger.info(
            "Imported %d pricing rule(s), replaced %d (backup %s)",
            len(imported),
            len(replaced),
            backup.id,
        )
        return ImportResult(
            imported_count=len(imported),
            deactivated_count=len(replaced),
            backup_id=backup.id,
            rules=imported,
        )

    # ------------------------------------------------------------------
    # Backups
    # ------------------------------------------------------------------

    async def _write_backup(self, actor: Actor, description: str) -> RuleBackupRecord:
        records = await self._rule_repo.list_live()
        rules: List[Dict[str, Any]] = [wire(to_rule(r)) for r in records]
        backup = await self._backup_repo.add(
            RuleBackupRecord(
                id=new_backup_id(),
                timestamp=datetime.now(timezone.utc),
                user_id=actor.user_id,
                user_name=actor.user_name,
                rules_count=len(rules),
                description=description,
                rules=rules,
            )
        )
        await self._backup_repo.flush()
        logger.info("Backed up %d pricing rule(s) as %s", len(rules), backup.id)
        return backup

    async def create_backup(
        self, actor: Actor, description: Optional[str] = None
    ) -> BackupSummary:
        async with guarded_write(self._lock, self._backup_repo, "create backup"):
            backup = await self._write_backup(actor, description or "Manual backup")
        return BackupSummary.model_validate(backup)

    async def list_backups(self) -> List[BackupSummary]:
        try:
            records = await self._backup_repo.list_all()
        except SQLAlchemyError as exc:
            logger.error("Failed to list rule backups", exc_info=True)
            raise StoreError("Failed to retrieve backups") from exc
        return [BackupSummary.model_validate(r) for r in records]

    async def get_backup(self, backup_id: str) -> RuleBackup:
        try:
            record = await self._backup_repo.get(backup_id)
        except SQLAlchemyError as exc:
            logger.error("Failed to load rule backup %s", backup_id, exc_info=True)
            raise StoreError("Failed to retrieve backup") from exc
        if record is None:
            raise BackupNotFoundError(f"Backup '{backup_id}' not found")
        return RuleBackup.model_validate(record)

    async def restore_backup(self, backup_id: str, actor: Actor) -> ImportResult:
        """Replace the live rule set with the rules stored in a backup."""
        backup = await self.get_backup(backup_id)
        return await self.import_rules(
            {"rules": backup.rules}, actor, reason=f"Restored from {backup_id}"
        )
