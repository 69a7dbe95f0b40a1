import logging
import math
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Iterable, List, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from pricing_engine.core.constants import (
    ACTION_LABELS,
    DEFAULT_HISTORY_LIMIT,
    INITIAL_RULE_VERSION,
    OPERATOR_LABELS,
    category_label,
)
from pricing_engine.core.exceptions import (
    RuleConflictError,
    RuleNotFoundError,
    RuleValidationError,
    StoreError,
)
from pricing_engine.core.locks import RuleWriteLock
from pricing_engine.models.pricing_rule import PricingRuleRecord
from pricing_engine.repositories.base import BaseRepository
from pricing_engine.repositories.pricing_rule_repository import (
    PricingRuleRepository,
    record_to_payload,
)
from pricing_engine.repositories.rule_history_repository import RuleHistoryRepository
from pricing_engine.schemas.common import (
    ActionType,
    ConditionOperator,
    HistoryAction,
    LabelledOption,
    RuleCategory,
)
from pricing_engine.schemas.pricing_rule import (
    DeleteRuleResponse,
    Pagination,
    PricingRule,
    PricingRuleCreate,
    PricingRuleListResponse,
    PricingRuleUpdate,
    RuleFilter,
)
from pricing_engine.schemas.rule_history import Actor, RuleHistoryEntry
from pricing_engine.services.rule_validator import RuleValidator

logger = logging.getLogger(__name__)

# Attributes an author can change; audit columns are managed by the service
EDITABLE_FIELDS = (
    "name",
    "description",
    "notes",
    "category",
    "priority",
    "conditions",
    "actions",
    "isActive",
    "applicableServices",
    "effectiveDate",
    "expiryDate",
)

AUDIT_FIELDS = frozenset(
    {
        "version",
        "deletedAt",
        "createdBy",
        "updatedBy",
        "createdAt",
        "updatedAt",
        "deleted_at",
        "created_by",
        "updated_by",
        "created_at",
        "updated_at",
    }
)


def increment_version(version: str) -> str:
    """Patch-increment a semantic version: ``1.0.9`` -> ``1.0.10``."""
    parts = version.split(".")
    if len(parts) != 3 or not all(p.isdigit() for p in parts):
        raise RuleValidationError(f"Malformed rule version '{version}'", field="version")
    major, minor, patch = (int(p) for p in parts)
    return f"{major}.{minor}.{patch + 1}"


def diff_fields(
    old: Mapping[str, Any], new: Mapping[str, Any], fields: Iterable[str]
) -> Dict[str, Dict[str, Any]]:
    """Field-level ``{field: {old, new}}`` diff; unchanged fields are omitted."""
    return {
        field: {"old": old.get(field), "new": new.get(field)}
        for field in fields
        if old.get(field) != new.get(field)
    }


def to_rule(record: PricingRuleRecord) -> PricingRule:
    return PricingRule.model_validate(record_to_payload(record))


def wire(rule: PricingRule) -> Dict[str, Any]:
    """JSON-compatible camelCase dump of a rule."""
    return rule.model_dump(mode="json", by_alias=True)


@asynccontextmanager
async def guarded_write(
    lock: RuleWriteLock, repo: BaseRepository, action: str
) -> AsyncIterator[None]:
    """Hold the rule-set lock and commit once; roll back on any failure.

    ``SQLAlchemyError`` is logged with a traceback and surfaced as
    ``StoreError``; domain errors propagate unchanged.
    """
    async with lock.hold():
        try:
            yield
            await repo.commit()
        except SQLAlchemyError as exc:
            await repo.rollback()
            logger.error("Failed to %s", action, exc_info=True)
            raise StoreError(f"Failed to {action}") from exc
        except Exception:
            await repo.rollback()
            raise


class PricingRuleService:
    """Versioned create/update/delete of pricing rules with an audit trail.

    Every write validates the complete rule, persists it, and appends a
    history entry in the same transaction.  Versions are derived from the
    persisted row, read ``FOR UPDATE`` inside the write.
    """

    def __init__(
        self,
        rule_repo: PricingRuleRepository,
        history_repo: RuleHistoryRepository,
        lock: Optional[RuleWriteLock] = None,
        validator: Optional[RuleValidator] = None,
    ) -> None:
        self._rule_repo = rule_repo
        self._history_repo = history_repo
        self._lock = lock or RuleWriteLock()
        self._validator = validator or RuleValidator()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, rule_id: str) -> PricingRule:
        """Return *rule_id*; a soft-deleted rule is returned with ``deletedAt`` set."""
        try:
            record = await self._rule_repo.get_latest_by_rule_id(rule_id)
        except SQLAlchemyError as exc:
            logger.error("Failed to load pricing rule %s", rule_id, exc_info=True)
            raise StoreError("Failed to retrieve pricing rule") from exc
        if record is None:
            raise RuleNotFoundError(f"Rule with ID '{rule_id}' not found")
        return to_rule(record)

    async def list(self, filters: RuleFilter) -> PricingRuleListResponse:
        try:
            records, total = await self._rule_repo.list_filtered(filters)
        except SQLAlchemyError as exc:
            logger.error("Failed to list pricing rules", exc_info=True)
            raise StoreError("Failed to retrieve pricing rules") from exc
        return PricingRuleListResponse(
            rules=[to_rule(r) for r in records],
            pagination=Pagination(
                page=filters.page,
                limit=filters.limit,
                total=total,
                pages=math.ceil(total / filters.limit) if total else 0,
            ),
        )

    async def get_history(
        self, rule_id: str, limit: int = DEFAULT_HISTORY_LIMIT
    ) -> List[RuleHistoryEntry]:
        """Newest-first history of *rule_id*, including deleted generations."""
        try:
            records = await self._history_repo.query_by_rule_id(rule_id, limit)
        except SQLAlchemyError as exc:
            logger.error("Failed to load history for rule %s", rule_id, exc_info=True)
            raise StoreError("Failed to retrieve rule history") from exc
        return [RuleHistoryEntry.model_validate(r) for r in records]

    @staticmethod
    def categories() -> List[LabelledOption]:
        return [LabelledOption(value=c.value, label=category_label(c)) for c in RuleCategory]

    @staticmethod
    def operators() -> List[LabelledOption]:
        return [
            LabelledOption(value=op.value, label=OPERATOR_LABELS[op])
            for op in ConditionOperator
        ]

    @staticmethod
    def action_types() -> List[LabelledOption]:
        return [
            LabelledOption(value=a.value, label=ACTION_LABELS[a]) for a in ActionType
        ]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def _slot_holders(self, category: Any, priority: Any) -> List[PricingRule]:
        """Active rules occupying (*category*, *priority*), if the pair is usable."""
        if not isinstance(priority, int) or isinstance(priority, bool):
            return []
        category_value = getattr(category, "value", category)
        if not isinstance(category_value, str):
            return []
        records = await self._rule_repo.find_by_category_and_priority(
            category_value, priority
        )
        return [to_rule(r) for r in records]

    async def _locked_record(self, rule_id: str) -> PricingRuleRecord:
        record = await self._rule_repo.get_by_rule_id(rule_id, for_update=True)
        if record is None:
            raise RuleNotFoundError(f"Rule with ID '{rule_id}' not found")
        return record

    async def create(self, payload: PricingRuleCreate, actor: Actor) -> PricingRule:
        data = payload.model_dump(mode="json", by_alias=True)
        async with guarded_write(self._lock, self._rule_repo, "create pricing rule"):
            if await self._rule_repo.get_by_rule_id(payload.id) is not None:
                raise RuleConflictError(f"Rule with ID '{payload.id}' already exists")
            existing = await self._slot_holders(payload.category, payload.priority)
            rule = self._validator.validate(
                {**data, "version": INITIAL_RULE_VERSION}, existing
            )
            record = await self._rule_repo.insert(rule, actor.user_id)
            await self._rule_repo.flush()
            await self._history_repo.append(
                rule.id,
                HistoryAction.created,
                actor,
                changes=diff_fields({}, wire(rule), EDITABLE_FIELDS),
            )
            created = to_rule(record)
        logger.info("Created pricing rule %s (v%s)", created.id, created.version)
        return created

    async def update(
        self,
        rule_id: str,
        payload: PricingRuleUpdate,
        actor: Actor,
        reason: Optional[str] = None,
    ) -> PricingRule:
        changes = payload.model_dump(mode="json", by_alias=True, exclude_unset=True)
        reason = reason or payload.reason
        async with guarded_write(self._lock, self._rule_repo, "update pricing rule"):
            record = await self._locked_record(rule_id)
            before = wire(to_rule(record))
            merged = {
                **before,
                **changes,
                "id": rule_id,
                "version": increment_version(record.version),
            }
            existing = await self._slot_holders(merged["category"], merged["priority"])
            rule = self._validator.validate(merged, existing)
            await self._rule_repo.apply(record, rule, actor.user_id)
            await self._rule_repo.flush()
            await self._history_repo.append(
                rule_id,
                HistoryAction.updated,
                actor,
                changes=diff_fields(before, wire(rule), EDITABLE_FIELDS + ("version",)),
                reason=reason,
            )
            updated = to_rule(record)
        logger.info("Updated pricing rule %s to v%s", rule_id, updated.version)
        return updated

    async def delete(
        self, rule_id: str, actor: Actor, reason: Optional[str] = None
    ) -> DeleteRuleResponse:
        """Soft delete; the record and its history stay queryable."""
        async with guarded_write(self._lock, self._rule_repo, "delete pricing rule"):
            record = await self._locked_record(rule_id)
            was_active = record.is_active
            deleted_at = datetime.now(timezone.utc)
            await self._rule_repo.soft_delete(record, actor.user_id, deleted_at)
            await self._rule_repo.flush()
            await self._history_repo.append(
                rule_id,
                HistoryAction.deleted,
                actor,
                changes={
                    "isActive": {"old": was_active, "new": False},
                    "deletedAt": {"old": None, "new": deleted_at.isoformat()},
                },
                reason=reason,
            )
        logger.info("Soft-deleted pricing rule %s", rule_id)
        return DeleteRuleResponse(rule_id=rule_id)

    async def activate(
        self, rule_id: str, actor: Actor, reason: Optional[str] = None
    ) -> PricingRule:
        return await self._set_active(rule_id, True, actor, reason)

    async def deactivate(
        self, rule_id: str, actor: Actor, reason: Optional[str] = None
    ) -> PricingRule:
        return await self._set_active(rule_id, False, actor, reason)

    async def _set_active(
        self, rule_id: str, active: bool, actor: Actor, reason: Optional[str]
    ) -> PricingRule:
        action = HistoryAction.activated if active else HistoryAction.deactivated
        async with guarded_write(
            self._lock, self._rule_repo, f"{action.value[:-1]} pricing rule"
        ):
            record = await self._locked_record(rule_id)
            if record.is_active == active:
                return to_rule(record)
            before = wire(to_rule(record))
            candidate = {
                **before,
                "isActive": active,
                "version": increment_version(record.version),
            }
            existing = (
                await self._slot_holders(record.category, record.priority) if active else []
            )
            rule = self._validator.validate(candidate, existing)
            await self._rule_repo.apply(record, rule, actor.user_id)
            await self._rule_repo.flush()
            await self._history_repo.append(
                rule_id,
                action,
                actor,
                changes=diff_fields(before, wire(rule), ("isActive", "version")),
                reason=reason,
            )
            result = to_rule(record)
        logger.info("Pricing rule %s %s (v%s)", rule_id, action.value, result.version)
        return result
