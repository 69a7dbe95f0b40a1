import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError

from pricing_engine.core.exceptions import RuleConflictError
from pricing_engine.models.pricing_rule import PricingRuleRecord
from pricing_engine.repositories.base import BaseRepository
from pricing_engine.schemas.pricing_rule import PricingRule, RuleFilter

logger = logging.getLogger(__name__)

_SORT_COLUMNS = {
    "priority": PricingRuleRecord.priority,
    "name": PricingRuleRecord.name,
    "category": PricingRuleRecord.category,
    "id": PricingRuleRecord.rule_id,
    "createdAt": PricingRuleRecord.insertion_seq,
    "updatedAt": PricingRuleRecord.updated_at,
}


def record_to_payload(record: PricingRuleRecord) -> Dict[str, Any]:
    """Return the camelCase wire representation of a stored rule.

    The payload is not validated; callers decide whether a
    malformed row is an error or a skipped rule.
    """
    return {
        "id": record.rule_id,
        "name": record.name,
        "description": record.description or "",
        "notes": record.notes,
        "category": record.category,
        "priority": record.priority,
        "conditions": record.conditions,
        "actions": record.actions,
        "isActive": record.is_active,
        "applicableServices": list(record.applicable_services or []),
        "version": record.version,
        "effectiveDate": record.effective_date,
        "expiryDate": record.expiry_date,
        "deletedAt": record.deleted_at,
        "createdBy": record.created_by,
        "updatedBy": record.updated_by,
        "createdAt": record.created_at,
        "updatedAt": record.updated_at,
    }


def rule_columns(rule: PricingRule) -> Dict[str, Any]:
    """Map a validated rule onto ``pricing_rules`` column values."""
    return {
        "rule_id": rule.id,
        "name": rule.name,
        "description": rule.description,
        "notes": rule.notes,
        "category": rule.category.value,
        "priority": rule.priority,
        "conditions": [
            c.model_dump(mode="json", by_alias=True, exclude_none=True)
            for c in rule.conditions
        ],
        "actions": [
            a.model_dump(mode="json", by_alias=True, exclude_none=True)
            for a in rule.actions
        ],
        "is_active": rule.is_active,
        "applicable_services": [s.value for s in rule.applicable_services],
        "version": rule.version,
        "effective_date": rule.effective_date,
        "expiry_date": rule.expiry_date,
    }


class PricingRuleRepository(BaseRepository):
    """Encapsulates queries against the ``pricing_rules`` table."""

    def _live(self):
        return select(PricingRuleRecord).where(PricingRuleRecord.deleted_at.is_(None))

    async def flush(self) -> None:
        """Flush, translating unique-index violations into conflicts."""
        try:
            await self._db.flush()
        except IntegrityError as exc:
            logger.warning("Pricing rule uniqueness violated: %s", exc.orig)
            raise RuleConflictError(
                "A live rule with this id, or an active rule with this "
                "category and priority, already exists"
            ) from exc

    async def find_active_by_service_and_window(
        self, service: str, as_of: date
    ) -> List[Dict[str, Any]]:
        """Return the rule snapshot for one calculation.

        Active, live rules that apply to *service* and whose validity
        window covers *as_of*, ordered by priority and then creation
        order.
        """
        query = (
            self._live()
            .where(
                PricingRuleRecord.is_active.is_(True),
                PricingRuleRecord.applicable_services.contains([service]),
                or_(
                    PricingRuleRecord.effective_date.is_(None),
                    PricingRuleRecord.effective_date <= as_of,
                ),
                or_(
                    PricingRuleRecord.expiry_date.is_(None),
                    PricingRuleRecord.expiry_date >= as_of,
                ),
            )
            .order_by(
                PricingRuleRecord.priority,
                PricingRuleRecord.insertion_seq,
            )
        )
        result = await self._db.execute(query)
        return [record_to_payload(r) for r in result.scalars().all()]

    async def get_by_rule_id(
        self, rule_id: str, for_update: bool = False
    ) -> Optional[PricingRuleRecord]:
        """Return the live record for *rule_id*, optionally row-locked."""
        query = self._live().where(PricingRuleRecord.rule_id == rule_id)
        if for_update:
            query = query.with_for_update()
        result = await self._db.execute(query)
        return result.scalar_one_or_none()

    async def get_latest_by_rule_id(self, rule_id: str) -> Optional[PricingRuleRecord]:
        """Return the newest generation of *rule_id*, soft-deleted or not."""
        result = await self._db.execute(
            select(PricingRuleRecord)
            .where(PricingRuleRecord.rule_id == rule_id)
            .order_by(PricingRuleRecord.insertion_seq.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def find_by_category_and_priority(
        self, category: str, priority: int
    ) -> List[PricingRuleRecord]:
        """Return active, live rules occupying (*category*, *priority*)."""
        result = await self._db.execute(
            self._live().where(
                PricingRuleRecord.is_active.is_(True),
                PricingRuleRecord.category == category,
                PricingRuleRecord.priority == priority,
            )
        )
        return list(result.scalars().all())

    async def list_live(self, active_only: bool = False) -> List[PricingRuleRecord]:
        """Return every live rule ordered by priority."""
        query = self._live()
        if active_only:
            query = query.where(PricingRuleRecord.is_active.is_(True))
        result = await self._db.execute(
            query.order_by(
                PricingRuleRecord.priority,
                PricingRuleRecord.insertion_seq,
            )
        )
        return list(result.scalars().all())

    async def list_filtered(self, filters: RuleFilter) -> Tuple[List[PricingRuleRecord], int]:
        """Return one page of live rules matching *filters* plus the total."""
        query = self._live()
        if filters.category is not None:
            query = query.where(PricingRuleRecord.category == filters.category.value)
        if filters.is_active is not None:
            query = query.where(PricingRuleRecord.is_active.is_(filters.is_active))
        if filters.service is not None:
            query = query.where(
                PricingRuleRecord.applicable_services.contains([filters.service.value])
            )
        if filters.search:
            pattern = f"%{filters.search}%"
            query = query.where(
                or_(
                    PricingRuleRecord.name.ilike(pattern),
                    PricingRuleRecord.description.ilike(pattern),
                    PricingRuleRecord.rule_id.ilike(pattern),
                )
            )

        total_result = await self._db.execute(
            select(func.count()).select_from(query.subquery())
        )
        total = total_result.scalar_one()

        column = _SORT_COLUMNS[filters.sort_by]
        ordering = column.desc() if filters.sort_order.value == "desc" else column.asc()
        result = await self._db.execute(
            query.order_by(ordering, PricingRuleRecord.rule_id)
            .offset((filters.page - 1) * filters.limit)
            .limit(filters.limit)
        )
        return list(result.scalars().all()), total

    async def count_live(self) -> int:
        result = await self._db.execute(
            select(func.count())
            .select_from(PricingRuleRecord)
            .where(PricingRuleRecord.deleted_at.is_(None))
        )
        return result.scalar_one()

    async def insert(self, rule: PricingRule, user_id: str) -> PricingRuleRecord:
        """Stage a new record for *rule*."""
        record = PricingRuleRecord(
            **rule_columns(rule), created_by=user_id, updated_by=user_id
        )
        self._db.add(record)
        return record

    async def apply(
        self, record: PricingRuleRecord, rule: PricingRule, user_id: str
    ) -> None:
        """Overwrite *record* with the attributes of *rule*."""
        for column, value in rule_columns(rule).items():
            setattr(record, column, value)
        record.updated_by = user_id

    async def soft_delete(
        self, record: PricingRuleRecord, user_id: str, at: datetime
    ) -> None:
        record.deleted_at = at
        record.is_active = False
        record.updated_by = user_id
