from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, AsyncGenerator, Dict, List, Optional, Tuple
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import IntegrityError

from pricing_engine.core.locks import RuleWriteLock
from pricing_engine.main import app
from pricing_engine.models.pricing_rule import PricingRuleRecord
from pricing_engine.models.rule_backup import RuleBackupRecord
from pricing_engine.models.rule_history import RuleHistoryRecord
from pricing_engine.repositories.pricing_rule_repository import (
    PricingRuleRepository,
    record_to_payload,
)
from pricing_engine.repositories.rule_backup_repository import RuleBackupRepository
from pricing_engine.repositories.rule_history_repository import RuleHistoryRepository
from pricing_engine.schemas.estimate import InputContext
from pricing_engine.schemas.pricing_rule import RuleFilter
from pricing_engine.schemas.rule_history import Actor
from pricing_engine.services.pricing_rule_service import PricingRuleService
from pricing_engine.services.rule_transfer_service import RuleTransferService


# ---------------------------------------------------------------------------
# In-memory unit of work
# ---------------------------------------------------------------------------


class FakeSession:
    """Stands in for ``AsyncSession``: keeps added rows in a list.

    Server defaults (ids, insertion sequence, timestamps) are filled in on ``add``; ``flush``
    enforces the two partial unique indexes of ``pricing_rules``;
    ``rollback`` discards rows added since the last commit.
    """

    def __init__(self) -> None:
        self.added: List[Any] = []
        self._pending: List[Any] = []
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)
        self._sequence = 0
        self.commits = 0
        self.rollbacks = 0

    def _tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    def add(self, obj: Any) -> None:
        if isinstance(obj, PricingRuleRecord):
            obj.record_id = uuid4()
            self._sequence += 1
            obj.insertion_seq = self._sequence
            obj.created_at = obj.updated_at = self._tick()
        elif isinstance(obj, RuleHistoryRecord):
            obj.id = uuid4()
            obj.timestamp = self._tick()
        self.added.append(obj)
        self._pending.append(obj)

    async def flush(self) -> None:
        live = [
            r
            for r in self.added
            if isinstance(r, PricingRuleRecord) and r.deleted_at is None
        ]
        ids = [r.rule_id for r in live]
        slots = [(r.category, r.priority) for r in live if r.is_active]
        if len(ids) != len(set(ids)) or len(slots) != len(set(slots)):
            raise IntegrityError("flush", {}, Exception("duplicate key value"))

    async def commit(self) -> None:
        await self.flush()
        self._pending.clear()
        self.commits += 1

    async def rollback(self) -> None:
        self.added = [obj for obj in self.added if obj not in self._pending]
        self._pending.clear()
        self.rollbacks += 1

    def of_type(self, model: type) -> List[Any]:
        return [obj for obj in self.added if isinstance(obj, model)]


def _rule_order(record: PricingRuleRecord) -> Tuple[int, int]:
    return record.priority, record.insertion_seq


class InMemoryRuleRepository(PricingRuleRepository):
    """``PricingRuleRepository`` with its queries answered from ``FakeSession``."""

    def _live_records(self) -> List[PricingRuleRecord]:
        return sorted(
            (r for r in self._db.of_type(PricingRuleRecord) if r.deleted_at is None),
            key=_rule_order,
        )

    async def find_active_by_service_and_window(
        self, service: str, as_of: date
    ) -> List[Dict[str, Any]]:
        return [
            record_to_payload(r)
            for r in self._live_records()
            if r.is_active
            and service in r.applicable_services
            and (r.effective_date is None or r.effective_date <= as_of)
            and (r.expiry_date is None or r.expiry_date >= as_of)
        ]

    async def get_by_rule_id(
        self, rule_id: str, for_update: bool = False
    ) -> Optional[PricingRuleRecord]:
        for record in self._live_records():
            if record.rule_id == rule_id:
                return record
        return None

    async def get_latest_by_rule_id(self, rule_id: str) -> Optional[PricingRuleRecord]:
        generations = [
            r for r in self._db.of_type(PricingRuleRecord) if r.rule_id == rule_id
        ]
        return max(generations, key=lambda r: r.insertion_seq, default=None)

    async def find_by_category_and_priority(
        self, category: str, priority: int
    ) -> List[PricingRuleRecord]:
        return [
            r
            for r in self._live_records()
            if r.is_active and r.category == category and r.priority == priority
        ]

    async def list_live(self, active_only: bool = False) -> List[PricingRuleRecord]:
        return [r for r in self._live_records() if r.is_active or not active_only]

    async def list_filtered(
        self, filters: RuleFilter
    ) -> Tuple[List[PricingRuleRecord], int]:
        records = [
            r
            for r in self._live_records()
            if (filters.category is None or r.category == filters.category.value)
            and (filters.is_active is None or r.is_active == filters.is_active)
        ]
        start = (filters.page - 1) * filters.limit
        return records[start : start + filters.limit], len(records)

    async def count_live(self) -> int:
        return len(self._live_records())


class InMemoryHistoryRepository(RuleHistoryRepository):
    async def query_by_rule_id(self, rule_id: str, limit: int) -> List[RuleHistoryRecord]:
        entries = [e for e in self._db.of_type(RuleHistoryRecord) if e.rule_id == rule_id]
        entries.sort(key=lambda e: e.timestamp, reverse=True)
        return entries[:limit]


class InMemoryBackupRepository(RuleBackupRepository):
    async def get(self, backup_id: str) -> Optional[RuleBackupRecord]:
        for backup in self._db.of_type(RuleBackupRecord):
            if backup.id == backup_id:
                return backup
        return None

    async def list_all(self) -> List[RuleBackupRecord]:
        return sorted(
            self._db.of_type(RuleBackupRecord), key=lambda b: b.timestamp, reverse=True
        )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def rule_repo(session) -> InMemoryRuleRepository:
    return InMemoryRuleRepository(session)


@pytest.fixture
def history_repo(session) -> InMemoryHistoryRepository:
    return InMemoryHistoryRepository(session)


@pytest.fixture
def backup_repo(session) -> InMemoryBackupRepository:
    return InMemoryBackupRepository(session)


@pytest.fixture
def actor() -> Actor:
    return Actor(user_id="admin-1", user_name="Pat Admin", client_ip="10.0.0.5")


@pytest.fixture
def rule_service(rule_repo, history_repo) -> PricingRuleService:
    """Rule service over the in-memory store and the process-local lock."""
    return PricingRuleService(rule_repo, history_repo, lock=RuleWriteLock())


@pytest.fixture
def transfer_service(rule_repo, history_repo, backup_repo) -> RuleTransferService:
    return RuleTransferService(
        rule_repo, history_repo, backup_repo, lock=RuleWriteLock()
    )


@pytest.fixture
def make_rule():
    """Factory for camelCase rule payloads; keyword overrides replace keys."""

    def _make_rule(**overrides: Any) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": "rule_weekend_surcharge",
            "name": "Weekend Surcharge",
            "description": "Apply 15% surcharge for weekend moves",
            "category": "timing",
            "priority": 100,
            "conditions": [{"field": "isWeekend", "operator": "eq", "value": True}],
            "actions": [
                {"type": "add_percentage", "amount": 15, "targetField": "totalPrice"}
            ],
            "applicableServices": ["local", "long_distance"],
        }
        payload.update(overrides)
        return payload

    return _make_rule


@pytest.fixture
def make_context():
    """Factory for a weekday, standard-season local move priced at 1000."""

    def _make_context(**overrides: Any) -> InputContext:
        data: Dict[str, Any] = {
            "service": "local",
            "move_date": date(2024, 3, 12),
            "total_weight": 3000,
            "total_volume": 500,
            "distance": 15,
            "estimated_duration": 4,
            "crew_size": 2,
            "is_weekend": False,
            "seasonal_period": "standard",
            "base_values": {"totalPrice": Decimal("1000")},
        }
        data.update(overrides)
        return InputContext(**data)

    return _make_context


@pytest_asyncio.fixture
async def async_client() -> AsyncGenerator[AsyncClient, None]:
    """Yield an ``httpx.AsyncClient`` wired to the FastAPI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
