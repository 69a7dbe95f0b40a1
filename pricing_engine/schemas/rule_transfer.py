"""Import / export document, backups and rule-test payloads."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import ConfigDict, Field

from pricing_engine.schemas.common import CamelModel, SeasonalPeriod, ServiceType
from pricing_engine.schemas.estimate import (
    AppliedAction,
    LocationAccess,
    SpecialItemValue,
)
from pricing_engine.schemas.pricing_rule import Condition, PricingRule


class RuleExportDocument(CamelModel):
    """Portable rule-set document: ``{version, exportDate, rulesCount, rules}``."""

    version: str
    export_date: datetime
    rules_count: int
    rules: List[PricingRule]


class ImportResult(CamelModel):
    message: str = "Rules imported successfully"
    imported_count: int
    deactivated_count: int
    backup_id: str
    rules: List[PricingRule]


class BackupSummary(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    timestamp: datetime
    user_id: str
    user_name: str
    rules_count: int
    description: str


class RuleBackup(BackupSummary):
    rules: List[Dict[str, Any]] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Rule test harness
# ---------------------------------------------------------------------------


class RuleTestData(CamelModel):
    """Partial Input Context for a rule test; omitted fields use defaults."""

    service: Optional[ServiceType] = None
    move_date: Optional[date] = None
    total_weight: Optional[float] = Field(None, ge=0)
    total_volume: Optional[float] = Field(None, ge=0)
    distance: Optional[float] = Field(None, ge=0)
    estimated_duration: Optional[float] = Field(None, ge=0)
    crew_size: Optional[int] = Field(None, ge=1)
    is_weekend: Optional[bool] = None
    is_holiday: Optional[bool] = None
    seasonal_period: Optional[SeasonalPeriod] = None
    special_items: Optional[Dict[str, SpecialItemValue]] = None
    additional_services: Optional[Dict[str, bool]] = None
    specialty_crew_required: Optional[bool] = None
    pickup: Optional[LocationAccess] = None
    delivery: Optional[LocationAccess] = None
    base_values: Optional[Dict[str, Decimal]] = None


class RuleTestRequest(CamelModel):
    """Request body for POST /api/v1/pricing-rules/test.

    ``rule`` is kept as a raw mapping so that structurally broken rules
    reach the harness and come back as a list of errors instead of a
    request-level 422.
    """

    rule: Dict[str, Any]
    test_data: Optional[RuleTestData] = None


class ConditionEvaluation(CamelModel):
    """Outcome of one condition: whether it matched and what it saw."""

    condition: Condition
    result: bool
    actual_value: Any = None

    @property
    def matched(self) -> bool:
        return self.result


class RuleTestResult(CamelModel):
    rule_id: Optional[str] = None
    rule_name: Optional[str] = None
    matched: bool = False
    conditions_evaluated: List[ConditionEvaluation] = Field(default_factory=list)
    actions_applied: Optional[List[AppliedAction]] = None
    price_impact: Optional[Decimal] = None
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
