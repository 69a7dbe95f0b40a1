"""Input Context, estimate requests and calculation results."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from pydantic import ConfigDict, Field, StrictBool, StrictInt

from pricing_engine.schemas.common import (
    AccessDifficulty,
    ActionType,
    CamelModel,
    RuleCategory,
    SeasonalPeriod,
    ServiceType,
)

SpecialItemValue = Union[StrictBool, StrictInt]


class LocationAccess(CamelModel):
    """Access descriptor for a pickup or delivery location."""

    model_config = ConfigDict(frozen=True)

    floor_level: int = 1
    elevator_access: bool = True
    stairs_count: int = Field(0, ge=0)
    access_difficulty: AccessDifficulty = AccessDifficulty.easy
    narrow_hallways: bool = False
    long_carry: bool = False
    parking_distance: float = Field(0, ge=0)


class InputContext(CamelModel):
    """The fully resolved factual basis for one price calculation.

    Built once before evaluation begins and frozen for the rest of the
    run.  ``base_values`` seeds the Calculation State (for example
    ``{"totalPrice": 1000}``).
    """

    model_config = ConfigDict(frozen=True)

    service: ServiceType
    move_date: date
    total_weight: float = Field(..., ge=0)
    total_volume: float = Field(..., ge=0)
    distance: float = Field(..., ge=0)
    estimated_duration: float = Field(0, ge=0)
    crew_size: int = Field(..., ge=1)
    is_weekend: bool
    is_holiday: bool = False
    seasonal_period: SeasonalPeriod
    special_items: Dict[str, SpecialItemValue] = Field(default_factory=dict)
    additional_services: Dict[str, bool] = Field(default_factory=dict)
    specialty_crew_required: bool = False
    pickup: LocationAccess = Field(default_factory=LocationAccess)
    delivery: LocationAccess = Field(default_factory=LocationAccess)
    base_values: Dict[str, Decimal] = Field(default_factory=dict)

    def as_lookup(self) -> Dict[str, Any]:
        """Python-typed, camelCase view used to resolve condition paths."""
        return self.model_dump(by_alias=True)

    def canonical(self) -> Dict[str, Any]:
        """JSON-typed, camelCase view used for fingerprinting."""
        return self.model_dump(mode="json", by_alias=True)


class EstimateRequest(CamelModel):
    """Caller-supplied estimate data.

    Derived fields (``is_weekend``, ``seasonal_period``, ``base_values``)
    may be omitted; the context builder fills them in deterministically
    from the other fields.
    """

    service: ServiceType
    move_date: date
    total_weight: float = Field(..., ge=0)
    total_volume: float = Field(..., ge=0)
    distance: float = Field(..., ge=0)
    estimated_duration: float = Field(0, ge=0)
    crew_size: int = Field(..., ge=1)
    is_weekend: Optional[bool] = None
    is_holiday: bool = False
    seasonal_period: Optional[SeasonalPeriod] = None
    special_items: Dict[str, SpecialItemValue] = Field(default_factory=dict)
    additional_services: Dict[str, bool] = Field(default_factory=dict)
    specialty_crew_required: bool = False
    pickup: LocationAccess = Field(default_factory=LocationAccess)
    delivery: LocationAccess = Field(default_factory=LocationAccess)
    base_values: Optional[Dict[str, Decimal]] = None


# ---------------------------------------------------------------------------
# Result schemas
# ---------------------------------------------------------------------------


class AppliedAction(CamelModel):
    type: ActionType
    target_field: str
    amount: float
    delta: Decimal
    resulting_value: Decimal
    description: str = ""


class AppliedRule(CamelModel):
    rule_id: str
    rule_name: str
    category: RuleCategory
    priority: int
    version: str
    price_impact: Decimal
    actions: List[AppliedAction] = Field(default_factory=list)


class EvaluationWarning(CamelModel):
    """A rule that was skipped because it could not be evaluated."""

    rule_id: Optional[str] = None
    message: str


class CalculationMetadata(CamelModel):
    calculated_at: datetime
    deterministic: bool = True
    verification_hash: str
    rules_evaluated: int = 0
    warnings: List[EvaluationWarning] = Field(default_factory=list)


class CalculationResult(CamelModel):
    applied_rules: List[AppliedRule] = Field(default_factory=list)
    totals: Dict[str, Decimal] = Field(default_factory=dict)
    breakdown: Dict[str, Decimal] = Field(default_factory=dict)
    context: InputContext
    metadata: CalculationMetadata


class VerifyRequest(CamelModel):
    """Request body for POST /api/v1/estimates/verify."""

    context: InputContext
    verification_hash: str = Field(..., min_length=64, max_length=64)


class VerifyResponse(CamelModel):
    verified: bool
    verification_hash: str
    expected_hash: str
