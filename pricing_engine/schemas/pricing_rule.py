"""Pricing-rule value model (conditions, actions, rules) and CRUD payloads."""

from datetime import date, datetime
from typing import List, Literal, Optional, Union

from pydantic import (
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    model_validator,
)
from typing_extensions import Self

from pricing_engine.schemas.common import (
    MAX_ACTION_AMOUNT,
    MAX_PRIORITY,
    MIN_PRIORITY,
    ActionType,
    CamelModel,
    ConditionOperator,
    RuleCategory,
    ServiceType,
    SortOrder,
)

# Closed set of operand kinds a condition may compare against.  Dates
# travel as ISO-8601 strings and are compared as dates when the context
# value is a date.
ConditionValue = Union[StrictBool, StrictInt, StrictFloat, str]


class Condition(CamelModel):
    """A single predicate over the Input Context."""

    model_config = ConfigDict(frozen=True)

    field: str = Field(..., min_length=1)
    operator: ConditionOperator
    value: Optional[ConditionValue] = None
    values: Optional[List[ConditionValue]] = None


class Action(CamelModel):
    """A mutation of one accumulator field, applied when a rule matches."""

    model_config = ConfigDict(frozen=True)

    type: ActionType
    amount: float = Field(..., ge=0, le=MAX_ACTION_AMOUNT)
    target_field: str = Field(..., min_length=1)
    description: str = ""
    condition: Optional[str] = None


class PricingRuleFields(CamelModel):
    """Attributes shared by every complete rule representation."""

    name: str = Field(..., min_length=1, max_length=100)
    description: str = ""
    notes: Optional[str] = None
    category: RuleCategory
    priority: int = Field(..., ge=MIN_PRIORITY, le=MAX_PRIORITY)
    conditions: List[Condition] = Field(..., min_length=1)
    actions: List[Action] = Field(..., min_length=1)
    is_active: bool = True
    applicable_services: List[ServiceType] = Field(..., min_length=1)
    effective_date: Optional[date] = None
    expiry_date: Optional[date] = None

    @model_validator(mode="after")
    def validate_window(self) -> Self:
        if (
            self.effective_date is not None
            and self.expiry_date is not None
            and self.expiry_date < self.effective_date
        ):
            raise ValueError(
                f"expiryDate ({self.expiry_date}) must not be before "
                f"effectiveDate ({self.effective_date})"
            )
        return self


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class PricingRuleCreate(PricingRuleFields):
    """Request body for POST /api/v1/pricing-rules."""

    id: str = Field(..., min_length=1, max_length=100)


class PricingRuleUpdate(CamelModel):
    """Request body for PUT /api/v1/pricing-rules/{rule_id}.

    Only the fields that are explicitly sent are merged into the stored
    rule; ``id`` is immutable and therefore absent.
    """

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    notes: Optional[str] = None
    category: Optional[RuleCategory] = None
    priority: Optional[int] = Field(None, ge=MIN_PRIORITY, le=MAX_PRIORITY)
    conditions: Optional[List[Condition]] = Field(None, min_length=1)
    actions: Optional[List[Action]] = Field(None, min_length=1)
    is_active: Optional[bool] = None
    applicable_services: Optional[List[ServiceType]] = Field(None, min_length=1)
    effective_date: Optional[date] = None
    expiry_date: Optional[date] = None
    reason: Optional[str] = Field(None, exclude=True)


class RuleFilter(CamelModel):
    """Query parameters for GET /api/v1/pricing-rules."""

    category: Optional[RuleCategory] = None
    is_active: Optional[bool] = None
    service: Optional[ServiceType] = None
    search: Optional[str] = None
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)
    sort_by: Literal[
        "priority", "name", "category", "id", "createdAt", "updatedAt"
    ] = "priority"
    sort_order: SortOrder = SortOrder.asc


# ---------------------------------------------------------------------------
# Domain / response schemas
# ---------------------------------------------------------------------------


class PricingRule(PricingRuleFields):
    """A stored, versioned rule.

    Instances are frozen so that a rule-set snapshot handed to the engine
    cannot change mid-calculation.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, max_length=100)
    version: str = "1.0.0"
    deleted_at: Optional[datetime] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def covers(self, moment: date) -> bool:
        """Return ``True`` when *moment* falls inside the validity window."""
        if self.effective_date is not None and moment < self.effective_date:
            return False
        if self.expiry_date is not None and moment > self.expiry_date:
            return False
        return True


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    pages: int


class PricingRuleListResponse(CamelModel):
    rules: List[PricingRule]
    pagination: Pagination


class DeleteRuleResponse(CamelModel):
    success: bool = True
    message: str = "Pricing rule deleted successfully"
    rule_id: str
