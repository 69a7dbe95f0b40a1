from typing import Dict, FrozenSet

from pricing_engine.schemas.common import (
    MAX_PRIORITY,
    MIN_PRIORITY,
    ActionType,
    ConditionOperator,
    RuleCategory,
    ServiceType,
)

RULE_CATEGORIES: FrozenSet[str] = frozenset(c.value for c in RuleCategory)
SERVICE_TYPES: FrozenSet[str] = frozenset(s.value for s in ServiceType)

CATEGORY_CHECK_CLAUSE: str = (
    f"category IN ({', '.join(repr(c.value) for c in RuleCategory)})"
)

INITIAL_RULE_VERSION: str = "1.0.0"
DEFAULT_HISTORY_LIMIT: int = 50

# Operators that test membership in ``Condition.values``
SET_OPERATORS: FrozenSet[ConditionOperator] = frozenset(
    {ConditionOperator.in_, ConditionOperator.not_in}
)

ORDERING_OPERATORS: FrozenSet[ConditionOperator] = frozenset(
    {
        ConditionOperator.gt,
        ConditionOperator.gte,
        ConditionOperator.lt,
        ConditionOperator.lte,
    }
)

TEXT_OPERATORS: FrozenSet[ConditionOperator] = frozenset(
    {
        ConditionOperator.contains,
        ConditionOperator.starts_with,
        ConditionOperator.ends_with,
    }
)

# Result breakdown bucket per rule category.  Every RuleCategory member
# must have an entry; lookups use [] so a missing one fails loudly.
CATEGORY_BREAKDOWN_BUCKETS: Dict[RuleCategory, str] = {
    RuleCategory.base_pricing: "baseLabor",
    RuleCategory.crew_adjustments: "baseLabor",
    RuleCategory.weight_volume: "transportation",
    RuleCategory.distance: "transportation",
    RuleCategory.timing: "seasonalAdjustment",
    RuleCategory.special_items: "specialServices",
    RuleCategory.location_handicaps: "locationHandicaps",
    RuleCategory.additional_services: "materials",
}

BREAKDOWN_BUCKETS: FrozenSet[str] = frozenset(CATEGORY_BREAKDOWN_BUCKETS.values())

OPERATOR_LABELS: Dict[ConditionOperator, str] = {
    ConditionOperator.eq: "Equals",
    ConditionOperator.neq: "Not Equals",
    ConditionOperator.gt: "Greater Than",
    ConditionOperator.gte: "Greater Than or Equal",
    ConditionOperator.lt: "Less Than",
    ConditionOperator.lte: "Less Than or Equal",
    ConditionOperator.in_: "In List",
    ConditionOperator.not_in: "Not In List",
    ConditionOperator.contains: "Contains",
    ConditionOperator.starts_with: "Starts With",
    ConditionOperator.ends_with: "Ends With",
}

ACTION_LABELS: Dict[ActionType, str] = {
    ActionType.add_fixed: "Add Fixed Amount",
    ActionType.add_percentage: "Add Percentage",
    ActionType.subtract_fixed: "Subtract Fixed Amount",
    ActionType.subtract_percentage: "Subtract Percentage",
    ActionType.multiply: "Multiply By",
    ActionType.set_fixed: "Set Fixed Amount",
    ActionType.set_percentage: "Set Percentage",
}


def category_label(category: RuleCategory) -> str:
    """``crew_adjustments`` -> ``Crew Adjustments``."""
    return " ".join(word.capitalize() for word in category.value.split("_"))
