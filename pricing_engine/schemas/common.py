from enum import Enum
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

# Rule priority bounds; lower runs first
MIN_PRIORITY = 1
MAX_PRIORITY = 1000

# Upper bound on an action amount (currency units, percentage points or factor)
MAX_ACTION_AMOUNT = 1_000_000


class RuleCategory(str, Enum):
    base_pricing = "base_pricing"
    crew_adjustments = "crew_adjustments"
    weight_volume = "weight_volume"
    distance = "distance"
    timing = "timing"
    special_items = "special_items"
    location_handicaps = "location_handicaps"
    additional_services = "additional_services"


class ServiceType(str, Enum):
    local = "local"
    long_distance = "long_distance"
    storage = "storage"
    packing_only = "packing_only"


class ConditionOperator(str, Enum):
    eq = "eq"
    neq = "neq"
    gt = "gt"
    gte = "gte"
    lt = "lt"
    lte = "lte"
    in_ = "in"
    not_in = "not_in"
    contains = "contains"
    starts_with = "starts_with"
    ends_with = "ends_with"


class ActionType(str, Enum):
    add_fixed = "add_fixed"
    add_percentage = "add_percentage"
    subtract_fixed = "subtract_fixed"
    subtract_percentage = "subtract_percentage"
    multiply = "multiply"
    set_fixed = "set_fixed"
    set_percentage = "set_percentage"


class HistoryAction(str, Enum):
    created = "created"
    updated = "updated"
    deleted = "deleted"
    activated = "activated"
    deactivated = "deactivated"
    imported = "imported"
    exported = "exported"


class SeasonalPeriod(str, Enum):
    peak = "peak"
    standard = "standard"
    off_peak = "off_peak"


class AccessDifficulty(str, Enum):
    easy = "easy"
    moderate = "moderate"
    difficult = "difficult"
    extreme = "extreme"


class SortOrder(str, Enum):
    asc = "asc"
    desc = "desc"


class CamelModel(BaseModel):
    """Base for wire models: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LabelledOption(BaseModel):
    """A selectable enum value with its display label."""

    value: str
    label: str


class SuccessResponse(BaseModel):
    """Generic success response base."""

    success: bool = True
