from pricing_engine.schemas.common import (
    AccessDifficulty,
    ActionType,
    CamelModel,
    ConditionOperator,
    HistoryAction,
    LabelledOption,
    RuleCategory,
    SeasonalPeriod,
    ServiceType,
    SortOrder,
    SuccessResponse,
)
from pricing_engine.schemas.estimate import (
    AppliedAction,
    AppliedRule,
    CalculationMetadata,
    CalculationResult,
    EstimateRequest,
    EvaluationWarning,
    InputContext,
    LocationAccess,
    VerifyRequest,
    VerifyResponse,
)
from pricing_engine.schemas.pricing_rule import (
    Action,
    Condition,
    DeleteRuleResponse,
    Pagination,
    PricingRule,
    PricingRuleCreate,
    PricingRuleListResponse,
    PricingRuleUpdate,
    RuleFilter,
)
from pricing_engine.schemas.rule_history import Actor, FieldChange, RuleHistoryEntry
from pricing_engine.schemas.rule_transfer import (
    BackupSummary,
    ConditionEvaluation,
    ImportResult,
    RuleBackup,
    RuleExportDocument,
    RuleTestData,
    RuleTestRequest,
    RuleTestResult,
)

__all__ = [
    "AccessDifficulty",
    "Action",
    "ActionType",
    "Actor",
    "AppliedAction",
    "AppliedRule",
    "BackupSummary",
    "CalculationMetadata",
    "CalculationResult",
    "CamelModel",
    "Condition",
    "ConditionEvaluation",
    "ConditionOperator",
    "DeleteRuleResponse",
    "EstimateRequest",
    "EvaluationWarning",
    "FieldChange",
    "HistoryAction",
    "ImportResult",
    "InputContext",
    "LabelledOption",
    "LocationAccess",
    "Pagination",
    "PricingRule",
    "PricingRuleCreate",
    "PricingRuleListResponse",
    "PricingRuleUpdate",
    "RuleBackup",
    "RuleCategory",
    "RuleExportDocument",
    "RuleFilter",
    "RuleHistoryEntry",
    "RuleTestData",
    "RuleTestRequest",
    "RuleTestResult",
    "SeasonalPeriod",
    "ServiceType",
    "SortOrder",
    "SuccessResponse",
    "VerifyRequest",
    "VerifyResponse",
]
