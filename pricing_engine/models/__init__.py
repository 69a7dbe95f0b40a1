from pricing_engine.models.base import Base
from pricing_engine.models.pricing_rule import PricingRuleRecord
from pricing_engine.models.rule_history import RuleHistoryRecord
from pricing_engine.models.rule_backup import RuleBackupRecord

# Import event listeners to register them
from pricing_engine.models import listeners  # noqa: F401

__all__ = [
    "Base",
    "PricingRuleRecord",
    "RuleHistoryRecord",
    "RuleBackupRecord",
]
