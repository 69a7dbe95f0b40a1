"""Repository layer – all database access goes through here.

Repositories encapsulate SQLAlchemy queries so that the service layer
only contains business logic.
"""

from pricing_engine.repositories.pricing_rule_repository import PricingRuleRepository
from pricing_engine.repositories.rule_history_repository import RuleHistoryRepository
from pricing_engine.repositories.rule_backup_repository import RuleBackupRepository

__all__ = [
    "PricingRuleRepository",
    "RuleHistoryRepository",
    "RuleBackupRepository",
]
