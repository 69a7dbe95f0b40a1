from datetime import datetime, timezone

from sqlalchemy import event
from sqlalchemy.orm import Session

from pricing_engine.models.pricing_rule import PricingRuleRecord
from pricing_engine.models.rule_history import RuleHistoryRecord


# Auto updated_at
@event.listens_for(PricingRuleRecord, "before_update")
def update_timestamp(mapper, connection, target):
    target.updated_at = datetime.now(timezone.utc)


# History is append-only
@event.listens_for(Session, "before_flush")
def block_history_mutation(session: Session, flush_context, instances):
    for obj in session.dirty:
        if isinstance(obj, RuleHistoryRecord) and session.is_modified(obj):
            raise ValueError("Rule history entries are immutable")
