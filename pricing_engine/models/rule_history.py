from sqlalchemy import CheckConstraint, Column, DateTime, Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.sql import func

from pricing_engine.models.base import Base
from pricing_engine.schemas.common import HistoryAction


class RuleHistoryRecord(Base):
    """Append-only audit log of rule lifecycle transitions.

    ``rule_id`` is the caller-assigned rule identifier, not a foreign key:
    entries outlive soft-deleted and re-imported generations of a rule.
    """

    __tablename__ = "pricing_rule_history"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (
        CheckConstraint(
            f"action IN ({', '.join(repr(a.value) for a in HistoryAction)})",
            name="ck_pricing_rule_history_action",
        ),
        Index("ix_pricing_rule_history_rule_ts", "rule_id", "timestamp"),
        Index("ix_pricing_rule_history_timestamp", "timestamp"),
    )

    id = Column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    rule_id = Column(String(100), nullable=False)
    action = Column(String(20), nullable=False)
    changes = Column(JSONB, nullable=False, server_default="{}")
    user_id = Column(String(100), nullable=False)
    user_name = Column(String(255), nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    reason = Column(Text)
    client_metadata = Column(JSONB)
