from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func

from pricing_engine.models.base import Base


class RuleBackupRecord(Base):
    """Snapshot of the active rule set, taken before every import."""

    __tablename__ = "pricing_rule_backups"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(String(50), primary_key=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    user_id = Column(String(100), nullable=False)
    user_name = Column(String(255), nullable=False)
    rules_count = Column(Integer, nullable=False)
    description = Column(Text, nullable=False, server_default="")
    rules = Column(JSONB, nullable=False)
