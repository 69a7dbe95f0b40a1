from sqlalchemy import (
    ARRAY,
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Identity,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.sql import func

from pricing_engine.core.constants import (
    CATEGORY_CHECK_CLAUSE,
    INITIAL_RULE_VERSION,
    MAX_PRIORITY,
    MIN_PRIORITY,
)
from pricing_engine.models.base import Base


class PricingRuleRecord(Base):
    """Stored, versioned pricing rule.

    ``rule_id`` is the caller-assigned identifier and is unique among
    live (non-deleted) records only, so an import can recreate a rule id
    after the previous generation was soft-deleted.  ``conditions`` and
    ``actions`` hold the camelCase JSON documents exactly as they travel
    on the wire.  Among active rules ``(category, priority)`` is unique,
    enforced by a partial unique index.
    ``insertion_seq`` orders rules of equal priority by when they were
    written, including rows inserted together in one transaction.
    """

    __tablename__ = "pricing_rules"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (
        CheckConstraint(CATEGORY_CHECK_CLAUSE, name="ck_pricing_rules_category"),
        CheckConstraint(
            f"priority BETWEEN {MIN_PRIORITY} AND {MAX_PRIORITY}",
            name="ck_pricing_rules_priority_range",
        ),
        CheckConstraint(
            "expiry_date IS NULL OR effective_date IS NULL "
            "OR expiry_date >= effective_date",
            name="ck_pricing_rules_window",
        ),
        Index(
            "uq_pricing_rules_live_rule_id",
            "rule_id",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
        ),
        Index(
            "uq_pricing_rules_active_category_priority",
            "category",
            "priority",
            unique=True,
            postgresql_where=text("is_active"),
        ),
        Index("ix_pricing_rules_priority", "priority"),
    )

    record_id = Column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    insertion_seq = Column(BigInteger, Identity(always=True), nullable=False)
    rule_id = Column(String(100), nullable=False)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=False, server_default="")
    notes = Column(Text)
    category = Column(String(50), nullable=False)
    priority = Column(Integer, nullable=False)
    conditions = Column(JSONB, nullable=False)
    actions = Column(JSONB, nullable=False)
    is_active = Column(Boolean, nullable=False, server_default=text("true"))
    applicable_services = Column(ARRAY(String), nullable=False)
    version = Column(String(20), nullable=False, server_default=INITIAL_RULE_VERSION)
    effective_date = Column(Date)
    expiry_date = Column(Date)
    deleted_at = Column(DateTime(timezone=True))
    created_by = Column(String(100))
    updated_by = Column(String(100))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
