"""create pricing rule, history and backup tables

Revision ID: b7e2c41d9a03
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy import text
from sqlalchemy.dialects import postgresql

from pricing_engine.core.constants import (
    CATEGORY_CHECK_CLAUSE,
    MAX_PRIORITY,
    MIN_PRIORITY,
)
from pricing_engine.schemas.common import HistoryAction

# revision identifiers, used by Alembic.
revision: str = "b7e2c41d9a03"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "pricing_rules",
        sa.Column(
            "record_id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column(
            "insertion_seq", sa.BigInteger(), sa.Identity(always=True), nullable=False
        ),
        sa.Column("rule_id", sa.String(100), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("notes", sa.Text()),
        sa.Column("category", sa.String(50), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("conditions", postgresql.JSONB(), nullable=False),
        sa.Column("actions", postgresql.JSONB(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("applicable_services", postgresql.ARRAY(sa.String()), nullable=False),
        sa.Column("version", sa.String(20), nullable=False, server_default="1.0.0"),
        sa.Column("effective_date", sa.Date()),
        sa.Column("expiry_date", sa.Date()),
        sa.Column("deleted_at", sa.DateTime(timezone=True)),
        sa.Column("created_by", sa.String(100)),
        sa.Column("updated_by", sa.String(100)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint(CATEGORY_CHECK_CLAUSE, name="ck_pricing_rules_category"),
        sa.CheckConstraint(
            f"priority BETWEEN {MIN_PRIORITY} AND {MAX_PRIORITY}",
            name="ck_pricing_rules_priority_range",
        ),
        sa.CheckConstraint(
            "expiry_date IS NULL OR effective_date IS NULL "
            "OR expiry_date >= effective_date",
            name="ck_pricing_rules_window",
        ),
    )

    # Caller-assigned ids are unique among live rules only
    op.create_index(
        "uq_pricing_rules_live_rule_id",
        "pricing_rules",
        ["rule_id"],
        unique=True,
        postgresql_where=text("deleted_at IS NULL"),
    )
    # At most one active rule per (category, priority)
    op.create_index(
        "uq_pricing_rules_active_category_priority",
        "pricing_rules",
        ["category", "priority"],
        unique=True,
        postgresql_where=text("is_active"),
    )
    op.create_index("ix_pricing_rules_priority", "pricing_rules", ["priority"])

    op.create_table(
        "pricing_rule_history",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("rule_id", sa.String(100), nullable=False),
        sa.Column("action", sa.String(20), nullable=False),
        sa.Column("changes", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("user_id", sa.String(100), nullable=False),
        sa.Column("user_name", sa.String(255), nullable=False),
        sa.Column(
            "timestamp",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("reason", sa.Text()),
        sa.Column("client_metadata", postgresql.JSONB()),
        sa.CheckConstraint(
            f"action IN ({', '.join(repr(a.value) for a in HistoryAction)})",
            name="ck_pricing_rule_history_action",
        ),
    )
    op.create_index(
        "ix_pricing_rule_history_rule_ts",
        "pricing_rule_history",
        ["rule_id", "timestamp"],
    )
    op.create_index(
        "ix_pricing_rule_history_timestamp", "pricing_rule_history", ["timestamp"]
    )

    op.create_table(
        "pricing_rule_backups",
        sa.Column("id", sa.String(50), primary_key=True),
        sa.Column(
            "timestamp",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("user_id", sa.String(100), nullable=False),
        sa.Column("user_name", sa.String(255), nullable=False),
        sa.Column("rules_count", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("rules", postgresql.JSONB(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("pricing_rule_backups")
    op.drop_index("ix_pricing_rule_history_timestamp", table_name="pricing_rule_history")
    op.drop_index("ix_pricing_rule_history_rule_ts", table_name="pricing_rule_history")
    op.drop_table("pricing_rule_history")
    op.drop_index("ix_pricing_rules_priority", table_name="pricing_rules")
    op.drop_index("uq_pricing_rules_active_category_priority", table_name="pricing_rules")
    op.drop_index("uq_pricing_rules_live_rule_id", table_name="pricing_rules")
    op.drop_table("pricing_rules")
