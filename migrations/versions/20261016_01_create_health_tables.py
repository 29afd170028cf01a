"""create check_configs / check_history / group_info tables

Revision ID: 20261016_01
Revises:
Create Date: 2026-10-16
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "20261016_01"
down_revision = None
branch_labels = None
depends_on = None


def _updated_at() -> sa.Column:
    return sa.Column(
        "updated_at",
        sa.DateTime(timezone=True),
        server_default=sa.text("CURRENT_TIMESTAMP"),
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "check_configs",
        sa.Column("id", sa.UUID(as_uuid=True), primary_key=True, nullable=False),
        _updated_at(),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("model", sa.String(length=128), nullable=False),
        sa.Column("endpoint", sa.String(length=512), nullable=True),
        sa.Column("api_key", sa.Text(), nullable=True),
        sa.Column("group_name", sa.String(length=128), nullable=True),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_maintenance", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index("ix_check_configs_group_name", "check_configs", ["group_name"])

    op.create_table(
        "check_history",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column(
            "config_id",
            sa.UUID(as_uuid=True),
            sa.ForeignKey("check_configs.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("latency_ms", sa.Integer(), nullable=True),
        sa.Column("ping_latency_ms", sa.Integer(), nullable=True),
        sa.Column("checked_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
    )
    op.create_index(
        "idx_history_config_checked_at",
        "check_history",
        ["config_id", sa.text("checked_at DESC")],
    )
    op.create_index("idx_history_checked_at", "check_history", [sa.text("checked_at DESC")])

    op.create_table(
        "group_info",
        sa.Column("id", sa.UUID(as_uuid=True), primary_key=True, nullable=False),
        _updated_at(),
        sa.Column("group_name", sa.String(length=128), nullable=False, unique=True),
        sa.Column("website_url", sa.String(length=512), nullable=True),
        sa.Column("tags", sa.Text(), nullable=False, server_default=""),
    )


def downgrade() -> None:
    op.drop_table("group_info")
    op.drop_index("idx_history_checked_at", table_name="check_history")
    op.drop_index("idx_history_config_checked_at", table_name="check_history")
    op.drop_table("check_history")
    op.drop_index("ix_check_configs_group_name", table_name="check_configs")
    op.drop_table("check_configs")
