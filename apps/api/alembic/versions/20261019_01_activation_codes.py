"""Activation codes and retention sweep audit log.

Revision ID: 20261019_01
Revises: 
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "20261019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    json_type = postgresql.JSONB().with_variant(sa.JSON(), "sqlite")

    op.create_table(
        "activation_codes",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_used", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("product_info", json_type, nullable=False),
        sa.Column("metadata", json_type, nullable=False),
    )
    op.create_index("ix_activation_codes_code", "activation_codes", ["code"], unique=True)
    op.create_index("ix_activation_codes_unused_created", "activation_codes", ["is_used", "created_at"])
    op.create_index("ix_activation_codes_unused_expires", "activation_codes", ["is_used", "expires_at"])

    op.create_table(
        "retention_sweep_runs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("policy", sa.String(length=32), nullable=False),
        sa.Column("triggered_by", sa.String(length=64), nullable=False, server_default="scheduler"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="running"),
        sa.Column("deleted_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_retention_sweep_runs_started_at", "retention_sweep_runs", ["started_at"])


def downgrade() -> None:
    op.drop_index("ix_retention_sweep_runs_started_at", table_name="retention_sweep_runs")
    op.drop_table("retention_sweep_runs")
    op.drop_index("ix_activation_codes_unused_expires", table_name="activation_codes")
    op.drop_index("ix_activation_codes_unused_created", table_name="activation_codes")
    op.drop_index("ix_activation_codes_code", table_name="activation_codes")
    op.drop_table("activation_codes")
