"""init

Revision ID: 0001_init
Revises: 
Create Date: 2026-09-28 10:00:00.000000
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "resources",
        sa.Column("id", sa.String(), primary_key=True),
        # Avoid index=True here because we create explicit indexes below.
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("kind", sa.String(length=63), nullable=False),
        sa.Column("name", sa.String(length=63), nullable=False),
        sa.Column("spec", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("labels", postgresql.JSONB(), nullable=True),
        sa.Column("generation", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("owner_id", sa.String(), nullable=True),
        sa.Column("owner_kind", sa.String(length=63), nullable=True),
        sa.Column("status_conditions", postgresql.JSONB(), nullable=True),
        sa.Column("created_by", sa.String(), nullable=False, server_default="system"),
        sa.Column("updated_by", sa.String(), nullable=False, server_default="system"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_resources_tenant_kind", "resources", ["tenant_id", "kind"])
    op.create_index("ix_resources_owner_id", "resources", ["owner_id"])

    op.create_table(
        "adapter_statuses",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("resource_type", sa.String(length=63), nullable=False),
        sa.Column("resource_id", sa.String(length=255), nullable=False),
        sa.Column("adapter", sa.String(length=255), nullable=False),
        sa.Column("observed_generation", sa.Integer(), nullable=False),
        sa.Column("conditions", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("data", postgresql.JSONB(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column("created_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_report_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    )
    # Soft-deleted rows free the key so a recreated resource can report again.
    op.create_index(
        "uq_adapter_statuses_resource_adapter",
        "adapter_statuses",
        ["resource_type", "resource_id", "adapter"],
        unique=True,
        postgresql_where=sa.text("deleted_at IS NULL"),
    )
    op.create_index("ix_adapter_statuses_resource", "adapter_statuses", ["resource_type", "resource_id"])


def downgrade() -> None:
    op.drop_index("ix_adapter_statuses_resource", table_name="adapter_statuses")
    op.drop_index("uq_adapter_statuses_resource_adapter", table_name="adapter_statuses")
    op.drop_table("adapter_statuses")
    op.drop_index("ix_resources_owner_id", table_name="resources")
    op.drop_index("ix_resources_tenant_kind", table_name="resources")
    op.drop_table("resources")
