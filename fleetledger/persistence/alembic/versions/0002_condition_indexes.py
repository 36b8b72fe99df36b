"""condition and label search indexes

Revision ID: 0002_condition_indexes
Revises: 0001_init
Create Date: 2026-10-02 09:30:00.000000
"""
from __future__ import annotations

from alembic import op


# revision identifiers, used by Alembic.
revision = "0002_condition_indexes"
down_revision = "0001_init"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_index(
        "ix_resources_status_conditions",
        "resources",
        ["status_conditions"],
        postgresql_using="gin",
    )
    op.create_index("ix_resources_labels", "resources", ["labels"], postgresql_using="gin")


def downgrade() -> None:
    op.drop_index("ix_resources_labels", table_name="resources")
    op.drop_index("ix_resources_status_conditions", table_name="resources")
