"""authz role assignments table

Revision ID: 202610190001
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "202610190001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "authz_roles",
        sa.Column("resource_id", sa.String(), nullable=False),
        sa.Column("principal_id", sa.String(), nullable=False),
        sa.Column("resource_type", sa.String(), nullable=False),
        sa.Column("role", sa.String(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("resource_id", "principal_id"),
    )
    op.create_index("ix_authz_roles_principal_id", "authz_roles", ["principal_id"])
    op.create_index("ix_authz_roles_resource_type", "authz_roles", ["resource_type"])
    op.create_index(
        "ix_authz_roles_principal_type",
        "authz_roles",
        ["principal_id", "resource_type"],
    )


def downgrade() -> None:
    op.drop_index("ix_authz_roles_principal_type", table_name="authz_roles")
    op.drop_index("ix_authz_roles_resource_type", table_name="authz_roles")
    op.drop_index("ix_authz_roles_principal_id", table_name="authz_roles")
    op.drop_table("authz_roles")
