"""custom permission context foreign keys

Revision ID: 5b7d1e2f9c30
Revises: 8e4a6c0b5d21
Create Date: 2026-03-09 14:12:41.208733

"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '5b7d1e2f9c30'
down_revision: Union[str, Sequence[str], None] = '8e4a6c0b5d21'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_CONTEXT_FKS = (
    ("fk_custom_permissions_workspace_id", "workspaces", "workspace_id"),
    ("fk_custom_permissions_project_id", "projects", "project_id"),
    ("fk_custom_permissions_task_id", "tasks", "task_id"),
)


def upgrade() -> None:
    """Drop overrides whose context row is gone, then cascade deletes from it."""
    for _, table, column in _CONTEXT_FKS:
        op.execute(
            f"""
            DELETE FROM custom_permissions cp
            WHERE cp.{column} IS NOT NULL
              AND NOT EXISTS (SELECT 1 FROM {table} t WHERE t.id = cp.{column})
            """
        )
        op.create_foreign_key(
            f"fk_custom_permissions_{column}",
            "custom_permissions",
            table,
            [column],
            ["id"],
            ondelete="CASCADE",
        )
    op.create_index("ix_custom_permissions_project_id", "custom_permissions", ["project_id"])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("ix_custom_permissions_project_id", table_name="custom_permissions")
    for name, _, _ in reversed(_CONTEXT_FKS):
        op.drop_constraint(name, "custom_permissions", type_="foreignkey")
