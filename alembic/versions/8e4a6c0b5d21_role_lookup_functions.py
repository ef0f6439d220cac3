"""role lookup functions

Revision ID: 8e4a6c0b5d21
Revises: 3d9b2f7c1a10
Create Date: 2026-02-02 10:40:03.552917

"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '8e4a6c0b5d21'
down_revision: Union[str, Sequence[str], None] = '3d9b2f7c1a10'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """
    SQL role lookups used by the permission service when
    DATABASE_FUNCTIONS_ENABLED is on. NULL = not a member.
    """
    op.execute(
        """
        CREATE OR REPLACE FUNCTION get_user_project_role(project_uuid uuid, user_uuid uuid)
        RETURNS text
        LANGUAGE sql
        STABLE
        SECURITY DEFINER
        SET search_path = public
        AS $$
            SELECT pm.role
            FROM project_members pm
            WHERE pm.project_id = project_uuid
              AND pm.user_id = user_uuid
            LIMIT 1
        $$;
        """
    )

    op.execute(
        """
        CREATE OR REPLACE FUNCTION get_user_workspace_role(p_workspace_id uuid, p_user_id uuid)
        RETURNS text
        LANGUAGE sql
        STABLE
        SECURITY DEFINER
        SET search_path = public
        AS $$
            SELECT wm.role
            FROM workspace_members wm
            WHERE wm.workspace_id = p_workspace_id
              AND wm.user_id = p_user_id
            LIMIT 1
        $$;
        """
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.execute("DROP FUNCTION IF EXISTS get_user_workspace_role(uuid, uuid);")
    op.execute("DROP FUNCTION IF EXISTS get_user_project_role(uuid, uuid);")
