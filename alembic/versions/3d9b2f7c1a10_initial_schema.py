"""initial schema

Revision ID: 3d9b2f7c1a10
Revises:
Create Date: 2026-02-02 10:12:41.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '3d9b2f7c1a10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _uuid(name: str, **kw) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=True), **kw)


def _ts(name: str, **kw) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False, **kw)


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "profiles",
        _uuid("id", primary_key=True),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("full_name", sa.Text(), nullable=True),
        sa.Column("role", sa.String(), nullable=False, server_default="user"),
        _ts("created_at"),
        _ts("updated_at"),
        sa.CheckConstraint("role IN ('system_admin', 'user')", name="ck_profiles_role"),
    )
    op.create_index("ix_profiles_email", "profiles", ["email"])

    op.create_table(
        "workspaces",
        _uuid("id", primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("slug", sa.String(120), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("logo_url", sa.Text(), nullable=True),
        sa.Column("settings", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        _uuid("created_by", nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("slug", name="uq_workspaces_slug"),
    )

    op.create_table(
        "workspace_members",
        _uuid("id", primary_key=True),
        _uuid("workspace_id", sa.ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False),
        _uuid("user_id", nullable=False),
        sa.Column("role", sa.String(), nullable=False, server_default="member"),
        _ts("created_at"),
        sa.UniqueConstraint("workspace_id", "user_id", name="uq_workspace_members_workspace_user"),
        sa.CheckConstraint("role IN ('owner', 'admin', 'member', 'viewer')", name="ck_workspace_members_role"),
    )
    op.create_index("ix_workspace_members_workspace_id", "workspace_members", ["workspace_id"])
    op.create_index("ix_workspace_members_user_id", "workspace_members", ["user_id"])

    op.create_table(
        "projects",
        _uuid("id", primary_key=True),
        _uuid("workspace_id", sa.ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("color", sa.String(32), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="active"),
        sa.Column("is_template", sa.Boolean(), nullable=False, server_default=sa.false()),
        _uuid("owner_id", nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
        sa.CheckConstraint(
            "status IN ('active', 'archived', 'completed', 'template')", name="ck_projects_status"
        ),
    )
    op.create_index("ix_projects_workspace_id", "projects", ["workspace_id"])

    op.create_table(
        "project_members",
        _uuid("id", primary_key=True),
        _uuid("project_id", sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        _uuid("user_id", nullable=False),
        sa.Column("role", sa.String(), nullable=False, server_default="member"),
        _ts("created_at"),
        sa.UniqueConstraint("project_id", "user_id", name="uq_project_members_project_user"),
        sa.CheckConstraint("role IN ('owner', 'admin', 'member', 'viewer')", name="ck_project_members_role"),
    )
    op.create_index("ix_project_members_project_id", "project_members", ["project_id"])
    op.create_index("ix_project_members_user_id", "project_members", ["user_id"])

    op.create_table(
        "tasks",
        _uuid("id", primary_key=True),
        _uuid("project_id", sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="todo"),
        sa.Column("priority", sa.String(), nullable=False, server_default="medium"),
        sa.Column("due_date", sa.Date(), nullable=True),
        _uuid("assignee_id", nullable=True),
        _uuid("created_by", nullable=False),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
        _ts("created_at"),
        _ts("updated_at"),
        sa.Column("row_version", sa.Integer(), nullable=False, server_default="1"),
        sa.CheckConstraint("status IN ('todo', 'in_progress', 'done')", name="ck_tasks_status"),
        sa.CheckConstraint("priority IN ('low', 'medium', 'high', 'urgent')", name="ck_tasks_priority"),
        sa.CheckConstraint("row_version >= 1", name="ck_tasks_row_version_positive"),
    )
    op.create_index("ix_tasks_project_id", "tasks", ["project_id"])
    op.create_index("ix_tasks_assignee_id", "tasks", ["assignee_id"])
    op.create_index("ix_tasks_project_order", "tasks", ["project_id", "order_index"])

    op.create_table(
        "subtasks",
        _uuid("id", primary_key=True),
        _uuid("task_id", sa.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
        _uuid("created_by", nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_subtasks_task_id", "subtasks", ["task_id"])

    op.create_table(
        "comments",
        _uuid("id", primary_key=True),
        sa.Column("entity_type", sa.String(50), nullable=False),
        _uuid("entity_id", nullable=False),
        _uuid("project_id", sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        _uuid("user_id", nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_comments_entity_id", "comments", ["entity_id"])
    op.create_index("ix_comments_project_id", "comments", ["project_id"])

    op.create_table(
        "attachments",
        _uuid("id", primary_key=True),
        sa.Column("entity_type", sa.String(50), nullable=False),
        _uuid("entity_id", nullable=False),
        _uuid("project_id", sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        _uuid("user_id", nullable=False),
        sa.Column("file_name", sa.Text(), nullable=False),
        sa.Column("file_size", sa.BigInteger(), nullable=True),
        sa.Column("file_type", sa.Text(), nullable=True),
        sa.Column("storage_path", sa.Text(), nullable=False),
        _ts("created_at"),
    )
    op.create_index("ix_attachments_entity_id", "attachments", ["entity_id"])
    op.create_index("ix_attachments_project_id", "attachments", ["project_id"])

    op.create_table(
        "project_invitations",
        _uuid("id", primary_key=True),
        _uuid("project_id", sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("role", sa.String(), nullable=False, server_default="member"),
        sa.Column("token", sa.String(64), nullable=False),
        _uuid("invited_by", nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        _ts("created_at"),
        sa.UniqueConstraint("token", name="uq_project_invitations_token"),
    )
    op.create_index("ix_project_invitations_project_id", "project_invitations", ["project_id"])
    op.create_index(
        "ix_project_invitations_pending_email",
        "project_invitations",
        ["project_id", "email"],
        postgresql_where=sa.text("accepted_at IS NULL"),
    )

    op.create_table(
        "activity_logs",
        _uuid("id", primary_key=True),
        _uuid("user_id", nullable=True),
        _uuid("project_id", sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=True),
        sa.Column("entity_type", sa.String(50), nullable=False),
        _uuid("entity_id", nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("details", postgresql.JSONB(), nullable=True),
        _ts("created_at"),
    )
    op.create_index("ix_activity_logs_user_id", "activity_logs", ["user_id"])
    op.create_index("ix_activity_logs_project_id", "activity_logs", ["project_id"])
    op.create_index("ix_activity_logs_created_at", "activity_logs", ["created_at"])

    op.create_table(
        "custom_permissions",
        _uuid("id", primary_key=True),
        _uuid("user_id", nullable=False),
        sa.Column("permission", sa.String(100), nullable=False),
        _uuid("workspace_id", nullable=True),
        _uuid("project_id", nullable=True),
        _uuid("task_id", nullable=True),
        sa.Column("granted", sa.Boolean(), nullable=False, server_default=sa.true()),
        _uuid("granted_by", nullable=False),
        _ts("granted_at"),
    )
    op.create_index("ix_custom_permissions_user_id", "custom_permissions", ["user_id"])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("ix_custom_permissions_user_id", table_name="custom_permissions")
    op.drop_table("custom_permissions")

    op.drop_index("ix_activity_logs_created_at", table_name="activity_logs")
    op.drop_index("ix_activity_logs_project_id", table_name="activity_logs")
    op.drop_index("ix_activity_logs_user_id", table_name="activity_logs")
    op.drop_table("activity_logs")

    op.drop_index("ix_project_invitations_pending_email", table_name="project_invitations")
    op.drop_index("ix_project_invitations_project_id", table_name="project_invitations")
    op.drop_table("project_invitations")

    op.drop_index("ix_attachments_project_id", table_name="attachments")
    op.drop_index("ix_attachments_entity_id", table_name="attachments")
    op.drop_table("attachments")

    op.drop_index("ix_comments_project_id", table_name="comments")
    op.drop_index("ix_comments_entity_id", table_name="comments")
    op.drop_table("comments")

    op.drop_index("ix_subtasks_task_id", table_name="subtasks")
    op.drop_table("subtasks")

    op.drop_index("ix_tasks_project_order", table_name="tasks")
    op.drop_index("ix_tasks_assignee_id", table_name="tasks")
    op.drop_index("ix_tasks_project_id", table_name="tasks")
    op.drop_table("tasks")

    op.drop_index("ix_project_members_user_id", table_name="project_members")
    op.drop_index("ix_project_members_project_id", table_name="project_members")
    op.drop_table("project_members")

    op.drop_index("ix_projects_workspace_id", table_name="projects")
    op.drop_table("projects")

    op.drop_index("ix_workspace_members_user_id", table_name="workspace_members")
    op.drop_index("ix_workspace_members_workspace_id", table_name="workspace_members")
    op.drop_table("workspace_members")

    op.drop_table("workspaces")

    op.drop_index("ix_profiles_email", table_name="profiles")
    op.drop_table("profiles")
