# taskboard/services/profile_service.py
from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from taskboard.core.errors import InvalidOperation, NotFound
from taskboard.core.rbac import GlobalRole
from taskboard.models.profile import Profile
from taskboard.models.project import Project, ProjectMember, ProjectStatus
from taskboard.models.task import Task, TaskStatus
from taskboard.models.workspace import Workspace, WorkspaceMember
from taskboard.services.permission_service import PermissionService, permission_service


class ProfileService:
    def __init__(self, db: Session, permissions: PermissionService = permission_service):
        self.db = db
        self.permissions = permissions

    def get_profile(self, user_id: UUID) -> Profile | None:
        return self.db.get(Profile, user_id)

    def upsert_profile(self, user_id: UUID, *, email: str | None = None, full_name: str | None = None) -> Profile:
        profile = self.db.get(Profile, user_id)
        if profile is None:
            profile = Profile(id=user_id, role=GlobalRole.user.value)
            self.db.add(profile)

        if email is not None:
            profile.email = email.strip().lower()
        if full_name is not None:
            profile.full_name = full_name

        self.db.commit()
        self.db.refresh(profile)
        return profile

    def set_global_role(self, actor_id: UUID, user_id: UUID, role: str) -> Profile:
        self.permissions.assert_permission(self.db, actor_id, "user.manage")

        role = GlobalRole(role).value
        if actor_id == user_id and role != GlobalRole.system_admin.value:
            raise InvalidOperation("System admins cannot demote themselves")

        profile = self.db.get(Profile, user_id)
        if profile is None:
            profile = Profile(id=user_id)
            self.db.add(profile)
        profile.role = role

        self.db.commit()
        self.db.refresh(profile)
        self.permissions.clear_cache(user_id)
        return profile

    # ---- administration (user.manage) ----

    def _membership_counts(self, model, user_ids: list[UUID]) -> dict[UUID, int]:
        if not user_ids:
            return {}
        rows = self.db.execute(
            select(model.user_id, func.count()).where(model.user_id.in_(user_ids)).group_by(model.user_id)
        )
        return {user_id: n for user_id, n in rows}

    def list_users(
        self,
        actor_id: UUID,
        *,
        query: str | None = None,
        role: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[dict[str, Any]], int]:
        """Profiles matching the filters, newest first, with membership counts. Returns (page, total)."""
        self.permissions.assert_permission(self.db, actor_id, "user.manage")

        stmt = select(Profile)
        if query:
            pattern = f"%{query.strip()}%"
            stmt = stmt.where(or_(Profile.email.ilike(pattern), Profile.full_name.ilike(pattern)))
        if role is not None:
            stmt = stmt.where(Profile.role == GlobalRole(role).value)

        total = self.db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
        profiles = list(
            self.db.execute(
                stmt.order_by(Profile.created_at.desc(), Profile.id).limit(limit).offset(offset)
            ).scalars()
        )

        ids = [p.id for p in profiles]
        workspace_counts = self._membership_counts(WorkspaceMember, ids)
        project_counts = self._membership_counts(ProjectMember, ids)
        users = [
            {
                "id": p.id,
                "email": p.email,
                "full_name": p.full_name,
                "role": p.role,
                "created_at": p.created_at,
                "workspace_count": workspace_counts.get(p.id, 0),
                "project_count": project_counts.get(p.id, 0),
            }
            for p in profiles
        ]
        return users, total

    def get_user_with_roles(self, actor_id: UUID, user_id: UUID) -> dict[str, Any]:
        self.permissions.assert_permission(self.db, actor_id, "user.manage")

        profile = self.db.get(Profile, user_id)
        workspace_roles = [
            {
                "context_type": "workspace",
                "context_id": ws_id,
                "context_name": name,
                "role": role,
                "granted_at": created_at,
            }
            for ws_id, name, role, created_at in self.db.execute(
                select(Workspace.id, Workspace.name, WorkspaceMember.role, WorkspaceMember.created_at)
                .join(WorkspaceMember, WorkspaceMember.workspace_id == Workspace.id)
                .where(WorkspaceMember.user_id == user_id)
                .order_by(WorkspaceMember.created_at)
            )
        ]
        project_roles = [
            {
                "context_type": "project",
                "context_id": project_id,
                "context_name": title,
                "role": role,
                "granted_at": created_at,
            }
            for project_id, title, role, created_at in self.db.execute(
                select(Project.id, Project.title, ProjectMember.role, ProjectMember.created_at)
                .join(ProjectMember, ProjectMember.project_id == Project.id)
                .where(ProjectMember.user_id == user_id)
                .order_by(ProjectMember.created_at)
            )
        ]

        if profile is None and not workspace_roles and not project_roles:
            raise NotFound("User not found")

        return {
            "id": user_id,
            "email": profile.email if profile else None,
            "full_name": profile.full_name if profile else None,
            "global_role": profile.role if profile else GlobalRole.user.value,
            "workspace_count": len(workspace_roles),
            "project_count": len(project_roles),
            "roles": workspace_roles + project_roles,
        }

    def admin_stats(self, actor_id: UUID) -> dict[str, int]:
        self.permissions.assert_permission(self.db, actor_id, "user.manage")

        def count(stmt) -> int:
            return self.db.execute(stmt).scalar_one()

        return {
            "total_users": count(select(func.count()).select_from(Profile)),
            "system_admins": count(
                select(func.count()).select_from(Profile).where(Profile.role == GlobalRole.system_admin.value)
            ),
            "total_workspaces": count(select(func.count()).select_from(Workspace)),
            "total_projects": count(select(func.count()).select_from(Project)),
            "active_projects": count(
                select(func.count()).select_from(Project).where(Project.status == ProjectStatus.active.value)
            ),
            "total_tasks": count(select(func.count()).select_from(Task)),
            "completed_tasks": count(
                select(func.count()).select_from(Task).where(Task.status == TaskStatus.done.value)
            ),
        }
