# taskboard/services/workspace_service.py
from __future__ import annotations

import re
import secrets
from typing import Any
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from taskboard.core.errors import InvalidOperation, NotFound
from taskboard.core.rbac import WorkspaceRole
from taskboard.models.project import Project, ProjectStatus
from taskboard.models.task import Task
from taskboard.models.workspace import Workspace, WorkspaceMember
from taskboard.realtime.change_feed import ChangeType, change_feed, row_to_dict
from taskboard.services.membership_service import WORKSPACE, MembershipService
from taskboard.services.permission_service import PermissionContext, PermissionService, permission_service

_SLUG_STRIP = re.compile(r"[^a-z0-9]+")

UPDATABLE_FIELDS = ("name", "description", "logo_url", "settings")


def slugify(name: str) -> str:
    slug = _SLUG_STRIP.sub("-", name.lower()).strip("-")
    return slug[:100] or "workspace"


class WorkspaceService:
    def __init__(self, db: Session, permissions: PermissionService = permission_service):
        self.db = db
        self.permissions = permissions
        self.members = MembershipService(db, permissions)

    def _ctx(self, workspace_id: UUID) -> PermissionContext:
        return PermissionContext(workspace_id=workspace_id)

    def _unique_slug(self, name: str) -> str:
        base = slugify(name)
        slug = base
        while self.db.execute(select(Workspace.id).where(Workspace.slug == slug)).first() is not None:
            slug = f"{base}-{secrets.token_hex(3)}"
        return slug

    def _get(self, workspace_id: UUID) -> Workspace:
        ws = self.db.get(Workspace, workspace_id)
        if ws is None:
            raise NotFound("Workspace not found")
        return ws

    def create_workspace(
        self,
        *,
        actor_id: UUID,
        name: str,
        description: str | None = None,
        logo_url: str | None = None,
        settings: dict | None = None,
    ) -> Workspace:
        self.permissions.assert_permission(self.db, actor_id, "workspace.create")

        ws = Workspace(
            name=name,
            slug=self._unique_slug(name),
            description=description,
            logo_url=logo_url,
            settings=settings or {},
            created_by=actor_id,
        )
        self.db.add(ws)
        self.db.flush()

        owner = self.members.insert_member(WORKSPACE, ws.id, actor_id, WorkspaceRole.owner.value)

        self.db.commit()
        self.db.refresh(ws)
        self.permissions.clear_cache(actor_id)
        change_feed.publish_row(ws, ChangeType.insert)
        change_feed.publish_row(owner, ChangeType.insert)
        return ws

    def get_workspace(self, actor_id: UUID, workspace_id: UUID) -> Workspace:
        ws = self._get(workspace_id)
        self.permissions.assert_permission(self.db, actor_id, "workspace.view", self._ctx(workspace_id))
        return ws

    def get_by_slug(self, actor_id: UUID, slug: str) -> Workspace:
        ws = self.db.execute(select(Workspace).where(Workspace.slug == slug)).scalar_one_or_none()
        if ws is None:
            raise NotFound("Workspace not found")
        self.permissions.assert_permission(self.db, actor_id, "workspace.view", self._ctx(ws.id))
        return ws

    def list_workspaces(self, actor_id: UUID) -> list[Workspace]:
        return list(
            self.db.execute(
                select(Workspace)
                .join(WorkspaceMember, WorkspaceMember.workspace_id == Workspace.id)
                .where(WorkspaceMember.user_id == actor_id)
                .order_by(Workspace.name)
            ).scalars()
        )

    def search_workspaces(self, actor_id: UUID, query: str, *, limit: int = 20) -> list[Workspace]:
        pattern = f"%{query.strip()}%"
        return list(
            self.db.execute(
                select(Workspace)
                .join(WorkspaceMember, WorkspaceMember.workspace_id == Workspace.id)
                .where(WorkspaceMember.user_id == actor_id, Workspace.name.ilike(pattern))
                .order_by(Workspace.name)
                .limit(limit)
            ).scalars()
        )

    def update_workspace(self, actor_id: UUID, workspace_id: UUID, changes: dict[str, Any]) -> Workspace:
        ws = self._get(workspace_id)
        self.permissions.assert_permission(self.db, actor_id, "workspace.edit", self._ctx(workspace_id))

        old = row_to_dict(ws)
        for key, value in changes.items():
            if key not in UPDATABLE_FIELDS:
                continue
            if key == "name" and value is None:
                raise InvalidOperation("'name' cannot be null")
            if key == "settings" and value is None:
                value = {}
            setattr(ws, key, value)

        self.db.commit()
        self.db.refresh(ws)
        change_feed.publish_row(ws, ChangeType.update, old)
        return ws

    def delete_workspace(self, actor_id: UUID, workspace_id: UUID) -> None:
        ws = self._get(workspace_id)
        self.permissions.assert_permission(self.db, actor_id, "workspace.delete", self._ctx(workspace_id))

        member_ids = list(
            self.db.execute(
                select(WorkspaceMember.user_id).where(WorkspaceMember.workspace_id == workspace_id)
            ).scalars()
        )
        old = row_to_dict(ws)
        self.db.delete(ws)
        self.db.commit()

        # project memberships went with the cascade too
        for user_id in member_ids:
            self.permissions.clear_cache(user_id)
        change_feed.publish("workspaces", ChangeType.delete, old)

    def workspace_stats(self, actor_id: UUID, workspace_id: UUID) -> dict[str, Any]:
        self._get(workspace_id)
        self.permissions.assert_permission(self.db, actor_id, "workspace.view", self._ctx(workspace_id))

        project_count, active_count = self.db.execute(
            select(
                func.count(Project.id),
                func.coalesce(func.sum(case((Project.status == ProjectStatus.active.value, 1), else_=0)), 0),
            ).where(Project.workspace_id == workspace_id)
        ).one()
        task_count = self.db.execute(
            select(func.count(Task.id))
            .join(Project, Project.id == Task.project_id)
            .where(Project.workspace_id == workspace_id)
        ).scalar_one()

        return {
            "workspace_id": workspace_id,
            "member_count": self.members.count_members(WORKSPACE, workspace_id),
            "project_count": project_count,
            "active_project_count": active_count,
            "task_count": task_count,
        }
