# taskboard/services/project_service.py
from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from taskboard.core.errors import InvalidOperation, NotFound
from taskboard.core.rbac import ProjectRole
from taskboard.models.activity_log import ActivityAction
from taskboard.models.project import Project, ProjectMember, ProjectStatus
from taskboard.models.workspace import Workspace
from taskboard.realtime.change_feed import ChangeType, change_feed, row_to_dict
from taskboard.services.activity_service import ActivityService
from taskboard.services.membership_service import PROJECT, MembershipService
from taskboard.services.permission_service import PermissionContext, PermissionService, permission_service

UPDATABLE_FIELDS = ("title", "description", "color", "status", "is_template")


class ProjectService:
    def __init__(self, db: Session, permissions: PermissionService = permission_service):
        self.db = db
        self.permissions = permissions
        self.members = MembershipService(db, permissions)
        self.activity = ActivityService(db, permissions)

    def _ctx(self, project_id: UUID) -> PermissionContext:
        return PermissionContext(project_id=project_id)

    def _get(self, project_id: UUID) -> Project:
        project = self.db.get(Project, project_id)
        if project is None:
            raise NotFound("Project not found")
        return project

    def create_project(
        self,
        *,
        actor_id: UUID,
        workspace_id: UUID,
        title: str,
        description: str | None = None,
        color: str | None = None,
        is_template: bool = False,
    ) -> Project:
        if self.db.get(Workspace, workspace_id) is None:
            raise NotFound("Workspace not found")

        self.permissions.assert_permission(
            self.db, actor_id, "workspace.create_projects", PermissionContext(workspace_id=workspace_id)
        )

        project = Project(
            workspace_id=workspace_id,
            title=title,
            description=description,
            color=color,
            is_template=is_template,
            status=ProjectStatus.template.value if is_template else ProjectStatus.active.value,
            owner_id=actor_id,
        )
        self.db.add(project)
        self.db.flush()

        owner = self.members.insert_member(PROJECT, project.id, actor_id, ProjectRole.owner.value)
        entry = self.activity.log(
            user_id=actor_id,
            project_id=project.id,
            entity_type="project",
            entity_id=project.id,
            action=ActivityAction.created,
            details={"title": title},
        )

        self.db.commit()
        self.db.refresh(project)
        self.permissions.clear_cache(actor_id)

        change_feed.publish_row(project, ChangeType.insert)
        change_feed.publish_row(owner, ChangeType.insert)
        if entry is not None:
            change_feed.publish_row(entry, ChangeType.insert)
        return project

    def get_project(self, actor_id: UUID, project_id: UUID) -> Project:
        project = self._get(project_id)
        self.permissions.assert_permission(self.db, actor_id, "project.view", self._ctx(project_id))
        return project

    def list_projects(
        self,
        actor_id: UUID,
        *,
        workspace_id: UUID | None = None,
        status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Project]:
        """Projects the actor can view, newest first."""
        ids = self.permissions.get_projects_with_permission(self.db, actor_id, "project.view")
        if not ids:
            return []

        q = self.db.query(Project).filter(Project.id.in_(ids))
        if workspace_id is not None:
            q = q.filter(Project.workspace_id == workspace_id)
        if status is not None:
            q = q.filter(Project.status == status)

        return q.order_by(Project.created_at.desc(), Project.id).limit(limit).offset(offset).all()

    def search_projects(
        self, actor_id: UUID, query: str, *, workspace_id: UUID | None = None, limit: int = 20
    ) -> list[Project]:
        """Visible projects whose title contains `query` (case-insensitive), by title."""
        ids = self.permissions.get_projects_with_permission(self.db, actor_id, "project.view")
        if not ids:
            return []

        q = self.db.query(Project).filter(Project.id.in_(ids), Project.title.ilike(f"%{query.strip()}%"))
        if workspace_id is not None:
            q = q.filter(Project.workspace_id == workspace_id)
        return q.order_by(Project.title, Project.id).limit(limit).all()

    def update_project(self, actor_id: UUID, project_id: UUID, changes: dict[str, Any]) -> Project:
        project = self._get(project_id)
        self.permissions.assert_permission(self.db, actor_id, "project.edit", self._ctx(project_id))

        changes = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS}
        for key in ("title", "status", "is_template"):
            if key in changes and changes[key] is None:
                raise InvalidOperation(f"'{key}' cannot be null")
        if "status" in changes:
            # archive/restore have their own permissions
            new_status = ProjectStatus(changes["status"]).value
            if new_status != project.status and ProjectStatus.archived.value in (new_status, project.status):
                raise InvalidOperation("Use archive/restore to change the archived status")

        old = row_to_dict(project)
        updated_fields = []
        for key, value in changes.items():
            if getattr(project, key) != value:
                setattr(project, key, value)
                updated_fields.append(key)

        if not updated_fields:
            return project

        entry = self.activity.log(
            user_id=actor_id,
            project_id=project.id,
            entity_type="project",
            entity_id=project.id,
            action=ActivityAction.updated,
            details={"updated_fields": updated_fields},
        )

        self.db.commit()
        self.db.refresh(project)
        change_feed.publish_row(project, ChangeType.update, old)
        if entry is not None:
            change_feed.publish_row(entry, ChangeType.insert)
        return project

    def _set_status(self, actor_id: UUID, project_id: UUID, permission: str, status: ProjectStatus, action) -> Project:
        project = self._get(project_id)
        self.permissions.assert_permission(self.db, actor_id, permission, self._ctx(project_id))

        if project.status == status.value:
            return project

        old = row_to_dict(project)
        project.status = status.value
        entry = self.activity.log(
            user_id=actor_id,
            project_id=project.id,
            entity_type="project",
            entity_id=project.id,
            action=action,
            details={"previous_status": old["status"]},
        )

        self.db.commit()
        self.db.refresh(project)
        change_feed.publish_row(project, ChangeType.update, old)
        if entry is not None:
            change_feed.publish_row(entry, ChangeType.insert)
        return project

    def archive_project(self, actor_id: UUID, project_id: UUID) -> Project:
        return self._set_status(
            actor_id, project_id, "project.archive", ProjectStatus.archived, ActivityAction.archived
        )

    def restore_project(self, actor_id: UUID, project_id: UUID) -> Project:
        return self._set_status(
            actor_id, project_id, "project.restore", ProjectStatus.active, ActivityAction.restored
        )

    def delete_project(self, actor_id: UUID, project_id: UUID) -> None:
        project = self._get(project_id)
        self.permissions.assert_permission(self.db, actor_id, "project.delete", self._ctx(project_id))

        member_ids = list(
            self.db.execute(select(ProjectMember.user_id).where(ProjectMember.project_id == project_id)).scalars()
        )
        old = row_to_dict(project)
        self.db.delete(project)
        self.db.commit()

        for user_id in member_ids:
            self.permissions.clear_cache(user_id)
        change_feed.publish("projects", ChangeType.delete, old)
