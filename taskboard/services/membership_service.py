# taskboard/services/membership_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Type
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from taskboard.core.errors import Conflict, InvalidOperation, LastOwnerError, NotFound, PermissionDenied
from taskboard.core.rbac import ROLE_LEVEL, ManageAction, ProjectRole, WorkspaceRole, can_role_perform_action
from taskboard.models.activity_log import ActivityAction, ActivityLog
from taskboard.models.project import Project, ProjectMember
from taskboard.models.workspace import Workspace, WorkspaceMember
from taskboard.realtime.change_feed import ChangeType, change_feed, row_to_dict
from taskboard.services.activity_service import ActivityService
from taskboard.services.permission_service import PermissionContext, PermissionService, permission_service

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Scope:
    name: str
    container: Type
    member: Type
    role_enum: Type
    invite_permission: str
    role_change_permission: str
    remove_permission: str

    @property
    def scope_column(self):
        return getattr(self.member, f"{self.name}_id")

    def context(self, scope_id: UUID) -> PermissionContext:
        return PermissionContext(**{f"{self.name}_id": scope_id})


PROJECT = _Scope(
    name="project",
    container=Project,
    member=ProjectMember,
    role_enum=ProjectRole,
    invite_permission="team.invite",
    role_change_permission="team.role.change",
    remove_permission="team.remove",
)

WORKSPACE = _Scope(
    name="workspace",
    container=Workspace,
    member=WorkspaceMember,
    role_enum=WorkspaceRole,
    invite_permission="workspace.invite",
    role_change_permission="workspace.manage_roles",
    remove_permission="workspace.remove_member",
)


class MembershipService:
    """
    Members of projects and workspaces.

    Invariants:
      - a project or workspace never loses its last owner
      - only owners grant the owner role
      - project members are members of the project's workspace
    """

    def __init__(self, db: Session, permissions: PermissionService = permission_service):
        self.db = db
        self.permissions = permissions
        self.activity = ActivityService(db, permissions)

    # ---- reads ----

    def _role_of(self, scope: _Scope, scope_id: UUID, user_id: UUID) -> str | None:
        if scope is PROJECT:
            return self.permissions.get_user_project_role(self.db, scope_id, user_id)
        return self.permissions.get_user_workspace_role(self.db, scope_id, user_id)

    def _actor_role(self, scope: _Scope, scope_id: UUID, actor_id: UUID) -> str | None:
        """Role the actor manages members with; workspace owners and admins act as project admins."""
        if scope is PROJECT:
            return self.permissions.get_effective_project_role(self.db, scope_id, actor_id)
        return self.permissions.get_user_workspace_role(self.db, scope_id, actor_id)

    def _get_container(self, scope: _Scope, scope_id: UUID):
        obj = self.db.get(scope.container, scope_id)
        if obj is None:
            raise NotFound(f"{scope.name.capitalize()} not found")
        return obj

    def _get_membership(self, scope: _Scope, scope_id: UUID, user_id: UUID):
        m = self.db.execute(
            select(scope.member).where(scope.scope_column == scope_id, scope.member.user_id == user_id)
        ).scalar_one_or_none()
        if m is None:
            raise NotFound(f"User is not a member of this {scope.name}")
        return m

    def _list(self, scope: _Scope, actor_id: UUID, scope_id: UUID, view_permission: str) -> list:
        self._get_container(scope, scope_id)
        self.permissions.assert_permission(self.db, actor_id, view_permission, scope.context(scope_id))
        return list(
            self.db.execute(
                select(scope.member)
                .where(scope.scope_column == scope_id)
                .order_by(scope.member.created_at, scope.member.user_id)
            ).scalars()
        )

    def count_owners(self, scope: _Scope, scope_id: UUID) -> int:
        return self.db.execute(
            select(func.count())
            .select_from(scope.member)
            .where(scope.scope_column == scope_id, scope.member.role == scope.role_enum.owner.value)
        ).scalar_one()

    def count_members(self, scope: _Scope, scope_id: UUID) -> int:
        return self.db.execute(
            select(func.count()).select_from(scope.member).where(scope.scope_column == scope_id)
        ).scalar_one()

    # ---- writes ----

    def insert_member(self, scope: _Scope, scope_id: UUID, user_id: UUID, role: str):
        """
        Membership row without permission checks (creators, accepted invitations).
        Does not commit; the caller clears the user's permission cache after its commit.
        """
        m = scope.member(**{f"{scope.name}_id": scope_id}, user_id=user_id, role=role)
        self.db.add(m)
        return m

    def _add(self, scope: _Scope, actor_id: UUID, scope_id: UUID, user_id: UUID, role: str):
        role = scope.role_enum(role).value
        container = self._get_container(scope, scope_id)

        self.permissions.assert_permission(self.db, actor_id, scope.invite_permission, scope.context(scope_id))

        actor_role = self._actor_role(scope, scope_id, actor_id)
        if role == "owner" and actor_role != "owner":
            raise PermissionDenied("Only owners can grant the owner role", role=actor_role)

        if self._role_of(scope, scope_id, user_id) is not None:
            raise Conflict(f"User is already a member of this {scope.name}", code="ALREADY_MEMBER")

        if scope is PROJECT:
            ws_role = self.permissions.get_user_workspace_role(self.db, container.workspace_id, user_id)
            if ws_role is None:
                raise InvalidOperation("User must be a member of the project's workspace")

        m = self.insert_member(scope, scope_id, user_id, role)
        entry = self._log(scope, actor_id, scope_id, user_id, ActivityAction.joined, {"role": role})

        self.db.commit()
        self.db.refresh(m)
        self.permissions.clear_cache(user_id)
        self._publish(m, ChangeType.insert, entry=entry)
        return m

    def _update_role(self, scope: _Scope, actor_id: UUID, scope_id: UUID, user_id: UUID, new_role: str):
        new_role = scope.role_enum(new_role).value
        self._get_container(scope, scope_id)
        m = self._get_membership(scope, scope_id, user_id)

        if m.role == new_role:
            return m

        self.permissions.assert_permission(
            self.db, actor_id, scope.role_change_permission, scope.context(scope_id)
        )

        actor_role = self._actor_role(scope, scope_id, actor_id)
        if new_role == "owner" and actor_role != "owner":
            raise PermissionDenied("Only owners can grant the owner role", role=actor_role)

        if actor_id != user_id:
            action = ManageAction.promote if ROLE_LEVEL[new_role] > ROLE_LEVEL[m.role] else ManageAction.demote
            if not can_role_perform_action(actor_role or "viewer", m.role, action):
                raise PermissionDenied(
                    f"Role '{actor_role}' cannot {action.value} a member with role '{m.role}'",
                    role=actor_role,
                )

        if m.role == "owner" and self.count_owners(scope, scope_id) <= 1:
            raise LastOwnerError(f"Cannot demote the last owner of the {scope.name}")

        old = row_to_dict(m)
        previous_role = m.role
        m.role = new_role
        entry = self._log(
            scope, actor_id, scope_id, user_id, ActivityAction.updated,
            {"role": new_role, "previous_role": previous_role},
        )

        self.db.commit()
        self.permissions.clear_cache(user_id)
        self._publish(m, ChangeType.update, old=old, entry=entry)
        return m

    def _remove(self, scope: _Scope, actor_id: UUID, scope_id: UUID, user_id: UUID) -> None:
        self._get_container(scope, scope_id)
        m = self._get_membership(scope, scope_id, user_id)

        # leaving needs no permission
        if actor_id != user_id:
            self.permissions.assert_permission(
                self.db, actor_id, scope.remove_permission, scope.context(scope_id)
            )
            actor_role = self._actor_role(scope, scope_id, actor_id)
            if not can_role_perform_action(actor_role or "viewer", m.role, ManageAction.remove):
                raise PermissionDenied(
                    f"Role '{actor_role}' cannot remove a member with role '{m.role}'",
                    role=actor_role,
                )

        if m.role == "owner" and self.count_owners(scope, scope_id) <= 1:
            raise LastOwnerError(f"Cannot remove the last owner of the {scope.name}")

        old = row_to_dict(m)
        self.db.delete(m)
        entry = self._log(
            scope, actor_id, scope_id, user_id, ActivityAction.deleted,
            {"role": old["role"], "left": actor_id == user_id},
        )

        self.db.commit()
        self.permissions.clear_cache(user_id)
        change_feed.publish(scope.member.__tablename__, ChangeType.delete, old)
        if entry is not None:
            change_feed.publish_row(entry, ChangeType.insert)

    def _log(self, scope: _Scope, actor_id: UUID, scope_id: UUID, user_id: UUID, action, details) -> ActivityLog | None:
        # workspace changes have no project to hang the entry on
        if scope is not PROJECT:
            return None
        return self.activity.log(
            user_id=actor_id,
            project_id=scope_id,
            entity_type="project_member",
            entity_id=user_id,
            action=action,
            details=details,
        )

    def _publish(self, m, change_type: ChangeType, *, old=None, entry=None) -> None:
        change_feed.publish_row(m, change_type, old)
        if entry is not None:
            change_feed.publish_row(entry, ChangeType.insert)

    # ---- project members ----

    def list_project_members(self, actor_id: UUID, project_id: UUID) -> list[ProjectMember]:
        return self._list(PROJECT, actor_id, project_id, "team.view")

    def add_project_member(self, actor_id: UUID, project_id: UUID, user_id: UUID, role: str) -> ProjectMember:
        return self._add(PROJECT, actor_id, project_id, user_id, role)

    def update_project_member_role(
        self, actor_id: UUID, project_id: UUID, user_id: UUID, role: str
    ) -> ProjectMember:
        return self._update_role(PROJECT, actor_id, project_id, user_id, role)

    def remove_project_member(self, actor_id: UUID, project_id: UUID, user_id: UUID) -> None:
        self._remove(PROJECT, actor_id, project_id, user_id)

    # ---- workspace members ----

    def list_workspace_members(self, actor_id: UUID, workspace_id: UUID) -> list[WorkspaceMember]:
        return self._list(WORKSPACE, actor_id, workspace_id, "workspace.view")

    def add_workspace_member(
        self, actor_id: UUID, workspace_id: UUID, user_id: UUID, role: str
    ) -> WorkspaceMember:
        return self._add(WORKSPACE, actor_id, workspace_id, user_id, role)

    def update_workspace_member_role(
        self, actor_id: UUID, workspace_id: UUID, user_id: UUID, role: str
    ) -> WorkspaceMember:
        return self._update_role(WORKSPACE, actor_id, workspace_id, user_id, role)

    def remove_workspace_member(self, actor_id: UUID, workspace_id: UUID, user_id: UUID) -> None:
        self._remove(WORKSPACE, actor_id, workspace_id, user_id)
