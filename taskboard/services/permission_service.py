# taskboard/services/permission_service.py
"""
Permission resolution.

Resolution order for has_permission():
  1. custom permission (grant or deny) whose context matches exactly
  2. workspace permission -> workspace role table
  3. project permission   -> project role table, or the project admin table
                             inherited through workspace.manage_projects
  4. global permission    -> global role table (profiles.role)
  5. deny

Role lookups are cached per user for `permission_cache_ttl_seconds`. Every
membership, role and override change must call clear_cache(user_id).
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable
from uuid import UUID

from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from taskboard.core.config import settings
from taskboard.core.errors import InvalidOperation, NotFound, PermissionDenied
from taskboard.core.rbac import (
    INHERITED_PROJECT_ROLE,
    INHERITING_WORKSPACE_PERMISSION,
    ROLE_LEVEL,
    GlobalRole,
    ManageAction,
    ProjectRole,
    Scope,
    WorkspaceRole,
    can_role_perform_action,
    has_role_permission,
    permission_scope,
    permissions_for_global_role,
    permissions_for_project_role,
    permissions_for_workspace_role,
)
from taskboard.models.custom_permission import CustomPermission
from taskboard.models.profile import Profile
from taskboard.models.project import Project, ProjectMember
from taskboard.models.task import Task
from taskboard.models.workspace import WorkspaceMember

logger = logging.getLogger(__name__)

NO_MATCH_REASON = "No matching role or custom permission found"

# name -> membership table it mirrors
_ROLE_FUNCTIONS = {
    "get_user_project_role": "project_members",
    "get_user_workspace_role": "workspace_members",
}

_MISSING = object()


@dataclass(frozen=True)
class PermissionContext:
    workspace_id: UUID | None = None
    project_id: UUID | None = None
    task_id: UUID | None = None

    def key(self) -> tuple[UUID | None, UUID | None, UUID | None]:
        return (self.workspace_id, self.project_id, self.task_id)


@dataclass(frozen=True)
class PermissionResult:
    has_permission: bool
    reason: str | None = None
    # granting role on success, lowest sufficient role on denial
    required_role: str | None = None
    # "role" | "custom" | "inherited"
    source: str | None = None

    def __bool__(self) -> bool:
        return self.has_permission


@dataclass
class PermissionSummary:
    user_id: UUID
    global_role: str
    workspace_role: str | None
    project_role: str | None
    permissions: list[str]
    custom_permissions: list[CustomPermission]
    can_manage: list[str]


@dataclass(frozen=True)
class _Override:
    permission: str
    context: tuple[UUID | None, UUID | None, UUID | None]
    granted: bool


@dataclass
class _CacheEntry:
    expires_at: float
    project_roles: dict[UUID, str | None] = field(default_factory=dict)
    workspace_roles: dict[UUID, str | None] = field(default_factory=dict)
    global_role: object = _MISSING
    overrides: object = _MISSING  # list[_Override] once loaded


def minimum_role(scope: Scope, permission: str) -> str | None:
    if scope is Scope.global_:
        for role in (GlobalRole.user, GlobalRole.system_admin):
            if permission in permissions_for_global_role(role):
                return role.value
        return None

    roles = ProjectRole if scope is Scope.project else WorkspaceRole
    for role in sorted(roles, key=lambda r: ROLE_LEVEL[r.value]):
        if has_role_permission(scope, role.value, permission):
            return role.value
    return None


class PermissionService:
    def __init__(
        self,
        *,
        ttl_seconds: float | None = None,
        use_database_functions: bool | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = settings.permission_cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self.use_database_functions = (
            settings.database_functions_enabled if use_database_functions is None else use_database_functions
        )
        self._clock = clock
        self._cache: dict[UUID, _CacheEntry] = {}
        self._lock = threading.Lock()

    # ---- cache ----

    def _entry(self, user_id: UUID) -> _CacheEntry:
        now = self._clock()
        with self._lock:
            entry = self._cache.get(user_id)
            if entry is None or entry.expires_at <= now:
                entry = _CacheEntry(expires_at=now + self.ttl_seconds)
                self._cache[user_id] = entry
            return entry

    def clear_cache(self, user_id: UUID) -> None:
        with self._lock:
            self._cache.pop(user_id, None)
        logger.debug("Permission cache cleared for user %s", user_id)

    def clear_all_cache(self) -> None:
        with self._lock:
            self._cache.clear()
        logger.debug("Permission cache cleared")

    # ---- role lookups ----

    def _database_functions_available(self, db: Session) -> bool:
        return self.use_database_functions and db.get_bind().dialect.name == "postgresql"

    def _call_role_function(self, db: Session, function: str, scope_id: UUID, user_id: UUID) -> str | None:
        if function not in _ROLE_FUNCTIONS:
            raise ValueError(f"Unknown role function: {function}")
        # savepoint keeps a failing call from aborting the caller's transaction
        with db.begin_nested():
            value = db.execute(
                text(f"SELECT {function}(:scope_id, :user_id)"),
                {"scope_id": scope_id, "user_id": user_id},
            ).scalar()
        return str(value) if value else None

    def _lookup_role(self, db: Session, function: str, model, scope_column, scope_id: UUID, user_id: UUID) -> str | None:
        if self._database_functions_available(db):
            try:
                return self._call_role_function(db, function, scope_id, user_id)
            except SQLAlchemyError as e:
                logger.warning(
                    "%s failed, falling back to %s: %s", function, _ROLE_FUNCTIONS[function], e
                )

        return db.execute(
            select(model.role).where(scope_column == scope_id, model.user_id == user_id)
        ).scalar_one_or_none()

    def get_user_project_role(self, db: Session, project_id: UUID, user_id: UUID) -> str | None:
        entry = self._entry(user_id)
        if project_id in entry.project_roles:
            return entry.project_roles[project_id]

        role = self._lookup_role(
            db, "get_user_project_role", ProjectMember, ProjectMember.project_id, project_id, user_id
        )
        entry.project_roles[project_id] = role
        return role

    def get_user_workspace_role(self, db: Session, workspace_id: UUID, user_id: UUID) -> str | None:
        entry = self._entry(user_id)
        if workspace_id in entry.workspace_roles:
            return entry.workspace_roles[workspace_id]

        role = self._lookup_role(
            db, "get_user_workspace_role", WorkspaceMember, WorkspaceMember.workspace_id, workspace_id, user_id
        )
        entry.workspace_roles[workspace_id] = role
        return role

    def get_user_global_role(self, db: Session, user_id: UUID) -> str:
        entry = self._entry(user_id)
        if entry.global_role is not _MISSING:
            return entry.global_role  # type: ignore[return-value]

        role = db.execute(select(Profile.role).where(Profile.id == user_id)).scalar_one_or_none()
        role = role or GlobalRole.user.value
        entry.global_role = role
        return role

    # ---- custom permissions ----

    def _overrides(self, db: Session, user_id: UUID) -> list[_Override]:
        entry = self._entry(user_id)
        if entry.overrides is _MISSING:
            rows = db.execute(
                select(CustomPermission)
                .where(CustomPermission.user_id == user_id)
                .order_by(CustomPermission.granted_at)
            ).scalars()
            entry.overrides = [
                _Override(cp.permission, (cp.workspace_id, cp.project_id, cp.task_id), cp.granted)
                for cp in rows
            ]
        return entry.overrides  # type: ignore[return-value]

    def get_custom_permissions(
        self, db: Session, user_id: UUID, context: PermissionContext | None = None
    ) -> list[CustomPermission]:
        """Overrides of the user, narrowed by every context id that is set."""
        stmt = select(CustomPermission).where(CustomPermission.user_id == user_id)
        if context is not None:
            if context.workspace_id is not None:
                stmt = stmt.where(CustomPermission.workspace_id == context.workspace_id)
            if context.project_id is not None:
                stmt = stmt.where(CustomPermission.project_id == context.project_id)
            if context.task_id is not None:
                stmt = stmt.where(CustomPermission.task_id == context.task_id)
        return list(db.execute(stmt.order_by(CustomPermission.granted_at)).scalars())

    def _matching_override(
        self, db: Session, user_id: UUID, permission: str, contexts: Iterable[PermissionContext]
    ) -> _Override | None:
        keys = {c.key() for c in contexts}
        for ov in reversed(self._overrides(db, user_id)):
            if ov.permission == permission and ov.context in keys:
                return ov
        return None

    # ---- context ----

    def complete_context(self, db: Session, context: PermissionContext | None) -> PermissionContext:
        """Task id fills project id, project id fills workspace id."""
        context = context or PermissionContext()
        workspace_id, project_id, task_id = context.key()

        if task_id is not None and project_id is None:
            project_id = db.execute(select(Task.project_id).where(Task.id == task_id)).scalar_one_or_none()
        if project_id is not None and workspace_id is None:
            workspace_id = db.execute(
                select(Project.workspace_id).where(Project.id == project_id)
            ).scalar_one_or_none()

        return PermissionContext(workspace_id=workspace_id, project_id=project_id, task_id=task_id)

    def _inherits_project_admin(self, db: Session, user_id: UUID, workspace_id: UUID | None) -> str | None:
        """Workspace role that grants project admin rights, if any."""
        if workspace_id is None:
            return None
        ws_role = self.get_user_workspace_role(db, workspace_id, user_id)
        if INHERITING_WORKSPACE_PERMISSION in permissions_for_workspace_role(ws_role):
            return ws_role
        return None

    def get_effective_project_role(self, db: Session, project_id: UUID, user_id: UUID) -> str | None:
        """Project role, raised to the inherited admin role when the workspace role grants it."""
        role = self.get_user_project_role(db, project_id, user_id)
        workspace_id = self.complete_context(db, PermissionContext(project_id=project_id)).workspace_id
        if self._inherits_project_admin(db, user_id, workspace_id) is None:
            return role
        if role is None or ROLE_LEVEL.get(role, 0) < ROLE_LEVEL[INHERITED_PROJECT_ROLE.value]:
            return INHERITED_PROJECT_ROLE.value
        return role

    # ---- checks ----

    def has_permission(
        self,
        db: Session,
        user_id: UUID,
        permission: str,
        context: PermissionContext | None = None,
    ) -> PermissionResult:
        try:
            scope = permission_scope(permission)
        except ValueError as e:
            return PermissionResult(False, reason=str(e))

        try:
            result = self._resolve(db, user_id, permission, scope, context or PermissionContext())
        except SQLAlchemyError as e:
            logger.exception("Permission check failed for user %s, %s", user_id, permission)
            return PermissionResult(False, reason=f"Permission check failed: {e}")

        if not result.has_permission:
            logger.info("Permission denied: user=%s permission=%s reason=%s", user_id, permission, result.reason)
        return result

    def _resolve(
        self, db: Session, user_id: UUID, permission: str, scope: Scope, context: PermissionContext
    ) -> PermissionResult:
        full = self.complete_context(db, context)

        override = self._matching_override(db, user_id, permission, (context, full))
        if override is not None:
            if override.granted:
                return PermissionResult(True, reason="Custom permission granted", source="custom")
            return PermissionResult(False, reason="Custom permission denied", source="custom")

        if scope is Scope.workspace and full.workspace_id is not None:
            role = self.get_user_workspace_role(db, full.workspace_id, user_id)
            if has_role_permission(scope, role, permission):
                return PermissionResult(True, required_role=role, source="role")

        if scope is Scope.project and full.project_id is not None:
            role = self.get_user_project_role(db, full.project_id, user_id)
            if has_role_permission(scope, role, permission):
                return PermissionResult(True, required_role=role, source="role")

            ws_role = self._inherits_project_admin(db, user_id, full.workspace_id)
            if ws_role and has_role_permission(scope, INHERITED_PROJECT_ROLE.value, permission):
                return PermissionResult(
                    True,
                    reason=f"Inherited from workspace role '{ws_role}'",
                    required_role=INHERITED_PROJECT_ROLE.value,
                    source="inherited",
                )

        if scope is Scope.global_:
            role = self.get_user_global_role(db, user_id)
            if has_role_permission(scope, role, permission):
                return PermissionResult(True, required_role=role, source="role")

        return PermissionResult(False, reason=NO_MATCH_REASON, required_role=minimum_role(scope, permission))

    def has_permissions(
        self, db: Session, user_id: UUID, permissions: Iterable[str], context: PermissionContext | None = None
    ) -> dict[str, bool]:
        return {p: self.has_permission(db, user_id, p, context).has_permission for p in permissions}

    def has_any_permission(
        self, db: Session, user_id: UUID, permissions: Iterable[str], context: PermissionContext | None = None
    ) -> bool:
        return any(self.has_permission(db, user_id, p, context).has_permission for p in permissions)

    def has_all_permissions(
        self, db: Session, user_id: UUID, permissions: Iterable[str], context: PermissionContext | None = None
    ) -> bool:
        return all(self.has_permission(db, user_id, p, context).has_permission for p in permissions)

    def assert_permission(
        self, db: Session, user_id: UUID, permission: str, context: PermissionContext | None = None
    ) -> PermissionResult:
        result = self.has_permission(db, user_id, permission, context)
        if not result.has_permission:
            msg = f"Missing permission '{permission}'"
            if result.required_role:
                msg += f" (requires role '{result.required_role}')"
            raise PermissionDenied(msg, permission=permission, role=result.required_role)
        return result

    # ---- listings ----

    def _role_permissions(self, db: Session, user_id: UUID, full: PermissionContext) -> set[str]:
        """Permissions from roles only (workspace, project, inherited, global), no overrides."""
        perms: set[str] = set()

        if full.workspace_id is not None:
            perms |= permissions_for_workspace_role(self.get_user_workspace_role(db, full.workspace_id, user_id))

        if full.project_id is not None:
            perms |= permissions_for_project_role(self.get_user_project_role(db, full.project_id, user_id))
            if self._inherits_project_admin(db, user_id, full.workspace_id):
                perms |= permissions_for_project_role(INHERITED_PROJECT_ROLE)

        perms |= permissions_for_global_role(self.get_user_global_role(db, user_id))
        return perms

    def get_user_permissions(
        self, db: Session, user_id: UUID, context: PermissionContext | None = None
    ) -> list[str]:
        full = self.complete_context(db, context)
        perms = self._role_permissions(db, user_id, full)

        applicable = {(None, None, None), full.key()}
        for ov in self._overrides(db, user_id):
            if ov.context not in applicable:
                continue
            if ov.granted:
                perms.add(ov.permission)
            else:
                perms.discard(ov.permission)

        return sorted(perms)

    def get_projects_with_permission(self, db: Session, user_id: UUID, permission: str) -> list[UUID]:
        """Projects where the user holds `permission` by role, inheritance or project-level grant."""
        ids: set[UUID] = set()

        for project_id, role in db.execute(
            select(ProjectMember.project_id, ProjectMember.role).where(ProjectMember.user_id == user_id)
        ):
            if has_role_permission(Scope.project, role, permission):
                ids.add(project_id)

        if has_role_permission(Scope.project, INHERITED_PROJECT_ROLE.value, permission):
            managed = [
                ws_id
                for ws_id, role in db.execute(
                    select(WorkspaceMember.workspace_id, WorkspaceMember.role).where(
                        WorkspaceMember.user_id == user_id
                    )
                )
                if INHERITING_WORKSPACE_PERMISSION in permissions_for_workspace_role(role)
            ]
            if managed:
                ids.update(
                    db.execute(select(Project.id).where(Project.workspace_id.in_(managed))).scalars()
                )

        for ov in self._overrides(db, user_id):
            _, project_id, task_id = ov.context
            if ov.permission != permission or project_id is None or task_id is not None:
                continue
            if ov.granted:
                ids.add(project_id)
            else:
                ids.discard(project_id)

        return sorted(ids, key=str)

    def get_workspaces_with_permission(self, db: Session, user_id: UUID, permission: str) -> list[UUID]:
        rows = db.execute(
            select(WorkspaceMember.workspace_id, WorkspaceMember.role).where(WorkspaceMember.user_id == user_id)
        )
        return sorted(
            (ws_id for ws_id, role in rows if has_role_permission(Scope.workspace, role, permission)),
            key=str,
        )

    # ---- management ----

    def can_manage_user(
        self,
        db: Session,
        actor_id: UUID,
        target_id: UUID,
        action: ManageAction | str,
        *,
        project_id: UUID | None = None,
        workspace_id: UUID | None = None,
    ) -> PermissionResult:
        if project_id is not None:
            actor_role = self.get_effective_project_role(db, project_id, actor_id)
            target_role = self.get_effective_project_role(db, project_id, target_id)
        elif workspace_id is not None:
            actor_role = self.get_user_workspace_role(db, workspace_id, actor_id)
            target_role = self.get_user_workspace_role(db, workspace_id, target_id)
        else:
            return PermissionResult(False, reason="Project or workspace id required")

        if actor_role is None or target_role is None:
            return PermissionResult(False, reason="Both users must be members")

        if can_role_perform_action(actor_role, target_role, action):
            return PermissionResult(True, required_role=actor_role, source="role")
        return PermissionResult(
            False,
            reason=f"Role '{actor_role}' cannot {ManageAction(action).value} '{target_role}'",
            required_role=actor_role,
        )

    def get_permission_summary(
        self, db: Session, user_id: UUID, context: PermissionContext | None = None
    ) -> PermissionSummary:
        full = self.complete_context(db, context)

        workspace_role = (
            self.get_user_workspace_role(db, full.workspace_id, user_id) if full.workspace_id else None
        )
        project_role = self.get_user_project_role(db, full.project_id, user_id) if full.project_id else None
        global_role = self.get_user_global_role(db, user_id)

        can_manage: list[str] = []
        if global_role == GlobalRole.system_admin.value:
            can_manage.append("Full system administration")
        if workspace_role in (WorkspaceRole.owner.value, WorkspaceRole.admin.value):
            can_manage.append("Workspace management")
        if project_role in (ProjectRole.owner.value, ProjectRole.admin.value):
            can_manage.append("Project management")
        if project_role == ProjectRole.member.value:
            can_manage.append("Task management")
        if project_role == ProjectRole.viewer.value:
            can_manage.append("View only access")

        return PermissionSummary(
            user_id=user_id,
            global_role=global_role,
            workspace_role=workspace_role,
            project_role=project_role,
            permissions=self.get_user_permissions(db, user_id, full),
            custom_permissions=self.get_custom_permissions(db, user_id, full if context else None),
            can_manage=can_manage,
        )

    # ---- overrides ----

    def authorize_override(
        self,
        db: Session,
        actor_id: UUID,
        user_id: UUID,
        permission: str,
        context: PermissionContext | None = None,
        *,
        granted: bool = True,
    ) -> None:
        """Raise PermissionDenied unless the actor may write (or remove) this override.

        Nobody overrides their own permissions. The actor must hold the
        permission through a role and outrank the target in the project or
        workspace hierarchy.
        """
        if actor_id == user_id:
            raise PermissionDenied("Cannot change your own custom permissions")

        full = self.complete_context(db, context)
        if permission not in self._role_permissions(db, actor_id, full):
            raise PermissionDenied(
                f"Cannot hand out '{permission}' without holding it",
                permission=permission,
            )

        if full.project_id is not None:
            actor_role = self.get_effective_project_role(db, full.project_id, actor_id)
            target_role = self.get_effective_project_role(db, full.project_id, user_id)
        elif full.workspace_id is not None:
            actor_role = self.get_user_workspace_role(db, full.workspace_id, actor_id)
            target_role = self.get_user_workspace_role(db, full.workspace_id, user_id)
        else:
            return

        # outsiders rank below every member
        if target_role is None:
            return
        action = ManageAction.promote if granted else ManageAction.demote
        if actor_role is None or not can_role_perform_action(actor_role, target_role, action):
            raise PermissionDenied(
                f"Role '{actor_role}' cannot change permissions of '{target_role}'",
                role=actor_role,
            )

    def grant_custom_permission(
        self,
        db: Session,
        *,
        user_id: UUID,
        permission: str,
        granted_by: UUID,
        context: PermissionContext | None = None,
        granted: bool = True,
    ) -> CustomPermission:
        """Create or replace the override for (user, permission, context). Commits."""
        scope = permission_scope(permission)
        full = self.complete_context(db, context)

        if scope is Scope.project and full.project_id is None:
            raise InvalidOperation(f"'{permission}' needs a project or task context")
        if scope is Scope.workspace and full.workspace_id is None:
            raise InvalidOperation(f"'{permission}' needs a workspace context")

        cp = db.execute(
            select(CustomPermission).where(
                CustomPermission.user_id == user_id,
                CustomPermission.permission == permission,
                CustomPermission.workspace_id.is_(None)
                if full.workspace_id is None
                else CustomPermission.workspace_id == full.workspace_id,
                CustomPermission.project_id.is_(None)
                if full.project_id is None
                else CustomPermission.project_id == full.project_id,
                CustomPermission.task_id.is_(None)
                if full.task_id is None
                else CustomPermission.task_id == full.task_id,
            )
        ).scalar_one_or_none()

        if cp is None:
            cp = CustomPermission(
                user_id=user_id,
                permission=permission,
                workspace_id=full.workspace_id,
                project_id=full.project_id,
                task_id=full.task_id,
            )
            db.add(cp)

        cp.granted = granted
        cp.granted_by = granted_by

        db.commit()
        db.refresh(cp)
        self.clear_cache(user_id)
        return cp

    def revoke_custom_permission(self, db: Session, override_id: UUID) -> CustomPermission:
        cp = db.get(CustomPermission, override_id)
        if cp is None:
            raise NotFound("Custom permission not found")

        user_id = cp.user_id
        db.delete(cp)
        db.commit()
        self.clear_cache(user_id)
        return cp


permission_service = PermissionService()
