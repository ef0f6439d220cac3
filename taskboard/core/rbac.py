# taskboard/core/rbac.py
from __future__ import annotations

import enum
from typing import Iterable, Mapping

from taskboard.core.errors import PermissionDenied


class ProjectRole(str, enum.Enum):
    owner = "owner"
    admin = "admin"
    member = "member"
    viewer = "viewer"


class WorkspaceRole(str, enum.Enum):
    owner = "owner"
    admin = "admin"
    member = "member"
    viewer = "viewer"


class GlobalRole(str, enum.Enum):
    system_admin = "system_admin"
    user = "user"


class Scope(str, enum.Enum):
    project = "project"
    workspace = "workspace"
    global_ = "global"


class ManageAction(str, enum.Enum):
    promote = "promote"
    demote = "demote"
    remove = "remove"


def _keys(prefix: str, actions: Iterable[str]) -> frozenset[str]:
    return frozenset(f"{prefix}.{a}" for a in actions)


# ---- Permission catalog ----

PROJECT_PERMISSIONS: frozenset[str] = (
    _keys("project", {"view", "edit", "delete", "archive", "restore", "settings", "share"})
    | _keys("task", {"view", "create", "edit", "delete", "assign", "status.change", "priority.change", "comment"})
    | _keys("team", {"view", "invite", "remove", "role.change"})
    | _keys("comment", {"view", "create", "edit", "delete"})
    | _keys("attachment", {"view", "upload", "delete"})
    | {"analytics.view", "report.generate"}
)

WORKSPACE_PERMISSIONS: frozenset[str] = _keys(
    "workspace",
    {
        "view", "edit", "delete", "settings", "invite",
        "remove_member", "manage_roles", "create_projects", "manage_projects",
    },
)

GLOBAL_PERMISSIONS: frozenset[str] = frozenset({"system.admin", "user.manage", "workspace.create"})

ALL_PERMISSIONS: frozenset[str] = PROJECT_PERMISSIONS | WORKSPACE_PERMISSIONS | GLOBAL_PERMISSIONS

_PROJECT_PREFIXES = ("project.", "task.", "team.", "comment.", "attachment.", "analytics.", "report.")


# ---- Role tables ----

PROJECT_ROLE_PERMISSIONS: Mapping[ProjectRole, frozenset[str]] = {
    ProjectRole.owner: PROJECT_PERMISSIONS,
    # everything except deleting the project
    ProjectRole.admin: PROJECT_PERMISSIONS - {"project.delete"},
    ProjectRole.member: frozenset({
        "project.view", "project.share",
        "task.view", "task.create", "task.edit", "task.assign",
        "task.status.change", "task.priority.change", "task.comment",
        "team.view",
        "comment.view", "comment.create", "comment.edit",
        "attachment.view", "attachment.upload",
        "analytics.view",
    }),
    ProjectRole.viewer: frozenset({
        "project.view", "task.view", "team.view",
        "comment.view", "attachment.view", "analytics.view",
    }),
}

WORKSPACE_ROLE_PERMISSIONS: Mapping[WorkspaceRole, frozenset[str]] = {
    WorkspaceRole.owner: WORKSPACE_PERMISSIONS,
    WorkspaceRole.admin: WORKSPACE_PERMISSIONS - {"workspace.delete"},
    WorkspaceRole.member: frozenset({"workspace.view", "workspace.create_projects"}),
    WorkspaceRole.viewer: frozenset({"workspace.view"}),
}

GLOBAL_ROLE_PERMISSIONS: Mapping[GlobalRole, frozenset[str]] = {
    GlobalRole.system_admin: GLOBAL_PERMISSIONS,
    GlobalRole.user: frozenset({"workspace.create"}),
}

# Workspace permission that extends to every project in the workspace
# (project admin table, source="inherited").
INHERITING_WORKSPACE_PERMISSION = "workspace.manage_projects"
INHERITED_PROJECT_ROLE = ProjectRole.admin

ROLE_LEVEL: Mapping[str, int] = {
    "owner": 4,
    "admin": 3,
    "member": 2,
    "viewer": 1,
}


def permission_scope(permission: str) -> Scope:
    if permission in GLOBAL_PERMISSIONS:
        return Scope.global_
    if permission.startswith("workspace."):
        return Scope.workspace
    if permission.startswith(_PROJECT_PREFIXES):
        return Scope.project
    raise ValueError(f"Unknown permission: '{permission}'")


def is_known_permission(permission: str) -> bool:
    return permission in ALL_PERMISSIONS


def permissions_for_project_role(role: ProjectRole | str | None) -> frozenset[str]:
    if role is None:
        return frozenset()
    try:
        return PROJECT_ROLE_PERMISSIONS[ProjectRole(role)]
    except ValueError:
        return frozenset()


def permissions_for_workspace_role(role: WorkspaceRole | str | None) -> frozenset[str]:
    if role is None:
        return frozenset()
    try:
        return WORKSPACE_ROLE_PERMISSIONS[WorkspaceRole(role)]
    except ValueError:
        return frozenset()


def permissions_for_global_role(role: GlobalRole | str | None) -> frozenset[str]:
    if role is None:
        return frozenset()
    try:
        return GLOBAL_ROLE_PERMISSIONS[GlobalRole(role)]
    except ValueError:
        return frozenset()


def has_role_permission(scope: Scope, role: str | None, permission: str) -> bool:
    if scope is Scope.project:
        return permission in permissions_for_project_role(role)
    if scope is Scope.workspace:
        return permission in permissions_for_workspace_role(role)
    return permission in permissions_for_global_role(role)


def highest_role(roles: Iterable[str]) -> str:
    """Highest role by hierarchy; 'viewer' for an empty input."""
    best = "viewer"
    for r in roles:
        if ROLE_LEVEL.get(str(r), 0) > ROLE_LEVEL[best]:
            best = str(r)
    return best


def can_role_perform_action(actor_role: str, target_role: str, action: ManageAction | str) -> bool:
    """
    Role hierarchy rules for managing another member (same for both scopes):
      - owner: anything, except removing another owner
      - admin: only targets below admin
      - member/viewer: nothing
    """
    action = ManageAction(action)
    actor_role = str(getattr(actor_role, "value", actor_role))
    target_role = str(getattr(target_role, "value", target_role))

    if actor_role == "owner":
        return not (action is ManageAction.remove and target_role == "owner")

    if actor_role == "admin":
        return ROLE_LEVEL.get(target_role, 0) < ROLE_LEVEL["admin"]

    return False


def ensure_allowed(permission: str, role: str | None, scope: Scope | None = None) -> None:
    scope = scope or permission_scope(permission)
    if not has_role_permission(scope, role, permission):
        raise PermissionDenied(
            f"Role '{role}' is not allowed for '{permission}'",
            permission=permission,
            role=role,
        )
