# tests/factories.py
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from taskboard.models.activity_log import ActivityLog
from taskboard.models.custom_permission import CustomPermission
from taskboard.models.invitation import ProjectInvitation
from taskboard.models.profile import Profile
from taskboard.models.project import Project, ProjectMember
from taskboard.models.task import Subtask, Task
from taskboard.models.workspace import Workspace, WorkspaceMember
from taskboard.services.permission_service import permission_service


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def make_profile(db, *, user_id: uuid.UUID | None = None, role: str = "user", flush: bool = True, **overrides: Any) -> Profile:
    p = Profile(id=user_id or uuid.uuid4(), role=role, **overrides)
    db.add(p)
    if flush:
        db.flush()
    permission_service.clear_cache(p.id)
    return p


def make_workspace(
    db,
    *,
    owner_id: uuid.UUID | None = None,
    flush: bool = True,
    **overrides: Any,
) -> Workspace:
    """
    Workspace plus its owner membership (every workspace has an owner).
    """
    owner_id = owner_id or uuid.uuid4()
    ws_id = overrides.pop("id", uuid.uuid4())

    ws = Workspace(
        id=ws_id,
        name=overrides.pop("name", "Acme"),
        slug=overrides.pop("slug", f"acme-{ws_id.hex[:8]}"),
        settings=overrides.pop("settings", {}),
        created_by=owner_id,
        **overrides,
    )
    db.add(ws)
    db.flush()
    make_workspace_member(db, workspace_id=ws.id, user_id=owner_id, role="owner", flush=flush)
    return ws


def make_workspace_member(
    db,
    *,
    workspace_id: uuid.UUID,
    user_id: uuid.UUID | None = None,
    role: str = "member",
    flush: bool = True,
) -> WorkspaceMember:
    m = WorkspaceMember(workspace_id=workspace_id, user_id=user_id or uuid.uuid4(), role=role)
    db.add(m)
    if flush:
        db.flush()
    permission_service.clear_cache(m.user_id)
    return m


def make_project(
    db,
    *,
    workspace_id: uuid.UUID | None = None,
    owner_id: uuid.UUID | None = None,
    flush: bool = True,
    **overrides: Any,
) -> Project:
    """
    Project plus owner membership. Creates a workspace (owned by the same
    user) when none is given; the owner is always a workspace member.
    """
    owner_id = owner_id or uuid.uuid4()
    if workspace_id is None:
        workspace_id = make_workspace(db, owner_id=owner_id).id
    elif db.query(WorkspaceMember).filter_by(workspace_id=workspace_id, user_id=owner_id).first() is None:
        make_workspace_member(db, workspace_id=workspace_id, user_id=owner_id, role="member")

    p = Project(
        id=overrides.pop("id", uuid.uuid4()),
        workspace_id=workspace_id,
        title=overrides.pop("title", "Launch"),
        owner_id=owner_id,
        **overrides,
    )
    db.add(p)
    db.flush()
    make_project_member(db, project_id=p.id, user_id=owner_id, role="owner", flush=flush)
    return p


def make_project_member(
    db,
    *,
    project_id: uuid.UUID,
    user_id: uuid.UUID | None = None,
    role: str = "member",
    with_workspace: bool = False,
    flush: bool = True,
) -> ProjectMember:
    """with_workspace=True also adds the user to the project's workspace as member."""
    user_id = user_id or uuid.uuid4()
    if with_workspace:
        project = db.get(Project, project_id)
        make_workspace_member(db, workspace_id=project.workspace_id, user_id=user_id, role="member")

    m = ProjectMember(project_id=project_id, user_id=user_id, role=role)
    db.add(m)
    if flush:
        db.flush()
    permission_service.clear_cache(user_id)
    return m


def make_task(
    db,
    *,
    project_id: uuid.UUID,
    created_by: uuid.UUID | None = None,
    status: str = "todo",
    flush: bool = True,
    **overrides: Any,
) -> Task:
    t = Task(
        id=overrides.pop("id", uuid.uuid4()),
        project_id=project_id,
        title=overrides.pop("title", "Write release notes"),
        status=status,
        created_by=created_by or uuid.uuid4(),
        **overrides,
    )
    db.add(t)
    if flush:
        db.flush()
    return t


def make_subtask(db, *, task_id: uuid.UUID, flush: bool = True, **overrides: Any) -> Subtask:
    s = Subtask(task_id=task_id, title=overrides.pop("title", "Draft"), **overrides)
    db.add(s)
    if flush:
        db.flush()
    return s


def make_invitation(
    db,
    *,
    project_id: uuid.UUID,
    invited_by: uuid.UUID,
    email: str = "invitee@example.com",
    role: str = "member",
    expires_at: datetime | None = None,
    flush: bool = True,
    **overrides: Any,
) -> ProjectInvitation:
    inv = ProjectInvitation(
        project_id=project_id,
        email=email,
        role=role,
        token=overrides.pop("token", uuid.uuid4().hex),
        invited_by=invited_by,
        expires_at=expires_at or _now() + timedelta(days=7),
        **overrides,
    )
    db.add(inv)
    if flush:
        db.flush()
    return inv


def make_custom_permission(
    db,
    *,
    user_id: uuid.UUID,
    permission: str,
    granted: bool = True,
    flush: bool = True,
    **overrides: Any,
) -> CustomPermission:
    cp = CustomPermission(
        user_id=user_id,
        permission=permission,
        granted=granted,
        granted_by=overrides.pop("granted_by", uuid.uuid4()),
        **overrides,
    )
    db.add(cp)
    if flush:
        db.flush()
    permission_service.clear_cache(user_id)
    return cp


def activity_actions(db, *, project_id: uuid.UUID) -> list[str]:
    rows = (
        db.query(ActivityLog)
        .filter(ActivityLog.project_id == project_id)
        .order_by(ActivityLog.created_at)
        .all()
    )
    return [r.action for r in rows]
