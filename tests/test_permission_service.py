import uuid

import pytest
from sqlalchemy.exc import OperationalError

from taskboard.core.errors import InvalidOperation, PermissionDenied
from taskboard.services.permission_service import (
    NO_MATCH_REASON,
    PermissionContext,
    PermissionService,
)
from tests.factories import (
    make_custom_permission,
    make_profile,
    make_project,
    make_project_member,
    make_task,
    make_workspace,
    make_workspace_member,
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture()
def svc():
    return PermissionService(ttl_seconds=300, use_database_functions=False)


def _ctx(**kw):
    return PermissionContext(**kw)


def test_project_role_grants_from_table(db, svc):
    project = make_project(db)
    member = make_project_member(db, project_id=project.id, role="member", with_workspace=True).user_id

    r = svc.has_permission(db, member, "task.create", _ctx(project_id=project.id))
    assert r.has_permission
    assert r.source == "role"
    assert r.required_role == "member"

    r = svc.has_permission(db, member, "task.delete", _ctx(project_id=project.id))
    assert not r.has_permission
    assert r.reason == NO_MATCH_REASON
    assert r.required_role == "admin"


def test_non_member_is_denied(db, svc):
    project = make_project(db)
    r = svc.has_permission(db, uuid.uuid4(), "project.view", _ctx(project_id=project.id))
    assert not r.has_permission
    assert r.reason == NO_MATCH_REASON


def test_project_permission_without_project_context_is_denied(db, svc):
    project = make_project(db)
    r = svc.has_permission(db, project.owner_id, "project.view")
    assert not r.has_permission


def test_workspace_permission_uses_workspace_role(db, svc):
    owner = uuid.uuid4()
    ws = make_workspace(db, owner_id=owner)
    viewer = make_workspace_member(db, workspace_id=ws.id, role="viewer").user_id

    assert svc.has_permission(db, owner, "workspace.delete", _ctx(workspace_id=ws.id)).has_permission
    assert svc.has_permission(db, viewer, "workspace.view", _ctx(workspace_id=ws.id)).has_permission
    assert not svc.has_permission(db, viewer, "workspace.edit", _ctx(workspace_id=ws.id)).has_permission


def test_workspace_admin_inherits_project_admin(db, svc):
    ws_admin = uuid.uuid4()
    project = make_project(db)
    make_workspace_member(db, workspace_id=project.workspace_id, user_id=ws_admin, role="admin")

    r = svc.has_permission(db, ws_admin, "team.invite", _ctx(project_id=project.id))
    assert r.has_permission
    assert r.source == "inherited"
    assert r.required_role == "admin"

    # admin table excludes project.delete, so inheritance does not grant it
    assert not svc.has_permission(db, ws_admin, "project.delete", _ctx(project_id=project.id)).has_permission


def test_workspace_member_does_not_inherit(db, svc):
    ws_member = uuid.uuid4()
    project = make_project(db)
    make_workspace_member(db, workspace_id=project.workspace_id, user_id=ws_member, role="member")

    assert not svc.has_permission(db, ws_member, "project.view", _ctx(project_id=project.id)).has_permission


def test_task_context_fills_project_and_workspace(db, svc):
    project = make_project(db)
    task = make_task(db, project_id=project.id)

    full = svc.complete_context(db, _ctx(task_id=task.id))
    assert full.project_id == project.id
    assert full.workspace_id == project.workspace_id

    assert svc.has_permission(db, project.owner_id, "task.delete", _ctx(task_id=task.id)).has_permission


def test_global_role_from_profile(db, svc):
    admin = make_profile(db, role="system_admin").id
    plain = make_profile(db).id

    assert svc.get_user_global_role(db, uuid.uuid4()) == "user"
    assert svc.has_permission(db, admin, "user.manage").has_permission
    assert not svc.has_permission(db, plain, "user.manage").has_permission
    assert svc.has_permission(db, uuid.uuid4(), "workspace.create").has_permission


def test_custom_deny_overrides_role(db, svc):
    project = make_project(db)
    member = make_project_member(db, project_id=project.id, role="member", with_workspace=True).user_id
    make_custom_permission(
        db,
        user_id=member,
        permission="task.create",
        granted=False,
        workspace_id=project.workspace_id,
        project_id=project.id,
    )

    r = svc.has_permission(db, member, "task.create", _ctx(project_id=project.id))
    assert not r.has_permission
    assert r.source == "custom"


def test_custom_grant_beyond_role(db, svc):
    project = make_project(db)
    viewer = make_project_member(db, project_id=project.id, role="viewer", with_workspace=True).user_id
    make_custom_permission(
        db,
        user_id=viewer,
        permission="task.create",
        workspace_id=project.workspace_id,
        project_id=project.id,
    )

    r = svc.has_permission(db, viewer, "task.create", _ctx(project_id=project.id))
    assert r.has_permission
    assert r.source == "custom"

    # exact context only: a task-level check does not match the project-level override
    task = make_task(db, project_id=project.id)
    assert not svc.has_permission(db, viewer, "task.create", _ctx(task_id=task.id)).has_permission


def test_unknown_permission_denies_without_raising(db, svc):
    r = svc.has_permission(db, uuid.uuid4(), "billing.view")
    assert not r.has_permission
    assert "Unknown permission" in r.reason


def test_assert_permission_raises(db, svc):
    project = make_project(db)
    with pytest.raises(PermissionDenied) as exc:
        svc.assert_permission(db, uuid.uuid4(), "project.edit", _ctx(project_id=project.id))
    assert exc.value.permission == "project.edit"


def test_any_all_and_map(db, svc):
    project = make_project(db)
    viewer = make_project_member(db, project_id=project.id, role="viewer", with_workspace=True).user_id
    ctx = _ctx(project_id=project.id)

    assert svc.has_permissions(db, viewer, ["task.view", "task.edit"], ctx) == {"task.view": True, "task.edit": False}
    assert svc.has_any_permission(db, viewer, ["task.edit", "task.view"], ctx)
    assert not svc.has_all_permissions(db, viewer, ["task.edit", "task.view"], ctx)


def test_role_cache_hits_until_cleared(db):
    clock = FakeClock()
    svc = PermissionService(ttl_seconds=60, use_database_functions=False, clock=clock)
    project = make_project(db)
    m = make_project_member(db, project_id=project.id, role="viewer", with_workspace=True)

    assert svc.get_user_project_role(db, project.id, m.user_id) == "viewer"

    m.role = "admin"
    db.flush()
    # still cached
    assert svc.get_user_project_role(db, project.id, m.user_id) == "viewer"

    svc.clear_cache(m.user_id)
    assert svc.get_user_project_role(db, project.id, m.user_id) == "admin"


def test_role_cache_expires_after_ttl(db):
    clock = FakeClock()
    svc = PermissionService(ttl_seconds=60, use_database_functions=False, clock=clock)
    project = make_project(db)
    m = make_project_member(db, project_id=project.id, role="viewer", with_workspace=True)

    assert svc.get_user_project_role(db, project.id, m.user_id) == "viewer"
    m.role = "member"
    db.flush()

    clock.now += 59
    assert svc.get_user_project_role(db, project.id, m.user_id) == "viewer"
    clock.now += 2
    assert svc.get_user_project_role(db, project.id, m.user_id) == "member"


def test_clear_all_cache(db, svc):
    project = make_project(db)
    assert svc.get_user_project_role(db, project.id, project.owner_id) == "owner"
    svc.clear_all_cache()
    assert svc._cache == {}


def test_database_function_result_is_used(db, monkeypatch):
    svc = PermissionService(use_database_functions=True)
    project = make_project(db)
    monkeypatch.setattr(svc, "_database_functions_available", lambda _db: True)
    monkeypatch.setattr(svc, "_call_role_function", lambda _db, fn, scope_id, user_id: "viewer")

    assert svc.get_user_project_role(db, project.id, project.owner_id) == "viewer"


def test_database_function_error_falls_back_to_table(db, monkeypatch, caplog):
    svc = PermissionService(use_database_functions=True)
    project = make_project(db)

    def boom(_db, fn, scope_id, user_id):
        raise OperationalError("SELECT get_user_project_role(...)", {}, Exception("function does not exist"))

    monkeypatch.setattr(svc, "_database_functions_available", lambda _db: True)
    monkeypatch.setattr(svc, "_call_role_function", boom)

    with caplog.at_level("WARNING"):
        role = svc.get_user_project_role(db, project.id, project.owner_id)

    assert role == "owner"
    assert "falling back" in caplog.text


def test_database_functions_skipped_on_sqlite(db):
    svc = PermissionService(use_database_functions=True)
    assert not svc._database_functions_available(db)


def test_get_user_permissions_union(db, svc):
    ws_admin = uuid.uuid4()
    project = make_project(db)
    make_workspace_member(db, workspace_id=project.workspace_id, user_id=ws_admin, role="admin")

    perms = set(svc.get_user_permissions(db, ws_admin, _ctx(project_id=project.id)))
    assert "workspace.manage_projects" in perms
    assert "team.invite" in perms  # inherited
    assert "project.delete" not in perms
    assert "workspace.create" in perms  # global role 'user'


def test_projects_and_workspaces_with_permission(db, svc):
    user = uuid.uuid4()
    p1 = make_project(db)
    p2 = make_project(db)
    make_project_member(db, project_id=p1.id, user_id=user, role="member", with_workspace=True)
    make_project_member(db, project_id=p2.id, user_id=user, role="viewer", with_workspace=True)

    assert svc.get_projects_with_permission(db, user, "project.view") == sorted([p1.id, p2.id], key=str)
    assert svc.get_projects_with_permission(db, user, "task.create") == [p1.id]
    assert set(svc.get_workspaces_with_permission(db, user, "workspace.create_projects")) == {
        p1.workspace_id,
        p2.workspace_id,
    }


def test_can_manage_user(db, svc):
    project = make_project(db)
    admin = make_project_member(db, project_id=project.id, role="admin", with_workspace=True).user_id
    member = make_project_member(db, project_id=project.id, role="member", with_workspace=True).user_id

    assert svc.can_manage_user(db, admin, member, "remove", project_id=project.id).has_permission
    assert not svc.can_manage_user(db, admin, project.owner_id, "demote", project_id=project.id).has_permission
    assert not svc.can_manage_user(db, admin, uuid.uuid4(), "remove", project_id=project.id).has_permission


def test_permission_summary(db, svc):
    project = make_project(db)
    member = make_project_member(db, project_id=project.id, role="member", with_workspace=True).user_id

    s = svc.get_permission_summary(db, member, _ctx(project_id=project.id))
    assert s.global_role == "user"
    assert s.workspace_role == "member"
    assert s.project_role == "member"
    assert "task.create" in s.permissions
    assert s.can_manage == ["Task management"]


def test_grant_and_revoke_custom_permission_invalidate_cache(db, svc):
    project = make_project(db)
    viewer = make_project_member(db, project_id=project.id, role="viewer", with_workspace=True).user_id
    ctx = _ctx(project_id=project.id)

    assert not svc.has_permission(db, viewer, "task.edit", ctx).has_permission

    cp = svc.grant_custom_permission(db, user_id=viewer, permission="task.edit", granted_by=project.owner_id, context=ctx)
    assert cp.workspace_id == project.workspace_id
    assert svc.has_permission(db, viewer, "task.edit", ctx).source == "custom"

    # re-granting the same context updates the row instead of adding one
    again = svc.grant_custom_permission(
        db, user_id=viewer, permission="task.edit", granted_by=project.owner_id, context=ctx, granted=False
    )
    assert again.id == cp.id
    assert not svc.has_permission(db, viewer, "task.edit", ctx).has_permission

    svc.revoke_custom_permission(db, cp.id)
    r = svc.has_permission(db, viewer, "task.edit", ctx)
    assert not r.has_permission
    assert r.source is None


def test_grant_project_permission_needs_project_context(db, svc):
    with pytest.raises(InvalidOperation):
        svc.grant_custom_permission(db, user_id=uuid.uuid4(), permission="task.edit", granted_by=uuid.uuid4())


def test_effective_project_role_includes_inherited_admin(db, svc):
    ws = make_workspace(db)
    ws_admin = make_workspace_member(db, workspace_id=ws.id, role="admin").user_id
    project = make_project(db, workspace_id=ws.id)
    viewer = make_project_member(db, project_id=project.id, role="viewer", with_workspace=True).user_id

    assert svc.get_user_project_role(db, project.id, ws_admin) is None
    assert svc.get_effective_project_role(db, project.id, ws_admin) == "admin"
    assert svc.get_effective_project_role(db, project.id, project.owner_id) == "owner"
    assert svc.get_effective_project_role(db, project.id, viewer) == "viewer"
    assert svc.can_manage_user(db, ws_admin, viewer, "remove", project_id=project.id).has_permission


def test_override_on_self_is_refused(db, svc):
    project = make_project(db)
    ctx = _ctx(project_id=project.id)

    with pytest.raises(PermissionDenied):
        svc.authorize_override(db, project.owner_id, project.owner_id, "task.edit", ctx)


def test_override_needs_permission_held_by_role(db, svc):
    project = make_project(db)
    admin = make_project_member(db, project_id=project.id, role="admin", with_workspace=True).user_id
    member = make_project_member(db, project_id=project.id, role="member", with_workspace=True).user_id
    ctx = _ctx(project_id=project.id)
    # a custom grant does not count
    make_custom_permission(
        db, user_id=admin, permission="project.delete", project_id=project.id, workspace_id=project.workspace_id
    )

    with pytest.raises(PermissionDenied):
        svc.authorize_override(db, admin, member, "project.delete", ctx)
    svc.authorize_override(db, admin, member, "task.delete", ctx)
    svc.authorize_override(db, project.owner_id, member, "project.delete", ctx)


def test_override_follows_role_hierarchy(db, svc):
    project = make_project(db)
    admin = make_project_member(db, project_id=project.id, role="admin", with_workspace=True).user_id
    peer = make_project_member(db, project_id=project.id, role="admin", with_workspace=True).user_id
    outsider = uuid.uuid4()
    ctx = _ctx(project_id=project.id)

    with pytest.raises(PermissionDenied):
        svc.authorize_override(db, admin, project.owner_id, "project.view", ctx, granted=False)
    with pytest.raises(PermissionDenied):
        svc.authorize_override(db, admin, peer, "task.delete", ctx)
    svc.authorize_override(db, admin, outsider, "project.view", ctx)
    svc.authorize_override(db, project.owner_id, admin, "task.delete", ctx, granted=False)


def test_overrides_are_deleted_with_their_context(db, svc):
    project = make_project(db)
    task = make_task(db, project_id=project.id)
    viewer = make_project_member(db, project_id=project.id, role="viewer", with_workspace=True).user_id
    make_custom_permission(db, user_id=viewer, permission="task.edit", project_id=project.id)
    make_custom_permission(db, user_id=viewer, permission="task.delete", project_id=project.id, task_id=task.id)
    db.commit()

    db.delete(task)
    db.commit()
    assert [cp.permission for cp in svc.get_custom_permissions(db, viewer)] == ["task.edit"]

    db.delete(project)
    db.commit()
    assert svc.get_custom_permissions(db, viewer) == []
