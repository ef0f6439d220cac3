from __future__ import annotations

from uuid import uuid4

from tests.factories import (
    make_profile,
    make_project,
    make_project_member,
    make_task,
    make_workspace,
    make_workspace_member,
)


def _hdr(actor_id, email: str | None = None) -> dict[str, str]:
    h = {"X-Actor-User-Id": str(actor_id)}
    if email:
        h["X-Actor-Email"] = email
    return h


def test_viewer_cannot_create_task_403(client, db):
    project = make_project(db)
    viewer = make_project_member(db, project_id=project.id, role="viewer", with_workspace=True).user_id
    db.commit()

    r = client.post(f"/projects/{project.id}/tasks", json={"title": "x"}, headers=_hdr(viewer))
    assert r.status_code == 403, r.text
    assert r.headers["X-Error-Code"] == "PERMISSION_DENIED"
    assert "task.create" in r.json()["detail"]


def test_outsider_cannot_read_project_403(client, db):
    project = make_project(db)
    db.commit()

    r = client.get(f"/projects/{project.id}", headers=_hdr(uuid4()))
    assert r.status_code == 403, r.text


def test_missing_task_404(client):
    r = client.get(f"/tasks/{uuid4()}", headers=_hdr(uuid4()))
    assert r.status_code == 404, r.text
    assert r.headers["X-Error-Code"] == "NOT_FOUND"


def test_remove_last_owner_409(client, db):
    project = make_project(db)
    db.commit()

    r = client.delete(f"/projects/{project.id}/members/{project.owner_id}", headers=_hdr(project.owner_id))
    assert r.status_code == 409, r.text
    assert r.headers["X-Error-Code"] == "LAST_OWNER"


def test_stale_row_version_409(client, db):
    project = make_project(db)
    task = make_task(db, project_id=project.id)
    db.commit()
    h = _hdr(project.owner_id)

    r1 = client.patch(f"/tasks/{task.id}", json={"title": "A", "expected_row_version": 1}, headers=h)
    assert r1.status_code == 200, r1.text
    assert r1.json()["row_version"] == 2

    r2 = client.patch(f"/tasks/{task.id}", json={"title": "B", "expected_row_version": 1}, headers=h)
    assert r2.status_code == 409, r2.text
    assert r2.headers["X-Error-Code"] == "VERSION_CONFLICT"


def test_already_member_409(client, db):
    project = make_project(db)
    member = make_project_member(db, project_id=project.id, role="member", with_workspace=True).user_id
    db.commit()

    r = client.post(
        f"/projects/{project.id}/members",
        json={"user_id": str(member), "role": "viewer"},
        headers=_hdr(project.owner_id),
    )
    assert r.status_code == 409, r.text
    assert r.headers["X-Error-Code"] == "ALREADY_MEMBER"


def test_invitation_flow_and_email_mismatch(client, db):
    project = make_project(db)
    db.commit()

    r = client.post(
        f"/projects/{project.id}/invitations",
        json={"email": "new@example.com", "role": "member"},
        headers=_hdr(project.owner_id),
    )
    assert r.status_code == 201, r.text
    token = r.json()["token"]

    invitee = uuid4()
    r = client.post("/invitations/accept", json={"token": token}, headers=_hdr(invitee, "other@example.com"))
    assert r.status_code == 422, r.text
    assert r.headers["X-Error-Code"] == "EMAIL_MISMATCH"

    r = client.post("/invitations/accept", json={"token": token}, headers=_hdr(invitee, "new@example.com"))
    assert r.status_code == 200, r.text
    assert r.json()["role"] == "member"

    r = client.get(f"/projects/{project.id}", headers=_hdr(invitee))
    assert r.status_code == 200, r.text


def test_task_crud_over_http(client, db):
    project = make_project(db)
    db.commit()
    h = _hdr(project.owner_id)

    r = client.post(f"/projects/{project.id}/tasks", json={"title": "Ship it", "priority": "high"}, headers=h)
    assert r.status_code == 201, r.text
    task_id = r.json()["id"]

    r = client.post(f"/tasks/{task_id}/subtasks", json={"title": "Step"}, headers=h)
    assert r.status_code == 201, r.text

    r = client.get(f"/tasks/{task_id}", headers=h)
    assert r.status_code == 200, r.text
    assert [s["title"] for s in r.json()["subtasks"]] == ["Step"]

    r = client.patch(f"/tasks/{task_id}", json={"status": "done"}, headers=h)
    assert r.status_code == 200, r.text

    r = client.get(f"/projects/{project.id}/activity", headers=h)
    assert [a["action"] for a in r.json()] == ["completed", "created", "created"]

    r = client.delete(f"/tasks/{task_id}", headers=h)
    assert r.status_code == 204, r.text


def test_permission_check_endpoint(client, db):
    project = make_project(db)
    viewer = make_project_member(db, project_id=project.id, role="viewer", with_workspace=True).user_id
    db.commit()

    r = client.post(
        "/permissions/check",
        json={"permissions": ["task.view", "task.edit"], "project_id": str(project.id)},
        headers=_hdr(viewer),
    )
    assert r.status_code == 200, r.text
    by_name = {x["permission"]: x for x in r.json()}
    assert by_name["task.view"]["has_permission"] is True
    assert by_name["task.edit"]["has_permission"] is False
    assert by_name["task.edit"]["required_role"] == "member"


def test_custom_permission_needs_role_change_right(client, db):
    project = make_project(db)
    viewer = make_project_member(db, project_id=project.id, role="viewer", with_workspace=True).user_id
    db.commit()
    body = {"user_id": str(viewer), "permission": "task.edit", "project_id": str(project.id)}

    r = client.post("/permissions/custom", json=body, headers=_hdr(viewer))
    assert r.status_code == 403, r.text

    r = client.post("/permissions/custom", json=body, headers=_hdr(project.owner_id))
    assert r.status_code == 201, r.text

    r = client.patch(f"/projects/{project.id}", json={"title": "x"}, headers=_hdr(viewer))
    assert r.status_code == 403, r.text


def test_admin_cannot_grant_itself_project_delete_403(client, db):
    project = make_project(db)
    admin = make_project_member(db, project_id=project.id, role="admin", with_workspace=True).user_id
    db.commit()
    body = {"user_id": str(admin), "permission": "project.delete", "project_id": str(project.id)}

    r = client.post("/permissions/custom", json=body, headers=_hdr(admin))
    assert r.status_code == 403, r.text
    assert r.headers["X-Error-Code"] == "PERMISSION_DENIED"

    r = client.delete(f"/projects/{project.id}", headers=_hdr(admin))
    assert r.status_code == 403, r.text


def test_admin_cannot_deny_owner_403(client, db):
    project = make_project(db)
    admin = make_project_member(db, project_id=project.id, role="admin", with_workspace=True).user_id
    db.commit()
    body = {
        "user_id": str(project.owner_id),
        "permission": "project.view",
        "project_id": str(project.id),
        "granted": False,
    }

    r = client.post("/permissions/custom", json=body, headers=_hdr(admin))
    assert r.status_code == 403, r.text

    r = client.get(f"/projects/{project.id}", headers=_hdr(project.owner_id))
    assert r.status_code == 200, r.text


def test_admin_cannot_hand_out_permission_it_lacks_403(client, db):
    project = make_project(db)
    admin = make_project_member(db, project_id=project.id, role="admin", with_workspace=True).user_id
    member = make_project_member(db, project_id=project.id, role="member", with_workspace=True).user_id
    db.commit()

    body = {"user_id": str(member), "permission": "project.delete", "project_id": str(project.id)}
    r = client.post("/permissions/custom", json=body, headers=_hdr(admin))
    assert r.status_code == 403, r.text

    body["permission"] = "task.delete"
    r = client.post("/permissions/custom", json=body, headers=_hdr(admin))
    assert r.status_code == 201, r.text


def test_admin_cannot_revoke_override_on_peer_403(client, db):
    project = make_project(db)
    admin = make_project_member(db, project_id=project.id, role="admin", with_workspace=True).user_id
    peer = make_project_member(db, project_id=project.id, role="admin", with_workspace=True).user_id
    db.commit()
    body = {"user_id": str(peer), "permission": "task.delete", "project_id": str(project.id), "granted": False}

    r = client.post("/permissions/custom", json=body, headers=_hdr(project.owner_id))
    assert r.status_code == 201, r.text
    override_id = r.json()["id"]

    r = client.delete(f"/permissions/custom/{override_id}", headers=_hdr(admin))
    assert r.status_code == 403, r.text

    r = client.delete(f"/permissions/custom/{override_id}", headers=_hdr(project.owner_id))
    assert r.status_code == 204, r.text


def test_create_workspace_and_project_over_http(client):
    actor = uuid4()
    h = _hdr(actor)

    r = client.post("/workspaces", json={"name": "Acme"}, headers=h)
    assert r.status_code == 201, r.text
    ws_id = r.json()["id"]
    assert r.json()["slug"] == "acme"

    r = client.post("/projects", json={"workspace_id": ws_id, "title": "Launch"}, headers=h)
    assert r.status_code == 201, r.text

    r = client.get(f"/workspaces/{ws_id}/stats", headers=h)
    assert r.status_code == 200, r.text
    assert r.json()["project_count"] == 1


def test_workspace_viewer_cannot_delete_workspace(client, db):
    ws = make_workspace(db)
    db.commit()

    r = client.delete(f"/workspaces/{ws.id}", headers=_hdr(uuid4()))
    assert r.status_code == 403, r.text


def test_workspace_admin_manages_project_members_over_http(client, db):
    ws = make_workspace(db)
    ws_admin = make_workspace_member(db, workspace_id=ws.id, role="admin").user_id
    project = make_project(db, workspace_id=ws.id)
    viewer = make_project_member(db, project_id=project.id, role="viewer", with_workspace=True).user_id
    member = make_project_member(db, project_id=project.id, role="member", with_workspace=True).user_id
    db.commit()

    r = client.put(
        f"/projects/{project.id}/members/{member}", json={"role": "viewer"}, headers=_hdr(ws_admin)
    )
    assert r.status_code == 200, r.text
    assert r.json()["role"] == "viewer"

    r = client.delete(f"/projects/{project.id}/members/{viewer}", headers=_hdr(ws_admin))
    assert r.status_code == 204, r.text

    r = client.delete(f"/projects/{project.id}/members/{project.owner_id}", headers=_hdr(ws_admin))
    assert r.status_code == 403, r.text


def test_admin_endpoints_need_user_manage(client, db):
    admin = make_profile(db, role="system_admin", email="root@example.com").id
    project = make_project(db, title="Website launch")
    db.commit()

    for path in ("/admin/users", f"/admin/users/{admin}", "/admin/stats"):
        r = client.get(path, headers=_hdr(project.owner_id))
        assert r.status_code == 403, r.text

    r = client.get("/admin/users", params={"q": "root"}, headers=_hdr(admin))
    assert r.status_code == 200, r.text
    assert r.json()["total"] == 1
    assert r.json()["items"][0]["id"] == str(admin)

    r = client.get(f"/admin/users/{project.owner_id}", headers=_hdr(admin))
    assert r.status_code == 200, r.text
    assert {x["context_type"] for x in r.json()["roles"]} == {"workspace", "project"}

    r = client.get(f"/admin/users/{uuid4()}", headers=_hdr(admin))
    assert r.status_code == 404, r.text

    r = client.get("/admin/stats", headers=_hdr(admin))
    assert r.status_code == 200, r.text
    assert r.json()["total_projects"] == 1


def test_project_search_over_http(client, db):
    project = make_project(db, title="Website launch")
    db.commit()

    r = client.get("/projects/search", params={"q": "launch"}, headers=_hdr(project.owner_id))
    assert r.status_code == 200, r.text
    assert [p["id"] for p in r.json()] == [str(project.id)]

    r = client.get("/projects/search", params={"q": ""}, headers=_hdr(project.owner_id))
    assert r.status_code == 422, r.text
