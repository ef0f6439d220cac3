from __future__ import annotations

from uuid import uuid4

from tests.factories import make_project, make_task


def _hdr(actor_id) -> dict[str, str]:
    return {"X-Actor-User-Id": str(actor_id)}


def test_missing_actor_header_is_401(client):
    r = client.get("/projects")
    assert r.status_code == 401, r.text
    assert r.json()["detail"] == "Missing X-Actor-User-Id header"


def test_blank_actor_header_is_401(client):
    r = client.get("/projects", headers={"X-Actor-User-Id": "   "})
    assert r.status_code == 401, r.text


def test_malformed_actor_header_is_400(client):
    r = client.get("/projects", headers={"X-Actor-User-Id": "not-a-uuid"})
    assert r.status_code == 400, r.text


def test_health_is_public(client):
    r = client.get("/health")
    assert r.status_code == 200, r.text


def test_unknown_fields_are_rejected(client, db):
    project = make_project(db)
    db.commit()

    r = client.post(
        f"/projects/{project.id}/tasks",
        json={"title": "x", "org_id": str(uuid4())},
        headers=_hdr(project.owner_id),
    )
    assert r.status_code == 422, r.text


def test_empty_title_is_rejected(client, db):
    project = make_project(db)
    db.commit()

    r = client.post(f"/projects/{project.id}/tasks", json={"title": ""}, headers=_hdr(project.owner_id))
    assert r.status_code == 422, r.text


def test_invalid_status_is_rejected(client, db):
    project = make_project(db)
    task = make_task(db, project_id=project.id)
    db.commit()

    r = client.patch(f"/tasks/{task.id}", json={"status": "blocked"}, headers=_hdr(project.owner_id))
    assert r.status_code == 422, r.text


def test_invalid_role_is_rejected(client, db):
    project = make_project(db)
    db.commit()

    r = client.post(
        f"/projects/{project.id}/members",
        json={"user_id": str(uuid4()), "role": "superuser"},
        headers=_hdr(project.owner_id),
    )
    assert r.status_code == 422, r.text


def test_invitation_email_is_validated(client, db):
    project = make_project(db)
    db.commit()

    r = client.post(
        f"/projects/{project.id}/invitations",
        json={"email": "not-an-email"},
        headers=_hdr(project.owner_id),
    )
    assert r.status_code == 422, r.text


def test_page_limit_is_validated(client, db):
    project = make_project(db)
    db.commit()

    r = client.get("/projects?limit=0", headers=_hdr(project.owner_id))
    assert r.status_code == 422, r.text
