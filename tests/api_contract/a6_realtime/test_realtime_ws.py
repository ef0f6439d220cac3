from __future__ import annotations

from uuid import uuid4

import pytest
from sqlalchemy.orm import Session, sessionmaker
from starlette.websockets import WebSocketDisconnect

from taskboard.core.db import get_session_factory
from taskboard.main import app
from tests.factories import make_project, make_project_member


def _hdr(actor_id) -> dict[str, str]:
    return {"X-Actor-User-Id": str(actor_id)}


def test_ws_requires_actor_header(client, db):
    project = make_project(db)
    db.commit()

    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect(f"/realtime/projects/{project.id}") as ws:
            ws.receive_json()
    assert exc.value.code == 1008


def test_ws_requires_project_view(client, db):
    project = make_project(db)
    db.commit()

    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect(f"/realtime/projects/{project.id}", headers=_hdr(uuid4())) as ws:
            ws.receive_json()
    assert exc.value.code == 1008


def test_ws_streams_project_changes(client, db):
    project = make_project(db)
    viewer = make_project_member(db, project_id=project.id, role="viewer", with_workspace=True).user_id
    db.commit()

    with client.websocket_connect(f"/realtime/projects/{project.id}", headers=_hdr(viewer)) as ws:
        hello = ws.receive_json()
        assert hello == {"type": "SUBSCRIBED", "channel": f"project:{project.id}"}

        r = client.post(f"/projects/{project.id}/tasks", json={"title": "Live"}, headers=_hdr(project.owner_id))
        assert r.status_code == 201, r.text

        event = ws.receive_json()
        assert event["type"] == "INSERT"
        assert event["table"] == "tasks"
        assert event["record"]["title"] == "Live"
        assert event["record"]["project_id"] == str(project.id)

        event = ws.receive_json()
        assert event["table"] == "activity_logs"
        assert event["record"]["action"] == "created"


class _TrackedSession(Session):
    closed = False

    def close(self):
        self.closed = True
        super().close()


def test_ws_permission_session_closed_before_streaming(client, engine, db):
    project = make_project(db)
    db.commit()

    opened = []
    factory = sessionmaker(bind=engine, class_=_TrackedSession, autoflush=False, expire_on_commit=False)

    def tracking_factory():
        s = factory()
        opened.append(s)
        return s

    app.dependency_overrides[get_session_factory] = lambda: tracking_factory

    with client.websocket_connect(f"/realtime/projects/{project.id}", headers=_hdr(project.owner_id)) as ws:
        assert ws.receive_json()["type"] == "SUBSCRIBED"
        assert len(opened) == 1
        assert opened[0].closed
