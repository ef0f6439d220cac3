# taskboard/api/realtime.py
from __future__ import annotations

import asyncio
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, WebSocket, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import sessionmaker

from taskboard.core.db import get_session_factory
from taskboard.realtime.change_feed import ChangeEvent, change_feed
from taskboard.services.permission_service import PermissionContext, permission_service

logger = logging.getLogger(__name__)

router = APIRouter()


def _actor_from_headers(websocket: WebSocket) -> UUID | None:
    raw = websocket.headers.get("X-Actor-User-Id")
    if not raw:
        return None
    try:
        return UUID(raw)
    except ValueError:
        return None


def _can_view_project(session_factory: sessionmaker, actor_id: UUID, project_id: UUID) -> bool:
    db = session_factory()
    try:
        return permission_service.has_permission(
            db, actor_id, "project.view", PermissionContext(project_id=project_id)
        ).has_permission
    finally:
        db.close()


@router.websocket("/realtime/projects/{project_id}")
async def project_changes(
    websocket: WebSocket,
    project_id: UUID,
    session_factory: sessionmaker = Depends(get_session_factory),
):
    """
    Stream change events of one project as JSON.

    First message is {"type": "SUBSCRIBED", "channel": ...}; every following
    message is a ChangeEvent. Needs `project.view`.
    """
    actor_id = _actor_from_headers(websocket)
    if actor_id is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Missing X-Actor-User-Id header")
        return

    # the session is closed before the socket is accepted
    allowed = await run_in_threadpool(_can_view_project, session_factory, actor_id, project_id)
    if not allowed:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Missing permission 'project.view'")
        return

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[dict] = asyncio.Queue()

    # publishers run in worker threads
    def handler(event: ChangeEvent) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, event.to_dict())

    channel = change_feed.subscribe_to_project(project_id, handler)
    await websocket.accept()
    await websocket.send_json({"type": "SUBSCRIBED", "channel": channel})

    async def forward() -> None:
        while True:
            await websocket.send_json(await queue.get())

    async def wait_for_disconnect() -> None:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                return

    tasks = {asyncio.create_task(forward()), asyncio.create_task(wait_for_disconnect())}
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for t in pending:
            t.cancel()
        for t in done:
            if not t.cancelled() and t.exception() is not None:
                logger.info("Realtime connection for %s closed: %s", channel, t.exception())
    finally:
        change_feed.unsubscribe(channel, handler)
