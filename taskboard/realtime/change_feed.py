# taskboard/realtime/change_feed.py
"""In-process change feed.

Services publish row changes after commit; subscribers register handlers on
channels:

  project:{project_id}   every change that carries the project id
  task:{task_id}         changes of a task, its subtasks, comments, attachments
  activity               every activity_logs insert
"""

from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable
from uuid import UUID

from fastapi.encoders import jsonable_encoder
from sqlalchemy import inspect as sa_inspect

from taskboard.models.base import utcnow

logger = logging.getLogger(__name__)

ACTIVITY_CHANNEL = "activity"


class ChangeType(str, enum.Enum):
    insert = "INSERT"
    update = "UPDATE"
    delete = "DELETE"


@dataclass(frozen=True)
class ChangeEvent:
    type: ChangeType
    table: str
    record: dict[str, Any]
    old_record: dict[str, Any] | None = None
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return jsonable_encoder(
            {
                "type": self.type.value,
                "table": self.table,
                "record": self.record,
                "old_record": self.old_record,
                "timestamp": self.timestamp,
            }
        )


Handler = Callable[[ChangeEvent], None]


def row_to_dict(obj: Any) -> dict[str, Any]:
    """Column values of an ORM instance (no relationships)."""
    mapper = sa_inspect(obj).mapper
    return {c.key: getattr(obj, c.key) for c in mapper.column_attrs}


def project_channel(project_id: UUID | str) -> str:
    return f"project:{project_id}"


def task_channel(task_id: UUID | str) -> str:
    return f"task:{task_id}"


def channels_for(table: str, record: dict[str, Any]) -> list[str]:
    channels: list[str] = []

    project_id = record.get("project_id")
    if table == "projects":
        project_id = record.get("id")
    if project_id is not None:
        channels.append(project_channel(project_id))

    task_id = None
    if table == "tasks":
        task_id = record.get("id")
    elif table == "subtasks":
        task_id = record.get("task_id")
    elif table in ("comments", "attachments") and record.get("entity_type") == "task":
        task_id = record.get("entity_id")
    if task_id is not None:
        channels.append(task_channel(task_id))

    if table == "activity_logs":
        channels.append(ACTIVITY_CHANNEL)

    return channels


class ChangeFeed:
    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = {}
        self._lock = threading.Lock()

    def subscribe(self, channel: str, handler: Handler) -> str:
        with self._lock:
            self._handlers.setdefault(channel, []).append(handler)
        return channel

    def subscribe_to_project(self, project_id: UUID, handler: Handler) -> str:
        return self.subscribe(project_channel(project_id), handler)

    def subscribe_to_task(self, task_id: UUID, handler: Handler) -> str:
        return self.subscribe(task_channel(task_id), handler)

    def subscribe_to_activity(self, handler: Handler) -> str:
        return self.subscribe(ACTIVITY_CHANNEL, handler)

    def unsubscribe(self, channel: str, handler: Handler | None = None) -> None:
        """Drop one handler, or the whole channel when handler is None."""
        with self._lock:
            if handler is None:
                self._handlers.pop(channel, None)
                return
            handlers = self._handlers.get(channel, [])
            if handler in handlers:
                handlers.remove(handler)
            if not handlers:
                self._handlers.pop(channel, None)

    def unsubscribe_all(self) -> None:
        with self._lock:
            self._handlers.clear()

    def active_channels(self) -> list[str]:
        with self._lock:
            return sorted(self._handlers)

    def publish(
        self,
        table: str,
        change_type: ChangeType,
        record: dict[str, Any],
        old_record: dict[str, Any] | None = None,
    ) -> int:
        """Deliver to every subscribed channel of the record. Returns the number of handler calls."""
        event = ChangeEvent(type=change_type, table=table, record=record, old_record=old_record)

        with self._lock:
            targets = [
                (channel, list(self._handlers.get(channel, [])))
                for channel in channels_for(table, record)
            ]

        delivered = 0
        for channel, handlers in targets:
            for handler in handlers:
                try:
                    handler(event)
                    delivered += 1
                except Exception:
                    logger.exception("Realtime handler failed on channel %s", channel)
        return delivered

    def publish_row(self, obj: Any, change_type: ChangeType, old_record: dict[str, Any] | None = None) -> int:
        return self.publish(obj.__tablename__, change_type, row_to_dict(obj), old_record)


change_feed = ChangeFeed()
