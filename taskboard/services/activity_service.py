# taskboard/services/activity_service.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from taskboard.models.activity_log import ActivityAction, ActivityLog
from taskboard.services.permission_service import PermissionContext, PermissionService, permission_service

logger = logging.getLogger(__name__)


class ActivityService:
    """
    Activity log writes and reads.

    log() writes the row inside a savepoint of the caller's transaction: it is
    committed together with the business change that produced it. An entry
    that cannot be built or written is logged and skipped, never raised to the
    caller.
    """

    def __init__(self, db: Session, permissions: PermissionService = permission_service):
        self.db = db
        self.permissions = permissions

    def log(
        self,
        *,
        user_id: UUID | None,
        entity_type: str,
        entity_id: UUID,
        action: ActivityAction | str,
        project_id: UUID | None = None,
        details: dict[str, Any] | None = None,
    ) -> ActivityLog | None:
        try:
            action_value = ActivityAction(action).value
        except ValueError:
            logger.warning("Activity not logged: unknown action %r on %s %s", action, entity_type, entity_id)
            return None

        entry = ActivityLog(
            user_id=user_id,
            project_id=project_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action_value,
            details=details or None,
        )
        # business rows are flushed outside the savepoint
        self.db.flush()
        try:
            with self.db.begin_nested():
                self.db.add(entry)
                self.db.flush()
        except SQLAlchemyError as e:
            logger.warning("Activity not logged: %s on %s %s failed: %s", action_value, entity_type, entity_id, e)
            return None
        return entry

    def log_batch(self, entries: Iterable[dict[str, Any]]) -> list[ActivityLog]:
        out = []
        for e in entries:
            entry = self.log(**e)
            if entry is not None:
                out.append(entry)
        return out

    # ---- reads ----

    def project_activity(
        self,
        actor_id: UUID,
        project_id: UUID,
        *,
        action: str | None = None,
        entity_type: str | None = None,
        user_id: UUID | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ActivityLog]:
        self.permissions.assert_permission(
            self.db, actor_id, "project.view", PermissionContext(project_id=project_id)
        )

        stmt = select(ActivityLog).where(ActivityLog.project_id == project_id)
        if action is not None:
            stmt = stmt.where(ActivityLog.action == action)
        if entity_type is not None:
            stmt = stmt.where(ActivityLog.entity_type == entity_type)
        if user_id is not None:
            stmt = stmt.where(ActivityLog.user_id == user_id)

        stmt = stmt.order_by(ActivityLog.created_at.desc()).limit(limit).offset(offset)
        return list(self.db.execute(stmt).scalars())

    def recent_activity(self, actor_id: UUID, *, limit: int = 20) -> list[ActivityLog]:
        """Latest entries across every project the actor can view."""
        project_ids = self.permissions.get_projects_with_permission(self.db, actor_id, "project.view")
        if not project_ids:
            return []

        stmt = (
            select(ActivityLog)
            .where(ActivityLog.project_id.in_(project_ids))
            .order_by(ActivityLog.created_at.desc())
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars())

    def activity_stats(
        self, actor_id: UUID, project_id: UUID, *, since: datetime | None = None
    ) -> dict[str, Any]:
        self.permissions.assert_permission(
            self.db, actor_id, "project.view", PermissionContext(project_id=project_id)
        )

        conds = [ActivityLog.project_id == project_id]
        if since is not None:
            conds.append(ActivityLog.created_at >= since)

        by_action = {
            action: count
            for action, count in self.db.execute(
                select(ActivityLog.action, func.count()).where(*conds).group_by(ActivityLog.action)
            )
        }
        by_user = {
            str(uid): count
            for uid, count in self.db.execute(
                select(ActivityLog.user_id, func.count())
                .where(*conds, ActivityLog.user_id.is_not(None))
                .group_by(ActivityLog.user_id)
            )
        }

        return {
            "project_id": project_id,
            "total": sum(by_action.values()),
            "by_action": by_action,
            "by_user": by_user,
        }

    def user_summary(self, actor_id: UUID) -> dict[str, Any]:
        """What the actor has done: totals per action and per project."""
        by_action = {
            action: count
            for action, count in self.db.execute(
                select(ActivityLog.action, func.count())
                .where(ActivityLog.user_id == actor_id)
                .group_by(ActivityLog.action)
            )
        }
        by_project = {
            str(pid): count
            for pid, count in self.db.execute(
                select(ActivityLog.project_id, func.count())
                .where(ActivityLog.user_id == actor_id, ActivityLog.project_id.is_not(None))
                .group_by(ActivityLog.project_id)
            )
        }
        last = self.db.execute(
            select(func.max(ActivityLog.created_at)).where(ActivityLog.user_id == actor_id)
        ).scalar_one_or_none()

        return {
            "user_id": actor_id,
            "total": sum(by_action.values()),
            "by_action": by_action,
            "by_project": by_project,
            "last_activity_at": last,
        }
