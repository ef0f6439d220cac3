# taskboard/services/task_service.py
from __future__ import annotations

from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from taskboard.core.errors import InvalidOperation, NotFound, VersionConflict
from taskboard.models.activity_log import ActivityAction
from taskboard.models.attachment import Attachment
from taskboard.models.comment import Comment, EntityType
from taskboard.models.project import Project
from taskboard.models.task import Subtask, Task, TaskPriority, TaskStatus
from taskboard.realtime.change_feed import ChangeType, change_feed, row_to_dict
from taskboard.services.activity_service import ActivityService
from taskboard.services.permission_service import PermissionContext, PermissionService, permission_service

TASK_FIELDS = ("title", "description", "status", "priority", "due_date", "assignee_id", "order_index")
SUBTASK_FIELDS = ("title", "description", "completed", "order_index")

# field -> extra permission needed to change it (on top of task.edit)
FIELD_PERMISSIONS = {
    "status": "task.status.change",
    "assignee_id": "task.assign",
    "priority": "task.priority.change",
}


def describe_task_update(old: dict[str, Any], changes: dict[str, Any]) -> tuple[ActivityAction, dict[str, Any]]:
    """Pick the activity action for an update: the first specific change wins, else 'updated'."""
    if "assignee_id" in changes:
        if changes["assignee_id"] is None:
            return ActivityAction.unassigned, {"previous_assignee_id": old.get("assignee_id")}
        return ActivityAction.assigned, {
            "assignee_id": changes["assignee_id"],
            "previous_assignee_id": old.get("assignee_id"),
        }

    if "status" in changes:
        new, prev = changes["status"], old.get("status")
        if new == TaskStatus.done.value:
            return ActivityAction.completed, {"previous_status": prev}
        if prev == TaskStatus.done.value and new == TaskStatus.in_progress.value:
            return ActivityAction.reopened, {"status": new}
        return ActivityAction.status_changed, {"status": new, "previous_status": prev}

    if "due_date" in changes:
        return ActivityAction.due_date_changed, {
            "due_date": changes["due_date"],
            "previous_due_date": old.get("due_date"),
        }

    return ActivityAction.updated, {"updated_fields": sorted(changes)}


class TaskService:
    def __init__(self, db: Session, permissions: PermissionService = permission_service):
        self.db = db
        self.permissions = permissions
        self.activity = ActivityService(db, permissions)

    def _assert(self, actor_id: UUID, permission: str, project_id: UUID) -> None:
        self.permissions.assert_permission(self.db, actor_id, permission, PermissionContext(project_id=project_id))

    def _get_task(self, task_id: UUID) -> Task:
        task = self.db.get(Task, task_id)
        if task is None:
            raise NotFound("Task not found")
        return task

    def _get_subtask(self, subtask_id: UUID) -> tuple[Subtask, Task]:
        sub = self.db.get(Subtask, subtask_id)
        if sub is None:
            raise NotFound("Subtask not found")
        return sub, self._get_task(sub.task_id)

    def _ensure_project_member(self, project_id: UUID, user_id: UUID) -> None:
        if self.permissions.get_user_project_role(self.db, project_id, user_id) is None:
            raise InvalidOperation("Assignee must be a member of the project")

    def _publish(self, obj, change_type: ChangeType, old=None, entry=None) -> None:
        change_feed.publish_row(obj, change_type, old)
        if entry is not None:
            change_feed.publish_row(entry, ChangeType.insert)

    # ---- tasks ----

    def create_task(
        self,
        *,
        actor_id: UUID,
        project_id: UUID,
        title: str,
        description: str | None = None,
        status: str = TaskStatus.todo.value,
        priority: str = TaskPriority.medium.value,
        due_date: date | None = None,
        assignee_id: UUID | None = None,
        order_index: int | None = None,
    ) -> Task:
        if self.db.get(Project, project_id) is None:
            raise NotFound("Project not found")

        self._assert(actor_id, "task.create", project_id)
        if assignee_id is not None:
            self._assert(actor_id, "task.assign", project_id)
            self._ensure_project_member(project_id, assignee_id)

        if order_index is None:
            last = self.db.execute(
                select(func.max(Task.order_index)).where(Task.project_id == project_id)
            ).scalar_one_or_none()
            order_index = 0 if last is None else last + 1

        task = Task(
            project_id=project_id,
            title=title,
            description=description,
            status=TaskStatus(status).value,
            priority=TaskPriority(priority).value,
            due_date=due_date,
            assignee_id=assignee_id,
            created_by=actor_id,
            order_index=order_index,
        )
        self.db.add(task)
        self.db.flush()

        entry = self.activity.log(
            user_id=actor_id,
            project_id=project_id,
            entity_type="task",
            entity_id=task.id,
            action=ActivityAction.created,
            details={"title": title},
        )

        self.db.commit()
        self.db.refresh(task)
        self._publish(task, ChangeType.insert, entry=entry)
        return task

    def get_task(self, actor_id: UUID, task_id: UUID) -> tuple[Task, list[Subtask]]:
        task = self._get_task(task_id)
        self._assert(actor_id, "task.view", task.project_id)
        return task, self._subtasks_of(task.id)

    def list_project_tasks(
        self,
        actor_id: UUID,
        project_id: UUID,
        *,
        status: str | None = None,
        priority: str | None = None,
        assignee_id: UUID | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Task]:
        if self.db.get(Project, project_id) is None:
            raise NotFound("Project not found")
        self._assert(actor_id, "task.view", project_id)

        q = self.db.query(Task).filter(Task.project_id == project_id)
        if status is not None:
            q = q.filter(Task.status == status)
        if priority is not None:
            q = q.filter(Task.priority == priority)
        if assignee_id is not None:
            q = q.filter(Task.assignee_id == assignee_id)

        return q.order_by(Task.order_index, Task.created_at.desc()).limit(limit).offset(offset).all()

    def my_tasks(self, actor_id: UUID, *, status: str | None = None, limit: int = 50, offset: int = 0) -> list[Task]:
        """Tasks assigned to the actor in projects they can still view."""
        project_ids = self.permissions.get_projects_with_permission(self.db, actor_id, "task.view")
        if not project_ids:
            return []

        q = self.db.query(Task).filter(Task.assignee_id == actor_id, Task.project_id.in_(project_ids))
        if status is not None:
            q = q.filter(Task.status == status)
        return q.order_by(Task.due_date.is_(None), Task.due_date, Task.order_index).limit(limit).offset(offset).all()

    def search_tasks(
        self, actor_id: UUID, query: str, *, project_id: UUID | None = None, limit: int = 50
    ) -> list[Task]:
        if project_id is not None:
            self._assert(actor_id, "task.view", project_id)
            project_ids = [project_id]
        else:
            project_ids = self.permissions.get_projects_with_permission(self.db, actor_id, "task.view")
        if not project_ids:
            return []

        pattern = f"%{query.strip()}%"
        return (
            self.db.query(Task)
            .filter(
                Task.project_id.in_(project_ids),
                or_(Task.title.ilike(pattern), Task.description.ilike(pattern)),
            )
            .order_by(Task.updated_at.desc())
            .limit(limit)
            .all()
        )

    def update_task(
        self,
        actor_id: UUID,
        task_id: UUID,
        changes: dict[str, Any],
        *,
        expected_row_version: int | None = None,
    ) -> Task:
        task = self._get_task(task_id)
        self._assert(actor_id, "task.edit", task.project_id)

        if expected_row_version is not None and task.row_version != expected_row_version:
            raise VersionConflict(
                f"Task was modified concurrently (expected row_version={expected_row_version}, "
                f"actual={task.row_version})"
            )

        old = row_to_dict(task)
        changed = {
            k: v for k, v in changes.items() if k in TASK_FIELDS and old.get(k) != v
        }
        for key in ("title", "status", "priority", "order_index"):
            if key in changed and changed[key] is None:
                raise InvalidOperation(f"'{key}' cannot be null")
        if "status" in changed:
            changed["status"] = TaskStatus(changed["status"]).value
        if "priority" in changed:
            changed["priority"] = TaskPriority(changed["priority"]).value
        if not changed:
            return task

        for field_name, permission in FIELD_PERMISSIONS.items():
            if field_name in changed:
                self._assert(actor_id, permission, task.project_id)
        if changed.get("assignee_id") is not None:
            self._ensure_project_member(task.project_id, changed["assignee_id"])

        for key, value in changed.items():
            setattr(task, key, value)
        task.row_version = task.row_version + 1

        action, details = describe_task_update(old, changed)
        entry = self.activity.log(
            user_id=actor_id,
            project_id=task.project_id,
            entity_type="task",
            entity_id=task.id,
            action=action,
            details={k: (str(v) if isinstance(v, (UUID, date)) else v) for k, v in details.items()},
        )

        self.db.commit()
        self.db.refresh(task)
        self._publish(task, ChangeType.update, old=old, entry=entry)
        return task

    def delete_task(self, actor_id: UUID, task_id: UUID) -> None:
        task = self._get_task(task_id)
        self._assert(actor_id, "task.delete", task.project_id)

        old = row_to_dict(task)
        self.db.query(Subtask).filter(Subtask.task_id == task.id).delete(synchronize_session=False)
        for model in (Comment, Attachment):
            self.db.query(model).filter(
                model.entity_type == EntityType.task.value, model.entity_id == task.id
            ).delete(synchronize_session=False)
        self.db.delete(task)
        entry = self.activity.log(
            user_id=actor_id,
            project_id=task.project_id,
            entity_type="task",
            entity_id=task.id,
            action=ActivityAction.deleted,
            details={"title": old["title"]},
        )

        self.db.commit()
        change_feed.publish("tasks", ChangeType.delete, old)
        if entry is not None:
            change_feed.publish_row(entry, ChangeType.insert)

    def reorder_tasks(self, actor_id: UUID, project_id: UUID, order: list[tuple[UUID, int]]) -> list[Task]:
        """Set order_index for a batch of tasks of one project."""
        self._assert(actor_id, "task.edit", project_id)

        ids = [task_id for task_id, _ in order]
        tasks = {t.id: t for t in self.db.query(Task).filter(Task.id.in_(ids)).all()}

        missing = [str(i) for i in ids if i not in tasks]
        if missing:
            raise NotFound(f"Tasks not found: {', '.join(missing)}")
        if any(t.project_id != project_id for t in tasks.values()):
            raise InvalidOperation("All tasks must belong to the project")

        olds = {}
        for task_id, index in order:
            t = tasks[task_id]
            if t.order_index != index:
                olds[task_id] = row_to_dict(t)
                t.order_index = index
                t.row_version = t.row_version + 1

        self.db.commit()
        for task_id, old in olds.items():
            change_feed.publish_row(tasks[task_id], ChangeType.update, old)

        return [tasks[task_id] for task_id, _ in order]

    # ---- subtasks ----

    def _subtasks_of(self, task_id: UUID) -> list[Subtask]:
        return (
            self.db.query(Subtask)
            .filter(Subtask.task_id == task_id)
            .order_by(Subtask.order_index, Subtask.created_at)
            .all()
        )

    def list_subtasks(self, actor_id: UUID, task_id: UUID) -> list[Subtask]:
        task = self._get_task(task_id)
        self._assert(actor_id, "task.view", task.project_id)
        return self._subtasks_of(task.id)

    def create_subtask(
        self,
        *,
        actor_id: UUID,
        task_id: UUID,
        title: str,
        description: str | None = None,
        order_index: int | None = None,
    ) -> Subtask:
        task = self._get_task(task_id)
        self._assert(actor_id, "task.edit", task.project_id)

        if order_index is None:
            last = self.db.execute(
                select(func.max(Subtask.order_index)).where(Subtask.task_id == task.id)
            ).scalar_one_or_none()
            order_index = 0 if last is None else last + 1

        sub = Subtask(
            task_id=task.id,
            title=title,
            description=description,
            order_index=order_index,
            created_by=actor_id,
        )
        self.db.add(sub)
        self.db.flush()

        entry = self.activity.log(
            user_id=actor_id,
            project_id=task.project_id,
            entity_type="subtask",
            entity_id=sub.id,
            action=ActivityAction.created,
            details={"task_id": str(task.id), "title": title},
        )

        self.db.commit()
        self.db.refresh(sub)
        self._publish(sub, ChangeType.insert, entry=entry)
        return sub

    def update_subtask(self, actor_id: UUID, subtask_id: UUID, changes: dict[str, Any]) -> Subtask:
        sub, task = self._get_subtask(subtask_id)
        self._assert(actor_id, "task.edit", task.project_id)

        old = row_to_dict(sub)
        changed = {k: v for k, v in changes.items() if k in SUBTASK_FIELDS and old.get(k) != v}
        if not changed:
            return sub
        for key in ("title", "completed", "order_index"):
            if key in changed and changed[key] is None:
                raise InvalidOperation(f"'{key}' cannot be null")

        for key, value in changed.items():
            setattr(sub, key, value)

        if "completed" in changed and len(changed) == 1:
            action = ActivityAction.completed if sub.completed else ActivityAction.reopened
            details = {"task_id": str(task.id)}
        else:
            action = ActivityAction.updated
            details = {"task_id": str(task.id), "updated_fields": sorted(changed)}

        entry = self.activity.log(
            user_id=actor_id,
            project_id=task.project_id,
            entity_type="subtask",
            entity_id=sub.id,
            action=action,
            details=details,
        )

        self.db.commit()
        self.db.refresh(sub)
        self._publish(sub, ChangeType.update, old=old, entry=entry)
        return sub

    def toggle_subtask(self, actor_id: UUID, subtask_id: UUID) -> Subtask:
        sub, _ = self._get_subtask(subtask_id)
        return self.update_subtask(actor_id, subtask_id, {"completed": not sub.completed})

    def delete_subtask(self, actor_id: UUID, subtask_id: UUID) -> None:
        sub, task = self._get_subtask(subtask_id)
        self._assert(actor_id, "task.edit", task.project_id)

        old = row_to_dict(sub)
        self.db.delete(sub)
        entry = self.activity.log(
            user_id=actor_id,
            project_id=task.project_id,
            entity_type="subtask",
            entity_id=sub.id,
            action=ActivityAction.deleted,
            details={"task_id": str(task.id), "title": old["title"]},
        )

        self.db.commit()
        change_feed.publish("subtasks", ChangeType.delete, old)
        if entry is not None:
            change_feed.publish_row(entry, ChangeType.insert)

