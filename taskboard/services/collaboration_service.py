# taskboard/services/collaboration_service.py
from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from taskboard.core.errors import NotFound, PermissionDenied
from taskboard.models.activity_log import ActivityAction
from taskboard.models.attachment import Attachment
from taskboard.models.comment import Comment, EntityType
from taskboard.models.project import Project
from taskboard.models.task import Task
from taskboard.realtime.change_feed import ChangeType, change_feed, row_to_dict
from taskboard.services.activity_service import ActivityService
from taskboard.services.permission_service import PermissionContext, PermissionService, permission_service


class CollaborationService:
    """Comments and attachments on tasks and projects."""

    def __init__(self, db: Session, permissions: PermissionService = permission_service):
        self.db = db
        self.permissions = permissions
        self.activity = ActivityService(db, permissions)

    def _project_of(self, entity_type: str, entity_id: UUID) -> UUID:
        entity_type = EntityType(entity_type)
        if entity_type is EntityType.task:
            task = self.db.get(Task, entity_id)
            if task is None:
                raise NotFound("Task not found")
            return task.project_id

        project = self.db.get(Project, entity_id)
        if project is None:
            raise NotFound("Project not found")
        return project.id

    def _has(self, actor_id: UUID, permission: str, project_id: UUID) -> bool:
        return self.permissions.has_permission(
            self.db, actor_id, permission, PermissionContext(project_id=project_id)
        ).has_permission

    def _assert(self, actor_id: UUID, permission: str, project_id: UUID) -> None:
        self.permissions.assert_permission(self.db, actor_id, permission, PermissionContext(project_id=project_id))

    # ---- comments ----

    def add_comment(self, *, actor_id: UUID, entity_type: str, entity_id: UUID, content: str) -> Comment:
        project_id = self._project_of(entity_type, entity_id)
        entity_type = EntityType(entity_type).value

        if entity_type == EntityType.task.value:
            self._assert(actor_id, "task.comment", project_id)
        else:
            self._assert(actor_id, "project.view", project_id)

        comment = Comment(
            entity_type=entity_type,
            entity_id=entity_id,
            project_id=project_id,
            user_id=actor_id,
            content=content,
        )
        self.db.add(comment)
        self.db.flush()

        entry = self.activity.log(
            user_id=actor_id,
            project_id=project_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=ActivityAction.commented,
            details={"comment_id": str(comment.id)},
        )

        self.db.commit()
        self.db.refresh(comment)
        change_feed.publish_row(comment, ChangeType.insert)
        if entry is not None:
            change_feed.publish_row(entry, ChangeType.insert)
        return comment

    def list_comments(self, actor_id: UUID, entity_type: str, entity_id: UUID) -> list[Comment]:
        project_id = self._project_of(entity_type, entity_id)
        self._assert(actor_id, "project.view", project_id)

        return (
            self.db.query(Comment)
            .filter(Comment.entity_type == EntityType(entity_type).value, Comment.entity_id == entity_id)
            .order_by(Comment.created_at, Comment.id)
            .all()
        )

    def _get_comment(self, comment_id: UUID) -> Comment:
        comment = self.db.get(Comment, comment_id)
        if comment is None:
            raise NotFound("Comment not found")
        return comment

    def update_comment(self, actor_id: UUID, comment_id: UUID, content: str) -> Comment:
        comment = self._get_comment(comment_id)
        if comment.user_id != actor_id:
            raise PermissionDenied("Can only edit your own comments")

        old = row_to_dict(comment)
        comment.content = content

        self.db.commit()
        self.db.refresh(comment)
        change_feed.publish_row(comment, ChangeType.update, old)
        return comment

    def delete_comment(self, actor_id: UUID, comment_id: UUID) -> None:
        comment = self._get_comment(comment_id)
        if comment.user_id != actor_id and not self._has(actor_id, "project.edit", comment.project_id):
            raise PermissionDenied("Can only delete your own comments", permission="project.edit")

        old = row_to_dict(comment)
        self.db.delete(comment)
        self.db.commit()
        change_feed.publish("comments", ChangeType.delete, old)

    # ---- attachments ----

    def add_attachment(
        self,
        *,
        actor_id: UUID,
        entity_type: str,
        entity_id: UUID,
        file_name: str,
        storage_path: str,
        file_size: int | None = None,
        file_type: str | None = None,
    ) -> Attachment:
        project_id = self._project_of(entity_type, entity_id)
        self._assert(actor_id, "attachment.upload", project_id)

        att = Attachment(
            entity_type=EntityType(entity_type).value,
            entity_id=entity_id,
            project_id=project_id,
            user_id=actor_id,
            file_name=file_name,
            file_size=file_size,
            file_type=file_type,
            storage_path=storage_path,
        )
        self.db.add(att)
        self.db.flush()

        entry = self.activity.log(
            user_id=actor_id,
            project_id=project_id,
            entity_type="attachment",
            entity_id=att.id,
            action=ActivityAction.created,
            details={"file_name": file_name, "entity_type": att.entity_type, "entity_id": str(entity_id)},
        )

        self.db.commit()
        self.db.refresh(att)
        change_feed.publish_row(att, ChangeType.insert)
        if entry is not None:
            change_feed.publish_row(entry, ChangeType.insert)
        return att

    def list_attachments(self, actor_id: UUID, entity_type: str, entity_id: UUID) -> list[Attachment]:
        project_id = self._project_of(entity_type, entity_id)
        self._assert(actor_id, "attachment.view", project_id)

        return (
            self.db.query(Attachment)
            .filter(Attachment.entity_type == EntityType(entity_type).value, Attachment.entity_id == entity_id)
            .order_by(Attachment.created_at.desc(), Attachment.id)
            .all()
        )

    def delete_attachment(self, actor_id: UUID, attachment_id: UUID) -> None:
        att = self.db.get(Attachment, attachment_id)
        if att is None:
            raise NotFound("Attachment not found")

        if att.user_id != actor_id and not self._has(actor_id, "attachment.delete", att.project_id):
            raise PermissionDenied("Can only delete your own attachments", permission="attachment.delete")

        old = row_to_dict(att)
        self.db.delete(att)
        entry = self.activity.log(
            user_id=actor_id,
            project_id=old["project_id"],
            entity_type="attachment",
            entity_id=old["id"],
            action=ActivityAction.deleted,
            details={"file_name": old["file_name"]},
        )

        self.db.commit()
        change_feed.publish("attachments", ChangeType.delete, old)
        if entry is not None:
            change_feed.publish_row(entry, ChangeType.insert)
