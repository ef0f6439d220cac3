# taskboard/api/comments.py
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from taskboard.api.deps import get_current_user_id
from taskboard.core.db import get_db
from taskboard.core.errors import DomainError, to_http
from taskboard.models.comment import EntityType
from taskboard.schemas.collaboration import CommentCreate, CommentRead, CommentUpdate
from taskboard.services.collaboration_service import CollaborationService

router = APIRouter()


@router.post(
    "/comments",
    response_model=CommentRead,
    status_code=status.HTTP_201_CREATED,
    summary="Comment on a task or project",
    description="Task comments need `task.comment`, project comments need `project.view`.",
)
def add_comment(
    data: CommentCreate,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        return CollaborationService(db).add_comment(
            actor_id=actor_user_id,
            entity_type=data.entity_type.value,
            entity_id=data.entity_id,
            content=data.content,
        )
    except DomainError as e:
        raise to_http(e)


@router.get("/comments", response_model=list[CommentRead])
def list_comments(
    entity_type: EntityType,
    entity_id: UUID,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        return CollaborationService(db).list_comments(actor_user_id, entity_type.value, entity_id)
    except DomainError as e:
        raise to_http(e)


@router.patch("/comments/{comment_id}", response_model=CommentRead, summary="Edit own comment")
def update_comment(
    comment_id: UUID,
    data: CommentUpdate,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        return CollaborationService(db).update_comment(actor_user_id, comment_id, data.content)
    except DomainError as e:
        raise to_http(e)


@router.delete("/comments/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_comment(
    comment_id: UUID,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        CollaborationService(db).delete_comment(actor_user_id, comment_id)
    except DomainError as e:
        raise to_http(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
