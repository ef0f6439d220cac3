# taskboard/api/attachments.py
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from taskboard.api.deps import get_current_user_id
from taskboard.core.db import get_db
from taskboard.core.errors import DomainError, to_http
from taskboard.models.comment import EntityType
from taskboard.schemas.collaboration import AttachmentCreate, AttachmentRead
from taskboard.services.collaboration_service import CollaborationService

router = APIRouter()


@router.post(
    "/attachments",
    response_model=AttachmentRead,
    status_code=status.HTTP_201_CREATED,
    summary="Register attachment metadata",
    description="The file itself is uploaded to object storage by the client; only metadata is stored here.",
)
def add_attachment(
    data: AttachmentCreate,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    payload = data.model_dump()
    payload["entity_type"] = data.entity_type.value
    try:
        return CollaborationService(db).add_attachment(actor_id=actor_user_id, **payload)
    except DomainError as e:
        raise to_http(e)


@router.get("/attachments", response_model=list[AttachmentRead])
def list_attachments(
    entity_type: EntityType,
    entity_id: UUID,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        return CollaborationService(db).list_attachments(actor_user_id, entity_type.value, entity_id)
    except DomainError as e:
        raise to_http(e)


@router.delete("/attachments/{attachment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_attachment(
    attachment_id: UUID,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        CollaborationService(db).delete_attachment(actor_user_id, attachment_id)
    except DomainError as e:
        raise to_http(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
