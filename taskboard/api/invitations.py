# taskboard/api/invitations.py
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from taskboard.api.deps import ActorContext, get_actor_context, get_current_user_id
from taskboard.core.db import get_db
from taskboard.core.errors import DomainError, to_http
from taskboard.schemas.invitation import InvitationAccept, InvitationCreate, InvitationCreated, InvitationRead
from taskboard.schemas.project import ProjectMemberRead
from taskboard.services.invitation_service import InvitationService

router = APIRouter()


@router.post(
    "/projects/{project_id}/invitations",
    response_model=InvitationCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Invite by email",
    description=(
        "Requires `team.invite`. Only owners may invite owners. "
        "A second pending invitation for the same email returns 409 (PENDING_INVITATION)."
    ),
)
def create_invitation(
    project_id: UUID,
    data: InvitationCreate,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        return InvitationService(db).invite(
            actor_id=actor_user_id,
            project_id=project_id,
            email=data.email,
            role=data.role.value,
            message=data.message,
            expires_in_days=data.expires_in_days,
        )
    except DomainError as e:
        raise to_http(e)


@router.get("/projects/{project_id}/invitations", response_model=list[InvitationRead])
def list_invitations(
    project_id: UUID,
    include_accepted: bool = False,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        return InvitationService(db).list_invitations(actor_user_id, project_id, include_accepted=include_accepted)
    except DomainError as e:
        raise to_http(e)


@router.post(
    "/invitations/accept",
    response_model=ProjectMemberRead,
    summary="Accept invitation",
    description="The `X-Actor-Email` header must match the invited email.",
)
def accept_invitation(
    data: InvitationAccept,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor_context),
):
    try:
        return InvitationService(db).accept(actor_id=actor.user_id, actor_email=actor.email, token=data.token)
    except DomainError as e:
        raise to_http(e)


@router.delete("/invitations/{invitation_id}", status_code=status.HTTP_204_NO_CONTENT)
def revoke_invitation(
    invitation_id: UUID,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        InvitationService(db).revoke(actor_user_id, invitation_id)
    except DomainError as e:
        raise to_http(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
