# taskboard/api/workspaces.py
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from taskboard.api.deps import get_current_user_id
from taskboard.core.db import get_db
from taskboard.core.errors import DomainError, to_http
from taskboard.schemas.workspace import (
    WorkspaceCreate,
    WorkspaceMemberAdd,
    WorkspaceMemberRead,
    WorkspaceMemberRoleUpdate,
    WorkspaceRead,
    WorkspaceStats,
    WorkspaceUpdate,
)
from taskboard.services.membership_service import MembershipService
from taskboard.services.workspace_service import WorkspaceService

router = APIRouter(prefix="/workspaces")


@router.post(
    "",
    response_model=WorkspaceRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create workspace",
    description="The actor becomes the workspace owner. Requires global permission `workspace.create`.",
)
def create_workspace(
    data: WorkspaceCreate,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        return WorkspaceService(db).create_workspace(actor_id=actor_user_id, **data.model_dump())
    except DomainError as e:
        raise to_http(e)


@router.get("", response_model=list[WorkspaceRead], summary="List the actor's workspaces")
def list_workspaces(
    q: str | None = None,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    svc = WorkspaceService(db)
    if q:
        return svc.search_workspaces(actor_user_id, q)
    return svc.list_workspaces(actor_user_id)


@router.get("/by-slug/{slug}", response_model=WorkspaceRead)
def get_workspace_by_slug(
    slug: str,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        return WorkspaceService(db).get_by_slug(actor_user_id, slug)
    except DomainError as e:
        raise to_http(e)


@router.get("/{workspace_id}", response_model=WorkspaceRead)
def get_workspace(
    workspace_id: UUID,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        return WorkspaceService(db).get_workspace(actor_user_id, workspace_id)
    except DomainError as e:
        raise to_http(e)


@router.patch("/{workspace_id}", response_model=WorkspaceRead)
def update_workspace(
    workspace_id: UUID,
    data: WorkspaceUpdate,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        return WorkspaceService(db).update_workspace(
            actor_user_id, workspace_id, data.model_dump(exclude_unset=True)
        )
    except DomainError as e:
        raise to_http(e)


@router.delete("/{workspace_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_workspace(
    workspace_id: UUID,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        WorkspaceService(db).delete_workspace(actor_user_id, workspace_id)
    except DomainError as e:
        raise to_http(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{workspace_id}/stats", response_model=WorkspaceStats)
def workspace_stats(
    workspace_id: UUID,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        return WorkspaceService(db).workspace_stats(actor_user_id, workspace_id)
    except DomainError as e:
        raise to_http(e)


# ---- members ----


@router.get("/{workspace_id}/members", response_model=list[WorkspaceMemberRead])
def list_workspace_members(
    workspace_id: UUID,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        return MembershipService(db).list_workspace_members(actor_user_id, workspace_id)
    except DomainError as e:
        raise to_http(e)


@router.post(
    "/{workspace_id}/members",
    response_model=WorkspaceMemberRead,
    status_code=status.HTTP_201_CREATED,
    summary="Add workspace member",
    description="Requires `workspace.invite`. Only owners may add owners.",
)
def add_workspace_member(
    workspace_id: UUID,
    data: WorkspaceMemberAdd,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        return MembershipService(db).add_workspace_member(
            actor_user_id, workspace_id, data.user_id, data.role.value
        )
    except DomainError as e:
        raise to_http(e)


@router.put(
    "/{workspace_id}/members/{user_id}",
    response_model=WorkspaceMemberRead,
    summary="Change workspace member role",
    description="Requires `workspace.manage_roles`. Demoting the last owner returns 409.",
)
def update_workspace_member_role(
    workspace_id: UUID,
    user_id: UUID,
    data: WorkspaceMemberRoleUpdate,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        return MembershipService(db).update_workspace_member_role(
            actor_user_id, workspace_id, user_id, data.role.value
        )
    except DomainError as e:
        raise to_http(e)


@router.delete(
    "/{workspace_id}/members/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove workspace member (or leave)",
)
def remove_workspace_member(
    workspace_id: UUID,
    user_id: UUID,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        MembershipService(db).remove_workspace_member(actor_user_id, workspace_id, user_id)
    except DomainError as e:
        raise to_http(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
