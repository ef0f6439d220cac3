# taskboard/api/projects.py
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from taskboard.api.deps import Page, get_current_user_id, get_page
from taskboard.core.db import get_db
from taskboard.core.errors import DomainError, to_http
from taskboard.models.project import ProjectStatus
from taskboard.schemas.project import (
    ProjectCreate,
    ProjectMemberAdd,
    ProjectMemberRead,
    ProjectMemberRoleUpdate,
    ProjectRead,
    ProjectUpdate,
)
from taskboard.services.membership_service import MembershipService
from taskboard.services.project_service import ProjectService

router = APIRouter(prefix="/projects")


@router.post(
    "",
    response_model=ProjectRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create project",
    description="Requires `workspace.create_projects` in the target workspace. The actor becomes project owner.",
)
def create_project(
    data: ProjectCreate,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        return ProjectService(db).create_project(actor_id=actor_user_id, **data.model_dump())
    except DomainError as e:
        raise to_http(e)


@router.get("", response_model=list[ProjectRead], summary="List projects the actor can view")
def list_projects(
    workspace_id: UUID | None = None,
    project_status: ProjectStatus | None = Query(default=None, alias="status"),
    page: Page = Depends(get_page),
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    return ProjectService(db).list_projects(
        actor_user_id,
        workspace_id=workspace_id,
        status=project_status.value if project_status else None,
        limit=page.limit,
        offset=page.offset,
    )


@router.get("/search", response_model=list[ProjectRead], summary="Search visible projects by title")
def search_projects(
    q: str = Query(min_length=1),
    workspace_id: UUID | None = None,
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    return ProjectService(db).search_projects(actor_user_id, q, workspace_id=workspace_id, limit=limit)


@router.get("/{project_id}", response_model=ProjectRead)
def get_project(
    project_id: UUID,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        return ProjectService(db).get_project(actor_user_id, project_id)
    except DomainError as e:
        raise to_http(e)


@router.patch("/{project_id}", response_model=ProjectRead)
def update_project(
    project_id: UUID,
    data: ProjectUpdate,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    changes = data.model_dump(exclude_unset=True)
    if changes.get("status") is not None:
        changes["status"] = changes["status"].value
    try:
        return ProjectService(db).update_project(actor_user_id, project_id, changes)
    except DomainError as e:
        raise to_http(e)


@router.post("/{project_id}/archive", response_model=ProjectRead, summary="Archive project")
def archive_project(
    project_id: UUID,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        return ProjectService(db).archive_project(actor_user_id, project_id)
    except DomainError as e:
        raise to_http(e)


@router.post("/{project_id}/restore", response_model=ProjectRead, summary="Restore archived project")
def restore_project(
    project_id: UUID,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        return ProjectService(db).restore_project(actor_user_id, project_id)
    except DomainError as e:
        raise to_http(e)


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_project(
    project_id: UUID,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        ProjectService(db).delete_project(actor_user_id, project_id)
    except DomainError as e:
        raise to_http(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---- members ----


@router.get("/{project_id}/members", response_model=list[ProjectMemberRead])
def list_project_members(
    project_id: UUID,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        return MembershipService(db).list_project_members(actor_user_id, project_id)
    except DomainError as e:
        raise to_http(e)


@router.post(
    "/{project_id}/members",
    response_model=ProjectMemberRead,
    status_code=status.HTTP_201_CREATED,
    summary="Add project member",
    description="Requires `team.invite`. The user must already belong to the project's workspace.",
)
def add_project_member(
    project_id: UUID,
    data: ProjectMemberAdd,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        return MembershipService(db).add_project_member(actor_user_id, project_id, data.user_id, data.role.value)
    except DomainError as e:
        raise to_http(e)


@router.put(
    "/{project_id}/members/{user_id}",
    response_model=ProjectMemberRead,
    summary="Change project member role",
    description="Requires `team.role.change`. Demoting the last owner returns 409.",
)
def update_project_member_role(
    project_id: UUID,
    user_id: UUID,
    data: ProjectMemberRoleUpdate,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        return MembershipService(db).update_project_member_role(
            actor_user_id, project_id, user_id, data.role.value
        )
    except DomainError as e:
        raise to_http(e)


@router.delete(
    "/{project_id}/members/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove project member (or leave)",
)
def remove_project_member(
    project_id: UUID,
    user_id: UUID,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        MembershipService(db).remove_project_member(actor_user_id, project_id, user_id)
    except DomainError as e:
        raise to_http(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
