# taskboard/api/permissions.py
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from taskboard.api.deps import get_current_user_id
from taskboard.core.db import get_db
from taskboard.core.errors import DomainError, to_http
from taskboard.core.rbac import permission_scope
from taskboard.models.custom_permission import CustomPermission
from taskboard.schemas.permission import (
    CustomPermissionCreate,
    CustomPermissionRead,
    PermissionCheckRequest,
    PermissionCheckResult,
    PermissionSummaryRead,
)
from taskboard.services.permission_service import PermissionContext, permission_service

router = APIRouter(prefix="/permissions")


def _manage_permission(db: Session, context: PermissionContext) -> tuple[str, PermissionContext]:
    """Who may grant overrides: project -> team.role.change, workspace -> workspace.manage_roles, else user.manage."""
    full = permission_service.complete_context(db, context)
    if full.project_id is not None:
        return "team.role.change", full
    if full.workspace_id is not None:
        return "workspace.manage_roles", full
    return "user.manage", full


@router.post(
    "/check",
    response_model=list[PermissionCheckResult],
    summary="Check the actor's permissions",
    description="Never fails for a denied permission: each result carries the decision and the reason.",
)
def check_permissions(
    data: PermissionCheckRequest,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    context = PermissionContext(workspace_id=data.workspace_id, project_id=data.project_id, task_id=data.task_id)
    out = []
    for permission in data.permissions:
        r = permission_service.has_permission(db, actor_user_id, permission, context)
        out.append(
            PermissionCheckResult(
                permission=permission,
                has_permission=r.has_permission,
                reason=r.reason,
                required_role=r.required_role,
                source=r.source,
            )
        )
    return out


@router.get("/summary", response_model=PermissionSummaryRead)
def permission_summary(
    workspace_id: UUID | None = None,
    project_id: UUID | None = None,
    task_id: UUID | None = None,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    context = PermissionContext(workspace_id=workspace_id, project_id=project_id, task_id=task_id)
    summary = permission_service.get_permission_summary(db, actor_user_id, context)
    return PermissionSummaryRead.model_validate(summary)


@router.get("/me", response_model=list[str], summary="Effective permissions of the actor in a context")
def my_permissions(
    workspace_id: UUID | None = None,
    project_id: UUID | None = None,
    task_id: UUID | None = None,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    context = PermissionContext(workspace_id=workspace_id, project_id=project_id, task_id=task_id)
    return permission_service.get_user_permissions(db, actor_user_id, context)


@router.post(
    "/custom",
    response_model=CustomPermissionRead,
    status_code=status.HTTP_201_CREATED,
    summary="Grant or deny a single permission to a user",
)
def grant_custom_permission(
    data: CustomPermissionCreate,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        permission_scope(data.permission)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    context = PermissionContext(workspace_id=data.workspace_id, project_id=data.project_id, task_id=data.task_id)
    manage, full = _manage_permission(db, context)
    try:
        permission_service.assert_permission(db, actor_user_id, manage, full)
        permission_service.authorize_override(
            db, actor_user_id, data.user_id, data.permission, full, granted=data.granted
        )
        return permission_service.grant_custom_permission(
            db,
            user_id=data.user_id,
            permission=data.permission,
            granted_by=actor_user_id,
            context=context,
            granted=data.granted,
        )
    except DomainError as e:
        raise to_http(e)


@router.get("/custom", response_model=list[CustomPermissionRead])
def list_custom_permissions(
    user_id: UUID,
    workspace_id: UUID | None = None,
    project_id: UUID | None = None,
    task_id: UUID | None = None,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    context = PermissionContext(workspace_id=workspace_id, project_id=project_id, task_id=task_id)
    if user_id != actor_user_id:
        manage, full = _manage_permission(db, context)
        try:
            permission_service.assert_permission(db, actor_user_id, manage, full)
        except DomainError as e:
            raise to_http(e)
    return permission_service.get_custom_permissions(db, user_id, context)


@router.delete("/custom/{override_id}", status_code=status.HTTP_204_NO_CONTENT)
def revoke_custom_permission(
    override_id: UUID,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    cp = db.get(CustomPermission, override_id)
    if cp is None:
        raise HTTPException(status_code=404, detail="Custom permission not found")

    context = PermissionContext(workspace_id=cp.workspace_id, project_id=cp.project_id, task_id=cp.task_id)
    manage, full = _manage_permission(db, context)
    try:
        permission_service.assert_permission(db, actor_user_id, manage, full)
        # removing a grant takes a permission away, removing a deny gives one
        permission_service.authorize_override(
            db, actor_user_id, cp.user_id, cp.permission, full, granted=not cp.granted
        )
        permission_service.revoke_custom_permission(db, override_id)
    except DomainError as e:
        raise to_http(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
