# taskboard/schemas/permission.py
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from taskboard.schemas.common import StrictBaseModel


class PermissionCheckRequest(StrictBaseModel):
    permissions: list[str] = Field(min_length=1, max_length=100)
    workspace_id: UUID | None = None
    project_id: UUID | None = None
    task_id: UUID | None = None


class PermissionCheckResult(BaseModel):
    permission: str
    has_permission: bool
    reason: str | None = None
    required_role: str | None = None
    source: str | None = None


class CustomPermissionCreate(StrictBaseModel):
    user_id: UUID
    permission: str = Field(min_length=1, max_length=100)
    granted: bool = True
    workspace_id: UUID | None = None
    project_id: UUID | None = None
    task_id: UUID | None = None


class CustomPermissionRead(BaseModel):
    id: UUID
    user_id: UUID
    permission: str
    workspace_id: UUID | None = None
    project_id: UUID | None = None
    task_id: UUID | None = None
    granted: bool
    granted_by: UUID
    granted_at: datetime

    model_config = {"from_attributes": True}


class PermissionSummaryRead(BaseModel):
    user_id: UUID
    global_role: str
    workspace_role: str | None = None
    project_role: str | None = None
    permissions: list[str]
    custom_permissions: list[CustomPermissionRead]
    can_manage: list[str]

    model_config = {"from_attributes": True}
