# taskboard/schemas/workspace.py
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from taskboard.core.rbac import WorkspaceRole
from taskboard.schemas.common import StrictBaseModel


class WorkspaceCreate(StrictBaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    logo_url: str | None = None
    settings: dict[str, Any] | None = None


class WorkspaceUpdate(StrictBaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    logo_url: Optional[str] = None
    settings: Optional[dict[str, Any]] = None


class WorkspaceRead(BaseModel):
    id: UUID
    name: str
    slug: str
    description: str | None = None
    logo_url: str | None = None
    settings: dict[str, Any]
    created_by: UUID
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class WorkspaceStats(BaseModel):
    workspace_id: UUID
    member_count: int
    project_count: int
    active_project_count: int
    task_count: int


class WorkspaceMemberAdd(StrictBaseModel):
    user_id: UUID
    role: WorkspaceRole = WorkspaceRole.member


class WorkspaceMemberRoleUpdate(StrictBaseModel):
    role: WorkspaceRole


class WorkspaceMemberRead(BaseModel):
    id: UUID
    workspace_id: UUID
    user_id: UUID
    role: WorkspaceRole
    created_at: datetime

    model_config = {"from_attributes": True}
