# taskboard/schemas/profile.py
from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

from taskboard.core.rbac import GlobalRole
from taskboard.schemas.common import EMAIL_PATTERN, StrictBaseModel


class ProfileUpdate(StrictBaseModel):
    email: str | None = Field(default=None, min_length=3, max_length=320, pattern=EMAIL_PATTERN)
    full_name: str | None = Field(default=None, max_length=200)


class GlobalRoleUpdate(StrictBaseModel):
    role: GlobalRole


class ProfileRead(BaseModel):
    id: UUID
    email: str | None = None
    full_name: str | None = None
    role: GlobalRole
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AdminUserRead(BaseModel):
    id: UUID
    email: str | None = None
    full_name: str | None = None
    role: GlobalRole
    created_at: datetime
    workspace_count: int
    project_count: int


class AdminUserPage(BaseModel):
    items: list[AdminUserRead]
    total: int


class UserRoleRead(BaseModel):
    context_type: Literal["workspace", "project"]
    context_id: UUID
    context_name: str
    role: str
    granted_at: datetime


class AdminUserDetail(BaseModel):
    id: UUID
    email: str | None = None
    full_name: str | None = None
    global_role: GlobalRole
    workspace_count: int
    project_count: int
    roles: list[UserRoleRead]


class AdminStats(BaseModel):
    total_users: int
    system_admins: int
    total_workspaces: int
    total_projects: int
    active_projects: int
    total_tasks: int
    completed_tasks: int
