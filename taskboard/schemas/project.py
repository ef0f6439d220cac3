# taskboard/schemas/project.py
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from taskboard.core.rbac import ProjectRole
from taskboard.models.project import ProjectStatus
from taskboard.schemas.common import StrictBaseModel


class ProjectCreate(StrictBaseModel):
    workspace_id: UUID
    title: str = Field(min_length=1, max_length=300)
    description: str | None = None
    color: str | None = Field(default=None, max_length=32)
    is_template: bool = False


class ProjectUpdate(StrictBaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=300)
    description: Optional[str] = None
    color: Optional[str] = Field(default=None, max_length=32)
    # archived is reachable only through /archive and /restore
    status: Optional[ProjectStatus] = None
    is_template: Optional[bool] = None


class ProjectRead(BaseModel):
    id: UUID
    workspace_id: UUID
    title: str
    description: str | None = None
    color: str | None = None
    status: ProjectStatus
    is_template: bool
    owner_id: UUID
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ProjectMemberAdd(StrictBaseModel):
    user_id: UUID
    role: ProjectRole = ProjectRole.member


class ProjectMemberRoleUpdate(StrictBaseModel):
    role: ProjectRole


class ProjectMemberRead(BaseModel):
    id: UUID
    project_id: UUID
    user_id: UUID
    role: ProjectRole
    created_at: datetime

    model_config = {"from_attributes": True}
