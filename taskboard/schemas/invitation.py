# taskboard/schemas/invitation.py
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from taskboard.core.rbac import ProjectRole
from taskboard.schemas.common import EMAIL_PATTERN, StrictBaseModel


class InvitationCreate(StrictBaseModel):
    email: str = Field(min_length=3, max_length=320, pattern=EMAIL_PATTERN)
    role: ProjectRole = ProjectRole.member
    message: str | None = Field(default=None, max_length=2000)
    expires_in_days: int | None = Field(default=None, ge=1, le=90)


class InvitationAccept(StrictBaseModel):
    token: str = Field(min_length=1, max_length=64)


class InvitationRead(BaseModel):
    id: UUID
    project_id: UUID
    email: str
    role: ProjectRole
    invited_by: UUID
    message: str | None = None
    expires_at: datetime
    accepted_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class InvitationCreated(InvitationRead):
    # returned once, to the inviter, so it can be delivered out of band
    token: str
