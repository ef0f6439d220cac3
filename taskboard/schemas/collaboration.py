# taskboard/schemas/collaboration.py
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from taskboard.models.comment import EntityType
from taskboard.schemas.common import StrictBaseModel


class CommentCreate(StrictBaseModel):
    entity_type: EntityType
    entity_id: UUID
    content: str = Field(min_length=1, max_length=10000)


class CommentUpdate(StrictBaseModel):
    content: str = Field(min_length=1, max_length=10000)


class CommentRead(BaseModel):
    id: UUID
    entity_type: EntityType
    entity_id: UUID
    project_id: UUID
    user_id: UUID
    content: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AttachmentCreate(StrictBaseModel):
    entity_type: EntityType
    entity_id: UUID
    file_name: str = Field(min_length=1, max_length=500)
    storage_path: str = Field(min_length=1)
    file_size: int | None = Field(default=None, ge=0)
    file_type: str | None = None


class AttachmentRead(BaseModel):
    id: UUID
    entity_type: EntityType
    entity_id: UUID
    project_id: UUID
    user_id: UUID
    file_name: str
    file_size: int | None = None
    file_type: str | None = None
    storage_path: str
    created_at: datetime

    model_config = {"from_attributes": True}
