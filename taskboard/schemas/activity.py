# taskboard/schemas/activity.py
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel

from taskboard.models.activity_log import ActivityAction


class ActivityRead(BaseModel):
    id: UUID
    user_id: UUID | None = None
    project_id: UUID | None = None
    entity_type: str
    entity_id: UUID
    action: ActivityAction
    details: dict[str, Any] | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ActivityStats(BaseModel):
    project_id: UUID
    total: int
    by_action: dict[str, int]
    by_user: dict[str, int]


class UserActivitySummary(BaseModel):
    user_id: UUID
    total: int
    by_action: dict[str, int]
    by_project: dict[str, int]
    last_activity_at: datetime | None = None
