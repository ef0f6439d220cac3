# taskboard/schemas/task.py
from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from taskboard.models.task import TaskPriority, TaskStatus
from taskboard.schemas.common import StrictBaseModel


class TaskCreate(StrictBaseModel):
    title: str = Field(min_length=1, max_length=300)
    description: str | None = None
    status: TaskStatus = TaskStatus.todo
    priority: TaskPriority = TaskPriority.medium
    due_date: date | None = None
    assignee_id: UUID | None = None
    order_index: int | None = Field(default=None, ge=0)


class TaskUpdate(StrictBaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=300)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[date] = None
    # explicit null unassigns
    assignee_id: Optional[UUID] = None
    order_index: Optional[int] = Field(default=None, ge=0)

    # optimistic lock; omitted = last write wins
    expected_row_version: Optional[int] = Field(default=None, ge=1)


class TaskRead(BaseModel):
    id: UUID
    project_id: UUID
    title: str
    description: str | None = None
    status: TaskStatus
    priority: TaskPriority
    due_date: date | None = None
    assignee_id: UUID | None = None
    created_by: UUID
    order_index: int
    row_version: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class SubtaskCreate(StrictBaseModel):
    title: str = Field(min_length=1, max_length=300)
    description: str | None = None
    order_index: int | None = Field(default=None, ge=0)


class SubtaskUpdate(StrictBaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=300)
    description: Optional[str] = None
    completed: Optional[bool] = None
    order_index: Optional[int] = Field(default=None, ge=0)


class SubtaskRead(BaseModel):
    id: UUID
    task_id: UUID
    title: str
    description: str | None = None
    completed: bool
    order_index: int
    created_by: UUID | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TaskDetail(TaskRead):
    subtasks: list[SubtaskRead] = []


class TaskOrderItem(BaseModel):
    id: UUID
    order_index: int = Field(ge=0)


class TaskReorder(StrictBaseModel):
    items: list[TaskOrderItem] = Field(min_length=1)
