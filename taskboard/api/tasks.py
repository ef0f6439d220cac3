# taskboard/api/tasks.py
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, Response, status
from sqlalchemy.orm import Session

from taskboard.api.deps import Page, get_current_user_id, get_page
from taskboard.core.db import get_db
from taskboard.core.errors import DomainError, to_http
from taskboard.models.task import TaskPriority, TaskStatus
from taskboard.schemas.task import (
    SubtaskCreate,
    SubtaskRead,
    SubtaskUpdate,
    TaskCreate,
    TaskDetail,
    TaskRead,
    TaskReorder,
    TaskUpdate,
)
from taskboard.services.task_service import TaskService

router = APIRouter()


TASK_UPDATE_OPENAPI_EXAMPLES = {
    "complete": {
        "summary": "Complete a task",
        "description": "Needs `task.edit` and `task.status.change`. Logged as `completed`.",
        "value": {"status": "done", "expected_row_version": 3},
    },
    "assign": {
        "summary": "Assign a task",
        "description": "Needs `task.assign`. The assignee must be a project member.",
        "value": {"assignee_id": "44444444-4444-4444-4444-444444444444"},
    },
    "unassign": {
        "summary": "Unassign a task",
        "value": {"assignee_id": None},
    },
}


def _enum_values(changes: dict) -> dict:
    return {k: getattr(v, "value", v) for k, v in changes.items()}


@router.post(
    "/projects/{project_id}/tasks",
    response_model=TaskRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create task",
)
def create_task(
    project_id: UUID,
    data: TaskCreate,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        return TaskService(db).create_task(
            actor_id=actor_user_id,
            project_id=project_id,
            **_enum_values(data.model_dump()),
        )
    except DomainError as e:
        raise to_http(e)


@router.get("/projects/{project_id}/tasks", response_model=list[TaskRead])
def list_project_tasks(
    project_id: UUID,
    task_status: TaskStatus | None = Query(default=None, alias="status"),
    priority: TaskPriority | None = None,
    assignee_id: UUID | None = None,
    page: Page = Depends(get_page),
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        return TaskService(db).list_project_tasks(
            actor_user_id,
            project_id,
            status=task_status.value if task_status else None,
            priority=priority.value if priority else None,
            assignee_id=assignee_id,
            limit=page.limit,
            offset=page.offset,
        )
    except DomainError as e:
        raise to_http(e)


@router.put("/projects/{project_id}/tasks/order", response_model=list[TaskRead], summary="Reorder tasks")
def reorder_tasks(
    project_id: UUID,
    data: TaskReorder,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        return TaskService(db).reorder_tasks(
            actor_user_id, project_id, [(item.id, item.order_index) for item in data.items]
        )
    except DomainError as e:
        raise to_http(e)


@router.get("/tasks/mine", response_model=list[TaskRead], summary="Tasks assigned to the actor")
def my_tasks(
    task_status: TaskStatus | None = Query(default=None, alias="status"),
    page: Page = Depends(get_page),
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    return TaskService(db).my_tasks(
        actor_user_id,
        status=task_status.value if task_status else None,
        limit=page.limit,
        offset=page.offset,
    )


@router.get("/tasks/search", response_model=list[TaskRead], summary="Search tasks by title/description")
def search_tasks(
    q: str = Query(min_length=1),
    project_id: UUID | None = None,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        return TaskService(db).search_tasks(actor_user_id, q, project_id=project_id)
    except DomainError as e:
        raise to_http(e)


@router.get("/tasks/{task_id}", response_model=TaskDetail)
def get_task(
    task_id: UUID,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        task, subtasks = TaskService(db).get_task(actor_user_id, task_id)
    except DomainError as e:
        raise to_http(e)

    return TaskDetail(
        **TaskRead.model_validate(task).model_dump(),
        subtasks=[SubtaskRead.model_validate(s) for s in subtasks],
    )


@router.patch(
    "/tasks/{task_id}",
    response_model=TaskRead,
    summary="Update task",
    description=(
        "Partial update. Status, assignee and priority changes need their own permissions. "
        "With `expected_row_version`, a stale version returns 409."
    ),
)
def update_task(
    task_id: UUID,
    data: TaskUpdate = Body(..., openapi_examples=TASK_UPDATE_OPENAPI_EXAMPLES),
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    changes = data.model_dump(exclude_unset=True)
    expected = changes.pop("expected_row_version", None)
    try:
        return TaskService(db).update_task(
            actor_user_id, task_id, _enum_values(changes), expected_row_version=expected
        )
    except DomainError as e:
        raise to_http(e)


@router.delete("/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(
    task_id: UUID,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        TaskService(db).delete_task(actor_user_id, task_id)
    except DomainError as e:
        raise to_http(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---- subtasks ----


@router.get("/tasks/{task_id}/subtasks", response_model=list[SubtaskRead])
def list_subtasks(
    task_id: UUID,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        return TaskService(db).list_subtasks(actor_user_id, task_id)
    except DomainError as e:
        raise to_http(e)


@router.post("/tasks/{task_id}/subtasks", response_model=SubtaskRead, status_code=status.HTTP_201_CREATED)
def create_subtask(
    task_id: UUID,
    data: SubtaskCreate,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        return TaskService(db).create_subtask(actor_id=actor_user_id, task_id=task_id, **data.model_dump())
    except DomainError as e:
        raise to_http(e)


@router.patch("/subtasks/{subtask_id}", response_model=SubtaskRead)
def update_subtask(
    subtask_id: UUID,
    data: SubtaskUpdate,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        return TaskService(db).update_subtask(actor_user_id, subtask_id, data.model_dump(exclude_unset=True))
    except DomainError as e:
        raise to_http(e)


@router.post("/subtasks/{subtask_id}/toggle", response_model=SubtaskRead, summary="Toggle subtask completion")
def toggle_subtask(
    subtask_id: UUID,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        return TaskService(db).toggle_subtask(actor_user_id, subtask_id)
    except DomainError as e:
        raise to_http(e)


@router.delete("/subtasks/{subtask_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_subtask(
    subtask_id: UUID,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        TaskService(db).delete_subtask(actor_user_id, subtask_id)
    except DomainError as e:
        raise to_http(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
