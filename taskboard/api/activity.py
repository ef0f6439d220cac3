# taskboard/api/activity.py
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from taskboard.api.deps import Page, get_current_user_id, get_page
from taskboard.core.db import get_db
from taskboard.core.errors import DomainError, to_http
from taskboard.models.activity_log import ActivityAction
from taskboard.schemas.activity import ActivityRead, ActivityStats, UserActivitySummary
from taskboard.services.activity_service import ActivityService

router = APIRouter()


@router.get("/projects/{project_id}/activity", response_model=list[ActivityRead])
def project_activity(
    project_id: UUID,
    action: ActivityAction | None = None,
    entity_type: str | None = None,
    user_id: UUID | None = None,
    page: Page = Depends(get_page),
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        return ActivityService(db).project_activity(
            actor_user_id,
            project_id,
            action=action.value if action else None,
            entity_type=entity_type,
            user_id=user_id,
            limit=page.limit,
            offset=page.offset,
        )
    except DomainError as e:
        raise to_http(e)


@router.get("/projects/{project_id}/activity/stats", response_model=ActivityStats)
def activity_stats(
    project_id: UUID,
    since: datetime | None = None,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        return ActivityService(db).activity_stats(actor_user_id, project_id, since=since)
    except DomainError as e:
        raise to_http(e)


@router.get("/activity/recent", response_model=list[ActivityRead], summary="Recent activity in the actor's projects")
def recent_activity(
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    return ActivityService(db).recent_activity(actor_user_id, limit=limit)


@router.get("/activity/me", response_model=UserActivitySummary, summary="Activity summary of the actor")
def my_activity_summary(
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    return ActivityService(db).user_summary(actor_user_id)
