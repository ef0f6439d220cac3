# taskboard/api/admin.py
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from taskboard.api.deps import Page, get_current_user_id, get_page
from taskboard.core.db import get_db
from taskboard.core.errors import DomainError, to_http
from taskboard.core.rbac import GlobalRole
from taskboard.schemas.profile import (
    AdminStats,
    AdminUserDetail,
    AdminUserPage,
    GlobalRoleUpdate,
    ProfileRead,
    ProfileUpdate,
)
from taskboard.services.profile_service import ProfileService

router = APIRouter()


@router.get("/me/profile", response_model=ProfileRead)
def get_my_profile(
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    profile = ProfileService(db).get_profile(actor_user_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile


@router.put("/me/profile", response_model=ProfileRead, summary="Create or update own profile")
def upsert_my_profile(
    data: ProfileUpdate,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    return ProfileService(db).upsert_profile(actor_user_id, email=data.email, full_name=data.full_name)


@router.put(
    "/admin/users/{user_id}/role",
    response_model=ProfileRead,
    summary="Set global role",
    description="Requires global permission `user.manage`.",
)
def set_global_role(
    user_id: UUID,
    data: GlobalRoleUpdate,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        return ProfileService(db).set_global_role(actor_user_id, user_id, data.role.value)
    except DomainError as e:
        raise to_http(e)


@router.get(
    "/admin/users",
    response_model=AdminUserPage,
    summary="List users",
    description="Requires `user.manage`. `q` matches email or full name.",
)
def list_users(
    q: str | None = None,
    role: GlobalRole | None = None,
    page: Page = Depends(get_page),
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        items, total = ProfileService(db).list_users(
            actor_user_id,
            query=q,
            role=role.value if role else None,
            limit=page.limit,
            offset=page.offset,
        )
    except DomainError as e:
        raise to_http(e)
    return AdminUserPage(items=items, total=total)


@router.get("/admin/users/search", response_model=AdminUserPage, summary="Search users by email or name")
def search_users(
    q: str = Query(min_length=1),
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        items, total = ProfileService(db).list_users(actor_user_id, query=q, limit=limit)
    except DomainError as e:
        raise to_http(e)
    return AdminUserPage(items=items, total=total)


@router.get("/admin/users/{user_id}", response_model=AdminUserDetail, summary="User with workspace and project roles")
def get_user(
    user_id: UUID,
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        return ProfileService(db).get_user_with_roles(actor_user_id, user_id)
    except DomainError as e:
        raise to_http(e)


@router.get("/admin/stats", response_model=AdminStats, summary="System-wide counts")
def admin_stats(
    db: Session = Depends(get_db),
    actor_user_id: UUID = Depends(get_current_user_id),
):
    try:
        return ProfileService(db).admin_stats(actor_user_id)
    except DomainError as e:
        raise to_http(e)
