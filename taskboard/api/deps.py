# taskboard/api/deps.py
from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, Header, HTTPException

from taskboard.core.config import settings


# -----------------------------------------------------------------------------
# Headers-only auth. Roles are never read from headers: they are resolved from
# memberships by the permission service.
# -----------------------------------------------------------------------------


def get_current_user_id(
    x_actor_user_id: str | None = Header(
        default=None,
        alias="X-Actor-User-Id",
        description="UUID of the user performing the request.",
        examples=["33333333-3333-3333-3333-333333333333"],
    ),
) -> UUID:
    if not x_actor_user_id:
        raise HTTPException(status_code=401, detail="Missing X-Actor-User-Id header")
    try:
        return UUID(x_actor_user_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail="Invalid X-Actor-User-Id format (must be UUID)") from e


def get_actor_email(
    x_actor_email: str | None = Header(
        default=None,
        alias="X-Actor-Email",
        description="Email of the actor. Needed to accept invitations.",
        examples=["alice@example.com"],
    ),
) -> str | None:
    if not x_actor_email or not x_actor_email.strip():
        return None
    return x_actor_email.strip().lower()


@dataclass(frozen=True)
class ActorContext:
    user_id: UUID
    email: str | None


def get_actor_context(
    user_id: UUID = Depends(get_current_user_id),
    email: str | None = Depends(get_actor_email),
) -> ActorContext:
    return ActorContext(user_id=user_id, email=email)


@dataclass(frozen=True)
class Page:
    limit: int
    offset: int


def get_page(limit: int | None = None, offset: int = 0) -> Page:
    if limit is None:
        limit = settings.default_page_size
    if limit < 1 or offset < 0:
        raise HTTPException(status_code=422, detail="limit must be >= 1 and offset >= 0")
    return Page(limit=min(limit, settings.max_page_size), offset=offset)
