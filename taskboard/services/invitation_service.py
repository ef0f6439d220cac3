# taskboard/services/invitation_service.py
from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from taskboard.core.config import settings
from taskboard.core.errors import Conflict, InvitationError, NotFound, PermissionDenied
from taskboard.core.rbac import ProjectRole, WorkspaceRole
from taskboard.models.activity_log import ActivityAction
from taskboard.models.base import utcnow
from taskboard.models.invitation import ProjectInvitation
from taskboard.models.profile import Profile
from taskboard.models.project import Project, ProjectMember
from taskboard.realtime.change_feed import ChangeType, change_feed
from taskboard.services.activity_service import ActivityService
from taskboard.services.membership_service import PROJECT, WORKSPACE, MembershipService
from taskboard.services.permission_service import PermissionContext, PermissionService, permission_service

logger = logging.getLogger(__name__)


def _as_utc(dt: datetime) -> datetime:
    # sqlite hands back naive datetimes
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def generate_token() -> str:
    return secrets.token_urlsafe(32)


class InvitationService:
    def __init__(self, db: Session, permissions: PermissionService = permission_service):
        self.db = db
        self.permissions = permissions
        self.members = MembershipService(db, permissions)
        self.activity = ActivityService(db, permissions)

    def _ctx(self, project_id: UUID) -> PermissionContext:
        return PermissionContext(project_id=project_id)

    def _pending(self, project_id: UUID, email: str) -> ProjectInvitation | None:
        now = utcnow()
        for inv in self.db.execute(
            select(ProjectInvitation).where(
                ProjectInvitation.project_id == project_id,
                ProjectInvitation.email == email,
                ProjectInvitation.accepted_at.is_(None),
            )
        ).scalars():
            if _as_utc(inv.expires_at) > now:
                return inv
        return None

    def invite(
        self,
        *,
        actor_id: UUID,
        project_id: UUID,
        email: str,
        role: str = ProjectRole.member.value,
        message: str | None = None,
        expires_in_days: int | None = None,
    ) -> ProjectInvitation:
        if self.db.get(Project, project_id) is None:
            raise NotFound("Project not found")

        self.permissions.assert_permission(self.db, actor_id, "team.invite", self._ctx(project_id))

        role = ProjectRole(role).value
        if role == ProjectRole.owner.value:
            actor_role = self.permissions.get_user_project_role(self.db, project_id, actor_id)
            if actor_role != ProjectRole.owner.value:
                raise PermissionDenied("Only owners can invite owners", role=actor_role)

        email = email.strip().lower()

        if self._pending(project_id, email) is not None:
            raise Conflict("A pending invitation already exists for this email", code="PENDING_INVITATION")

        existing_member = self.db.execute(
            select(ProjectMember.id)
            .join(Profile, Profile.id == ProjectMember.user_id)
            .where(ProjectMember.project_id == project_id, Profile.email == email)
        ).first()
        if existing_member is not None:
            raise Conflict("User is already a member of this project", code="ALREADY_MEMBER")

        days = settings.invitation_expiry_days if expires_in_days is None else expires_in_days
        inv = ProjectInvitation(
            project_id=project_id,
            email=email,
            role=role,
            token=generate_token(),
            invited_by=actor_id,
            message=message,
            expires_at=utcnow() + timedelta(days=days),
        )
        self.db.add(inv)
        self.db.flush()

        entry = self.activity.log(
            user_id=actor_id,
            project_id=project_id,
            entity_type="invitation",
            entity_id=inv.id,
            action=ActivityAction.invited,
            details={"email": email, "role": role},
        )

        self.db.commit()
        self.db.refresh(inv)
        change_feed.publish_row(inv, ChangeType.insert)
        if entry is not None:
            change_feed.publish_row(entry, ChangeType.insert)
        return inv

    def accept(self, *, actor_id: UUID, actor_email: str | None, token: str) -> ProjectMember:
        inv = self.db.execute(
            select(ProjectInvitation).where(
                ProjectInvitation.token == token,
                ProjectInvitation.accepted_at.is_(None),
            )
        ).scalar_one_or_none()
        if inv is None:
            raise InvitationError("Invitation not found or already used", code="INVALID_TOKEN")

        if _as_utc(inv.expires_at) <= utcnow():
            raise InvitationError("Invitation has expired", code="EXPIRED_INVITATION")

        if not actor_email or actor_email.strip().lower() != inv.email:
            raise InvitationError("Invitation was sent to a different email", code="EMAIL_MISMATCH")

        if self.permissions.get_user_project_role(self.db, inv.project_id, actor_id) is not None:
            raise Conflict("User is already a member of this project", code="ALREADY_MEMBER")

        project = self.db.get(Project, inv.project_id)
        new_rows = []
        if self.permissions.get_user_workspace_role(self.db, project.workspace_id, actor_id) is None:
            logger.info("Adding user %s to workspace %s as viewer via invitation", actor_id, project.workspace_id)
            new_rows.append(
                self.members.insert_member(WORKSPACE, project.workspace_id, actor_id, WorkspaceRole.viewer.value)
            )

        member = self.members.insert_member(PROJECT, inv.project_id, actor_id, inv.role)
        new_rows.append(member)
        inv.accepted_at = utcnow()

        entry = self.activity.log(
            user_id=actor_id,
            project_id=inv.project_id,
            entity_type="project_member",
            entity_id=actor_id,
            action=ActivityAction.joined,
            details={"role": inv.role, "invitation_id": str(inv.id)},
        )

        self.db.commit()
        self.db.refresh(member)
        self.permissions.clear_cache(actor_id)

        for row in new_rows:
            change_feed.publish_row(row, ChangeType.insert)
        change_feed.publish_row(inv, ChangeType.update)
        if entry is not None:
            change_feed.publish_row(entry, ChangeType.insert)
        return member

    def list_invitations(
        self, actor_id: UUID, project_id: UUID, *, include_accepted: bool = False
    ) -> list[ProjectInvitation]:
        if self.db.get(Project, project_id) is None:
            raise NotFound("Project not found")
        self.permissions.assert_permission(self.db, actor_id, "team.invite", self._ctx(project_id))

        stmt = select(ProjectInvitation).where(ProjectInvitation.project_id == project_id)
        if not include_accepted:
            stmt = stmt.where(ProjectInvitation.accepted_at.is_(None))
        return list(self.db.execute(stmt.order_by(ProjectInvitation.created_at.desc())).scalars())

    def revoke(self, actor_id: UUID, invitation_id: UUID) -> None:
        inv = self.db.get(ProjectInvitation, invitation_id)
        if inv is None:
            raise NotFound("Invitation not found")

        if inv.invited_by != actor_id:
            self.permissions.assert_permission(self.db, actor_id, "team.remove", self._ctx(inv.project_id))

        if inv.accepted_at is not None:
            raise InvitationError("Invitation was already accepted", code="INVALID_TOKEN")

        self.db.delete(inv)
        self.db.commit()
        change_feed.publish(
            "project_invitations",
            ChangeType.delete,
            {"id": invitation_id, "project_id": inv.project_id, "email": inv.email},
        )
