import uuid
from datetime import datetime, timedelta, timezone

import pytest

from taskboard.core.errors import Conflict, InvitationError, PermissionDenied
from taskboard.models.invitation import ProjectInvitation
from taskboard.services.invitation_service import InvitationService
from taskboard.services.permission_service import permission_service
from tests.factories import activity_actions, make_invitation, make_profile, make_project, make_project_member


def test_invite_creates_pending_invitation(db):
    project = make_project(db)
    svc = InvitationService(db)

    inv = svc.invite(actor_id=project.owner_id, project_id=project.id, email="  New.Person@Example.com ")

    assert inv.email == "new.person@example.com"
    assert inv.role == "member"
    assert inv.accepted_at is None
    assert len(inv.token) >= 32
    assert activity_actions(db, project_id=project.id) == ["invited"]


def test_duplicate_pending_invitation_conflicts(db):
    project = make_project(db)
    svc = InvitationService(db)
    svc.invite(actor_id=project.owner_id, project_id=project.id, email="a@example.com")

    with pytest.raises(Conflict) as exc:
        svc.invite(actor_id=project.owner_id, project_id=project.id, email="A@example.com")
    assert exc.value.code == "PENDING_INVITATION"


def test_expired_invitation_does_not_block_new_one(db):
    project = make_project(db)
    make_invitation(
        db,
        project_id=project.id,
        invited_by=project.owner_id,
        email="a@example.com",
        expires_at=datetime.now(tz=timezone.utc) - timedelta(days=1),
    )

    inv = InvitationService(db).invite(actor_id=project.owner_id, project_id=project.id, email="a@example.com")
    assert inv.email == "a@example.com"


def test_inviting_existing_member_conflicts(db):
    project = make_project(db)
    member = make_project_member(db, project_id=project.id, role="member", with_workspace=True).user_id
    make_profile(db, user_id=member, email="member@example.com")

    with pytest.raises(Conflict) as exc:
        InvitationService(db).invite(actor_id=project.owner_id, project_id=project.id, email="member@example.com")
    assert exc.value.code == "ALREADY_MEMBER"


def test_member_cannot_invite(db):
    project = make_project(db)
    member = make_project_member(db, project_id=project.id, role="member", with_workspace=True).user_id

    with pytest.raises(PermissionDenied):
        InvitationService(db).invite(actor_id=member, project_id=project.id, email="x@example.com")


def test_only_owner_invites_owner(db):
    project = make_project(db)
    admin = make_project_member(db, project_id=project.id, role="admin", with_workspace=True).user_id

    with pytest.raises(PermissionDenied):
        InvitationService(db).invite(actor_id=admin, project_id=project.id, email="x@example.com", role="owner")


def test_accept_adds_member_and_workspace_viewer(db):
    project = make_project(db)
    inv = make_invitation(db, project_id=project.id, invited_by=project.owner_id, role="member")
    user = uuid.uuid4()

    member = InvitationService(db).accept(actor_id=user, actor_email="Invitee@Example.com", token=inv.token)

    assert member.role == "member"
    assert permission_service.get_user_workspace_role(db, project.workspace_id, user) == "viewer"
    assert db.get(ProjectInvitation, inv.id).accepted_at is not None
    assert activity_actions(db, project_id=project.id) == ["joined"]


def test_accept_twice_is_invalid_token(db):
    project = make_project(db)
    inv = make_invitation(db, project_id=project.id, invited_by=project.owner_id)
    svc = InvitationService(db)
    svc.accept(actor_id=uuid.uuid4(), actor_email=inv.email, token=inv.token)

    with pytest.raises(InvitationError) as exc:
        svc.accept(actor_id=uuid.uuid4(), actor_email=inv.email, token=inv.token)
    assert exc.value.code == "INVALID_TOKEN"


def test_accept_expired_invitation(db):
    project = make_project(db)
    inv = make_invitation(
        db,
        project_id=project.id,
        invited_by=project.owner_id,
        expires_at=datetime.now(tz=timezone.utc) - timedelta(minutes=1),
    )

    with pytest.raises(InvitationError) as exc:
        InvitationService(db).accept(actor_id=uuid.uuid4(), actor_email=inv.email, token=inv.token)
    assert exc.value.code == "EXPIRED_INVITATION"


def test_accept_with_other_email(db):
    project = make_project(db)
    inv = make_invitation(db, project_id=project.id, invited_by=project.owner_id)

    with pytest.raises(InvitationError) as exc:
        InvitationService(db).accept(actor_id=uuid.uuid4(), actor_email="someone@else.com", token=inv.token)
    assert exc.value.code == "EMAIL_MISMATCH"


def test_accept_by_existing_member_conflicts(db):
    project = make_project(db)
    member = make_project_member(db, project_id=project.id, role="viewer", with_workspace=True).user_id
    inv = make_invitation(db, project_id=project.id, invited_by=project.owner_id)

    with pytest.raises(Conflict):
        InvitationService(db).accept(actor_id=member, actor_email=inv.email, token=inv.token)


def test_list_and_revoke(db):
    project = make_project(db)
    svc = InvitationService(db)
    inv = svc.invite(actor_id=project.owner_id, project_id=project.id, email="a@example.com")

    assert [i.id for i in svc.list_invitations(project.owner_id, project.id)] == [inv.id]

    svc.revoke(project.owner_id, inv.id)
    assert svc.list_invitations(project.owner_id, project.id, include_accepted=True) == []


def test_revoke_accepted_invitation_fails(db):
    project = make_project(db)
    inv = make_invitation(db, project_id=project.id, invited_by=project.owner_id)
    svc = InvitationService(db)
    svc.accept(actor_id=uuid.uuid4(), actor_email=inv.email, token=inv.token)

    with pytest.raises(InvitationError):
        svc.revoke(project.owner_id, inv.id)
