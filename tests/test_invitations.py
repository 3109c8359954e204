import asyncio
from datetime import timedelta

import pytest

import services.invitations as invitations_module
from constants import Collections, NotificationTypes
from exceptions import ConflictError, NotFoundError, PermissionDeniedError, ValidationError

pytestmark = pytest.mark.asyncio


@pytest.fixture
def sent_emails(monkeypatch):
    sent = []
    monkeypatch.setattr(invitations_module, "send_project_invitation_email", lambda **kwargs: sent.append(kwargs))
    return sent


@pytest.fixture
async def project(engine, alice):
    return await engine.projects.create_project(alice, "Site A", 100000)


# ── CREATE ────────────────────────────────────────────────────────────────────

async def test_create_invitation_defaults(engine, clock, store, project, alice):
    invitation = await engine.invitations.create_invitation(project.id, alice, "director")
    assert invitation.status == "pending"
    assert invitation.project_name == "Site A"
    assert invitation.invited_by_name == "Alice"
    assert invitation.created_at == clock.now
    assert invitation.expires_at == clock.now + timedelta(days=7)
    assert engine.invitations.invite_url(invitation) == f"{engine.ctx.frontend_url}/invite/{invitation.id}"
    assert store.doc(Collections.INVITATIONS, invitation.id)["member_role"] == "director"


async def test_only_admin_invites(engine, site_a, bob):
    with pytest.raises(PermissionDeniedError):
        await engine.invitations.create_invitation(site_a.id, bob, "labour")


async def test_invalid_role_and_expiry(engine, project, alice):
    with pytest.raises(ValidationError) as exc:
        await engine.invitations.create_invitation(project.id, alice, "admin")
    assert "member_role" in exc.value.field_errors

    with pytest.raises(ValidationError):
        await engine.invitations.create_invitation(project.id, alice, "labour", expiry_days=0)


async def test_invalid_email(engine, project, alice):
    with pytest.raises(ValidationError) as exc:
        await engine.invitations.create_invitation(project.id, alice, "labour", invited_email="not-an-email")
    assert "invited_email" in exc.value.field_errors


async def test_email_invite_sends_mail_and_notifies_registered_user(engine, store, project, alice, dana, sent_emails):
    invitation = await engine.invitations.create_invitation(project.id, alice, "labour", invited_email="Dana@Example.com")
    assert invitation.invited_email == "dana@example.com"

    [email] = sent_emails
    assert email["to_email"] == "dana@example.com"
    assert email["invite_url"] == f"{engine.ctx.frontend_url}/invite/{invitation.id}"
    assert email["role"] == "labour"

    [notification] = [n for n in store.docs(Collections.NOTIFICATIONS) if n["user_id"] == dana.id]
    assert notification["type"] == NotificationTypes.PROJECT_INVITE
    assert notification["data"]["invitation_id"] == invitation.id


async def test_email_failure_keeps_invitation(engine, store, project, alice, monkeypatch):
    def broken(**kwargs):
        raise RuntimeError("mail provider down")
    monkeypatch.setattr(invitations_module, "send_project_invitation_email", broken)

    invitation = await engine.invitations.create_invitation(project.id, alice, "labour", invited_email="someone@example.com")
    assert store.doc(Collections.INVITATIONS, invitation.id) is not None


# ── ACCEPT ────────────────────────────────────────────────────────────────────

async def test_accept_adds_member_with_role(engine, store, project, alice, bob):
    invitation = await engine.invitations.create_invitation(project.id, alice, "director")
    joined, member = await engine.invitations.accept_invitation(invitation.id, bob.id)

    assert member.role == "director"
    assert joined.is_director(bob.id)
    assert project.id in store.doc(Collections.USERS, bob.id)["project_ids"]

    stored = store.doc(Collections.INVITATIONS, invitation.id)
    assert stored["status"] == "accepted"
    assert stored["accepted_by"] == bob.id


async def test_invitation_is_single_use(engine, project, alice, bob, carl):
    invitation = await engine.invitations.create_invitation(project.id, alice, "labour")
    await engine.invitations.accept_invitation(invitation.id, bob.id)
    with pytest.raises(ConflictError):
        await engine.invitations.accept_invitation(invitation.id, carl.id)


async def test_concurrent_accepts_exactly_one_wins(engine, store, project, alice, bob, carl):
    invitation = await engine.invitations.create_invitation(project.id, alice, "labour")
    results = await asyncio.gather(
        engine.invitations.accept_invitation(invitation.id, bob.id),
        engine.invitations.accept_invitation(invitation.id, carl.id),
        return_exceptions=True,
    )
    assert sum(isinstance(r, ConflictError) for r in results) == 1
    assert sum(isinstance(r, tuple) for r in results) == 1
    assert len(store.doc(Collections.PROJECTS, project.id)["members"]) == 1


async def test_expired_invitation(engine, clock, project, alice, bob):
    invitation = await engine.invitations.create_invitation(project.id, alice, "labour")
    clock.advance(days=7)
    with pytest.raises(ConflictError):
        await engine.invitations.accept_invitation(invitation.id, bob.id)


async def test_accept_just_before_expiry(engine, clock, project, alice, bob):
    invitation = await engine.invitations.create_invitation(project.id, alice, "labour", expiry_days=1)
    clock.advance(hours=23, minutes=59)
    _, member = await engine.invitations.accept_invitation(invitation.id, bob.id)
    assert member.user_id == bob.id


async def test_email_must_match(engine, project, alice, bob, carl, sent_emails):
    invitation = await engine.invitations.create_invitation(project.id, alice, "labour", invited_email="bob@example.com")
    with pytest.raises(PermissionDeniedError):
        await engine.invitations.accept_invitation(invitation.id, carl.id)
    _, member = await engine.invitations.accept_invitation(invitation.id, bob.id)
    assert member.email == "bob@example.com"


async def test_admin_cannot_accept_own_invitation(engine, project, alice):
    invitation = await engine.invitations.create_invitation(project.id, alice, "labour")
    with pytest.raises(ConflictError):
        await engine.invitations.accept_invitation(invitation.id, alice.id)


async def test_existing_member_cannot_join_twice(engine, store, site_a, alice, bob):
    invitation = await engine.invitations.create_invitation(site_a.id, alice, "labour")
    with pytest.raises(ConflictError):
        await engine.invitations.accept_invitation(invitation.id, bob.id)
    assert store.doc(Collections.INVITATIONS, invitation.id)["status"] == "pending"
    assert len(store.doc(Collections.PROJECTS, site_a.id)["members"]) == 2


async def test_accept_unknown_invitation(engine, bob):
    with pytest.raises(NotFoundError):
        await engine.invitations.accept_invitation("missing", bob.id)


# ── CANCEL / LIST ─────────────────────────────────────────────────────────────

async def test_cancel_then_accept_fails(engine, project, alice, bob):
    invitation = await engine.invitations.create_invitation(project.id, alice, "labour")
    cancelled = await engine.invitations.cancel_invitation(invitation.id, alice.id)
    assert cancelled.status == "cancelled"

    with pytest.raises(ConflictError):
        await engine.invitations.accept_invitation(invitation.id, bob.id)
    with pytest.raises(ConflictError):
        await engine.invitations.cancel_invitation(invitation.id, alice.id)


async def test_only_admin_cancels(engine, site_a, alice, bob):
    invitation = await engine.invitations.create_invitation(site_a.id, alice, "labour")
    with pytest.raises(PermissionDeniedError):
        await engine.invitations.cancel_invitation(invitation.id, bob.id)


async def test_pending_list_hides_expired_and_used(engine, clock, site_a, alice, bob, carl, dana):
    used = await engine.invitations.create_invitation(site_a.id, alice, "labour")
    await engine.invitations.accept_invitation(used.id, dana.id)
    short = await engine.invitations.create_invitation(site_a.id, alice, "labour", expiry_days=1)
    long = await engine.invitations.create_invitation(site_a.id, alice, "director", expiry_days=14)

    assert {i.id for i in await engine.invitations.list_pending_invitations(site_a.id, bob.id)} == {short.id, long.id}

    clock.advance(days=2)
    assert [i.id for i in await engine.invitations.list_pending_invitations(site_a.id, alice.id)] == [long.id]

    with pytest.raises(PermissionDeniedError):
        await engine.invitations.list_pending_invitations(site_a.id, carl.id)
