"""
Invitee-side invitation tests.

Listing, accept, reject and token acceptance for both invitation scopes,
including the expiry boundary and replayed accepts.
"""

from datetime import UTC, datetime, timedelta
from uuid import UUID

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from projecthub.models import (
    OrganizationInvitation,
    OrganizationMember,
    OrganizationRole,
    ProjectInvitation,
    ProjectMember,
    ProjectRole,
)
from projecthub.services import invitation_service

ORGS_URL = "/api/v1/organizations"
USER_INVITATIONS_URL = "/api/v1/user/invitations"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def create_org(client, user, name: str = "Acme") -> str:
    response = await client.post(ORGS_URL, json={"name": name}, headers=user.headers)
    return response.json()["data"]["id"]


async def invite(client, admin, org_id: str, email: str) -> None:
    response = await client.post(
        f"{ORGS_URL}/{org_id}/invitations", json={"emails": [email]}, headers=admin.headers
    )
    assert response.status_code == 200, response.text


async def pending_invitations(client, user, **params) -> list[dict]:
    response = await client.get(USER_INVITATIONS_URL, params=params, headers=user.headers)
    assert response.status_code == 200, response.text
    return response.json()["data"]["invitations"]


async def respond(client, user, invitation_id: str, action: str, kind: str = "organization"):
    return await client.post(
        f"{USER_INVITATIONS_URL}/{invitation_id}",
        json={"action": action, "type": kind},
        headers=user.headers,
    )


async def set_expiry(session_factory, invitation_id: str, expires_at: datetime) -> None:
    async with session_factory() as session:
        await session.execute(
            update(OrganizationInvitation)
            .where(OrganizationInvitation.id == UUID(invitation_id))
            .values(expires_at=expires_at)
        )
        await session.commit()


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_lists_both_scopes_newest_first(client, make_user):
    alice = await make_user()
    bob = await make_user("b@x.com")
    acme = await create_org(client, alice, "Acme")
    globex = await create_org(client, alice, "Globex")

    await invite(client, alice, acme, bob.email)
    [acme_invitation] = await pending_invitations(client, bob)
    await respond(client, bob, acme_invitation["id"], "accept")

    project = (
        await client.post(
            f"{ORGS_URL}/{acme}/projects", json={"name": "Alpha", "key": "ALPHA"}, headers=alice.headers
        )
    ).json()["data"]
    await client.post(
        f"{ORGS_URL}/{acme}/projects/{project['id']}/invitations",
        json={"userId": str(bob.id), "role": "PROJECT_MEMBER"},
        headers=alice.headers,
    )
    await invite(client, alice, globex, bob.email)

    invitations = await pending_invitations(client, bob)
    assert [(i["type"], i["organization"]["name"]) for i in invitations] == [
        ("organization", "Globex"),
        ("project", "Acme"),
    ]
    assert invitations[1]["project"]["key"] == "ALPHA"
    assert invitations[1]["role"] == "PROJECT_MEMBER"

    filtered = await pending_invitations(client, bob, orgId=acme)
    assert [i["type"] for i in filtered] == ["project"]


@pytest.mark.asyncio
async def test_expired_invitation_hidden_but_still_loadable(client, make_user, session_factory):
    alice = await make_user()
    bob = await make_user("b@x.com")
    org_id = await create_org(client, alice)
    await invite(client, alice, org_id, bob.email)
    [invitation] = await pending_invitations(client, bob)

    await set_expiry(session_factory, invitation["id"], datetime.now(UTC) - timedelta(days=1))

    assert await pending_invitations(client, bob) == []
    listing = await client.get(f"{ORGS_URL}/{org_id}/invitations", headers=alice.headers)
    assert listing.json()["data"] == []

    raw = await client.get(f"{ORGS_URL}/{org_id}/invitations/{invitation['id']}", headers=alice.headers)
    assert raw.status_code == 200
    assert raw.json()["data"]["organization"]["name"] == "Acme"

    response = await respond(client, bob, invitation["id"], "accept")
    assert response.status_code == 400
    assert response.json()["error"] == "Invitation has expired"

    # Re-inviting an expired address counts as a fresh invitation.
    response = await client.post(
        f"{ORGS_URL}/{org_id}/invitations", json={"emails": [bob.email]}, headers=alice.headers
    )
    assert response.json()["data"]["success"] == [bob.email]
    assert [i["id"] for i in await pending_invitations(client, bob)] == [invitation["id"]]


# ---------------------------------------------------------------------------
# Accept / reject
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_accept_is_not_replayable(client, make_user):
    alice = await make_user()
    bob = await make_user("b@x.com")
    org_id = await create_org(client, alice)
    await invite(client, alice, org_id, bob.email)
    [invitation] = await pending_invitations(client, bob)

    first = await respond(client, bob, invitation["id"], "accept")
    assert first.status_code == 200
    assert first.json()["data"]["message"] == "Invitation accepted successfully"

    for _ in range(2):
        replay = await respond(client, bob, invitation["id"], "accept")
        assert replay.status_code == 400
        assert replay.json()["error"] == "Invitation already accepted"

    members = await client.get(f"{ORGS_URL}/{org_id}/members", headers=bob.headers)
    assert members.json()["data"]["pagination"]["total"] == 2


@pytest.mark.asyncio
async def test_accepted_check_precedes_expiry(client, make_user, session_factory):
    alice = await make_user()
    bob = await make_user("b@x.com")
    org_id = await create_org(client, alice)
    await invite(client, alice, org_id, bob.email)
    [invitation] = await pending_invitations(client, bob)
    await respond(client, bob, invitation["id"], "accept")

    await set_expiry(session_factory, invitation["id"], datetime.now(UTC) - timedelta(days=1))

    response = await respond(client, bob, invitation["id"], "accept")
    assert response.json()["error"] == "Invitation already accepted"


@pytest.mark.asyncio
async def test_invitation_expiring_exactly_now_is_accepted(client, make_user, session_factory, monkeypatch):
    alice = await make_user()
    bob = await make_user("b@x.com")
    org_id = await create_org(client, alice)
    await invite(client, alice, org_id, bob.email)
    [invitation] = await pending_invitations(client, bob)

    boundary = datetime(2030, 1, 1, 12, 0, tzinfo=UTC)
    await set_expiry(session_factory, invitation["id"], boundary)
    monkeypatch.setattr(invitation_service, "utcnow", lambda: boundary)

    assert [i["id"] for i in await pending_invitations(client, bob)] == [invitation["id"]]
    response = await respond(client, bob, invitation["id"], "accept")
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_invitation_one_microsecond_past_expiry_is_rejected(client, make_user, session_factory, monkeypatch):
    alice = await make_user()
    bob = await make_user("b@x.com")
    org_id = await create_org(client, alice)
    await invite(client, alice, org_id, bob.email)
    [invitation] = await pending_invitations(client, bob)

    boundary = datetime(2030, 1, 1, 12, 0, tzinfo=UTC)
    await set_expiry(session_factory, invitation["id"], boundary)
    monkeypatch.setattr(invitation_service, "utcnow", lambda: boundary + timedelta(microseconds=1))

    response = await respond(client, bob, invitation["id"], "accept")
    assert response.json()["error"] == "Invitation has expired"


@pytest.mark.asyncio
async def test_invitation_is_bound_to_invitee(client, make_user):
    alice = await make_user()
    bob = await make_user("b@x.com")
    mallory = await make_user()
    org_id = await create_org(client, alice)
    await invite(client, alice, org_id, bob.email)
    [invitation] = await pending_invitations(client, bob)

    response = await respond(client, mallory, invitation["id"], "accept")
    assert response.status_code == 403
    assert response.json()["error"] == "This invitation is not for you"

    response = await respond(client, mallory, "7d5f9b52-7e11-4a8e-9a7c-0d3c1b1f6f42", "accept")
    assert response.status_code == 404
    assert response.json()["error"] == "Invitation not found"


@pytest.mark.asyncio
async def test_reject_deletes_invitation(client, make_user):
    alice = await make_user()
    bob = await make_user("b@x.com")
    org_id = await create_org(client, alice)
    await invite(client, alice, org_id, bob.email)
    [invitation] = await pending_invitations(client, bob)

    response = await respond(client, bob, invitation["id"], "reject")
    assert response.status_code == 200
    assert response.json()["data"]["message"] == "Invitation rejected"

    assert await pending_invitations(client, bob) == []
    response = await respond(client, bob, invitation["id"], "accept")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_existing_member_cannot_accept(client, make_user, session_factory):
    alice = await make_user()
    bob = await make_user("b@x.com")
    org_id = await create_org(client, alice)
    await invite(client, alice, org_id, bob.email)
    [invitation] = await pending_invitations(client, bob)

    async with session_factory() as session:
        session.add(
            OrganizationMember(
                organization_id=UUID(org_id), user_id=bob.id, role=OrganizationRole.ORG_MEMBER
            )
        )
        await session.commit()

    response = await respond(client, bob, invitation["id"], "accept")
    assert response.status_code == 400
    assert response.json()["error"] == "Already a member of this organization"


@pytest.mark.asyncio
async def test_action_validation(client, make_user):
    bob = await make_user()
    url = f"{USER_INVITATIONS_URL}/7d5f9b52-7e11-4a8e-9a7c-0d3c1b1f6f42"

    response = await client.post(url, json={"action": "ignore"}, headers=bob.headers)
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid action"

    response = await client.post(url, json={"action": "accept", "type": "team"}, headers=bob.headers)
    assert response.json()["error"] == "Invalid invitation type"


# ---------------------------------------------------------------------------
# Token accept
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_accept_by_token(client, make_user, sent_emails):
    alice = await make_user()
    bob = await make_user("b@x.com")
    org_id = await create_org(client, alice)
    await invite(client, alice, org_id, bob.email)
    [invitation] = await pending_invitations(client, bob)
    assert invitation["id"] in sent_emails[-1]["html"]

    response = await client.post(
        "/api/v1/invitations/accept", json={"token": invitation["id"]}, headers=bob.headers
    )
    assert response.status_code == 200
    assert response.json()["data"]["organization"]["id"] == org_id

    response = await client.post(
        "/api/v1/invitations/accept", json={"token": "not-a-token"}, headers=bob.headers
    )
    assert response.status_code == 404

    response = await client.post("/api/v1/invitations/accept", json={}, headers=bob.headers)
    assert response.json()["error"] == "Invitation token is required"


# ---------------------------------------------------------------------------
# Project scope
# ---------------------------------------------------------------------------

async def create_project_invitation(client, admin, invitee, org_id: str) -> tuple[dict, dict]:
    await invite(client, admin, org_id, invitee.email)
    [org_invitation] = await pending_invitations(client, invitee)
    await respond(client, invitee, org_invitation["id"], "accept")

    project = (
        await client.post(
            f"{ORGS_URL}/{org_id}/projects", json={"name": "Alpha", "key": "ALPHA"}, headers=admin.headers
        )
    ).json()["data"]
    response = await client.post(
        f"{ORGS_URL}/{org_id}/projects/{project['id']}/invitations",
        json={"userId": str(invitee.id), "role": "PROJECT_MEMBER"},
        headers=admin.headers,
    )
    assert response.status_code == 201, response.text
    return project, response.json()["data"]


@pytest.mark.asyncio
async def test_reject_project_invitation(client, make_user, session_factory):
    alice = await make_user()
    carol = await make_user()
    org_id = await create_org(client, alice)
    _, invitation = await create_project_invitation(client, alice, carol, org_id)

    response = await respond(client, carol, invitation["id"], "reject", kind="project")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["message"] == "Project invitation rejected"
    assert data["type"] == "project"

    assert await pending_invitations(client, carol) == []
    async with session_factory() as session:
        assert await session.get(ProjectInvitation, UUID(invitation["id"])) is None


@pytest.mark.asyncio
async def test_expired_project_invitation_cannot_be_accepted(client, make_user, session_factory):
    alice = await make_user()
    carol = await make_user()
    org_id = await create_org(client, alice)
    project, invitation = await create_project_invitation(client, alice, carol, org_id)

    async with session_factory() as session:
        await session.execute(
            update(ProjectInvitation)
            .where(ProjectInvitation.id == UUID(invitation["id"]))
            .values(expires_at=datetime.now(UTC) - timedelta(hours=1))
        )
        await session.commit()

    assert await pending_invitations(client, carol) == []
    response = await respond(client, carol, invitation["id"], "accept", kind="project")
    assert response.status_code == 400
    assert response.json()["error"] == "Invitation has expired"

    expired = await client.get(
        f"{ORGS_URL}/{org_id}/projects/{project['id']}/invitations",
        params={"status": "expired"},
        headers=alice.headers,
    )
    assert [i["id"] for i in expired.json()["data"]] == [invitation["id"]]


@pytest.mark.asyncio
async def test_project_invitation_is_bound_to_invitee(client, make_user):
    alice = await make_user()
    carol = await make_user()
    org_id = await create_org(client, alice)
    _, invitation = await create_project_invitation(client, alice, carol, org_id)

    response = await respond(client, alice, invitation["id"], "accept", kind="project")
    assert response.status_code == 403
    assert response.json()["error"] == "This invitation is not for you"

    response = await respond(client, alice, invitation["id"], "reject", kind="project")
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_existing_project_member_cannot_accept(client, make_user, session_factory):
    alice = await make_user()
    carol = await make_user()
    org_id = await create_org(client, alice)
    project, invitation = await create_project_invitation(client, alice, carol, org_id)

    async with session_factory() as session:
        session.add(
            ProjectMember(project_id=UUID(project["id"]), user_id=carol.id, role=ProjectRole.PROJECT_MEMBER)
        )
        await session.commit()

    response = await respond(client, carol, invitation["id"], "accept", kind="project")
    assert response.status_code == 400
    assert response.json()["error"] == "Already a member of this project"


# ---------------------------------------------------------------------------
# Atomic accept
# ---------------------------------------------------------------------------

def fail_commits(monkeypatch) -> None:
    """Make every commit write its rows and then hit a constraint violation."""

    async def failing_commit(self):
        await self.flush()
        raise IntegrityError("COMMIT", {}, Exception("unique constraint violated"))

    monkeypatch.setattr(AsyncSession, "commit", failing_commit)


@pytest.mark.asyncio
async def test_failed_org_accept_leaves_no_membership(client, make_user, session_factory, monkeypatch):
    alice = await make_user()
    bob = await make_user("b@x.com")
    org_id = await create_org(client, alice)
    await invite(client, alice, org_id, bob.email)
    [invitation] = await pending_invitations(client, bob)

    fail_commits(monkeypatch)
    response = await respond(client, bob, invitation["id"], "accept")
    assert response.status_code == 400
    assert response.json()["error"] == "Already a member of this organization"
    monkeypatch.undo()

    async with session_factory() as session:
        row = await session.get(OrganizationInvitation, UUID(invitation["id"]))
        membership = await session.scalar(
            select(func.count(OrganizationMember.id)).where(OrganizationMember.user_id == bob.id)
        )
    assert row.accepted_at is None
    assert membership == 0

    response = await respond(client, bob, invitation["id"], "accept")
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_failed_project_accept_leaves_no_membership(client, make_user, session_factory, monkeypatch):
    alice = await make_user()
    carol = await make_user()
    org_id = await create_org(client, alice)
    project, invitation = await create_project_invitation(client, alice, carol, org_id)

    fail_commits(monkeypatch)
    response = await respond(client, carol, invitation["id"], "accept", kind="project")
    assert response.status_code == 400
    assert response.json()["error"] == "Already a member of this project"
    monkeypatch.undo()

    async with session_factory() as session:
        row = await session.get(ProjectInvitation, UUID(invitation["id"]))
        membership = await session.scalar(
            select(func.count(ProjectMember.id)).where(
                ProjectMember.project_id == UUID(project["id"]),
                ProjectMember.user_id == carol.id,
            )
        )
    assert row.accepted_at is None
    assert membership == 0
