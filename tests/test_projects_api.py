"""
Project API tests.

Project CRUD, per-organization key uniqueness, project membership and
project invitations.
"""

import pytest
from sqlalchemy import func, select

from projecthub.models import ProjectInvitation, ProjectMember

ORGS_URL = "/api/v1/organizations"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def create_org(client, user, name: str = "Acme") -> str:
    response = await client.post(ORGS_URL, json={"name": name}, headers=user.headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]["id"]


async def add_org_member(client, admin, org_id: str, user) -> None:
    response = await client.post(
        f"{ORGS_URL}/{org_id}/invitations", json={"emails": [user.email]}, headers=admin.headers
    )
    assert response.json()["data"]["success"] == [user.email]

    pending = (await client.get("/api/v1/user/invitations", headers=user.headers)).json()["data"]
    invitation = next(i for i in pending["invitations"] if i["organization"]["id"] == org_id)
    response = await client.post(
        f"/api/v1/user/invitations/{invitation['id']}",
        json={"action": "accept"},
        headers=user.headers,
    )
    assert response.status_code == 200, response.text


async def create_project(client, user, org_id: str, key: str = "MKTG", name: str = "Marketing"):
    return await client.post(
        f"{ORGS_URL}/{org_id}/projects",
        json={"name": name, "key": key},
        headers=user.headers,
    )


async def invite_to_project(client, user, org_id: str, project_id: str, invitee_id, role="PROJECT_MEMBER"):
    return await client.post(
        f"{ORGS_URL}/{org_id}/projects/{project_id}/invitations",
        json={"userId": str(invitee_id), "role": role},
        headers=user.headers,
    )


async def accept_project_invitation(client, user, invitation_id: str):
    return await client.post(
        f"/api/v1/user/invitations/{invitation_id}",
        json={"action": "accept", "type": "project"},
        headers=user.headers,
    )


# ---------------------------------------------------------------------------
# Create / key rules
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_project_makes_creator_lead(client, make_user):
    alice = await make_user()
    org_id = await create_org(client, alice)

    response = await create_project(client, alice, org_id, key="mktg")
    assert response.status_code == 201, response.text
    project = response.json()["data"]
    assert project["key"] == "MKTG"
    assert project["memberCount"] == 1
    assert project["color"] == "#3b82f6"
    assert project["createdById"] == str(alice.id)

    response = await client.get(
        f"{ORGS_URL}/{org_id}/projects/{project['id']}/members/me", headers=alice.headers
    )
    assert response.json()["data"] == {"role": "PROJECT_LEAD", "isMember": True}


@pytest.mark.asyncio
async def test_project_key_unique_per_organization(client, make_user):
    alice = await make_user()
    acme = await create_org(client, alice, "Acme")
    globex = await create_org(client, alice, "Globex")

    assert (await create_project(client, alice, acme)).status_code == 201

    response = await create_project(client, alice, acme, key="mktg", name="Other")
    assert response.status_code == 400
    assert "already exists" in response.json()["error"]

    assert (await create_project(client, alice, globex)).status_code == 201


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "key, accepted",
    [
        ("AB", True),
        ("ABCDEFGHIJ", True),
        ("A", False),
        ("ABCDEFGHIJK", False),
        ("MK-TG", False),
        ("AB\n", False),
    ],
)
async def test_project_key_format(client, make_user, key, accepted):
    alice = await make_user()
    org_id = await create_org(client, alice)

    response = await create_project(client, alice, org_id, key=key)
    if accepted:
        assert response.status_code == 201
    else:
        assert response.status_code == 400
        assert response.json()["error"] == "Key must be 2-10 alphanumeric characters"


@pytest.mark.asyncio
async def test_create_project_required_fields(client, make_user):
    alice = await make_user()
    org_id = await create_org(client, alice)
    url = f"{ORGS_URL}/{org_id}/projects"

    response = await client.post(url, json={"key": "AB"}, headers=alice.headers)
    assert response.json()["error"] == "Project name is required"

    response = await client.post(url, json={"name": "Alpha"}, headers=alice.headers)
    assert response.json()["error"] == "Project key is required"


@pytest.mark.asyncio
async def test_non_member_cannot_create_project(client, make_user):
    alice = await make_user()
    mallory = await make_user()
    org_id = await create_org(client, alice)

    response = await create_project(client, mallory, org_id)
    assert response.status_code == 403
    assert response.json()["error"] == "Forbidden"


# ---------------------------------------------------------------------------
# Read / update / delete
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_projects_with_search_and_members(client, make_user):
    alice = await make_user(display_name="Alice")
    org_id = await create_org(client, alice)
    await create_project(client, alice, org_id, key="MKTG", name="Marketing")
    await create_project(client, alice, org_id, key="ENG", name="Engineering")

    response = await client.get(
        f"{ORGS_URL}/{org_id}/projects",
        params={"search": "eng", "includeMembers": "true"},
        headers=alice.headers,
    )
    data = response.json()["data"]
    assert [p["key"] for p in data["projects"]] == ["ENG"]
    assert data["projects"][0]["members"][0]["user"]["displayName"] == "Alice"
    assert data["pagination"]["total"] == 1


@pytest.mark.asyncio
async def test_project_search_treats_wildcards_literally(client, make_user):
    alice = await make_user()
    org_id = await create_org(client, alice)
    await create_project(client, alice, org_id, key="MKTG", name="Marketing")
    await create_project(client, alice, org_id, key="OPS", name="Ops_Team")

    for term, expected in (("%", []), ("_", ["OPS"]), ("s_T", ["OPS"])):
        response = await client.get(
            f"{ORGS_URL}/{org_id}/projects", params={"search": term}, headers=alice.headers
        )
        assert [p["key"] for p in response.json()["data"]["projects"]] == expected, term


@pytest.mark.asyncio
async def test_update_project(client, make_user):
    alice = await make_user()
    org_id = await create_org(client, alice)
    project = (await create_project(client, alice, org_id)).json()["data"]
    url = f"{ORGS_URL}/{org_id}/projects/{project['id']}"

    response = await client.patch(
        url, json={"name": "  ", "description": "Campaigns", "color": "#000000"}, headers=alice.headers
    )
    updated = response.json()["data"]
    assert updated["name"] == "Marketing"
    assert updated["description"] == "Campaigns"
    assert updated["color"] == "#000000"
    assert updated["key"] == "MKTG"


@pytest.mark.asyncio
async def test_plain_member_cannot_update_or_delete(client, make_user):
    alice = await make_user()
    bob = await make_user()
    org_id = await create_org(client, alice)
    await add_org_member(client, alice, org_id, bob)
    project = (await create_project(client, alice, org_id)).json()["data"]
    url = f"{ORGS_URL}/{org_id}/projects/{project['id']}"

    response = await client.patch(url, json={"name": "Renamed"}, headers=bob.headers)
    assert response.status_code == 403
    assert response.json()["error"] == "Forbidden: insufficient role"

    response = await client.delete(url, headers=bob.headers)
    assert response.status_code == 403

    response = await client.get(url, headers=bob.headers)
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_delete_project_removes_members_and_invitations(client, make_user, session_factory):
    alice = await make_user()
    carol = await make_user()
    org_id = await create_org(client, alice)
    await add_org_member(client, alice, org_id, carol)
    project = (await create_project(client, alice, org_id)).json()["data"]
    await invite_to_project(client, alice, org_id, project["id"], carol.id)

    response = await client.delete(f"{ORGS_URL}/{org_id}/projects/{project['id']}", headers=alice.headers)
    assert response.status_code == 200

    response = await client.get(f"{ORGS_URL}/{org_id}/projects/{project['id']}", headers=alice.headers)
    assert response.status_code == 404
    assert response.json()["error"] == "Project not found"

    async with session_factory() as session:
        members = await session.scalar(select(func.count(ProjectMember.id)))
        invitations = await session.scalar(select(func.count(ProjectInvitation.id)))
    assert members == 0
    assert invitations == 0


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_my_role_for_non_project_member(client, make_user):
    alice = await make_user()
    bob = await make_user()
    org_id = await create_org(client, alice)
    await add_org_member(client, alice, org_id, bob)
    project = (await create_project(client, alice, org_id)).json()["data"]

    response = await client.get(
        f"{ORGS_URL}/{org_id}/projects/{project['id']}/members/me", headers=bob.headers
    )
    assert response.json()["data"] == {"role": None, "isMember": False}


@pytest.mark.asyncio
async def test_member_role_change_and_removal(client, make_user):
    alice = await make_user()
    carol = await make_user()
    org_id = await create_org(client, alice)
    await add_org_member(client, alice, org_id, carol)
    project = (await create_project(client, alice, org_id)).json()["data"]
    invitation = (await invite_to_project(client, alice, org_id, project["id"], carol.id)).json()["data"]
    await accept_project_invitation(client, carol, invitation["id"])

    members_url = f"{ORGS_URL}/{org_id}/projects/{project['id']}/members"
    members = {m["userId"]: m for m in (await client.get(members_url, headers=alice.headers)).json()["data"]}
    carol_member = members[str(carol.id)]
    alice_member = members[str(alice.id)]
    assert carol_member["role"] == "PROJECT_MEMBER"

    response = await client.delete(f"{members_url}/{alice_member['id']}", headers=carol.headers)
    assert response.status_code == 403
    assert response.json()["error"] == "Forbidden: insufficient role"

    response = await client.patch(
        f"{members_url}/{carol_member['id']}", json={"role": "PROJECT_LEAD"}, headers=alice.headers
    )
    assert response.json()["data"]["role"] == "PROJECT_LEAD"

    # The only other lead may be removed; projects have no last-lead rule.
    response = await client.delete(f"{members_url}/{alice_member['id']}", headers=carol.headers)
    assert response.status_code == 200

    response = await client.delete(f"{members_url}/{carol_member['id']}", headers=carol.headers)
    assert response.status_code == 200
    assert (await client.get(members_url, headers=alice.headers)).json()["data"] == []


# ---------------------------------------------------------------------------
# Project invitations
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_invite_org_member_to_project(client, make_user, sent_emails):
    alice = await make_user()
    carol = await make_user()
    dave = await make_user()
    org_id = await create_org(client, alice)
    await add_org_member(client, alice, org_id, carol)
    project = (await create_project(client, alice, org_id)).json()["data"]

    response = await invite_to_project(client, alice, org_id, project["id"], carol.id)
    assert response.status_code == 201
    invitation = response.json()["data"]
    assert invitation["userId"] == str(carol.id)
    assert invitation["role"] == "PROJECT_MEMBER"
    assert invitation["user"]["email"] == carol.email
    assert sent_emails[-1]["subject"] == "You've been invited to Marketing (MKTG)"

    response = await invite_to_project(client, alice, org_id, project["id"], dave.id)
    assert response.status_code == 400
    assert response.json()["error"] == "User is not a member of this organization"

    invitations = await client.get(
        f"{ORGS_URL}/{org_id}/projects/{project['id']}/invitations", headers=alice.headers
    )
    assert [i["userId"] for i in invitations.json()["data"]] == [str(carol.id)]


@pytest.mark.asyncio
async def test_project_invitation_lifecycle(client, make_user):
    alice = await make_user()
    carol = await make_user()
    org_id = await create_org(client, alice)
    await add_org_member(client, alice, org_id, carol)
    project = (await create_project(client, alice, org_id)).json()["data"]
    invitations_url = f"{ORGS_URL}/{org_id}/projects/{project['id']}/invitations"

    first = (await invite_to_project(client, alice, org_id, project["id"], carol.id)).json()["data"]
    second = (
        await invite_to_project(client, alice, org_id, project["id"], carol.id, role="PROJECT_LEAD")
    ).json()["data"]
    assert second["id"] == first["id"]
    assert second["role"] == "PROJECT_LEAD"

    pending = await client.get(invitations_url, params={"status": "pending"}, headers=alice.headers)
    assert len(pending.json()["data"]) == 1

    response = await accept_project_invitation(client, carol, first["id"])
    assert response.status_code == 200
    assert response.json()["data"]["project"]["key"] == "MKTG"

    accepted = await client.get(invitations_url, params={"status": "accepted"}, headers=alice.headers)
    assert [i["id"] for i in accepted.json()["data"]] == [first["id"]]

    response = await client.delete(f"{invitations_url}/{first['id']}", headers=alice.headers)
    assert response.status_code == 400
    assert response.json()["error"] == "Cannot cancel an already accepted invitation"

    response = await invite_to_project(client, alice, org_id, project["id"], carol.id)
    assert response.status_code == 400
    assert response.json()["error"] == "User is already a project member"


@pytest.mark.asyncio
async def test_project_invite_validation(client, make_user):
    alice = await make_user()
    org_id = await create_org(client, alice)
    project = (await create_project(client, alice, org_id)).json()["data"]
    url = f"{ORGS_URL}/{org_id}/projects/{project['id']}/invitations"

    response = await client.post(url, json={"role": "PROJECT_MEMBER"}, headers=alice.headers)
    assert response.json()["error"] == "userId is required"

    response = await client.post(
        url, json={"userId": str(alice.id), "role": "ORG_ADMIN"}, headers=alice.headers
    )
    assert response.json()["error"] == "Invalid role"
