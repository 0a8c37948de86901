"""
Household Tests

Shared households, invitations and member roles.
"""

import pytest
from httpx import AsyncClient

from spare_finance.api.auth.jwt import create_access_token


async def _create_family(async_client: AsyncClient, headers: dict) -> dict:
    response = await async_client.post(
        "/api/v1/households", headers=headers, json={"name": "Family"}
    )
    assert response.status_code == 201
    return response.json()


@pytest.mark.asyncio
async def test_user_starts_with_personal_household(async_client: AsyncClient, auth_headers):
    response = await async_client.get("/api/v1/households", headers=auth_headers)

    assert response.status_code == 200
    households = response.json()
    assert len(households) == 1
    assert households[0]["type"] == "personal"
    assert households[0]["members"][0]["role"] == "owner"


@pytest.mark.asyncio
async def test_invite_existing_user_joins_immediately(
    async_client: AsyncClient, auth_headers, other_headers, other_user, email_sender
):
    family = await _create_family(async_client, auth_headers)
    assert family["type"] == "shared"

    invited = await async_client.post(
        f"/api/v1/households/{family['id']}/members",
        headers=auth_headers,
        json={"email": other_user.email},
    )

    assert invited.status_code == 201
    assert invited.json()["status"] == "active"
    assert invited.json()["user_id"] == str(other_user.id)
    assert email_sender.sent == []

    visible = await async_client.get(f"/api/v1/households/{family['id']}", headers=other_headers)
    assert visible.status_code == 200
    assert len(visible.json()["members"]) == 2


@pytest.mark.asyncio
async def test_duplicate_invitation(async_client: AsyncClient, auth_headers, other_user):
    family = await _create_family(async_client, auth_headers)
    url = f"/api/v1/households/{family['id']}/members"

    await async_client.post(url, headers=auth_headers, json={"email": other_user.email})
    again = await async_client.post(url, headers=auth_headers, json={"email": other_user.email})

    assert again.status_code == 400


@pytest.mark.asyncio
async def test_pending_invitation_accept_flow(
    async_client: AsyncClient, auth_headers, email_sender
):
    family = await _create_family(async_client, auth_headers)

    invited = await async_client.post(
        f"/api/v1/households/{family['id']}/members",
        headers=auth_headers,
        json={"email": "newcomer@spare.finance", "role": "admin"},
    )
    assert invited.status_code == 201
    invitation = invited.json()
    assert invitation["status"] == "pending"
    assert email_sender.sent[-1].to == "newcomer@spare.finance"
    assert invitation["invitation_token"] in email_sender.sent[-1].body

    # inviter's email does not match the invitation
    mismatch = await async_client.post(
        "/api/v1/households/invitations/accept",
        headers=auth_headers,
        json={"token": invitation["invitation_token"]},
    )
    assert mismatch.status_code == 400
    assert mismatch.json()["detail"] == "Invitation was sent to a different email"

    registered = await async_client.post(
        "/api/v1/auth/register",
        json={"email": "newcomer@spare.finance", "password": "Newcomer123!"},
    )
    newcomer = registered.json()
    token = create_access_token(user_id=newcomer["id"], email=newcomer["email"])
    headers = {"Authorization": f"Bearer {token}"}

    accepted = await async_client.post(
        "/api/v1/households/invitations/accept",
        headers=headers,
        json={"token": invitation["invitation_token"]},
    )
    assert accepted.status_code == 200
    assert accepted.json()["status"] == "active"
    assert accepted.json()["role"] == "admin"

    households = await async_client.get("/api/v1/households", headers=headers)
    assert {h["name"] for h in households.json()} >= {"Family"}


@pytest.mark.asyncio
async def test_resend_replaces_token(async_client: AsyncClient, auth_headers, email_sender):
    family = await _create_family(async_client, auth_headers)
    invitation = (
        await async_client.post(
            f"/api/v1/households/{family['id']}/members",
            headers=auth_headers,
            json={"email": "later@spare.finance"},
        )
    ).json()

    resent = await async_client.post(
        f"/api/v1/households/{family['id']}/members/{invitation['id']}/resend",
        headers=auth_headers,
    )

    assert resent.status_code == 200
    assert resent.json()["invitation_token"] != invitation["invitation_token"]
    assert len(email_sender.sent) == 2


@pytest.mark.asyncio
async def test_member_permissions(
    async_client: AsyncClient, auth_headers, other_headers, other_user
):
    family = await _create_family(async_client, auth_headers)
    members_url = f"/api/v1/households/{family['id']}/members"
    member = (
        await async_client.post(members_url, headers=auth_headers, json={"email": other_user.email})
    ).json()

    # plain members cannot invite
    denied = await async_client.post(
        members_url, headers=other_headers, json={"email": "friend@spare.finance"}
    )
    assert denied.status_code == 403
    assert denied.json()["detail"] == "Insufficient household permissions"

    promoted = await async_client.patch(
        f"{members_url}/{member['id']}", headers=auth_headers, json={"role": "admin"}
    )
    assert promoted.status_code == 200
    assert promoted.json()["role"] == "admin"

    allowed = await async_client.post(
        members_url, headers=other_headers, json={"email": "friend@spare.finance"}
    )
    assert allowed.status_code == 201

    # only the owner changes roles
    owner_id = next(m["id"] for m in family["members"] if m["role"] == "owner")
    role_change = await async_client.patch(
        f"{members_url}/{allowed.json()['id']}", headers=other_headers, json={"role": "admin"}
    )
    assert role_change.status_code == 403

    remove_owner = await async_client.delete(f"{members_url}/{owner_id}", headers=other_headers)
    assert remove_owner.status_code == 400
    assert remove_owner.json()["detail"] == "Cannot remove the household owner"

    removed = await async_client.delete(f"{members_url}/{member['id']}", headers=auth_headers)
    assert removed.status_code == 200


@pytest.mark.asyncio
async def test_non_member_cannot_view_household(
    async_client: AsyncClient, auth_headers, other_headers
):
    family = await _create_family(async_client, auth_headers)

    response = await async_client.get(f"/api/v1/households/{family['id']}", headers=other_headers)

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_decline_invitation(async_client: AsyncClient, auth_headers):
    family = await _create_family(async_client, auth_headers)
    invitation = (
        await async_client.post(
            f"/api/v1/households/{family['id']}/members",
            headers=auth_headers,
            json={"email": "nope@spare.finance"},
        )
    ).json()

    registered = (
        await async_client.post(
            "/api/v1/auth/register",
            json={"email": "nope@spare.finance", "password": "Declined123!"},
        )
    ).json()
    token = create_access_token(user_id=registered["id"], email=registered["email"])

    declined = await async_client.post(
        "/api/v1/households/invitations/decline",
        headers={"Authorization": f"Bearer {token}"},
        json={"token": invitation["invitation_token"]},
    )

    assert declined.status_code == 200
    assert declined.json()["status"] == "declined"
