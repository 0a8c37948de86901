"""
Tracked Subscription Tests

Subscriptions the user records by hand and the charges scheduled for them.
"""

from datetime import date
from decimal import Decimal

import pytest
from httpx import AsyncClient

from spare_finance.api.db.models import Account, Subcategory


def _subscription(account_id, **extra) -> dict:
    body = {
        "service_name": "Netflix",
        "amount": "15.49",
        "account_id": str(account_id),
        "first_billing_date": date.today().isoformat(),
    }
    body.update(extra)
    return body


async def _create(async_client, headers, body) -> dict:
    response = await async_client.post("/api/v1/user-subscriptions", headers=headers, json=body)
    assert response.status_code == 201, response.text
    return response.json()


async def _charges(async_client, headers, status: str = "scheduled") -> list:
    response = await async_client.get(
        "/api/v1/planned-payments",
        headers=headers,
        params={"source": "subscription", "status": status, "page_size": 500},
    )
    return response.json()["items"]


@pytest.mark.asyncio
async def test_create_schedules_a_year_of_charges(
    async_client: AsyncClient, auth_headers, checking_account
):
    created = await _create(async_client, auth_headers, _subscription(checking_account.id))

    assert created["is_active"] is True
    assert Decimal(created["monthly_cost"]) == Decimal("15.49")
    charges = await _charges(async_client, auth_headers)
    assert 12 <= len(charges) <= 13
    assert charges[0]["date"] == date.today().isoformat()
    assert all(c["subscription_id"] == created["id"] for c in charges)
    assert charges[0]["description"] == "Netflix"


@pytest.mark.asyncio
async def test_subcategory_sets_charge_category(
    async_client: AsyncClient, db_session, auth_headers, checking_account, groceries, test_user
):
    sub = Subcategory(category_id=groceries.id, user_id=test_user.id, name="Delivery")
    db_session.add(sub)
    await db_session.commit()

    await _create(
        async_client,
        auth_headers,
        _subscription(checking_account.id, service_name="Box", subcategory_id=str(sub.id)),
    )

    charge = (await _charges(async_client, auth_headers))[0]
    assert charge["category_id"] == str(groceries.id)
    assert charge["subcategory_id"] == str(sub.id)


@pytest.mark.asyncio
async def test_weekly_cost_and_listing_totals(
    async_client: AsyncClient, auth_headers, checking_account
):
    weekly = await _create(
        async_client,
        auth_headers,
        _subscription(
            checking_account.id, service_name="Gym", amount="10", billing_frequency="weekly"
        ),
    )
    await _create(async_client, auth_headers, _subscription(checking_account.id))

    # 10 * 52 / 12
    assert Decimal(weekly["monthly_cost"]) == Decimal("43.33")
    listing = (await async_client.get("/api/v1/user-subscriptions", headers=auth_headers)).json()
    assert [s["service_name"] for s in listing["items"]] == ["Gym", "Netflix"]
    assert listing["active_count"] == 2
    assert Decimal(listing["monthly_total"]) == Decimal("58.82")


@pytest.mark.asyncio
async def test_pause_and_resume(async_client: AsyncClient, auth_headers, checking_account):
    created = await _create(async_client, auth_headers, _subscription(checking_account.id))
    url = f"/api/v1/user-subscriptions/{created['id']}"

    paused = await async_client.post(f"{url}/pause", headers=auth_headers)
    assert paused.status_code == 200
    assert paused.json()["is_active"] is False
    assert await _charges(async_client, auth_headers) == []

    again = await async_client.post(f"{url}/pause", headers=auth_headers)
    assert again.status_code == 400
    assert again.json()["detail"] == "Subscription is already paused"

    resumed = await async_client.post(f"{url}/resume", headers=auth_headers)
    assert resumed.json()["is_active"] is True
    assert len(await _charges(async_client, auth_headers)) >= 12

    twice = await async_client.post(f"{url}/resume", headers=auth_headers)
    assert twice.status_code == 400
    assert twice.json()["detail"] == "Subscription is already active"


@pytest.mark.asyncio
async def test_update_reschedules_charges(
    async_client: AsyncClient, auth_headers, checking_account
):
    created = await _create(async_client, auth_headers, _subscription(checking_account.id))

    updated = await async_client.patch(
        f"/api/v1/user-subscriptions/{created['id']}",
        headers=auth_headers,
        json={"amount": "19.99"},
    )

    assert updated.status_code == 200
    charges = await _charges(async_client, auth_headers)
    assert charges
    assert all(Decimal(c["amount"]) == Decimal("19.99") for c in charges)


@pytest.mark.asyncio
async def test_update_rejects_null_name(async_client: AsyncClient, auth_headers, checking_account):
    created = await _create(async_client, auth_headers, _subscription(checking_account.id))

    response = await async_client.patch(
        f"/api/v1/user-subscriptions/{created['id']}",
        headers=auth_headers,
        json={"service_name": None},
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_delete_clears_charges(async_client: AsyncClient, auth_headers, checking_account):
    created = await _create(async_client, auth_headers, _subscription(checking_account.id))

    deleted = await async_client.delete(
        f"/api/v1/user-subscriptions/{created['id']}", headers=auth_headers
    )

    assert deleted.status_code == 200
    assert await _charges(async_client, auth_headers) == []
    listing = (await async_client.get("/api/v1/user-subscriptions", headers=auth_headers)).json()
    assert listing["items"] == []


@pytest.mark.asyncio
async def test_ownership(
    async_client: AsyncClient, db_session, auth_headers, other_headers, other_user, checking_account
):
    created = await _create(async_client, auth_headers, _subscription(checking_account.id))

    foreign = await async_client.get(
        f"/api/v1/user-subscriptions/{created['id']}", headers=other_headers
    )
    assert foreign.status_code == 403

    theirs = Account(
        user_id=other_user.id, name="Theirs", type="checking", initial_balance=0, currency="USD"
    )
    db_session.add(theirs)
    await db_session.commit()
    response = await async_client.post(
        "/api/v1/user-subscriptions",
        headers=auth_headers,
        json=_subscription(theirs.id),
    )
    assert response.status_code == 403
