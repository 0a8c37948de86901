"""
Account Tests

Manual accounts, computed balances, plan limits and ownership.
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_create_and_list_accounts(async_client: AsyncClient, auth_headers):
    response = await async_client.post(
        "/api/v1/accounts",
        headers=auth_headers,
        json={"name": "Wallet", "type": "cash", "initial_balance": "120.50"},
    )

    assert response.status_code == 201
    created = response.json()
    assert created["name"] == "Wallet"
    assert Decimal(created["balance"]) == Decimal("120.50")
    assert created["is_connected"] is False

    listing = await async_client.get("/api/v1/accounts", headers=auth_headers)
    assert listing.status_code == 200
    data = listing.json()
    assert data["total"] == 1
    assert Decimal(data["total_balance"]) == Decimal("120.50")


@pytest.mark.asyncio
async def test_invalid_account_type(async_client: AsyncClient, auth_headers):
    response = await async_client.post(
        "/api/v1/accounts",
        headers=auth_headers,
        json={"name": "Mystery", "type": "crypto"},
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_free_plan_account_limit(async_client: AsyncClient, auth_headers):
    """Free plan allows two accounts."""
    for name in ("One", "Two"):
        ok = await async_client.post(
            "/api/v1/accounts", headers=auth_headers, json={"name": name, "type": "checking"}
        )
        assert ok.status_code == 201

    response = await async_client.post(
        "/api/v1/accounts", headers=auth_headers, json={"name": "Three", "type": "checking"}
    )

    assert response.status_code == 400
    assert "Account limit reached (2)" in response.json()["detail"]


@pytest.mark.asyncio
async def test_balance_follows_transactions(
    async_client: AsyncClient, auth_headers, checking_account, helpers
):
    today = date.today()
    await async_client.post(
        "/api/v1/transactions",
        headers=auth_headers,
        json=helpers.expense(checking_account.id, "25.50", today),
    )
    await async_client.post(
        "/api/v1/transactions",
        headers=auth_headers,
        json={**helpers.expense(checking_account.id, "200", today), "type": "income"},
    )
    # future-dated rows do not count yet
    await async_client.post(
        "/api/v1/transactions",
        headers=auth_headers,
        json=helpers.expense(checking_account.id, "999", today + timedelta(days=5)),
    )

    response = await async_client.get(
        f"/api/v1/accounts/{checking_account.id}", headers=auth_headers
    )

    assert response.status_code == 200
    assert Decimal(response.json()["balance"]) == Decimal("1174.50")


@pytest.mark.asyncio
async def test_update_account(async_client: AsyncClient, auth_headers, checking_account):
    response = await async_client.patch(
        f"/api/v1/accounts/{checking_account.id}",
        headers=auth_headers,
        json={"name": "Main Checking", "initial_balance": "50"},
    )

    assert response.status_code == 200
    assert response.json()["name"] == "Main Checking"
    assert Decimal(response.json()["balance"]) == Decimal("50")


@pytest.mark.asyncio
async def test_update_rejects_null_for_required_fields(
    async_client: AsyncClient, auth_headers, checking_account
):
    response = await async_client.patch(
        f"/api/v1/accounts/{checking_account.id}",
        headers=auth_headers,
        json={"name": None},
    )
    assert response.status_code == 422

    cleared = await async_client.patch(
        f"/api/v1/accounts/{checking_account.id}",
        headers=auth_headers,
        json={"credit_limit": None},
    )
    assert cleared.status_code == 200
    assert cleared.json()["credit_limit"] is None


@pytest.mark.asyncio
async def test_delete_account_removes_transactions(
    async_client: AsyncClient, auth_headers, checking_account, helpers
):
    created = await async_client.post(
        "/api/v1/transactions",
        headers=auth_headers,
        json=helpers.expense(checking_account.id, "10", date.today()),
    )
    tx_id = created.json()["id"]

    response = await async_client.delete(
        f"/api/v1/accounts/{checking_account.id}", headers=auth_headers
    )
    assert response.status_code == 200

    gone = await async_client.get(f"/api/v1/transactions/{tx_id}", headers=auth_headers)
    assert gone.status_code == 404


@pytest.mark.asyncio
async def test_delete_account_removes_both_sides_of_transfers(
    async_client: AsyncClient, auth_headers, checking_account, savings_account
):
    pair = (
        await async_client.post(
            "/api/v1/transactions/transfer",
            headers=auth_headers,
            json={
                "from_account_id": str(checking_account.id),
                "to_account_id": str(savings_account.id),
                "amount": "300",
                "date": date.today().isoformat(),
            },
        )
    ).json()

    response = await async_client.delete(
        f"/api/v1/accounts/{checking_account.id}", headers=auth_headers
    )
    assert response.status_code == 200

    incoming = await async_client.get(
        f"/api/v1/transactions/{pair['incoming']['id']}", headers=auth_headers
    )
    assert incoming.status_code == 404

    savings = await async_client.get(
        f"/api/v1/accounts/{savings_account.id}", headers=auth_headers
    )
    assert Decimal(savings.json()["balance"]) == Decimal("0")


@pytest.mark.asyncio
async def test_delete_account_removes_planned_payments_and_subscriptions(
    async_client: AsyncClient, auth_headers, checking_account, savings_account
):
    await async_client.post(
        "/api/v1/planned-payments",
        headers=auth_headers,
        json={
            "date": date.today().isoformat(),
            "type": "transfer",
            "amount": "50",
            "account_id": str(savings_account.id),
            "to_account_id": str(checking_account.id),
        },
    )
    await async_client.post(
        "/api/v1/user-subscriptions",
        headers=auth_headers,
        json={
            "service_name": "Music",
            "amount": "9.99",
            "account_id": str(checking_account.id),
            "first_billing_date": date.today().isoformat(),
        },
    )

    response = await async_client.delete(
        f"/api/v1/accounts/{checking_account.id}", headers=auth_headers
    )
    assert response.status_code == 200

    planned = await async_client.get("/api/v1/planned-payments", headers=auth_headers)
    assert planned.json()["total"] == 0
    tracked = await async_client.get("/api/v1/user-subscriptions", headers=auth_headers)
    assert tracked.json()["items"] == []


@pytest.mark.asyncio
async def test_other_users_account_is_forbidden(
    async_client: AsyncClient, other_headers, checking_account
):
    response = await async_client.get(
        f"/api/v1/accounts/{checking_account.id}", headers=other_headers
    )

    assert response.status_code == 403
    assert response.json()["detail"] == "Access denied to this account"


@pytest.mark.asyncio
async def test_missing_account(async_client: AsyncClient, auth_headers):
    response = await async_client.get(
        "/api/v1/accounts/00000000-0000-0000-0000-000000000000", headers=auth_headers
    )

    assert response.status_code == 404
