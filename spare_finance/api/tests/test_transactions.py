"""
Transaction Tests

Income/expense entries, transfers, monthly limits, category suggestions
and soft deletion.
"""

import uuid
from datetime import date
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from spare_finance.api.db.models import Transaction, UserMonthlyUsage, month_start


# ==================== Create ====================


@pytest.mark.asyncio
async def test_create_expense_encrypts_description(
    async_client: AsyncClient, db_session, auth_headers, checking_account, groceries, helpers
):
    response = await async_client.post(
        "/api/v1/transactions",
        headers=auth_headers,
        json=helpers.expense(
            checking_account.id, "42.10", date.today(), "Corner  Market",
            category_id=str(groceries.id), tags=["food"],
        ),
    )

    assert response.status_code == 201
    data = response.json()
    assert data["description"] == "Corner  Market"
    assert data["category_id"] == str(groceries.id)
    assert data["tags"] == ["food"]

    stored = await db_session.get(Transaction, uuid.UUID(data["id"]))
    assert stored.description != "Corner  Market"
    assert stored.description_search == "corner market"


@pytest.mark.asyncio
async def test_amount_must_be_positive(
    async_client: AsyncClient, auth_headers, checking_account, helpers
):
    response = await async_client.post(
        "/api/v1/transactions",
        headers=auth_headers,
        json=helpers.expense(checking_account.id, "-5", date.today()),
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_cannot_post_to_other_users_account(
    async_client: AsyncClient, other_headers, checking_account, helpers
):
    response = await async_client.post(
        "/api/v1/transactions",
        headers=other_headers,
        json=helpers.expense(checking_account.id, "5", date.today()),
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_monthly_transaction_limit(
    async_client: AsyncClient, db_session, test_user, auth_headers, checking_account, helpers
):
    """Free plan stops at 50 transactions per month."""
    today = date.today()
    db_session.add(
        UserMonthlyUsage(
            user_id=test_user.id, month_date=month_start(today), transactions_count=50
        )
    )
    await db_session.commit()

    response = await async_client.post(
        "/api/v1/transactions",
        headers=auth_headers,
        json=helpers.expense(checking_account.id, "5", today),
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Transaction limit reached for this month"


@pytest.mark.asyncio
async def test_usage_counts_the_transaction_month(
    async_client: AsyncClient, db_session, test_user, auth_headers, checking_account, helpers
):
    await async_client.post(
        "/api/v1/transactions",
        headers=auth_headers,
        json=helpers.expense(checking_account.id, "5", date(2025, 3, 14)),
    )

    usage = await db_session.get(UserMonthlyUsage, (test_user.id, date(2025, 3, 1)))
    assert usage.transactions_count == 1


# ==================== Transfers ====================


@pytest.mark.asyncio
async def test_transfer_creates_linked_pair(
    async_client: AsyncClient, db_session, test_user, auth_headers,
    checking_account, savings_account,
):
    today = date.today()
    response = await async_client.post(
        "/api/v1/transactions/transfer",
        headers=auth_headers,
        json={
            "from_account_id": str(checking_account.id),
            "to_account_id": str(savings_account.id),
            "amount": "300",
            "date": today.isoformat(),
        },
    )

    assert response.status_code == 201
    data = response.json()
    assert data["outgoing"]["type"] == "expense"
    assert data["incoming"]["type"] == "income"
    assert data["outgoing"]["transfer_to_id"] == data["incoming"]["id"]
    assert data["incoming"]["transfer_from_id"] == data["outgoing"]["id"]

    usage = await db_session.get(UserMonthlyUsage, (test_user.id, month_start(today)))
    assert usage.transactions_count == 1

    accounts = (await async_client.get("/api/v1/accounts", headers=auth_headers)).json()
    balances = {a["name"]: Decimal(a["balance"]) for a in accounts["items"]}
    assert balances == {"Checking": Decimal("700.00"), "Savings": Decimal("300")}


@pytest.mark.asyncio
async def test_transfer_to_same_account_rejected(
    async_client: AsyncClient, auth_headers, checking_account
):
    response = await async_client.post(
        "/api/v1/transactions/transfer",
        headers=auth_headers,
        json={
            "from_account_id": str(checking_account.id),
            "to_account_id": str(checking_account.id),
            "amount": "10",
            "date": date.today().isoformat(),
        },
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_transfer_edits_are_mirrored_and_restricted(
    async_client: AsyncClient, auth_headers, checking_account, savings_account, groceries
):
    pair = (
        await async_client.post(
            "/api/v1/transactions/transfer",
            headers=auth_headers,
            json={
                "from_account_id": str(checking_account.id),
                "to_account_id": str(savings_account.id),
                "amount": "100",
                "date": date.today().isoformat(),
            },
        )
    ).json()
    outgoing_id = pair["outgoing"]["id"]
    incoming_id = pair["incoming"]["id"]

    denied = await async_client.patch(
        f"/api/v1/transactions/{outgoing_id}",
        headers=auth_headers,
        json={"category_id": str(groceries.id)},
    )
    assert denied.status_code == 400
    assert denied.json()["detail"] == "Transfers only allow amount, date and description changes"

    updated = await async_client.patch(
        f"/api/v1/transactions/{outgoing_id}",
        headers=auth_headers,
        json={"amount": "150"},
    )
    assert updated.status_code == 200

    incoming = await async_client.get(f"/api/v1/transactions/{incoming_id}", headers=auth_headers)
    assert Decimal(incoming.json()["amount"]) == Decimal("150")


@pytest.mark.asyncio
async def test_deleting_one_side_deletes_transfer(
    async_client: AsyncClient, auth_headers, checking_account, savings_account
):
    pair = (
        await async_client.post(
            "/api/v1/transactions/transfer",
            headers=auth_headers,
            json={
                "from_account_id": str(checking_account.id),
                "to_account_id": str(savings_account.id),
                "amount": "20",
                "date": date.today().isoformat(),
            },
        )
    ).json()

    response = await async_client.delete(
        f"/api/v1/transactions/{pair['incoming']['id']}", headers=auth_headers
    )

    assert response.status_code == 200
    assert response.json()["deleted"] == 2

    listing = await async_client.get("/api/v1/transactions", headers=auth_headers)
    assert listing.json()["total"] == 0

    trash = await async_client.get("/api/v1/transactions?deleted=true", headers=auth_headers)
    assert trash.json()["total"] == 2


# ==================== Listing ====================


@pytest.mark.asyncio
async def test_list_filters_and_search(
    async_client: AsyncClient, auth_headers, checking_account, helpers
):
    for amount, description, on in (
        ("12", "Coffee Shop", date(2025, 1, 5)),
        ("80", "Electric Bill", date(2025, 1, 20)),
        ("15", "coffee   shop", date(2025, 2, 2)),
    ):
        await async_client.post(
            "/api/v1/transactions",
            headers=auth_headers,
            json=helpers.expense(checking_account.id, amount, on, description),
        )

    search = await async_client.get(
        "/api/v1/transactions", headers=auth_headers, params={"search": "COFFEE shop"}
    )
    assert search.json()["total"] == 2

    january = await async_client.get(
        "/api/v1/transactions",
        headers=auth_headers,
        params={"start_date": "2025-01-01", "end_date": "2025-01-31"},
    )
    data = january.json()
    assert data["total"] == 2
    # newest first
    assert [item["date"] for item in data["items"]] == ["2025-01-20", "2025-01-05"]

    paged = await async_client.get(
        "/api/v1/transactions", headers=auth_headers, params={"page": 2, "page_size": 2}
    )
    assert len(paged.json()["items"]) == 1


# ==================== Suggestions ====================


@pytest.mark.asyncio
async def test_category_suggestion_from_history(
    async_client: AsyncClient, auth_headers, checking_account, groceries, helpers
):
    today = date.today()
    for _ in range(3):
        await async_client.post(
            "/api/v1/transactions",
            headers=auth_headers,
            json=helpers.expense(
                checking_account.id, "54.99", today, "Fresh Foods",
                category_id=str(groceries.id),
            ),
        )

    suggestion = await async_client.post(
        "/api/v1/categories/suggest",
        headers=auth_headers,
        json={"description": "  fresh   FOODS ", "amount": 54.99, "type": "expense"},
    )
    assert suggestion.status_code == 200
    assert suggestion.json()["confidence"] == "high"
    assert suggestion.json()["match_type"] == "description_and_amount"

    created = (
        await async_client.post(
            "/api/v1/transactions",
            headers=auth_headers,
            json=helpers.expense(checking_account.id, "54.99", today, "Fresh Foods"),
        )
    ).json()
    assert created["category_id"] is None
    assert created["suggested_category_id"] == str(groceries.id)

    applied = await async_client.post(
        f"/api/v1/transactions/{created['id']}/suggestion/apply", headers=auth_headers
    )
    assert applied.status_code == 200
    assert applied.json()["category_id"] == str(groceries.id)
    assert applied.json()["suggested_category_id"] is None

    again = await async_client.post(
        f"/api/v1/transactions/{created['id']}/suggestion/apply", headers=auth_headers
    )
    assert again.status_code == 400


@pytest.mark.asyncio
async def test_reject_suggestion(
    async_client: AsyncClient, auth_headers, checking_account, groceries, helpers
):
    today = date.today()
    await async_client.post(
        "/api/v1/transactions",
        headers=auth_headers,
        json=helpers.expense(
            checking_account.id, "9", today, "Bakery", category_id=str(groceries.id)
        ),
    )
    created = (
        await async_client.post(
            "/api/v1/transactions",
            headers=auth_headers,
            json=helpers.expense(checking_account.id, "11", today, "Bakery"),
        )
    ).json()
    assert created["suggested_category_id"] == str(groceries.id)

    rejected = await async_client.post(
        f"/api/v1/transactions/{created['id']}/suggestion/reject", headers=auth_headers
    )

    assert rejected.status_code == 200
    assert rejected.json()["suggested_category_id"] is None
    assert rejected.json()["category_id"] is None


@pytest.mark.asyncio
async def test_no_suggestion_without_history(async_client: AsyncClient, auth_headers):
    response = await async_client.post(
        "/api/v1/categories/suggest",
        headers=auth_headers,
        json={"description": "Unknown Vendor", "amount": 10},
    )

    assert response.status_code == 200
    assert response.json() is None


# ==================== Delete ====================


@pytest.mark.asyncio
async def test_soft_delete_and_restore(
    async_client: AsyncClient, auth_headers, checking_account, helpers
):
    tx = (
        await async_client.post(
            "/api/v1/transactions",
            headers=auth_headers,
            json=helpers.expense(checking_account.id, "30", date.today()),
        )
    ).json()

    deleted = await async_client.delete(f"/api/v1/transactions/{tx['id']}", headers=auth_headers)
    assert deleted.json()["deleted"] == 1

    account = (
        await async_client.get(f"/api/v1/accounts/{checking_account.id}", headers=auth_headers)
    ).json()
    assert Decimal(account["balance"]) == Decimal("1000.00")

    restored = await async_client.post(
        f"/api/v1/transactions/{tx['id']}/restore", headers=auth_headers
    )
    assert restored.status_code == 200
    assert restored.json()["deleted_at"] is None


@pytest.mark.asyncio
async def test_bulk_delete_ignores_other_users(
    async_client: AsyncClient, db_session, auth_headers, other_headers, checking_account, helpers
):
    ids = []
    for amount in ("1", "2"):
        tx = (
            await async_client.post(
                "/api/v1/transactions",
                headers=auth_headers,
                json=helpers.expense(checking_account.id, amount, date.today()),
            )
        ).json()
        ids.append(tx["id"])

    foreign = await async_client.post(
        "/api/v1/transactions/bulk-delete", headers=other_headers, json={"ids": ids}
    )
    assert foreign.json()["deleted"] == 0

    own = await async_client.post(
        "/api/v1/transactions/bulk-delete",
        headers=auth_headers,
        json={"ids": ids, "permanent": True},
    )
    assert own.json()["deleted"] == 2

    remaining = (await db_session.execute(select(Transaction))).scalars().all()
    assert remaining == []
