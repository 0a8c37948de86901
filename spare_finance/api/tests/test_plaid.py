"""
Plaid Tests

Linking, cursor-based sync and webhooks against an in-memory Plaid client.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy import select

from spare_finance.api.db.models import Account, PlaidConnection, Transaction, TransactionSync
from spare_finance.api.exceptions import PlaidError
from spare_finance.api.plaid.client import MUTATION_DURING_PAGINATION
from spare_finance.api.plaid.routes import get_plaid_client


PLAID_ACCOUNTS = [
    {
        "account_id": "acc-checking",
        "name": "Everyday Checking",
        "mask": "0001",
        "type": "depository",
        "subtype": "checking",
        "balances": {"iso_currency_code": "USD"},
    },
    {
        "account_id": "acc-card",
        "name": "Rewards Card",
        "official_name": "Rewards Visa",
        "mask": "9999",
        "type": "credit",
        "subtype": "credit card",
        "balances": {"limit": 5000, "iso_currency_code": "USD"},
    },
]


def plaid_tx(tx_id: str, account_id: str, amount: float, day: str, name: str = "Coffee Bar") -> Dict[str, Any]:
    return {
        "transaction_id": tx_id,
        "account_id": account_id,
        "amount": amount,
        "date": day,
        "name": name,
        "pending": False,
        "iso_currency_code": "USD",
    }


class FakePlaidClient:
    """Serves queued /transactions/sync pages and records calls."""

    def __init__(self):
        self.pages: List[Dict[str, Any]] = []
        self.cursors: List[Optional[str]] = []
        self.removed_tokens: List[str] = []
        self.fail_next_with: Optional[str] = None

    async def create_link_token(self, user_id: str, webhook: Optional[str] = None):
        return {"link_token": f"link-sandbox-{user_id[:8]}", "expiration": "2030-01-01T00:00:00Z"}

    async def exchange_public_token(self, public_token: str):
        return {"access_token": "access-sandbox-123", "item_id": "item-123"}

    async def get_accounts(self, access_token: str):
        return PLAID_ACCOUNTS

    async def sync_transactions(self, access_token: str, cursor: Optional[str] = None):
        self.cursors.append(cursor)
        if self.fail_next_with:
            code, self.fail_next_with = self.fail_next_with, None
            raise PlaidError("sync failed", error_code=code)
        if not self.pages:
            return {"added": [], "modified": [], "removed": [], "next_cursor": cursor, "has_more": False}
        return self.pages.pop(0)

    async def remove_item(self, access_token: str):
        self.removed_tokens.append(access_token)
        return {}

    async def close(self):
        pass


@pytest.fixture
def plaid_client(app) -> FakePlaidClient:
    client = FakePlaidClient()
    app.dependency_overrides[get_plaid_client] = lambda: client
    return client


@pytest_asyncio.fixture
async def linked(async_client: AsyncClient, auth_headers, plaid_client) -> Dict[str, Any]:
    response = await async_client.post(
        "/api/v1/plaid/exchange-public-token",
        headers=auth_headers,
        json={
            "public_token": "public-sandbox-abc",
            "institution": {"institution_id": "ins_1", "name": "First Bank"},
        },
    )
    assert response.status_code == 201
    return response.json()


async def _account(db_session, plaid_account_id: str) -> Account:
    result = await db_session.execute(
        select(Account).where(Account.plaid_account_id == plaid_account_id)
    )
    return result.scalar_one()


# ==================== Linking ====================


@pytest.mark.asyncio
async def test_create_link_token(async_client: AsyncClient, auth_headers, plaid_client):
    response = await async_client.post("/api/v1/plaid/link-token", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["link_token"].startswith("link-sandbox-")


@pytest.mark.asyncio
async def test_exchange_creates_accounts(db_session, linked):
    assert linked["item_id"] == "item-123"
    assert linked["institution_name"] == "First Bank"

    checking = await _account(db_session, "acc-checking")
    card = await _account(db_session, "acc-card")
    assert checking.type == "checking"
    assert checking.is_connected is True
    assert card.type == "credit"
    assert card.name == "Rewards Visa"
    assert card.credit_limit == Decimal("5000")

    connection = (await db_session.execute(select(PlaidConnection))).scalar_one()
    assert connection.access_token_encrypted != "access-sandbox-123"


@pytest.mark.asyncio
async def test_relinking_does_not_duplicate_accounts(
    async_client: AsyncClient, db_session, auth_headers, linked
):
    again = await async_client.post(
        "/api/v1/plaid/exchange-public-token",
        headers=auth_headers,
        json={"public_token": "public-sandbox-abc"},
    )

    assert again.status_code == 201
    accounts = (await db_session.execute(select(Account))).scalars().all()
    assert len(accounts) == 2


@pytest.mark.asyncio
async def test_exchange_respects_account_limit(
    async_client: AsyncClient, auth_headers, checking_account, plaid_client
):
    # free plan: checking_account + one Plaid account fill the limit
    response = await async_client.post(
        "/api/v1/plaid/exchange-public-token",
        headers=auth_headers,
        json={"public_token": "public-sandbox-abc"},
    )

    assert response.status_code == 400
    assert "Account limit reached" in response.json()["detail"]


# ==================== Sync ====================


@pytest.mark.asyncio
async def test_sync_adds_modifies_and_removes(
    async_client: AsyncClient, db_session, auth_headers, linked, plaid_client
):
    plaid_client.pages = [
        {
            "added": [
                plaid_tx("t1", "acc-checking", -12.5, "2025-03-01"),
                plaid_tx("t2", "acc-checking", 2500, "2025-03-02", "Payroll"),
            ],
            "modified": [],
            "removed": [],
            "next_cursor": "cursor-1",
            "has_more": True,
        },
        {
            "added": [plaid_tx("t3", "acc-card", -40, "2025-03-03", "Bookshop")],
            "modified": [],
            "removed": [],
            "next_cursor": "cursor-2",
            "has_more": False,
        },
    ]

    response = await async_client.post("/api/v1/plaid/sync", headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {"synced": 3, "skipped": 0, "errors": 0}
    assert plaid_client.cursors == [None, "cursor-1"]

    rows = (await db_session.execute(select(Transaction).order_by(Transaction.date))).scalars().all()
    assert [(r.type, r.amount) for r in rows] == [
        ("expense", Decimal("12.50")),
        ("income", Decimal("2500")),
        ("expense", Decimal("40")),
    ]
    assert rows[0].plaid_metadata["pending"] is False

    # next sync resumes from the stored cursor
    plaid_client.pages = [
        {
            "added": [plaid_tx("t1", "acc-checking", -12.5, "2025-03-01")],
            "modified": [plaid_tx("t2", "acc-checking", 2600, "2025-03-02", "Payroll")],
            "removed": [{"transaction_id": "t3"}],
            "next_cursor": "cursor-3",
            "has_more": False,
        }
    ]
    second = await async_client.post("/api/v1/plaid/sync", headers=auth_headers)

    assert plaid_client.cursors[-1] == "cursor-2"
    assert second.json() == {"synced": 1, "skipped": 1, "errors": 0}

    rows = (await db_session.execute(select(Transaction).order_by(Transaction.date))).scalars().all()
    await db_session.refresh(rows[1])
    assert len(rows) == 2
    assert rows[1].amount == Decimal("2600")


@pytest.mark.asyncio
async def test_sync_restarts_after_mutation_during_pagination(
    async_client: AsyncClient, db_session, auth_headers, linked, plaid_client
):
    plaid_client.fail_next_with = MUTATION_DURING_PAGINATION
    plaid_client.pages = [
        {
            "added": [plaid_tx("t1", "acc-checking", -5, "2025-04-01")],
            "modified": [],
            "removed": [],
            "next_cursor": "cursor-a",
            "has_more": False,
        }
    ]

    response = await async_client.post("/api/v1/plaid/sync", headers=auth_headers)

    assert response.json()["synced"] == 1
    assert plaid_client.cursors == [None, None]


@pytest.mark.asyncio
async def test_row_added_then_modified_in_one_sync(
    async_client: AsyncClient, db_session, auth_headers, linked, plaid_client
):
    plaid_client.pages = [
        {
            "added": [plaid_tx("t1", "acc-checking", -12.5, "2025-03-01")],
            "modified": [],
            "removed": [],
            "next_cursor": "cursor-1",
            "has_more": True,
        },
        {
            "added": [],
            "modified": [plaid_tx("t1", "acc-checking", -13.0, "2025-03-01", "Coffee Bar Inc")],
            "removed": [],
            "next_cursor": "cursor-2",
            "has_more": False,
        },
    ]

    response = await async_client.post("/api/v1/plaid/sync", headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {"synced": 2, "skipped": 0, "errors": 0}
    [row] = (await db_session.execute(select(Transaction))).scalars().all()
    assert row.amount == Decimal("13.0")
    syncs = (await db_session.execute(select(TransactionSync))).scalars().all()
    assert [(s.plaid_transaction_id, s.status) for s in syncs] == [("t1", "synced")]


@pytest.mark.asyncio
@pytest.mark.parametrize("change", ["added", "modified"])
async def test_failed_rows_are_retried(
    async_client: AsyncClient, db_session, auth_headers, linked, plaid_client, change
):
    checking = await _account(db_session, "acc-checking")
    db_session.add(
        TransactionSync(
            account_id=checking.id,
            plaid_transaction_id="t9",
            status="error",
            error_message="boom",
        )
    )
    await db_session.commit()
    page = {"added": [], "modified": [], "removed": [], "next_cursor": "c", "has_more": False}
    page[change] = [plaid_tx("t9", "acc-checking", -7, "2025-06-01")]
    plaid_client.pages = [page]

    response = await async_client.post("/api/v1/plaid/sync", headers=auth_headers)

    assert response.json() == {"synced": 1, "skipped": 0, "errors": 0}
    [tx] = (await db_session.execute(select(Transaction))).scalars().all()
    [sync] = (
        await db_session.execute(
            select(TransactionSync).execution_options(populate_existing=True)
        )
    ).scalars().all()
    assert sync.status == "synced"
    assert sync.transaction_id == tx.id
    assert sync.error_message is None


@pytest.mark.asyncio
async def test_sync_single_account(
    async_client: AsyncClient, db_session, auth_headers, linked, plaid_client
):
    plaid_client.pages = [
        {
            "added": [
                plaid_tx("t1", "acc-checking", -1, "2025-05-01"),
                plaid_tx("t2", "acc-card", -2, "2025-05-01"),
            ],
            "modified": [],
            "removed": [],
            "next_cursor": "c",
            "has_more": False,
        }
    ]
    checking = await _account(db_session, "acc-checking")

    response = await async_client.post(
        f"/api/v1/plaid/accounts/{checking.id}/sync", headers=auth_headers
    )

    assert response.status_code == 200
    assert response.json()["synced"] == 1


@pytest.mark.asyncio
async def test_manual_account_cannot_sync(
    async_client: AsyncClient, auth_headers, checking_account, plaid_client
):
    response = await async_client.post(
        f"/api/v1/plaid/accounts/{checking_account.id}/sync", headers=auth_headers
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Account is not linked to Plaid"


# ==================== Disconnect and Webhooks ====================


@pytest.mark.asyncio
async def test_disconnect_keeps_accounts(
    async_client: AsyncClient, db_session, auth_headers, other_headers, linked, plaid_client
):
    foreign = await async_client.delete(
        f"/api/v1/plaid/connections/{linked['id']}", headers=other_headers
    )
    assert foreign.status_code == 403

    response = await async_client.delete(
        f"/api/v1/plaid/connections/{linked['id']}", headers=auth_headers
    )

    assert response.status_code == 200
    assert plaid_client.removed_tokens == ["access-sandbox-123"]
    checking = await _account(db_session, "acc-checking")
    assert checking.is_connected is False
    assert checking.plaid_connection_id is None


@pytest.mark.asyncio
async def test_webhook_requires_item_id(async_client: AsyncClient, plaid_client):
    response = await async_client.post(
        "/api/v1/plaid/webhook", json={"webhook_type": "TRANSACTIONS"}
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_item_error_webhook_disables_sync(
    async_client: AsyncClient, db_session, linked, plaid_client
):
    response = await async_client.post(
        "/api/v1/plaid/webhook",
        json={
            "webhook_type": "ITEM",
            "webhook_code": "ERROR",
            "item_id": "item-123",
            "error": {"error_code": "ITEM_LOGIN_REQUIRED", "error_type": "ITEM_ERROR"},
        },
    )

    assert response.status_code == 200
    checking = await _account(db_session, "acc-checking")
    assert checking.sync_enabled is False
    connection = (await db_session.execute(select(PlaidConnection))).scalar_one()
    assert connection.error_code == "ITEM_LOGIN_REQUIRED"


@pytest.mark.asyncio
async def test_transient_item_error_keeps_sync(
    async_client: AsyncClient, db_session, linked, plaid_client
):
    await async_client.post(
        "/api/v1/plaid/webhook",
        json={
            "webhook_type": "ITEM",
            "webhook_code": "ERROR",
            "item_id": "item-123",
            "error": {"error_code": "INTERNAL_SERVER_ERROR", "error_type": "API_ERROR"},
        },
    )

    checking = await _account(db_session, "acc-checking")
    assert checking.sync_enabled is True


@pytest.mark.asyncio
async def test_permission_revoked_disconnects_accounts(
    async_client: AsyncClient, db_session, linked, plaid_client
):
    await async_client.post(
        "/api/v1/plaid/webhook",
        json={"webhook_type": "ITEM", "webhook_code": "USER_PERMISSION_REVOKED", "item_id": "item-123"},
    )

    card = await _account(db_session, "acc-card")
    assert card.is_connected is False


@pytest.mark.asyncio
async def test_sync_webhook_pulls_transactions(
    async_client: AsyncClient, db_session, linked, plaid_client
):
    plaid_client.pages = [
        {
            "added": [plaid_tx("w1", "acc-checking", -9, "2025-06-01")],
            "modified": [],
            "removed": [],
            "next_cursor": "cw",
            "has_more": False,
        }
    ]

    response = await async_client.post(
        "/api/v1/plaid/webhook",
        json={"webhook_type": "TRANSACTIONS", "webhook_code": "SYNC_UPDATES_AVAILABLE", "item_id": "item-123"},
    )

    assert response.status_code == 200
    rows = (await db_session.execute(select(Transaction))).scalars().all()
    assert len(rows) == 1


@pytest.mark.asyncio
async def test_webhook_for_unknown_item_is_acknowledged(async_client: AsyncClient, plaid_client):
    response = await async_client.post(
        "/api/v1/plaid/webhook",
        json={"webhook_type": "ITEM", "webhook_code": "ERROR", "item_id": "item-unknown"},
    )

    assert response.status_code == 200
