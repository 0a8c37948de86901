"""
CSV Import Tests
"""

from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import AsyncClient

from spare_finance.api.config import settings
from spare_finance.api.db.models import Subscription


CSV = """Date,Amount,Description,Account,To,Category,Type
2025-03-02,$12.50,Bakery,Checking,,Groceries,expense
2025-03-03,"1,200.00",Salary,checking,,,income
2025-03-04,300,Move to savings,Checking,Savings,,transfer
not-a-date,5,Broken,Checking,,,expense
2025-03-05,abc,Broken amount,Checking,,,expense
2025-03-06,10,Unknown account,Wallet,,,expense
2025-03-07,10,Loop,Checking,Checking,,transfer
"""

MAPPING = {
    "date": "Date",
    "amount": "Amount",
    "description": "Description",
    "account": "Account",
    "to_account": "To",
    "category": "Category",
    "type": "Type",
}


@pytest_asyncio.fixture(scope="function")
async def essential_plan(db_session, test_user):
    """Upgrade the test user to a plan with CSV import."""
    db_session.add(
        Subscription(
            id=f"{test_user.id}-essential",
            user_id=test_user.id,
            plan_id="essential",
            status="active",
            billing_interval="month",
        )
    )
    await db_session.commit()


@pytest.mark.asyncio
async def test_import_needs_plan_feature(async_client: AsyncClient, auth_headers, checking_account):
    response = await async_client.post(
        "/api/v1/transactions/import",
        headers=auth_headers,
        json={"csv": CSV, "mapping": MAPPING},
    )

    assert response.status_code == 403
    assert response.json()["detail"] == "CSV import is not available in your current plan"


@pytest.mark.asyncio
async def test_import_reports_bad_rows_and_keeps_the_rest(
    async_client: AsyncClient, auth_headers, essential_plan, checking_account, savings_account, groceries
):
    response = await async_client.post(
        "/api/v1/transactions/import",
        headers=auth_headers,
        json={"csv": CSV, "mapping": MAPPING},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["imported"] == 3
    assert data["errors"] == 4
    errors = {e["row_index"]: e["error"] for e in data["error_details"]}
    assert errors[4] == "Invalid date format: not-a-date"
    assert errors[5] == "Invalid amount: abc"
    assert errors[6].startswith('Account not found: "Wallet"')
    assert errors[7].startswith("Transfer requires different source and destination accounts")

    listing = (
        await async_client.get(
            "/api/v1/transactions",
            headers=auth_headers,
            params={"start_date": "2025-03-01", "end_date": "2025-03-31"},
        )
    ).json()
    # the transfer adds two rows
    assert listing["total"] == 4
    by_description = {tx["description"]: tx for tx in listing["items"]}
    bakery = by_description["Bakery"]
    assert Decimal(bakery["amount"]) == Decimal("12.50")
    assert bakery["category_id"] == str(groceries.id)
    salary = by_description["Salary"]
    assert salary["type"] == "income"
    assert Decimal(salary["amount"]) == Decimal("1200.00")
    assert salary["account_id"] == str(checking_account.id)


@pytest.mark.asyncio
async def test_account_mapping_and_default_account(
    async_client: AsyncClient, auth_headers, essential_plan, checking_account, savings_account
):
    csv = "Date,Amount,Account\n2025-04-01,-20,Bank A\n2025-04-02,30,\n"

    response = await async_client.post(
        "/api/v1/transactions/import",
        headers=auth_headers,
        json={
            "csv": csv,
            "mapping": {"date": "Date", "amount": "Amount", "account": "Account"},
            "account_mapping": {"Bank A": str(savings_account.id)},
            "default_account_id": str(checking_account.id),
        },
    )

    assert response.json()["imported"] == 2
    listing = (
        await async_client.get(
            "/api/v1/transactions",
            headers=auth_headers,
            params={"start_date": "2025-04-01", "end_date": "2025-04-30"},
        )
    ).json()
    accounts = {tx["account_id"]: Decimal(tx["amount"]) for tx in listing["items"]}
    # amounts are stored positive; no type column means expense
    assert accounts == {str(savings_account.id): Decimal("20"), str(checking_account.id): Decimal("30")}
    assert {tx["type"] for tx in listing["items"]} == {"expense"}


@pytest.mark.asyncio
async def test_preview_saves_nothing(
    async_client: AsyncClient, auth_headers, essential_plan, checking_account, savings_account
):
    response = await async_client.post(
        "/api/v1/transactions/import/preview",
        headers=auth_headers,
        json={"csv": CSV, "mapping": MAPPING},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["columns"] == ["Date", "Amount", "Description", "Account", "To", "Category", "Type"]
    assert data["account_names"] == ["Checking", "Wallet", "checking"]
    assert len(data["rows"]) == 7
    assert data["rows"][2]["type"] == "transfer"
    assert data["rows"][2]["to_account_id"] == str(savings_account.id)
    assert data["rows"][3]["error"] == "Invalid date format: not-a-date"

    listing = (await async_client.get("/api/v1/transactions", headers=auth_headers)).json()
    assert listing["total"] == 0


@pytest.mark.asyncio
async def test_empty_and_oversized_files(
    async_client: AsyncClient, monkeypatch, auth_headers, essential_plan, checking_account
):
    empty = await async_client.post(
        "/api/v1/transactions/import",
        headers=auth_headers,
        json={"csv": "Date,Amount\n", "mapping": {"amount": "Amount"}},
    )
    assert empty.status_code == 400
    assert empty.json()["detail"] == "No transactions provided"

    monkeypatch.setattr(settings, "CSV_IMPORT_MAX_ROWS", 1)
    oversized = await async_client.post(
        "/api/v1/transactions/import",
        headers=auth_headers,
        json={"csv": "Amount\n1\n2\n", "mapping": {"amount": "Amount"}},
    )
    assert oversized.status_code == 400
    assert oversized.json()["detail"] == "CSV import is limited to 1 rows"


@pytest.mark.asyncio
async def test_unknown_mapped_column(
    async_client: AsyncClient, auth_headers, essential_plan, checking_account
):
    response = await async_client.post(
        "/api/v1/transactions/import",
        headers=auth_headers,
        json={"csv": "Amount\n1\n", "mapping": {"amount": "Amount", "date": "When"}},
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Columns not found in CSV: When"
