"""
Report Tests

Monthly summary, cashflow trend, recurring-charge detection and the
financial health score.
"""

from datetime import date
from decimal import Decimal

import pytest
from httpx import AsyncClient

from spare_finance.api.budgets.service import previous_month
from spare_finance.api.db.models import month_start


async def _post(async_client: AsyncClient, headers: dict, body: dict) -> None:
    response = await async_client.post("/api/v1/transactions", headers=headers, json=body)
    assert response.status_code == 201, response.text


@pytest.mark.asyncio
async def test_monthly_summary(
    async_client: AsyncClient, auth_headers, checking_account, savings_account, groceries, helpers
):
    day = date(2025, 3, 10)
    await _post(async_client, auth_headers, helpers.expense(checking_account.id, "3000", day, "Salary", type="income"))
    await _post(
        async_client, auth_headers,
        helpers.expense(checking_account.id, "100", day, "Market", category_id=str(groceries.id)),
    )
    await _post(async_client, auth_headers, helpers.expense(checking_account.id, "50", date(2025, 3, 31)))
    # outside the month
    await _post(async_client, auth_headers, helpers.expense(checking_account.id, "999", date(2025, 4, 1)))
    await async_client.post(
        "/api/v1/transactions/transfer",
        headers=auth_headers,
        json={
            "from_account_id": str(checking_account.id),
            "to_account_id": str(savings_account.id),
            "amount": "500",
            "date": day.isoformat(),
        },
    )

    response = await async_client.get(
        "/api/v1/reports/monthly-summary", headers=auth_headers, params={"month": "2025-03-22"}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["month"] == "2025-03-01"
    assert Decimal(data["income"]) == Decimal("3000")
    assert Decimal(data["expenses"]) == Decimal("150")
    assert Decimal(data["net"]) == Decimal("2850")
    assert data["savings_rate"] == 95.0

    first, second = data["by_category"]
    assert first["category_name"] == "Groceries"
    assert first["percentage"] == 66.67
    assert second["category_name"] == "Uncategorized"
    assert second["category_id"] is None


@pytest.mark.asyncio
async def test_monthly_summary_without_income(async_client: AsyncClient, auth_headers):
    response = await async_client.get(
        "/api/v1/reports/monthly-summary", headers=auth_headers, params={"month": "2024-01-01"}
    )

    data = response.json()
    assert Decimal(data["income"]) == 0
    assert data["savings_rate"] == 0.0
    assert data["by_category"] == []


@pytest.mark.asyncio
async def test_cashflow_trend(async_client: AsyncClient, auth_headers, checking_account, helpers):
    today = date.today()
    two_back = previous_month(previous_month(today))
    await _post(async_client, auth_headers, helpers.expense(checking_account.id, "1000", today, "Salary", type="income"))
    await _post(async_client, auth_headers, helpers.expense(checking_account.id, "200", two_back))

    response = await async_client.get(
        "/api/v1/reports/cashflow", headers=auth_headers, params={"months": 3}
    )

    assert response.status_code == 200
    points = response.json()["points"]
    assert [p["month"] for p in points] == [
        two_back.isoformat(),
        previous_month(today).isoformat(),
        month_start(today).isoformat(),
    ]
    assert Decimal(points[0]["net"]) == Decimal("-200")
    assert Decimal(points[1]["income"]) == 0
    assert Decimal(points[2]["income"]) == Decimal("1000")


@pytest.mark.asyncio
async def test_cashflow_months_bounds(async_client: AsyncClient, auth_headers):
    response = await async_client.get(
        "/api/v1/reports/cashflow", headers=auth_headers, params={"months": 25}
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_detect_subscriptions(
    async_client: AsyncClient, auth_headers, checking_account, helpers
):
    months = [previous_month(date.today())]
    for _ in range(3):
        months.append(previous_month(months[-1]))

    for month in months:
        await _post(
            async_client, auth_headers,
            helpers.expense(checking_account.id, "15.99", month.replace(day=5), "NETFLIX.COM"),
        )
    for month in months[:3]:
        await _post(
            async_client, auth_headers,
            helpers.expense(checking_account.id, "40.00", month.replace(day=12), "Gym Club"),
        )
    # irregular amounts are not a subscription
    await _post(async_client, auth_headers, helpers.expense(checking_account.id, "20", months[0], "Corner Market"))
    await _post(async_client, auth_headers, helpers.expense(checking_account.id, "80", months[1], "Corner Market"))

    response = await async_client.get("/api/v1/reports/subscriptions", headers=auth_headers)

    assert response.status_code == 200
    netflix, gym = response.json()["items"]

    assert netflix["merchant_name"] == "Netflix"
    assert netflix["frequency"] == "monthly"
    assert netflix["billing_day"] == 5
    assert netflix["amount"] == 15.99
    assert netflix["confidence"] == "high"
    assert netflix["transaction_count"] == 4
    assert netflix["first_billing_date"] == months[-1].replace(day=5).isoformat()
    assert netflix["account_name"] == "Checking"

    assert gym["merchant_name"] == "Gym Club"
    assert gym["billing_day"] == 12
    assert gym["confidence"] == "medium"
    assert gym["description"] == "Detected from 3 transaction(s)"


# ==================== Financial Health ====================


@pytest.mark.asyncio
async def test_financial_health_score(async_client: AsyncClient, auth_headers, checking_account, helpers):
    march = date(2025, 3, 10)
    february = date(2025, 2, 10)
    await _post(async_client, auth_headers, helpers.expense(checking_account.id, "3000", march, "Salary", type="income"))
    await _post(async_client, auth_headers, helpers.expense(checking_account.id, "1500", march, "Rent"))
    await _post(async_client, auth_headers, helpers.expense(checking_account.id, "1000", february, "Salary", type="income"))
    await _post(async_client, auth_headers, helpers.expense(checking_account.id, "950", february, "Rent"))

    response = await async_client.get(
        "/api/v1/reports/financial-health", headers=auth_headers, params={"month": "2025-03-15"}
    )

    assert response.status_code == 200
    data = response.json()
    # half of income spent
    assert data["score"] == 93
    assert data["classification"] == "Excellent"
    assert data["savings_rate"] == 50.0
    assert data["spending_discipline"] == "Excellent"
    assert data["debt_exposure"] == "Low"
    # 1000 opening + 3000 + 1000 - 1500 - 950, over 1500 of monthly spend
    assert data["emergency_fund_months"] == 1.7
    # 95% of income spent in February
    assert data["last_month_score"] == 30
    assert data["alerts"] == []
    assert [s["id"] for s in data["suggestions"]] == ["maintain_good_habits"]


@pytest.mark.asyncio
async def test_financial_health_without_transactions(async_client: AsyncClient, auth_headers):
    response = await async_client.get(
        "/api/v1/reports/financial-health", headers=auth_headers, params={"month": "2024-06-01"}
    )

    data = response.json()
    assert data["score"] == 0
    assert data["spending_discipline"] == "Unknown"
    assert [a["id"] for a in data["alerts"]] == ["no_transactions"]
