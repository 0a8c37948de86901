"""
Tests for Report Analytics
===========================

Cashflow aggregation and recurring-charge detection on plain rows.
"""

import uuid
from datetime import date

import pandas as pd
import pytest

from spare_finance.api.reports.analytics import (
    ExpenseRow,
    amount_variance,
    billing_day,
    cashflow_frame,
    classify_frequency,
    confidence_level,
    date_regularity,
    detect_subscriptions,
    find_known_service,
    normalize_merchant,
)


class TestCashflowFrame:
    """Monthly income/expense/net frame."""

    def test_months_are_continuous(self, cashflow_rows):
        frame = cashflow_frame(cashflow_rows, date(2024, 1, 1), 4)

        assert list(frame.index) == list(pd.period_range("2024-01", periods=4, freq="M"))
        assert list(frame.columns) == ["income", "expense", "net"]
        assert frame.loc[pd.Period("2024-04", "M")].tolist() == [0.0, 0.0, 0.0]

    def test_totals(self, cashflow_rows):
        frame = cashflow_frame(cashflow_rows, date(2024, 1, 1), 3)

        assert frame["income"].tolist() == [3000.0, 3000.0, 3000.0]
        assert (frame["expense"] > 0).all()
        assert frame["net"].tolist() == pytest.approx((frame["income"] - frame["expense"]).tolist())
        spent = sum(float(a) for _, kind, a in cashflow_rows if kind == "expense")
        assert frame["expense"].sum() == pytest.approx(spent, abs=0.05)

    def test_no_rows(self):
        frame = cashflow_frame([], date(2024, 6, 1), 2)

        assert len(frame) == 2
        assert frame.to_numpy().sum() == 0


class TestMerchantMatching:

    def test_normalize_strips_punctuation(self):
        assert normalize_merchant("  NETFLIX.COM* ") == "netflixcom"
        assert normalize_merchant(None) == ""

    def test_known_service_partial_match(self):
        assert find_known_service("NETFLIX.COM") == "Netflix"
        assert find_known_service("Spotify USA") == "Spotify"
        assert find_known_service("Corner Market") is None
        assert find_known_service("") is None


class TestStatistics:
    """Variance, regularity and frequency buckets."""

    def test_amount_variance(self):
        assert amount_variance([9.99, 9.99, 9.99]) == 0.0
        assert amount_variance([10]) == 0.0
        assert amount_variance([10, 30]) == pytest.approx(0.5)

    def test_date_regularity(self):
        weekly = [date(2024, 1, 1), date(2024, 1, 8), date(2024, 1, 15)]
        assert date_regularity(weekly) == 1.0
        assert date_regularity([date(2024, 1, 1)]) == 1.0
        assert date_regularity([date(2024, 1, 1), date(2024, 1, 1)]) == 0.0

    @pytest.mark.parametrize(
        "step, expected",
        [(1, "daily"), (7, "biweekly"), (3, "weekly"), (14, "semimonthly"), (30, "monthly")],
    )
    def test_classify_frequency(self, step, expected):
        dates = [date.fromordinal(date(2024, 1, 1).toordinal() + step * i) for i in range(4)]
        assert classify_frequency(dates) == expected

    def test_billing_day(self):
        # 2024-01-07 is a Sunday
        assert billing_day("weekly", [date(2024, 1, 14), date(2024, 1, 7)]) == 0
        assert billing_day("monthly", [date(2024, 2, 3), date(2024, 1, 3)]) == 3
        assert billing_day("daily", [date(2024, 1, 3)]) is None
        assert billing_day("monthly", []) is None

    def test_confidence_level(self):
        assert confidence_level(6, 0.0, 1.0, known=True) == "high"
        assert confidence_level(3, 0.0, 0.9, known=False) == "medium"
        assert confidence_level(2, 0.25, 0.5, known=False) == "low"


class TestDetectSubscriptions:
    """End-to-end detection over expense rows."""

    def test_monthly_known_service(self, monthly_charges):
        [found] = detect_subscriptions(monthly_charges)

        assert found.merchant_name == "Spotify"
        assert found.frequency == "monthly"
        assert found.billing_day == 3
        assert found.amount == 15.49
        assert found.confidence == "high"
        assert found.transaction_count == 6
        assert found.first_billing_date == date(2024, 1, 3)
        assert found.last_transaction_date == date(2024, 6, 3)

    def test_irregular_spending_is_not_a_subscription(self, noisy_groceries):
        assert detect_subscriptions(noisy_groceries) == []

    def test_single_charge_is_ignored(self, monthly_charges):
        assert detect_subscriptions(monthly_charges[:1]) == []

    def test_groups_are_per_account(self, monthly_charges):
        other = uuid.uuid4()
        moved = [
            ExpenseRow(
                transaction_id=row.transaction_id,
                account_id=other if i % 2 else row.account_id,
                account_name=row.account_name,
                date=row.date,
                amount=row.amount,
                merchant=row.merchant,
            )
            for i, row in enumerate(monthly_charges)
        ]

        found = detect_subscriptions(moved)

        assert {s.account_id for s in found} == {other, monthly_charges[0].account_id}
        assert all(s.transaction_count == 3 for s in found)

    def test_sorted_by_confidence(self, monthly_charges, account_id):
        gym = [
            ExpenseRow(
                transaction_id=uuid.uuid4(),
                account_id=account_id,
                account_name="Checking",
                date=date(2024, month, 20),
                amount=40.0,
                merchant="Gym Club",
            )
            for month in (1, 2)
        ]

        found = detect_subscriptions(gym + monthly_charges)

        assert [s.merchant_name for s in found] == ["Spotify", "Gym Club"]
