"""
Tests for the Financial Health Score
====================================
"""

import pytest

from spare_finance.api.reports.health import (
    assess_health,
    classify,
    debt_exposure,
    emergency_fund_months,
    empty_health,
    expense_ratio,
    generate_suggestions,
    identify_alerts,
    month_score,
    savings_rate,
    score_for_ratio,
    spending_discipline,
)


class TestScore:

    @pytest.mark.parametrize(
        "ratio,score",
        [(0, 100), (30, 96), (60, 91), (65, 86), (70, 81), (80, 71), (90, 61), (95, 30), (100, 0), (250, 0)],
    )
    def test_bands(self, ratio, score):
        assert score_for_ratio(ratio) == score

    def test_classification_edges(self):
        assert classify(60) == "Excellent"
        assert classify(60.01) == "Good"
        assert classify(90) == "Poor"
        assert classify(95) == "Critical"

    def test_spending_without_income(self):
        assert expense_ratio(0, 50) == 100.0
        assert savings_rate(0, 50) == -100.0
        assert expense_ratio(0, 0) == 0.0

    def test_month_score_needs_activity(self):
        assert month_score(0, 0) is None
        assert month_score(1000, 500) == 93


class TestSignals:

    def test_discipline(self):
        assert spending_discipline(30) == "Excellent"
        assert spending_discipline(12) == "Fair"
        assert spending_discipline(5) == "Poor"
        assert spending_discipline(-1) == "Critical"

    def test_debt_exposure(self):
        # against 30000 of yearly income
        assert debt_exposure(12000, 2500) == "High"
        assert debt_exposure(6000, 2500) == "Moderate"
        assert debt_exposure(1000, 2500) == "Low"
        assert debt_exposure(1000, 0) == "Low"

    def test_emergency_fund(self):
        assert emergency_fund_months(3000, 1500) == 2.0
        assert emergency_fund_months(100, 0) == 0.0

    def test_overspending_alerts(self):
        ids = [a["id"] for a in identify_alerts(1000, 1200, -20)]

        assert ids == ["expenses_exceeding_income", "negative_savings_rate"]

    def test_low_savings_alerts(self):
        ids = [a["id"] for a in identify_alerts(1000, 970, 3)]

        assert ids == ["low_savings_rate", "very_low_savings_rate"]

    def test_suggestions(self):
        assert [s["id"] for s in generate_suggestions(1000, 850, 15)] == ["review_spending"]
        assert [s["id"] for s in generate_suggestions(1000, 950, 5)] == [
            "increase_savings_rate",
            "create_budget",
        ]


class TestAssessHealth:

    def test_empty_month(self):
        assert assess_health(0, 0) == empty_health()

    def test_overspending(self):
        health = assess_health(1000, 1200, total_debt=5000, total_balance=600)

        assert health["score"] == 0
        assert health["classification"] == "Critical"
        assert health["savings_rate"] == -20.0
        assert health["spending_discipline"] == "Critical"
        assert health["debt_exposure"] == "High"
        assert health["emergency_fund_months"] == 0.5
        assert health["message"].startswith("Warning")
