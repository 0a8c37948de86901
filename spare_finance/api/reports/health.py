"""
Financial Health Score

Scores a month by the share of income that was spent, and reports the
signals around it: savings discipline, debt load against income and how
many months of spending the account balances would cover.
"""

import math
from typing import Any, Dict, List, Optional

# Upper bound of expense ratio (% of income) for each classification
BANDS = (
    (60, "Excellent"),
    (70, "Good"),
    (80, "Fair"),
    (90, "Poor"),
)

MESSAGES = {
    "Excellent": "You're living below your means. Great job!",
    "Good": "Your expenses are balanced but close to your limit.",
    "Fair": "Your expenses are balanced but close to your limit.",
    "Poor": "Warning: you're spending more than you earn!",
    "Critical": "Warning: you're spending more than you earn!",
}

# Minimum savings rate (%) for each discipline level
DISCIPLINE = (
    (30, "Excellent"),
    (20, "Good"),
    (10, "Fair"),
    (0, "Poor"),
)


def _money(amount: float) -> str:
    return f"${amount:,.2f}"


def expense_ratio(income: float, expenses: float) -> float:
    """Expenses as a percentage of income; spending with no income counts as 100."""
    if income > 0:
        return expenses / income * 100
    if expenses > 0:
        return 100.0
    return 0.0


def score_for_ratio(ratio: float) -> int:
    """
    Map an expense ratio to a 0-100 score.

    Each 10-point band below 90% loses 9 points, starting from 100 at 0%.
    Past 90% the score falls 60 points per 10% and bottoms out at 0.
    """
    if ratio <= 60:
        score = max(91.0, 100 - ratio / 60 * 9)
    elif ratio <= 70:
        score = max(81.0, 90 - (ratio - 60) / 10 * 9)
    elif ratio <= 80:
        score = max(71.0, 80 - (ratio - 70) / 10 * 9)
    elif ratio <= 90:
        score = max(61.0, 70 - (ratio - 80) / 10 * 9)
    else:
        score = max(0.0, 60 - (min(ratio, 200) - 90) / 10 * 60)
    return int(max(0, min(100, math.floor(score + 0.5))))


def classify(ratio: float) -> str:
    for limit, label in BANDS:
        if ratio <= limit:
            return label
    return "Critical"


def savings_rate(income: float, expenses: float) -> float:
    if income > 0:
        return (income - expenses) / income * 100
    if expenses > 0:
        return -100.0
    return 0.0


def spending_discipline(rate: float) -> str:
    for minimum, label in DISCIPLINE:
        if rate >= minimum:
            return label
    return "Critical"


def debt_exposure(total_debt: float, monthly_income: float) -> str:
    """Unpaid debt against a year of income: 40%+ is High, 20%+ Moderate."""
    annual = monthly_income * 12
    ratio = total_debt / annual * 100 if annual > 0 else 0
    if ratio >= 40:
        return "High"
    if ratio >= 20:
        return "Moderate"
    return "Low"


def emergency_fund_months(total_balance: float, monthly_expenses: float) -> float:
    if monthly_expenses <= 0:
        return 0.0
    return round(total_balance / monthly_expenses, 2)


def identify_alerts(income: float, expenses: float, rate: float) -> List[Dict[str, str]]:
    alerts = []
    net = income - expenses

    if expenses > income:
        if income > 0:
            detail = (
                f"Your monthly expenses ({_money(expenses)}) are "
                f"{(expenses / income - 1) * 100:.1f}% higher than your monthly income "
                f"({_money(income)})."
            )
        else:
            detail = f"You spent {_money(expenses)} with no income recorded this month."
        alerts.append(
            {
                "id": "expenses_exceeding_income",
                "title": "Expenses Exceeding Income",
                "description": detail,
                "severity": "critical",
                "action": "Review your expenses and identify where you can reduce costs.",
            }
        )

    if rate < 0:
        alerts.append(
            {
                "id": "negative_savings_rate",
                "title": "Negative Savings Rate",
                "description": f"You are spending {_money(abs(net))} more than you earn per month.",
                "severity": "critical",
                "action": "Create a strict budget and increase your income or reduce expenses.",
            }
        )

    if 0 < rate < 10:
        alerts.append(
            {
                "id": "low_savings_rate",
                "title": "Low Savings Rate",
                "description": (
                    f"You are saving only {rate:.1f}% of your income ({_money(net)}/month)."
                ),
                "severity": "warning",
                "action": "Try to increase your savings rate to at least 20%.",
            }
        )

    if 0 < rate < 5:
        alerts.append(
            {
                "id": "very_low_savings_rate",
                "title": "Very Low Savings Rate",
                "description": f"Your savings rate of {rate:.1f}% is below recommended.",
                "severity": "info",
                "action": "Consider reviewing your expenses to increase your savings capacity.",
            }
        )

    return alerts


def generate_suggestions(income: float, expenses: float, rate: float) -> List[Dict[str, str]]:
    suggestions = []
    net = income - expenses

    if expenses > income:
        suggestions.append(
            {
                "id": "reduce_expenses",
                "title": "Urgently Reduce Expenses",
                "description": (
                    f"You need to reduce {_money(expenses - income)} per month to balance "
                    "your income and expenses."
                ),
                "impact": "high",
            }
        )
    if rate < 0:
        suggestions.append(
            {
                "id": "increase_income_or_reduce_expenses",
                "title": "Increase Income or Reduce Expenses",
                "description": (
                    f"You are spending {_money(abs(net))} more than you earn. "
                    "Prioritize increasing your income or reducing expenses."
                ),
                "impact": "high",
            }
        )
    if 0 <= rate < 10:
        suggestions.append(
            {
                "id": "increase_savings_rate",
                "title": "Increase Savings Rate",
                "description": (
                    "Try to save at least 20% of your income. This means saving "
                    f"{_money(income * 0.2)} per month."
                ),
                "impact": "high",
            }
        )
    if 10 <= rate < 20:
        suggestions.append(
            {
                "id": "review_spending",
                "title": "Review Expenses",
                "description": (
                    "Analyze your expense categories and identify where you can reduce "
                    "without affecting your quality of life."
                ),
                "impact": "medium",
            }
        )
    if expenses > income * 0.9:
        suggestions.append(
            {
                "id": "create_budget",
                "title": "Create Budget",
                "description": (
                    "Create a detailed budget to better control your expenses and ensure "
                    "you save regularly."
                ),
                "impact": "medium",
            }
        )
    if 20 <= rate < 30:
        suggestions.append(
            {
                "id": "optimize_savings",
                "title": "Optimize Savings",
                "description": (
                    "You're on the right track! Consider automating your savings and "
                    "investing in low-risk options."
                ),
                "impact": "low",
            }
        )
    if rate >= 30:
        suggestions.append(
            {
                "id": "maintain_good_habits",
                "title": "Maintain Good Practices",
                "description": (
                    "Excellent! You're maintaining a very healthy savings rate. Keep it up!"
                ),
                "impact": "low",
            }
        )
    return suggestions


def month_score(income: float, expenses: float) -> Optional[int]:
    """Score for a month, or None when it has no income or expenses."""
    if income <= 0 and expenses <= 0:
        return None
    return score_for_ratio(expense_ratio(income, expenses))


def empty_health() -> Dict[str, Any]:
    return {
        "score": 0,
        "classification": "Critical",
        "monthly_income": 0.0,
        "monthly_expenses": 0.0,
        "net_amount": 0.0,
        "savings_rate": 0.0,
        "message": (
            "No transactions found for this month. Add income and expense "
            "transactions to calculate your score."
        ),
        "spending_discipline": "Unknown",
        "debt_exposure": "Low",
        "emergency_fund_months": 0.0,
        "last_month_score": None,
        "alerts": [
            {
                "id": "no_transactions",
                "title": "No Transactions",
                "description": "You don't have any income or expense transactions for this month.",
                "severity": "info",
                "action": "Add transactions to see your score.",
            }
        ],
        "suggestions": [
            {
                "id": "add_transactions",
                "title": "Add Transactions",
                "description": (
                    "Start by adding this month's income and expenses to calculate your score."
                ),
                "impact": "high",
            }
        ],
    }


def assess_health(
    income: float,
    expenses: float,
    total_debt: float = 0.0,
    total_balance: float = 0.0,
    last_month_score: Optional[int] = None,
) -> Dict[str, Any]:
    """Full health report for one month of non-transfer income and expenses."""
    if income <= 0 and expenses <= 0:
        return empty_health()

    ratio = expense_ratio(income, expenses)
    classification = classify(ratio)
    rate = savings_rate(income, expenses)

    return {
        "score": score_for_ratio(ratio),
        "classification": classification,
        "monthly_income": round(income, 2),
        "monthly_expenses": round(expenses, 2),
        "net_amount": round(income - expenses, 2),
        "savings_rate": round(rate, 2),
        "message": MESSAGES[classification],
        "spending_discipline": spending_discipline(rate),
        "debt_exposure": debt_exposure(total_debt, income),
        "emergency_fund_months": emergency_fund_months(total_balance, expenses),
        "last_month_score": last_month_score,
        "alerts": identify_alerts(income, expenses, rate),
        "suggestions": generate_suggestions(income, expenses, rate),
    }
