"""
Reports Service
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Tuple
from uuid import UUID

import pandas as pd
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from spare_finance.api.db.models import Account, Category, Debt, Transaction, month_start
from spare_finance.api.accounts.service import AccountService
from spare_finance.api.budgets.service import month_end, previous_month
from spare_finance.api.services.encryption import get_encryption_service
from spare_finance.api.reports.analytics import (
    DetectedSubscription,
    ExpenseRow,
    cashflow_frame,
    detect_subscriptions,
)
from spare_finance.api.reports.health import assess_health, month_score

logger = logging.getLogger(__name__)

DETECTION_WINDOW_MONTHS = 6


def _not_transfer():
    return (
        Transaction.transfer_to_id.is_(None),
        Transaction.transfer_from_id.is_(None),
        Transaction.type != "transfer",
        Transaction.deleted_at.is_(None),
    )


def savings_rate(income: Decimal, net: Decimal) -> float:
    if income <= 0:
        return 0.0
    return round(float(net / income * 100), 2)


class ReportService:
    """Read-only aggregates over a user's transactions."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _month_totals(self, user_id: UUID, month: date) -> Tuple[Decimal, Decimal]:
        """Non-transfer (income, expenses) for the month containing `month`."""
        start = month_start(month)
        result = await self.db.execute(
            select(Transaction.type, func.coalesce(func.sum(Transaction.amount), 0))
            .where(
                Transaction.user_id == user_id,
                Transaction.date >= start,
                Transaction.date <= month_end(start),
                *_not_transfer(),
            )
            .group_by(Transaction.type)
        )
        totals = {tx_type: Decimal(str(total)) for tx_type, total in result.all()}
        return totals.get("income", Decimal("0")), totals.get("expense", Decimal("0"))

    async def monthly_summary(self, user_id: UUID, month: date) -> Dict[str, Any]:
        """Income, expenses, savings rate and spending by category for one month."""
        start = month_start(month)
        end = month_end(start)
        period = (
            Transaction.user_id == user_id,
            Transaction.date >= start,
            Transaction.date <= end,
            *_not_transfer(),
        )

        income, expenses = await self._month_totals(user_id, start)
        net = income - expenses

        result = await self.db.execute(
            select(
                Transaction.category_id,
                Category.name,
                func.sum(Transaction.amount),
                func.count(Transaction.id),
            )
            .outerjoin(Category, Category.id == Transaction.category_id)
            .where(*period, Transaction.type == "expense")
            .group_by(Transaction.category_id, Category.name)
        )
        by_category = []
        for category_id, name, total, count in result.all():
            amount = Decimal(str(total))
            by_category.append(
                {
                    "category_id": category_id,
                    "category_name": name or "Uncategorized",
                    "amount": amount,
                    "transaction_count": count,
                    "percentage": round(float(amount / expenses * 100), 2) if expenses else 0.0,
                }
            )
        by_category.sort(key=lambda c: c["amount"], reverse=True)

        return {
            "month": start,
            "income": income,
            "expenses": expenses,
            "net": net,
            "savings_rate": savings_rate(income, net),
            "by_category": by_category,
        }

    async def cashflow_trend(
        self, user_id: UUID, months: int, today: date = None
    ) -> List[Dict[str, Any]]:
        """Income, expenses and net for each of the last N months, oldest first."""
        today = today or date.today()
        start = (pd.Timestamp(month_start(today)) - pd.DateOffset(months=months - 1)).date()

        result = await self.db.execute(
            select(Transaction.date, Transaction.type, Transaction.amount).where(
                Transaction.user_id == user_id,
                Transaction.date >= start,
                Transaction.date <= month_end(today),
                Transaction.type.in_(("income", "expense")),
                *_not_transfer(),
            )
        )
        frame = cashflow_frame(result.all(), start, months)
        return [
            {
                "month": period.start_time.date(),
                "income": Decimal(str(row.income)),
                "expenses": Decimal(str(row.expense)),
                "net": Decimal(str(row.net)),
            }
            for period, row in frame.iterrows()
        ]

    async def detect_subscriptions(
        self, user_id: UUID, today: date = None
    ) -> List[DetectedSubscription]:
        """Recurring charges found in the last six months of expenses."""
        today = today or date.today()
        start = (pd.Timestamp(today) - pd.DateOffset(months=DETECTION_WINDOW_MONTHS)).date()
        encryption = get_encryption_service()

        result = await self.db.execute(
            select(Transaction, Account.name)
            .join(Account, Account.id == Transaction.account_id)
            .where(
                Transaction.user_id == user_id,
                Transaction.type == "expense",
                Transaction.date >= start,
                Transaction.date <= today,
                *_not_transfer(),
            )
            .order_by(Transaction.date)
        )

        rows = []
        for tx, account_name in result.all():
            metadata = tx.plaid_metadata or {}
            merchant = metadata.get("merchant_name") or encryption.decrypt_field(tx.description)
            if not merchant or not merchant.strip():
                continue
            rows.append(
                ExpenseRow(
                    transaction_id=tx.id,
                    account_id=tx.account_id,
                    account_name=account_name or "Unknown Account",
                    date=tx.date,
                    amount=float(tx.amount),
                    merchant=merchant,
                    merchant_entity_id=metadata.get("merchant_entity_id"),
                    logo_url=metadata.get("logo_url"),
                )
            )

        return detect_subscriptions(rows)

    async def financial_health(self, user_id: UUID, month: date) -> Dict[str, Any]:
        """Health score for a month, with last month's score for comparison."""
        income, expenses = await self._month_totals(user_id, month)
        last_income, last_expenses = await self._month_totals(user_id, previous_month(month))

        result = await self.db.execute(
            select(func.coalesce(func.sum(Debt.current_balance), 0)).where(
                Debt.user_id == user_id, Debt.is_paid_off.is_(False)
            )
        )
        total_debt = abs(float(result.scalar() or 0))

        accounts = AccountService(self.db)
        balances = await accounts.get_balances(await accounts.get_user_accounts(user_id))
        total_balance = float(sum(balances.values(), Decimal("0")))

        return assess_health(
            float(income),
            float(expenses),
            total_debt=total_debt,
            total_balance=total_balance,
            last_month_score=month_score(float(last_income), float(last_expenses)),
        )
