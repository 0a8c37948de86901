"""
Budget Service

Monthly category budgets and their actual spend.
"""

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from spare_finance.api.db.models import Budget, Transaction, month_start
from spare_finance.api.categories.service import CategoryService
from spare_finance.api.budgets.schemas import (
    BudgetCreateRequest,
    BudgetResponse,
    BudgetUpdateRequest,
)

logger = logging.getLogger(__name__)

WARNING_THRESHOLD = 80.0
OVER_THRESHOLD = 100.0


def month_end(period: date) -> date:
    first = month_start(period)
    next_month = (first.replace(day=28) + timedelta(days=4)).replace(day=1)
    return next_month - timedelta(days=1)


def previous_month(period: date) -> date:
    return month_start(month_start(period) - timedelta(days=1))


def budget_status(percentage: float) -> str:
    if percentage > OVER_THRESHOLD:
        return "over"
    if percentage >= WARNING_THRESHOLD:
        return "warning"
    return "ok"


def with_spend(budget: Budget, actual: Decimal) -> BudgetResponse:
    response = BudgetResponse.model_validate(budget)
    amount = Decimal(budget.amount)
    percentage = float(actual / amount * 100) if amount > 0 else 0.0
    response.actual_spend = actual
    response.percentage = round(percentage, 2)
    response.status = budget_status(percentage)
    return response


class BudgetService:
    """Service for budget operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _find(
        self,
        user_id: UUID,
        period: date,
        category_id: UUID,
        subcategory_id: Optional[UUID],
    ) -> Optional[Budget]:
        query = select(Budget).where(
            Budget.user_id == user_id,
            Budget.period == period,
            Budget.category_id == category_id,
        )
        if subcategory_id is None:
            query = query.where(Budget.subcategory_id.is_(None))
        else:
            query = query.where(Budget.subcategory_id == subcategory_id)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_budget(self, budget_id: UUID) -> Optional[Budget]:
        return await self.db.get(Budget, budget_id)

    async def create_budget(self, user_id: UUID, data: BudgetCreateRequest) -> Budget:
        """
        Raises:
            ValueError: Invalid category or a budget already exists
        """
        period = month_start(data.period)
        await CategoryService(self.db).validate_selection(
            user_id, data.category_id, data.subcategory_id
        )
        if await self._find(user_id, period, data.category_id, data.subcategory_id):
            raise ValueError("Budget already exists for this category in this period")

        budget = Budget(
            user_id=user_id,
            period=period,
            category_id=data.category_id,
            subcategory_id=data.subcategory_id,
            amount=data.amount,
            is_recurring=data.is_recurring,
            note=data.note,
        )
        self.db.add(budget)
        await self.db.commit()
        await self.db.refresh(budget)
        return budget

    async def update_budget(self, budget: Budget, data: BudgetUpdateRequest) -> Budget:
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(budget, field, value)
        await self.db.commit()
        await self.db.refresh(budget)
        return budget

    async def delete_budget(self, budget: Budget) -> None:
        await self.db.delete(budget)
        await self.db.commit()

    async def _spend_by_category(
        self, user_id: UUID, period: date
    ) -> Tuple[Dict[UUID, Decimal], Dict[Tuple[UUID, UUID], Decimal]]:
        """Non-transfer expense totals for the month, per category and per subcategory."""
        result = await self.db.execute(
            select(
                Transaction.category_id,
                Transaction.subcategory_id,
                func.sum(Transaction.amount),
            )
            .where(
                Transaction.user_id == user_id,
                Transaction.type == "expense",
                Transaction.category_id.is_not(None),
                Transaction.transfer_to_id.is_(None),
                Transaction.transfer_from_id.is_(None),
                Transaction.deleted_at.is_(None),
                Transaction.date >= month_start(period),
                Transaction.date <= month_end(period),
            )
            .group_by(Transaction.category_id, Transaction.subcategory_id)
        )

        by_category: Dict[UUID, Decimal] = {}
        by_subcategory: Dict[Tuple[UUID, UUID], Decimal] = {}
        for category_id, subcategory_id, total in result.all():
            amount = abs(Decimal(str(total or 0)))
            by_category[category_id] = by_category.get(category_id, Decimal("0")) + amount
            if subcategory_id is not None:
                by_subcategory[(category_id, subcategory_id)] = amount
        return by_category, by_subcategory

    async def list_budgets(self, user_id: UUID, period: date) -> List[BudgetResponse]:
        """Budgets of a month with actual spend, percentage and status."""
        period = month_start(period)
        result = await self.db.execute(
            select(Budget)
            .where(Budget.user_id == user_id, Budget.period == period)
            .order_by(Budget.created_at)
        )
        budgets = result.scalars().all()
        by_category, by_subcategory = await self._spend_by_category(user_id, period)

        items = []
        for budget in budgets:
            if budget.subcategory_id is not None:
                actual = by_subcategory.get(
                    (budget.category_id, budget.subcategory_id), Decimal("0")
                )
            else:
                actual = by_category.get(budget.category_id, Decimal("0"))
            items.append(with_spend(budget, actual))
        return items

    async def copy_recurring(self, user_id: UUID, period: date) -> int:
        """Copy last month's recurring budgets into period where missing."""
        period = month_start(period)
        result = await self.db.execute(
            select(Budget).where(
                Budget.user_id == user_id,
                Budget.period == previous_month(period),
                Budget.is_recurring.is_(True),
            )
        )

        created = 0
        for source in result.scalars().all():
            if await self._find(user_id, period, source.category_id, source.subcategory_id):
                continue
            self.db.add(
                Budget(
                    user_id=user_id,
                    period=period,
                    category_id=source.category_id,
                    subcategory_id=source.subcategory_id,
                    amount=source.amount,
                    is_recurring=True,
                    note=source.note,
                )
            )
            created += 1

        await self.db.commit()
        if created:
            logger.info("Copied %d recurring budgets into %s for user %s", created, period, user_id)
        return created
