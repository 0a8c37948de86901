"""
Goal Service

Savings goals funded by a share of monthly income.
"""

import logging
import math
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from spare_finance.api.db.models import Goal, PlannedPayment, Transaction, month_start, utcnow
from spare_finance.api.goals.schemas import GoalCreateRequest, GoalResponse, GoalUpdateRequest

logger = logging.getLogger(__name__)

INCOME_BASIS_MONTHS = 3
CENT = Decimal("0.01")


def income_percentage_for_months(
    target: Decimal, balance: Decimal, months: int, income_basis: Decimal
) -> Decimal:
    """Share of income needed to reach target in the given number of months."""
    remaining = max(Decimal("0"), Decimal(target) - Decimal(balance))
    if months <= 0 or income_basis <= 0 or remaining == 0:
        return Decimal("0")
    pct = remaining / months / income_basis * 100
    return min(Decimal("100"), pct).quantize(CENT, rounding=ROUND_HALF_UP)


def goal_progress(goal: Goal, income_basis: Decimal) -> GoalResponse:
    response = GoalResponse.model_validate(goal)
    target = Decimal(goal.target_amount)
    balance = Decimal(goal.current_balance or 0)

    response.progress_pct = round(min(float(balance / target * 100), 100.0), 2) if target > 0 else 0.0
    contribution = (income_basis * Decimal(goal.income_percentage or 0) / 100).quantize(
        CENT, rounding=ROUND_HALF_UP
    )
    response.monthly_contribution = contribution
    response.income_basis = income_basis.quantize(CENT, rounding=ROUND_HALF_UP)

    remaining = target - balance
    if remaining <= 0:
        response.months_to_goal = 0
    elif contribution > 0 and not goal.is_paused:
        response.months_to_goal = math.ceil(remaining / contribution)
    else:
        response.months_to_goal = None
    return response


class GoalService:
    """Service for goal operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_goal(self, goal_id: UUID) -> Optional[Goal]:
        return await self.db.get(Goal, goal_id)

    async def list_goals(self, user_id: UUID) -> List[Goal]:
        result = await self.db.execute(
            select(Goal).where(Goal.user_id == user_id).order_by(Goal.created_at)
        )
        return list(result.scalars().all())

    async def income_basis(self, user_id: UUID, today: Optional[date] = None) -> Decimal:
        """Average monthly non-transfer income over the last three full months."""
        current = month_start(today or date.today())
        start = current
        for _ in range(INCOME_BASIS_MONTHS):
            start = month_start(start - timedelta(days=1))

        result = await self.db.execute(
            select(func.sum(Transaction.amount)).where(
                Transaction.user_id == user_id,
                Transaction.type == "income",
                Transaction.transfer_from_id.is_(None),
                Transaction.deleted_at.is_(None),
                Transaction.date >= start,
                Transaction.date < current,
            )
        )
        total = Decimal(str(result.scalar() or 0))
        return total / INCOME_BASIS_MONTHS

    async def total_allocation(self, user_id: UUID, exclude_id: Optional[UUID] = None) -> Decimal:
        total = Decimal("0")
        for goal in await self.list_goals(user_id):
            if goal.id == exclude_id or goal.is_completed or goal.is_paused:
                continue
            total += Decimal(goal.income_percentage or 0)
        return total

    async def _check_allocation(
        self, user_id: UUID, percentage: Decimal, exclude_id: Optional[UUID] = None
    ) -> None:
        total = await self.total_allocation(user_id, exclude_id) + percentage
        if total > 100:
            raise ValueError(f"Total allocation cannot exceed 100%. Current total: {total:.2f}%")

    async def create_goal(self, user_id: UUID, data: GoalCreateRequest) -> Goal:
        """
        Raises:
            ValueError: If active goals would allocate more than 100% of income
        """
        percentage = data.income_percentage
        if data.target_months and not percentage:
            percentage = income_percentage_for_months(
                data.target_amount,
                data.current_balance,
                data.target_months,
                await self.income_basis(user_id),
            )
        if percentage > 0:
            await self._check_allocation(user_id, percentage)

        goal = Goal(
            user_id=user_id,
            account_id=data.account_id,
            name=data.name,
            description=data.description,
            target_amount=data.target_amount,
            current_balance=data.current_balance,
            income_percentage=percentage,
            priority=data.priority,
            target_months=data.target_months,
            target_date=data.target_date,
        )
        self._mark_completion(goal)
        self.db.add(goal)
        await self.db.commit()
        await self.db.refresh(goal)
        return goal

    async def update_goal(self, goal: Goal, data: GoalUpdateRequest) -> Goal:
        changes = data.model_dump(exclude_unset=True)
        if "income_percentage" in changes:
            await self._check_allocation(goal.user_id, changes["income_percentage"], goal.id)
        for field, value in changes.items():
            setattr(goal, field, value)
        self._mark_completion(goal)
        await self.db.commit()
        await self.db.refresh(goal)
        return goal

    async def delete_goal(self, goal: Goal) -> None:
        await self.db.execute(delete(PlannedPayment).where(PlannedPayment.goal_id == goal.id))
        await self.db.delete(goal)
        await self.db.commit()

    @staticmethod
    def _mark_completion(goal: Goal) -> None:
        reached = Decimal(goal.current_balance or 0) >= Decimal(goal.target_amount)
        if reached and not goal.is_completed:
            goal.is_completed = True
            goal.completed_at = utcnow()
        elif not reached and goal.is_completed:
            goal.is_completed = False
            goal.completed_at = None

    async def top_up(self, goal: Goal, amount: Decimal) -> Goal:
        goal.current_balance = Decimal(goal.current_balance or 0) + amount
        self._mark_completion(goal)
        await self.db.commit()
        await self.db.refresh(goal)
        logger.info("Goal %s topped up by %s", goal.id, amount)
        return goal

    async def withdraw(self, goal: Goal, amount: Decimal) -> Goal:
        """
        Raises:
            ValueError: If amount exceeds the goal balance
        """
        balance = Decimal(goal.current_balance or 0)
        if amount > balance:
            raise ValueError("Withdrawal exceeds goal balance")
        goal.current_balance = balance - amount
        self._mark_completion(goal)
        await self.db.commit()
        await self.db.refresh(goal)
        return goal
