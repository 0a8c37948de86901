"""
Debt Service

Loans, payments and payoff projections.
"""

import logging
from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from spare_finance.api.db.models import Debt, PlannedPayment, utcnow
from spare_finance.api.debts.calculations import payoff_schedule, split_payment
from spare_finance.api.debts.schemas import (
    DebtCreateRequest,
    DebtResponse,
    DebtUpdateRequest,
    PayoffScheduleResponse,
)

logger = logging.getLogger(__name__)


def debt_response(debt: Debt) -> DebtResponse:
    response = DebtResponse.model_validate(debt)
    schedule = payoff_schedule(debt.current_balance, debt.interest_rate, debt.monthly_payment)
    if schedule is not None:
        response.payoff = PayoffScheduleResponse(
            months=schedule.months,
            total_interest=schedule.total_interest,
            total_paid=schedule.total_paid,
        )
    return response


class DebtService:
    """Service for debt operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_debt(self, debt_id: UUID) -> Optional[Debt]:
        return await self.db.get(Debt, debt_id)

    async def list_debts(self, user_id: UUID) -> List[Debt]:
        result = await self.db.execute(
            select(Debt).where(Debt.user_id == user_id).order_by(Debt.created_at)
        )
        return list(result.scalars().all())

    @staticmethod
    def _sync_paid_off(debt: Debt) -> None:
        if Decimal(debt.current_balance) <= 0:
            debt.current_balance = Decimal("0")
            debt.is_paid_off = True
            debt.status = "closed"
            if debt.paid_off_at is None:
                debt.paid_off_at = utcnow()
        else:
            debt.is_paid_off = False
            debt.status = "active"
            debt.paid_off_at = None

    async def create_debt(self, user_id: UUID, data: DebtCreateRequest) -> Debt:
        """
        Raises:
            ValueError: If the down payment exceeds the amount
        """
        if data.down_payment > data.initial_amount:
            raise ValueError("Down payment cannot exceed the initial amount")

        debt = Debt(
            user_id=user_id,
            account_id=data.account_id,
            name=data.name,
            loan_type=data.loan_type,
            initial_amount=data.initial_amount,
            down_payment=data.down_payment,
            current_balance=data.initial_amount - data.down_payment,
            interest_rate=data.interest_rate,
            total_months=data.total_months,
            first_payment_date=data.first_payment_date,
            monthly_payment=data.monthly_payment,
            payment_frequency=data.payment_frequency,
            principal_paid=Decimal("0"),
            interest_paid=Decimal("0"),
            priority=data.priority,
            is_paused=data.is_paused,
        )
        self._sync_paid_off(debt)
        self.db.add(debt)
        await self.db.commit()
        await self.db.refresh(debt)
        return debt

    async def update_debt(self, debt: Debt, data: DebtUpdateRequest) -> Debt:
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(debt, field, value)
        self._sync_paid_off(debt)
        await self.db.commit()
        await self.db.refresh(debt)
        return debt

    async def delete_debt(self, debt: Debt) -> None:
        await self.db.execute(delete(PlannedPayment).where(PlannedPayment.debt_id == debt.id))
        await self.db.delete(debt)
        await self.db.commit()

    async def record_payment(self, debt: Debt, amount: Decimal) -> Tuple[Debt, Decimal, Decimal]:
        """
        Apply a payment, split into interest and principal.

        Raises:
            ValueError: If the debt is already paid off

        Returns:
            (debt, principal, interest)
        """
        if debt.is_paid_off or Decimal(debt.current_balance) <= 0:
            raise ValueError("Debt is already paid off")

        principal, interest = split_payment(amount, debt.current_balance, debt.interest_rate)
        debt.principal_paid = Decimal(debt.principal_paid or 0) + principal
        debt.interest_paid = Decimal(debt.interest_paid or 0) + interest
        debt.current_balance = max(Decimal("0"), Decimal(debt.current_balance) - principal)
        self._sync_paid_off(debt)

        await self.db.commit()
        await self.db.refresh(debt)

        logger.info(
            "Payment on debt %s: principal=%s interest=%s balance=%s",
            debt.id, principal, interest, debt.current_balance,
        )
        return debt, principal, interest
