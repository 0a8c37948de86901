"""
Account Service

Business logic for manual and linked accounts.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from spare_finance.api.db.models import (
    Account,
    PlannedPayment,
    Transaction,
    User,
    UserServiceSubscription,
)
from spare_finance.api.accounts.balance import calculate_account_balances
from spare_finance.api.accounts.schemas import AccountCreateRequest, AccountUpdateRequest
from spare_finance.api.billing.plans import PlanService
from spare_finance.api.transactions.service import TransactionService

logger = logging.getLogger(__name__)


class AccountService:
    """Service for account operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user_accounts(self, user_id: UUID) -> List[Account]:
        result = await self.db.execute(
            select(Account)
            .where(Account.user_id == user_id)
            .order_by(Account.created_at)
        )
        return list(result.scalars().all())

    async def get_balances(
        self, accounts: List[Account], up_to: Optional[date] = None
    ) -> Dict[UUID, Decimal]:
        """Computed balances keyed by account id."""
        if not accounts:
            return {}
        result = await self.db.execute(
            select(Transaction).where(
                Transaction.account_id.in_([a.id for a in accounts]),
                Transaction.deleted_at.is_(None),
            )
        )
        return calculate_account_balances(accounts, result.scalars().all(), up_to)

    async def get_balance(self, account: Account) -> Decimal:
        balances = await self.get_balances([account])
        return balances[account.id]

    async def create_account(self, user: User, data: AccountCreateRequest) -> Account:
        """
        Create a manual account.

        Raises:
            ValueError: If the plan's account limit is reached
        """
        await PlanService(self.db).check_account_limit(user.id)

        account = Account(
            user_id=user.id,
            household_id=data.household_id,
            name=data.name,
            type=data.type,
            initial_balance=data.initial_balance,
            credit_limit=data.credit_limit,
            currency=data.currency.upper(),
        )
        self.db.add(account)
        await self.db.commit()
        await self.db.refresh(account)

        logger.info("Created %s account %s for user %s", account.type, account.id, user.id)
        return account

    async def update_account(self, account: Account, data: AccountUpdateRequest) -> Account:
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(account, field, value)
        await self.db.commit()
        await self.db.refresh(account)
        return account

    async def delete_account(self, account: Account) -> None:
        """
        Delete an account and what hangs off it.

        Also removes the other side of its transfers, plus planned payments
        and subscriptions booked against it.
        """
        result = await self.db.execute(
            select(Transaction).where(Transaction.account_id == account.id)
        )
        transactions = TransactionService(self.db)
        doomed: Dict[UUID, Transaction] = {}
        for tx in result.scalars().all():
            doomed[tx.id] = tx
            linked = await transactions.get_linked(tx)
            if linked is not None:
                doomed[linked.id] = linked
        await self.db.execute(
            delete(PlannedPayment).where(
                or_(
                    PlannedPayment.account_id == account.id,
                    PlannedPayment.to_account_id == account.id,
                )
            )
        )
        await self.db.execute(
            delete(UserServiceSubscription).where(UserServiceSubscription.account_id == account.id)
        )
        for tx in doomed.values():
            await self.db.delete(tx)
        await self.db.delete(account)
        await self.db.commit()
        logger.info("Deleted account %s with %d transactions", account.id, len(doomed))
