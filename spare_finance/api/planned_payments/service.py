"""
Planned Payment Service

Scheduled future payments: entered by hand or generated from recurring
transactions, debts, goals and tracked subscriptions.
"""

import logging
import math
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from spare_finance.api.config import settings
from spare_finance.api.db.models import (
    Account,
    Debt,
    Goal,
    PlannedPayment,
    Subcategory,
    Transaction,
    User,
    UserServiceSubscription,
    month_start,
)
from spare_finance.api.categories.service import CategoryService
from spare_finance.api.goals.service import GoalService, goal_progress
from spare_finance.api.planned_payments.schedule import add_months, cycle_dates
from spare_finance.api.planned_payments.schemas import (
    PlannedPaymentCreateRequest,
    PlannedPaymentUpdateRequest,
)
from spare_finance.api.services.encryption import get_encryption_service
from spare_finance.api.transactions.schemas import (
    TransactionCreateRequest,
    TransferCreateRequest,
)
from spare_finance.api.transactions.service import TransactionService

logger = logging.getLogger(__name__)

SCHEDULED = "scheduled"


def _counts(created: int = 0, removed: int = 0, errors: int = 0) -> Dict[str, int]:
    return {"created": created, "removed": removed, "errors": errors}


class PlannedPaymentService:
    """Service for planned payment operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.encryption = get_encryption_service()

    # ==================== Helpers ====================

    def set_description(self, payment: PlannedPayment, text: Optional[str]) -> None:
        text = (text or "").strip() or None
        payment.description = self.encryption.encrypt_field(text)

    def read_description(self, payment: PlannedPayment) -> Optional[str]:
        return self.encryption.decrypt_field(payment.description)

    async def _get_owned_account(self, account_id: UUID, user_id: UUID) -> Account:
        account = await self.db.get(Account, account_id)
        if account is None:
            raise LookupError("Account not found")
        if account.user_id != user_id:
            raise PermissionError("Access denied to this account")
        return account

    async def _validate(self, payment: PlannedPayment) -> None:
        """
        Check accounts and categories of a new or edited payment.

        Raises:
            LookupError: Account not found
            PermissionError: Account belongs to another user
            ValueError: Bad transfer destination or category
        """
        await self._get_owned_account(payment.account_id, payment.user_id)
        if payment.type == "transfer":
            if payment.to_account_id is None:
                raise ValueError("Transfers require a destination account")
            if payment.to_account_id == payment.account_id:
                raise ValueError("Source and destination accounts must differ")
            await self._get_owned_account(payment.to_account_id, payment.user_id)
            payment.category_id = None
            payment.subcategory_id = None
        else:
            payment.to_account_id = None
            await CategoryService(self.db).validate_selection(
                payment.user_id, payment.category_id, payment.subcategory_id
            )

    def _horizon(self, today: date) -> date:
        return today + timedelta(days=settings.PLANNED_HORIZON_DAYS)

    async def _cancel_where(self, *conditions) -> int:
        result = await self.db.execute(
            update(PlannedPayment)
            .where(PlannedPayment.status == SCHEDULED, *conditions)
            .values(status="cancelled")
        )
        return result.rowcount or 0

    async def _taken_dates(self, *conditions) -> set:
        result = await self.db.execute(
            select(PlannedPayment.date).where(
                PlannedPayment.status != "cancelled", *conditions
            )
        )
        return set(result.scalars().all())

    # ==================== CRUD ====================

    async def get_payment(self, payment_id: UUID) -> Optional[PlannedPayment]:
        return await self.db.get(PlannedPayment, payment_id)

    async def list_payments(
        self,
        user_id: UUID,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        status: Optional[str] = None,
        source: Optional[str] = None,
        type: Optional[str] = None,
        account_id: Optional[UUID] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> Tuple[List[PlannedPayment], int, Dict[str, int]]:
        """
        Filtered payments, soonest first.

        Returns:
            Tuple of (page of payments, total, counts by type ignoring
            the type filter)
        """
        conditions = [PlannedPayment.user_id == user_id]
        if start_date:
            conditions.append(PlannedPayment.date >= start_date)
        if end_date:
            conditions.append(PlannedPayment.date <= end_date)
        if status:
            conditions.append(PlannedPayment.status == status)
        if source:
            conditions.append(PlannedPayment.source == source)
        if account_id:
            conditions.append(PlannedPayment.account_id == account_id)

        result = await self.db.execute(
            select(PlannedPayment.type, func.count(PlannedPayment.id))
            .where(*conditions)
            .group_by(PlannedPayment.type)
        )
        counts = {"expense": 0, "income": 0, "transfer": 0}
        counts.update({payment_type: count for payment_type, count in result.all()})

        if type:
            conditions.append(PlannedPayment.type == type)
        total = (
            await self.db.execute(select(func.count(PlannedPayment.id)).where(*conditions))
        ).scalar() or 0

        result = await self.db.execute(
            select(PlannedPayment)
            .where(*conditions)
            .order_by(PlannedPayment.date, PlannedPayment.created_at)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total, counts

    async def create_payment(
        self, user_id: UUID, data: PlannedPaymentCreateRequest
    ) -> PlannedPayment:
        payment = PlannedPayment(
            user_id=user_id,
            date=data.date,
            type=data.type,
            amount=data.amount,
            account_id=data.account_id,
            to_account_id=data.to_account_id,
            category_id=data.category_id,
            subcategory_id=data.subcategory_id,
            source="manual",
            status=SCHEDULED,
        )
        await self._validate(payment)
        self.set_description(payment, data.description)

        self.db.add(payment)
        await self.db.commit()
        await self.db.refresh(payment)
        logger.info("Created planned %s %s for user %s", payment.type, payment.id, user_id)
        return payment

    async def update_payment(
        self, payment: PlannedPayment, data: PlannedPaymentUpdateRequest
    ) -> PlannedPayment:
        """
        Raises:
            ValueError: Payment is no longer scheduled, or invalid changes
        """
        if payment.status != SCHEDULED:
            raise ValueError("Only scheduled payments can be updated")

        changes = data.model_dump(exclude_unset=True)
        has_description = "description" in changes
        description = changes.pop("description", None)

        # validate the merged result on a detached copy before touching the row
        linked = ("type", "account_id", "to_account_id", "category_id", "subcategory_id")
        candidate = PlannedPayment(
            user_id=payment.user_id,
            **{field: changes.get(field, getattr(payment, field)) for field in linked},
        )
        await self._validate(candidate)

        for field in linked:
            setattr(payment, field, getattr(candidate, field))
        for field in ("date", "amount"):
            if field in changes:
                setattr(payment, field, changes[field])
        if has_description:
            self.set_description(payment, description)

        await self.db.commit()
        await self.db.refresh(payment)
        return payment

    async def delete_payment(self, payment: PlannedPayment) -> None:
        await self.db.delete(payment)
        await self.db.commit()

    # ==================== Status ====================

    async def mark_paid(self, user: User, payment: PlannedPayment) -> PlannedPayment:
        """
        Record the payment as a real transaction and link it.

        Raises:
            ValueError: Not scheduled, or the transaction was refused
                (monthly limit, category)
            LookupError: Account no longer exists
        """
        if payment.status != SCHEDULED:
            raise ValueError("Only scheduled payments can be marked as paid")

        transactions = TransactionService(self.db)
        description = self.read_description(payment)
        if payment.type == "transfer":
            tx, _ = await transactions.create_transfer(
                user,
                TransferCreateRequest(
                    from_account_id=payment.account_id,
                    to_account_id=payment.to_account_id,
                    amount=payment.amount,
                    date=payment.date,
                    description=description,
                ),
            )
        else:
            tx = await transactions.create_transaction(
                user,
                TransactionCreateRequest(
                    account_id=payment.account_id,
                    type=payment.type,
                    amount=payment.amount,
                    date=payment.date,
                    description=description,
                    category_id=payment.category_id,
                    subcategory_id=payment.subcategory_id,
                ),
            )

        payment.status = "paid"
        payment.linked_transaction_id = tx.id
        await self.db.commit()
        await self.db.refresh(payment)
        logger.info("Planned payment %s paid by transaction %s", payment.id, tx.id)
        return payment

    async def skip_payment(self, payment: PlannedPayment) -> PlannedPayment:
        if payment.status != SCHEDULED:
            raise ValueError("Only scheduled payments can be skipped")
        payment.status = "skipped"
        await self.db.commit()
        await self.db.refresh(payment)
        return payment

    async def cancel_payment(self, payment: PlannedPayment) -> PlannedPayment:
        if payment.status == "paid":
            raise ValueError("Paid payments cannot be cancelled")
        payment.status = "cancelled"
        await self.db.commit()
        await self.db.refresh(payment)
        return payment

    # ==================== Recurring transactions ====================

    async def generate_from_transaction(
        self, tx: Transaction, today: Optional[date] = None
    ) -> int:
        """
        Schedule the coming monthly repeats of a recurring transaction.

        Repeats fall on the transaction's day of month, start after the
        transaction itself and run to the planning horizon. A repeat with
        the same account, date and amount as an existing payment is not
        created twice.

        Raises:
            ValueError: Transaction is not recurring, deleted, or the
                incoming side of a transfer
        """
        if not tx.is_recurring or tx.deleted_at is not None:
            raise ValueError("Transaction is not recurring")
        if tx.transfer_from_id is not None:
            raise ValueError("Schedule the outgoing side of a transfer")

        today = today or date.today()
        horizon = self._horizon(today)
        start = max(today, tx.date + timedelta(days=1))
        dates = cycle_dates(tx.date, "monthly", start, horizon)
        if not dates:
            return 0

        payment_type = tx.type
        to_account_id = None
        if tx.transfer_to_id is not None:
            incoming = await self.db.get(Transaction, tx.transfer_to_id)
            if incoming is None:
                return 0
            payment_type = "transfer"
            to_account_id = incoming.account_id

        result = await self.db.execute(
            select(PlannedPayment.account_id, PlannedPayment.date, PlannedPayment.amount).where(
                PlannedPayment.user_id == tx.user_id,
                PlannedPayment.source == "recurring",
                PlannedPayment.status != "cancelled",
                PlannedPayment.date >= start,
                PlannedPayment.date <= horizon,
            )
        )
        existing = {(a, d, Decimal(str(amount))) for a, d, amount in result.all()}

        description = self.encryption.decrypt_field(tx.description) or "Recurring transaction"
        amount = abs(Decimal(str(tx.amount)))
        created = 0
        for occurrence in dates:
            key = (tx.account_id, occurrence, amount)
            if key in existing:
                continue
            payment = PlannedPayment(
                user_id=tx.user_id,
                date=occurrence,
                type=payment_type,
                amount=amount,
                account_id=tx.account_id,
                to_account_id=to_account_id,
                category_id=None if to_account_id else tx.category_id,
                subcategory_id=None if to_account_id else tx.subcategory_id,
                source="recurring",
                status=SCHEDULED,
            )
            self.set_description(payment, description)
            self.db.add(payment)
            existing.add(key)
            created += 1

        await self.db.commit()
        logger.debug("Scheduled %d repeats of transaction %s", created, tx.id)
        return created

    async def sync_recurring(self, user_id: UUID, today: Optional[date] = None) -> Dict[str, int]:
        result = await self.db.execute(
            select(Transaction)
            .where(
                Transaction.user_id == user_id,
                Transaction.is_recurring.is_(True),
                Transaction.deleted_at.is_(None),
                Transaction.transfer_from_id.is_(None),
            )
            .order_by(Transaction.date)
        )
        created = 0
        for tx in result.scalars().all():
            created += await self.generate_from_transaction(tx, today)
        return _counts(created=created)

    # ==================== Debts ====================

    async def sync_debt(self, debt: Debt, today: Optional[date] = None) -> Dict[str, int]:
        """
        Keep a debt's scheduled payments in line with the debt.

        Past scheduled payments are cancelled. A paid-off, paused or closed
        debt, or one without an account, loses all of them. Otherwise
        payments are scheduled up to the horizon, no more than the balance
        needs.
        """
        today = today or date.today()
        inactive = (
            debt.is_paid_off
            or debt.is_paused
            or debt.status == "closed"
            or debt.account_id is None
            or Decimal(debt.monthly_payment or 0) <= 0
        )
        if inactive:
            removed = await self._cancel_where(PlannedPayment.debt_id == debt.id)
            await self.db.commit()
            return _counts(removed=removed)

        removed = await self._cancel_where(
            PlannedPayment.debt_id == debt.id, PlannedPayment.date < today
        )
        payment = Decimal(debt.monthly_payment)
        remaining = math.ceil(Decimal(debt.current_balance or 0) / payment)
        anchor = debt.first_payment_date or month_start(add_months(today, 1))
        dates = cycle_dates(
            anchor, debt.payment_frequency or "monthly", today, self._horizon(today), limit=remaining
        )
        taken = await self._taken_dates(PlannedPayment.debt_id == debt.id)

        created = 0
        for occurrence in dates:
            if occurrence in taken:
                continue
            planned = PlannedPayment(
                user_id=debt.user_id,
                date=occurrence,
                type="expense",
                amount=payment,
                account_id=debt.account_id,
                source="debt",
                status=SCHEDULED,
                debt_id=debt.id,
            )
            self.set_description(planned, f"Debt payment: {debt.name}")
            self.db.add(planned)
            created += 1

        await self.db.commit()
        return _counts(created=created, removed=removed)

    # ==================== Goals ====================

    async def sync_goal(
        self, goal: Goal, income_basis: Decimal, today: Optional[date] = None
    ) -> Dict[str, int]:
        """
        Keep a goal's monthly deposits in line with its contribution.

        Deposits are income to the goal's account on the first of each
        month, starting next month. Completed, paused or unfunded goals
        lose their scheduled deposits.
        """
        today = today or date.today()
        contribution = goal_progress(goal, income_basis).monthly_contribution
        if goal.is_completed or goal.is_paused or goal.account_id is None or contribution <= 0:
            removed = await self._cancel_where(PlannedPayment.goal_id == goal.id)
            await self.db.commit()
            return _counts(removed=removed)

        removed = await self._cancel_where(
            PlannedPayment.goal_id == goal.id, PlannedPayment.date < today
        )
        # scheduled deposits follow the current contribution
        await self.db.execute(
            update(PlannedPayment)
            .where(PlannedPayment.goal_id == goal.id, PlannedPayment.status == SCHEDULED)
            .values(amount=contribution)
        )

        first = month_start(add_months(today, 1))
        dates = cycle_dates(first, "monthly", today, self._horizon(today))
        taken = await self._taken_dates(PlannedPayment.goal_id == goal.id)

        created = 0
        for occurrence in dates:
            if occurrence in taken:
                continue
            planned = PlannedPayment(
                user_id=goal.user_id,
                date=occurrence,
                type="income",
                amount=contribution,
                account_id=goal.account_id,
                source="goal",
                status=SCHEDULED,
                goal_id=goal.id,
            )
            self.set_description(planned, f"Goal deposit: {goal.name}")
            self.db.add(planned)
            created += 1

        await self.db.commit()
        return _counts(created=created, removed=removed)

    # ==================== Subscriptions ====================

    async def schedule_subscription(
        self, subscription: UserServiceSubscription, today: Optional[date] = None
    ) -> int:
        """
        Schedule upcoming charges of an active subscription.

        Charges run from its first billing date for a year, at most
        MAX_OCCURRENCES of them. Dates that already have a charge are kept.
        """
        if not subscription.is_active or Decimal(subscription.amount or 0) <= 0:
            return 0

        today = today or date.today()
        horizon = today + timedelta(days=settings.SUBSCRIPTION_HORIZON_DAYS)
        dates = cycle_dates(
            subscription.first_billing_date,
            subscription.billing_frequency,
            today,
            horizon,
            day=subscription.billing_day,
        )
        taken = await self._taken_dates(PlannedPayment.subscription_id == subscription.id)

        category_id = None
        if subscription.subcategory_id is not None:
            subcategory = await self.db.get(Subcategory, subscription.subcategory_id)
            category_id = subcategory.category_id if subcategory else None

        created = 0
        for occurrence in dates:
            if occurrence in taken:
                continue
            planned = PlannedPayment(
                user_id=subscription.user_id,
                date=occurrence,
                type="expense",
                amount=subscription.amount,
                account_id=subscription.account_id,
                category_id=category_id,
                subcategory_id=subscription.subcategory_id if category_id else None,
                source="subscription",
                status=SCHEDULED,
                subscription_id=subscription.id,
            )
            self.set_description(planned, subscription.service_name)
            self.db.add(planned)
            created += 1

        await self.db.commit()
        return created

    async def clear_subscription(self, subscription_id: UUID) -> int:
        """Delete a subscription's scheduled charges."""
        result = await self.db.execute(
            select(PlannedPayment).where(
                PlannedPayment.subscription_id == subscription_id,
                PlannedPayment.status == SCHEDULED,
            )
        )
        payments = list(result.scalars().all())
        for payment in payments:
            await self.db.delete(payment)
        await self.db.commit()
        return len(payments)

    # ==================== Sync ====================

    async def sync_user(self, user_id: UUID, today: Optional[date] = None) -> Dict[str, Dict[str, int]]:
        """Regenerate one user's debt, goal, recurring and subscription payments."""
        results = {
            "users": 1,
            "debts": _counts(),
            "goals": _counts(),
            "recurring": _counts(),
            "subscriptions": _counts(),
        }
        basis = await GoalService(self.db).income_basis(user_id, today)

        for debt in (await self.db.execute(select(Debt).where(Debt.user_id == user_id))).scalars().all():
            self._add(results["debts"], await self.sync_debt(debt, today))
        for goal in (await self.db.execute(select(Goal).where(Goal.user_id == user_id))).scalars().all():
            self._add(results["goals"], await self.sync_goal(goal, basis, today))
        self._add(results["recurring"], await self.sync_recurring(user_id, today))

        result = await self.db.execute(
            select(UserServiceSubscription).where(
                UserServiceSubscription.user_id == user_id,
                UserServiceSubscription.is_active.is_(True),
            )
        )
        for subscription in result.scalars().all():
            results["subscriptions"]["created"] += await self.schedule_subscription(subscription, today)
        return results

    @staticmethod
    def _add(total: Dict[str, int], counts: Dict[str, int]) -> None:
        for key, value in counts.items():
            total[key] += value

    async def sync_all(self, today: Optional[date] = None) -> Dict[str, object]:
        """
        Regenerate planned payments for every user with an account.

        A failure on one debt, goal, user or subscription is logged and
        counted; the sweep carries on with the rest.
        """
        user_ids = list(
            (await self.db.execute(select(Account.user_id).distinct())).scalars().all()
        )
        results = {
            "users": len(user_ids),
            "debts": _counts(),
            "goals": _counts(),
            "recurring": _counts(),
            "subscriptions": _counts(),
        }
        logger.info("Syncing planned payments for %d users", len(user_ids))

        # ids only: a rollback after a failure expires loaded rows
        debt_ids = (
            await self.db.execute(
                select(Debt.id).where(Debt.is_paid_off.is_(False), Debt.is_paused.is_(False))
            )
        ).scalars().all()
        for debt_id in debt_ids:
            try:
                debt = await self.db.get(Debt, debt_id)
                self._add(results["debts"], await self.sync_debt(debt, today))
            except Exception as e:
                await self.db.rollback()
                logger.error("Planned payment sync failed for debt %s: %s", debt_id, e)
                results["debts"]["errors"] += 1

        goal_ids = (
            await self.db.execute(
                select(Goal.id).where(
                    Goal.is_completed.is_(False),
                    Goal.is_paused.is_(False),
                    Goal.account_id.is_not(None),
                    Goal.income_percentage > 0,
                )
            )
        ).scalars().all()
        bases: Dict[UUID, Decimal] = {}
        for goal_id in goal_ids:
            try:
                goal = await self.db.get(Goal, goal_id)
                if goal.user_id not in bases:
                    bases[goal.user_id] = await GoalService(self.db).income_basis(goal.user_id, today)
                self._add(results["goals"], await self.sync_goal(goal, bases[goal.user_id], today))
            except Exception as e:
                await self.db.rollback()
                logger.error("Planned payment sync failed for goal %s: %s", goal_id, e)
                results["goals"]["errors"] += 1

        for user_id in user_ids:
            try:
                self._add(results["recurring"], await self.sync_recurring(user_id, today))
            except Exception as e:
                await self.db.rollback()
                logger.error("Recurring payment sync failed for user %s: %s", user_id, e)
                results["recurring"]["errors"] += 1

        subscription_ids = (
            await self.db.execute(
                select(UserServiceSubscription.id).where(UserServiceSubscription.is_active.is_(True))
            )
        ).scalars().all()
        for subscription_id in subscription_ids:
            try:
                subscription = await self.db.get(UserServiceSubscription, subscription_id)
                results["subscriptions"]["created"] += await self.schedule_subscription(
                    subscription, today
                )
            except Exception as e:
                await self.db.rollback()
                logger.error(
                    "Planned payment sync failed for subscription %s: %s", subscription_id, e
                )
                results["subscriptions"]["errors"] += 1

        logger.info("Planned payment sync finished: %s", results)
        return results
