"""
Plan Service

Plan catalogue, current-plan resolution and plan limit enforcement
(monthly transactions, accounts).
"""

import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from spare_finance.api.db.models import (
    Account,
    Plan,
    Subscription,
    UserMonthlyUsage,
    month_start,
)

logger = logging.getLogger(__name__)

UNLIMITED = -1
FREE_PLAN_ID = "free"
ACTIVE_STATUSES = ("active", "trialing")

# Seed catalogue; prices and Stripe ids are maintained through the admin API
DEFAULT_PLANS = [
    {
        "id": "free",
        "name": "Free",
        "price_monthly": Decimal("0"),
        "price_yearly": Decimal("0"),
        "features": {"max_transactions": 50, "max_accounts": 2, "has_csv_import": False},
    },
    {
        "id": "essential",
        "name": "Essential",
        "price_monthly": Decimal("7.99"),
        "price_yearly": Decimal("79.90"),
        "features": {"max_transactions": 500, "max_accounts": 10, "has_csv_import": True},
    },
    {
        "id": "pro",
        "name": "Pro",
        "price_monthly": Decimal("14.99"),
        "price_yearly": Decimal("149.90"),
        "features": {
            "max_transactions": UNLIMITED,
            "max_accounts": UNLIMITED,
            "has_csv_import": True,
        },
    },
]


def free_subscription_id(user_id: UUID) -> str:
    return f"{user_id}-{FREE_PLAN_ID}"


def subscription_id(user_id: UUID, plan_id: str) -> str:
    return f"{user_id}-{plan_id}"


def get_limit(plan: Plan, feature: str) -> int:
    """Read an integer limit from plan features; missing means unlimited."""
    value = (plan.features or {}).get(feature, UNLIMITED)
    return int(value)


def has_feature(plan: Plan, feature: str) -> bool:
    """Read a boolean feature flag; missing means off."""
    return bool((plan.features or {}).get(feature, False))


class PlanService:
    """Service for plans, subscriptions lookup and usage limits."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== Catalogue ====================

    async def ensure_default_plans(self) -> None:
        """Insert any missing seed plans."""
        existing = set(
            (await self.db.execute(select(Plan.id))).scalars().all()
        )
        created = False
        for plan_data in DEFAULT_PLANS:
            if plan_data["id"] not in existing:
                self.db.add(Plan(**plan_data))
                created = True
        if created:
            await self.db.flush()
            logger.info("Seeded default plans")

    async def list_plans(self) -> List[Plan]:
        await self.ensure_default_plans()
        result = await self.db.execute(select(Plan).order_by(Plan.price_monthly))
        return list(result.scalars().all())

    async def get_plan(self, plan_id: str) -> Optional[Plan]:
        result = await self.db.execute(select(Plan).where(Plan.id == plan_id))
        return result.scalar_one_or_none()

    async def get_free_plan(self) -> Plan:
        plan = await self.get_plan(FREE_PLAN_ID)
        if plan is None:
            await self.ensure_default_plans()
            plan = await self.get_plan(FREE_PLAN_ID)
        return plan

    async def get_plan_by_price_id(
        self, price_id: str
    ) -> Tuple[Optional[Plan], Optional[str]]:
        """
        Resolve a Stripe price id to a plan.

        Returns:
            Tuple of (plan, interval) where interval is "month" or "year"
        """
        result = await self.db.execute(
            select(Plan).where(
                or_(
                    Plan.stripe_price_id_monthly == price_id,
                    Plan.stripe_price_id_yearly == price_id,
                )
            )
        )
        plan = result.scalars().first()
        if plan is None:
            return None, None
        interval = "month" if plan.stripe_price_id_monthly == price_id else "year"
        return plan, interval

    # ==================== Current plan ====================

    async def get_current_subscription(self, user_id: UUID) -> Optional[Subscription]:
        """Newest active or trialing subscription."""
        result = await self.db.execute(
            select(Subscription)
            .where(
                Subscription.user_id == user_id,
                Subscription.status.in_(ACTIVE_STATUSES),
            )
            .order_by(Subscription.created_at.desc())
        )
        subscriptions = list(result.unique().scalars().all())
        # Prefer a paid plan over the free fallback row
        for sub in subscriptions:
            if sub.plan_id != FREE_PLAN_ID:
                return sub
        return subscriptions[0] if subscriptions else None

    async def get_current_plan(self, user_id: UUID) -> Plan:
        sub = await self.get_current_subscription(user_id)
        if sub is not None:
            plan = await self.get_plan(sub.plan_id)
            if plan is not None:
                return plan
        return await self.get_free_plan()

    async def create_free_subscription(self, user_id: UUID) -> Subscription:
        """Create (or reactivate) the free subscription row for a user."""
        await self.get_free_plan()
        sub_id = free_subscription_id(user_id)
        sub = await self.db.get(Subscription, sub_id)
        if sub is None:
            sub = Subscription(
                id=sub_id, user_id=user_id, plan_id=FREE_PLAN_ID, status="active"
            )
            self.db.add(sub)
        else:
            sub.status = "active"
        await self.db.flush()
        return sub

    # ==================== Limits ====================

    async def get_monthly_usage(self, user_id: UUID, on: date) -> int:
        usage = await self.db.get(UserMonthlyUsage, (user_id, month_start(on)))
        return usage.transactions_count if usage else 0

    async def consume_transaction_quota(
        self, user_id: UUID, on: date, count: int = 1
    ) -> int:
        """
        Check the monthly transaction limit and record usage.

        Raises:
            ValueError: If the limit for the month of `on` is reached

        Returns:
            New usage count for the month
        """
        plan = await self.get_current_plan(user_id)
        limit = get_limit(plan, "max_transactions")

        month = month_start(on)
        usage = await self.db.get(UserMonthlyUsage, (user_id, month))
        current = usage.transactions_count if usage else 0

        if limit != UNLIMITED and current >= limit:
            raise ValueError("Transaction limit reached for this month")

        if usage is None:
            usage = UserMonthlyUsage(
                user_id=user_id, month_date=month, transactions_count=0
            )
            self.db.add(usage)
        usage.transactions_count = current + count
        await self.db.flush()
        return usage.transactions_count

    async def count_accounts(self, user_id: UUID) -> int:
        result = await self.db.execute(
            select(func.count(Account.id)).where(Account.user_id == user_id)
        )
        return result.scalar() or 0

    async def check_account_limit(self, user_id: UUID) -> None:
        """
        Raises:
            ValueError: If the plan's account limit is reached
        """
        plan = await self.get_current_plan(user_id)
        limit = get_limit(plan, "max_accounts")
        if limit == UNLIMITED:
            return
        if await self.count_accounts(user_id) >= limit:
            raise ValueError(f"Account limit reached ({limit}) for {plan.name} plan")
