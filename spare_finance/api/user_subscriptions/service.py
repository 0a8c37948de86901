"""
User Subscription Service

Services the user pays for on a cycle. Active subscriptions keep a year
of scheduled charges in planned payments.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from spare_finance.api.db.models import Account, Subcategory, UserServiceSubscription
from spare_finance.api.categories.service import CategoryService
from spare_finance.api.planned_payments.service import PlannedPaymentService
from spare_finance.api.user_subscriptions.schemas import (
    UserSubscriptionCreateRequest,
    UserSubscriptionResponse,
    UserSubscriptionUpdateRequest,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# Charges per month for each billing cycle
MONTHLY_FACTOR = {
    "daily": Decimal("365") / 12,
    "weekly": Decimal("52") / 12,
    "biweekly": Decimal("26") / 12,
    "semimonthly": Decimal("2"),
    "monthly": Decimal("1"),
}


def monthly_cost(subscription: UserServiceSubscription) -> Decimal:
    factor = MONTHLY_FACTOR.get(subscription.billing_frequency, Decimal("1"))
    return (Decimal(subscription.amount) * factor).quantize(CENT, rounding=ROUND_HALF_UP)


def subscription_response(subscription: UserServiceSubscription) -> UserSubscriptionResponse:
    response = UserSubscriptionResponse.model_validate(subscription)
    response.monthly_cost = monthly_cost(subscription)
    return response


class UserSubscriptionService:
    """Service for tracked subscriptions."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.planned = PlannedPaymentService(db)

    async def get_subscription(self, subscription_id: UUID) -> Optional[UserServiceSubscription]:
        return await self.db.get(UserServiceSubscription, subscription_id)

    async def list_subscriptions(self, user_id: UUID) -> List[UserServiceSubscription]:
        result = await self.db.execute(
            select(UserServiceSubscription)
            .where(UserServiceSubscription.user_id == user_id)
            .order_by(UserServiceSubscription.service_name)
        )
        return list(result.scalars().all())

    async def _validate(
        self, user_id: UUID, account_id: UUID, subcategory_id: Optional[UUID]
    ) -> None:
        """
        Raises:
            LookupError: Account not found
            PermissionError: Account belongs to another user
            ValueError: Unknown subcategory
        """
        account = await self.db.get(Account, account_id)
        if account is None:
            raise LookupError("Account not found")
        if account.user_id != user_id:
            raise PermissionError("Access denied to this account")
        if subcategory_id is not None:
            visible = await CategoryService(self.db).is_visible(Subcategory, subcategory_id, user_id)
            if visible is None:
                raise ValueError("Subcategory not found")

    async def create_subscription(
        self, user_id: UUID, data: UserSubscriptionCreateRequest
    ) -> UserServiceSubscription:
        await self._validate(user_id, data.account_id, data.subcategory_id)

        subscription = UserServiceSubscription(
            user_id=user_id,
            is_active=True,
            **data.model_dump(),
        )
        self.db.add(subscription)
        await self.db.commit()
        await self.db.refresh(subscription)

        scheduled = await self.planned.schedule_subscription(subscription)
        logger.info(
            "Tracking subscription %s for user %s (%d charges scheduled)",
            subscription.id, user_id, scheduled,
        )
        return subscription

    async def update_subscription(
        self, subscription: UserServiceSubscription, data: UserSubscriptionUpdateRequest
    ) -> UserServiceSubscription:
        """Apply changes and rebuild the scheduled charges."""
        changes = data.model_dump(exclude_unset=True)
        await self._validate(
            subscription.user_id,
            changes.get("account_id", subscription.account_id),
            changes.get("subcategory_id", subscription.subcategory_id),
        )
        for field, value in changes.items():
            setattr(subscription, field, value)
        await self.db.commit()
        await self.db.refresh(subscription)

        await self.planned.clear_subscription(subscription.id)
        if subscription.is_active:
            await self.planned.schedule_subscription(subscription)
        return subscription

    async def delete_subscription(self, subscription: UserServiceSubscription) -> None:
        subscription_id = subscription.id
        await self.planned.clear_subscription(subscription_id)
        await self.db.delete(subscription)
        await self.db.commit()
        logger.info("Deleted subscription %s", subscription_id)

    async def pause_subscription(
        self, subscription: UserServiceSubscription
    ) -> UserServiceSubscription:
        """
        Raises:
            ValueError: Already paused
        """
        if not subscription.is_active:
            raise ValueError("Subscription is already paused")
        subscription.is_active = False
        await self.db.commit()
        await self.planned.clear_subscription(subscription.id)
        await self.db.refresh(subscription)
        return subscription

    async def resume_subscription(
        self, subscription: UserServiceSubscription
    ) -> UserServiceSubscription:
        """
        Raises:
            ValueError: Already active
        """
        if subscription.is_active:
            raise ValueError("Subscription is already active")
        subscription.is_active = True
        await self.db.commit()
        await self.planned.schedule_subscription(subscription)
        await self.db.refresh(subscription)
        return subscription
