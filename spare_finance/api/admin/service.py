"""
Admin Service

Business logic for admin dashboard and management operations.
"""

import asyncio
import logging
import math
from collections import Counter
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Tuple
from uuid import UUID

import stripe
from sqlalchemy import select, func, desc, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from spare_finance.api.db.models import Account, Plan, PromoCode, Subscription, User, as_utc, utcnow
from spare_finance.api.billing.plans import ACTIVE_STATUSES, PlanService
from spare_finance.api.billing.service import configure_stripe, stripe_field
from spare_finance.api.exceptions import BillingError
from spare_finance.api.admin.schemas import (
    AdminUserResponse,
    DashboardResponse,
    PlanDistributionResponse,
    PlanUpdateRequest,
    PromoCodeCreateRequest,
    SubscriptionCountsResponse,
    UpcomingTrialResponse,
    UserUpdateRequest,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def monthly_revenue(subscription: Subscription) -> Decimal:
    """Monthly value of a subscription; yearly billing counts as price/12."""
    plan = subscription.plan
    if subscription.billing_interval == "year":
        return Decimal(plan.price_yearly or 0) / 12
    return Decimal(plan.price_monthly or 0)


class AdminService:
    """Service for admin operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== Dashboard ====================

    async def get_dashboard(self) -> DashboardResponse:
        """Subscription metrics, revenue estimates and plan distribution."""
        total_users = await self.db.scalar(select(func.count(User.id))) or 0

        result = await self.db.execute(
            select(Subscription).order_by(Subscription.created_at.desc())
        )
        subscriptions = list(result.unique().scalars().all())
        statuses = Counter(s.status for s in subscriptions)
        counts = SubscriptionCountsResponse(
            total=len(subscriptions),
            active=statuses.get("active", 0),
            trialing=statuses.get("trialing", 0),
            cancelled=statuses.get("cancelled", 0),
            past_due=statuses.get("past_due", 0),
        )

        mrr = sum(
            (monthly_revenue(s) for s in subscriptions if s.status == "active"),
            Decimal("0"),
        )

        now = utcnow()
        upcoming: List[UpcomingTrialResponse] = []
        for sub in subscriptions:
            if sub.status != "trialing" or sub.trial_end_date is None:
                continue
            trial_end = as_utc(sub.trial_end_date)
            days_left = math.ceil((trial_end - now).total_seconds() / 86400)
            if days_left <= 0:
                continue
            upcoming.append(
                UpcomingTrialResponse(
                    subscription_id=sub.id,
                    user_id=sub.user_id,
                    plan_id=sub.plan_id,
                    plan_name=sub.plan.name,
                    trial_end_date=trial_end,
                    days_until_end=days_left,
                    estimated_monthly_revenue=Decimal(sub.plan.price_monthly or 0),
                )
            )
        upcoming.sort(key=lambda t: t.days_until_end)
        future_mrr = sum((t.estimated_monthly_revenue for t in upcoming), Decimal("0"))

        plans = await PlanService(self.db).list_plans()
        distribution = []
        for plan in plans:
            active = sum(1 for s in subscriptions if s.plan_id == plan.id and s.status == "active")
            trialing = sum(1 for s in subscriptions if s.plan_id == plan.id and s.status == "trialing")
            distribution.append(
                PlanDistributionResponse(
                    plan_id=plan.id,
                    plan_name=plan.name,
                    active_count=active,
                    trialing_count=trialing,
                    total_count=active + trialing,
                )
            )

        mrr = mrr.quantize(CENT, rounding=ROUND_HALF_UP)
        future_mrr = future_mrr.quantize(CENT, rounding=ROUND_HALF_UP)
        return DashboardResponse(
            total_users=total_users,
            subscriptions=counts,
            mrr=mrr,
            estimated_future_mrr=future_mrr,
            total_estimated_mrr=mrr + future_mrr,
            upcoming_trials=upcoming,
            plan_distribution=distribution,
        )

    # ==================== User Management ====================

    async def get_users(
        self,
        page: int = 1,
        page_size: int = 20,
        search: Optional[str] = None,
        plan_id: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> Tuple[List[AdminUserResponse], int]:
        """Get paginated list of users with filters."""
        query = select(User)

        if search:
            query = query.where(
                or_(
                    User.email.icontains(search, autoescape=True),
                    User.first_name.icontains(search, autoescape=True),
                    User.last_name.icontains(search, autoescape=True),
                )
            )

        if plan_id:
            query = query.where(
                User.id.in_(
                    select(Subscription.user_id).where(
                        Subscription.plan_id == plan_id,
                        Subscription.status.in_(ACTIVE_STATUSES),
                    )
                )
            )

        if is_active is not None:
            query = query.where(User.is_active == is_active)

        total = await self.db.scalar(select(func.count()).select_from(query.subquery())) or 0

        offset = (page - 1) * page_size
        result = await self.db.execute(
            query.order_by(desc(User.created_at)).limit(page_size).offset(offset)
        )

        plans = PlanService(self.db)
        users = []
        for user in result.scalars().all():
            current = await plans.get_current_subscription(user.id)
            account_count = await self.db.scalar(
                select(func.count(Account.id)).where(Account.user_id == user.id)
            )
            users.append(
                AdminUserResponse(
                    id=user.id,
                    email=user.email,
                    first_name=user.first_name,
                    last_name=user.last_name,
                    plan_id=current.plan_id if current else None,
                    subscription_status=current.status if current else None,
                    is_active=user.is_active,
                    is_blocked=user.is_blocked,
                    is_admin=user.is_admin,
                    is_verified=user.is_verified,
                    account_count=account_count or 0,
                    created_at=user.created_at,
                    last_login_at=user.last_login_at,
                )
            )
        return users, total

    async def get_user_by_id(self, user_id: UUID) -> Optional[User]:
        return await self.db.get(User, user_id)

    async def update_user(self, admin: User, user: User, data: UserUpdateRequest) -> User:
        """
        Update user flags.

        Raises:
            ValueError: Admin trying to demote, block or deactivate themselves
        """
        if user.id == admin.id and (
            data.is_admin is False or data.is_blocked is True or data.is_active is False
        ):
            raise ValueError("You cannot demote or block yourself")

        if data.is_active is not None:
            user.is_active = data.is_active
        if data.is_blocked is not None:
            user.is_blocked = data.is_blocked
        if data.is_admin is not None:
            user.is_admin = data.is_admin

        user.updated_at = utcnow()
        await self.db.commit()
        await self.db.refresh(user)
        logger.info("Admin %s updated user %s", admin.id, user.id)
        return user

    # ==================== Plans ====================

    async def update_plan(self, plan: Plan, data: PlanUpdateRequest) -> Plan:
        updates = data.model_dump(exclude_unset=True)
        features = updates.pop("features", None)
        for field, value in updates.items():
            setattr(plan, field, value)
        if features is not None:
            plan.features = {**(plan.features or {}), **features}
        plan.updated_at = utcnow()
        await self.db.commit()
        await self.db.refresh(plan)
        logger.info("Plan %s updated", plan.id)
        return plan

    # ==================== Promo Codes ====================

    async def list_promo_codes(self) -> List[PromoCode]:
        result = await self.db.execute(
            select(PromoCode).order_by(PromoCode.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_promo_code(self, promo_id: UUID) -> Optional[PromoCode]:
        return await self.db.get(PromoCode, promo_id)

    async def create_promo_code(self, data: PromoCodeCreateRequest) -> PromoCode:
        """
        Create the Stripe coupon first, then the local row.

        The coupon is deleted again if the database write fails.

        Raises:
            ValueError: Code already exists
            BillingError: Stripe rejected the coupon
        """
        code = data.code.upper()
        existing = await self.db.scalar(select(PromoCode.id).where(PromoCode.code == code))
        if existing is not None:
            raise ValueError("Promo code already exists")

        params = {"id": code, "name": data.code, "duration": data.duration}
        if data.discount_type == "percent":
            params["percent_off"] = float(data.discount_value)
        else:
            params["amount_off"] = int((data.discount_value * 100).to_integral_value(ROUND_HALF_UP))
            params["currency"] = "usd"
        if data.duration == "repeating":
            params["duration_in_months"] = data.duration_in_months or 1
        if data.max_redemptions:
            params["max_redemptions"] = data.max_redemptions
        if data.expires_at:
            params["redeem_by"] = int(data.expires_at.timestamp())

        configure_stripe()
        try:
            coupon = await asyncio.to_thread(stripe.Coupon.create, **params)
        except stripe.StripeError as e:
            raise BillingError(f"Failed to create Stripe coupon: {e}") from e
        coupon_id = stripe_field(coupon, "id")

        promo = PromoCode(
            code=code,
            discount_type=data.discount_type,
            discount_value=data.discount_value,
            duration=data.duration,
            duration_in_months=(data.duration_in_months or 1) if data.duration == "repeating" else None,
            max_redemptions=data.max_redemptions,
            expires_at=data.expires_at,
            is_active=True,
            stripe_coupon_id=coupon_id,
            plan_ids=data.plan_ids,
        )
        self.db.add(promo)
        try:
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.error("Promo code %s insert failed, removing Stripe coupon", code)
            await self._delete_coupon(coupon_id)
            raise

        await self.db.refresh(promo)
        logger.info("Promo code %s created", code)
        return promo

    async def _delete_coupon(self, coupon_id: Optional[str]) -> None:
        if not coupon_id:
            return
        try:
            configure_stripe()
            await asyncio.to_thread(stripe.Coupon.delete, coupon_id)
        except (stripe.StripeError, BillingError) as e:
            logger.error("Error deleting Stripe coupon %s: %s", coupon_id, e)

    async def set_promo_code_active(self, promo: PromoCode, is_active: bool) -> PromoCode:
        promo.is_active = is_active
        promo.updated_at = utcnow()
        await self.db.commit()
        await self.db.refresh(promo)
        return promo

    async def delete_promo_code(self, promo: PromoCode) -> None:
        """Delete the Stripe coupon (best effort) and the local row."""
        await self._delete_coupon(promo.stripe_coupon_id)
        await self.db.delete(promo)
        await self.db.commit()
        logger.info("Promo code %s deleted", promo.code)
