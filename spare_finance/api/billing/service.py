"""
Billing Service

Stripe checkout, customer portal and webhook processing.

The Stripe SDK is synchronous; calls run in a worker thread so the event
loop is not blocked.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID

import stripe
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from spare_finance.api.config import settings
from spare_finance.api.db.models import PromoCode, Subscription, User, as_utc, utcnow
from spare_finance.api.billing.plans import (
    FREE_PLAN_ID,
    PlanService,
    free_subscription_id,
    subscription_id,
)
from spare_finance.api.exceptions import BillingError

logger = logging.getLogger(__name__)


STRIPE_STATUS_MAP = {
    "active": "active",
    "canceled": "cancelled",
    "unpaid": "unpaid",
    "past_due": "past_due",
    "trialing": "trialing",
    "incomplete": "trialing",
    "incomplete_expired": "cancelled",
}


def map_stripe_status(status: Optional[str]) -> str:
    """Map a Stripe subscription status to the stored status."""
    return STRIPE_STATUS_MAP.get(status or "", "active")


def stripe_field(obj: Any, key: str, default: Any = None) -> Any:
    """Read a key from a Stripe object or plain dict."""
    if obj is None:
        return default
    try:
        value = obj[key]
    except (KeyError, TypeError, IndexError):
        return default
    return default if value is None else value


def _timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def _first_item(subscription: Any) -> Any:
    data = stripe_field(stripe_field(subscription, "items"), "data", [])
    return data[0] if data else None


def configure_stripe() -> None:
    if not settings.STRIPE_SECRET_KEY:
        raise BillingError("Stripe is not configured", code="STRIPE_NOT_CONFIGURED")
    stripe.api_key = settings.STRIPE_SECRET_KEY


class InvalidWebhookError(Exception):
    """Webhook payload failed signature verification."""


class BillingService:
    """Service for Stripe-backed billing."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.plans = PlanService(db)

    # ==================== Customer ====================

    async def _customer_id_for(self, user_id: UUID) -> Optional[str]:
        result = await self.db.execute(
            select(Subscription.stripe_customer_id)
            .where(
                Subscription.user_id == user_id,
                Subscription.stripe_customer_id.is_not(None),
            )
            .order_by(Subscription.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_or_create_customer(self, user: User) -> str:
        """Reuse the stored Stripe customer or create one tagged with userId."""
        customer_id = await self._customer_id_for(user.id)
        if customer_id:
            return customer_id

        configure_stripe()
        try:
            customer = await asyncio.to_thread(
                stripe.Customer.create,
                email=user.email,
                metadata={"userId": str(user.id)},
            )
        except stripe.StripeError as e:
            raise BillingError(f"Failed to create Stripe customer: {e}") from e

        customer_id = stripe_field(customer, "id")
        current = await self.plans.get_current_subscription(user.id)
        if current is not None:
            current.stripe_customer_id = customer_id
            await self.db.commit()

        logger.info("Created Stripe customer %s for user %s", customer_id, user.id)
        return customer_id

    # ==================== Sessions ====================

    async def create_checkout_session(
        self,
        user: User,
        plan_id: str,
        interval: str = "month",
        return_url: Optional[str] = None,
        promo_code: Optional[str] = None,
    ) -> str:
        """
        Start a subscription checkout.

        Without a promo code, Stripe's own promotion code field is enabled.

        Raises:
            ValueError: Unknown plan, price not configured or invalid promo code
            BillingError: Stripe call failed

        Returns:
            Checkout URL
        """
        plan = await self.plans.get_plan(plan_id)
        if plan is None:
            raise ValueError("Plan not found")

        price_id = plan.stripe_price_id_monthly if interval == "month" else plan.stripe_price_id_yearly
        if not price_id:
            raise ValueError("Stripe price ID not configured for this plan")

        discount: Dict[str, Any] = {"allow_promotion_codes": True}
        if promo_code:
            promo = await self.resolve_promo_code(promo_code, plan.id)
            discount = {"discounts": [{"coupon": promo.stripe_coupon_id}]}

        customer_id = await self.get_or_create_customer(user)

        success_url = return_url or f"{settings.APP_URL}/welcome?plan=paid"
        cancel_url = (
            f"{return_url}?canceled=true" if return_url
            else f"{settings.APP_URL}/select-plan?canceled=true"
        )

        configure_stripe()
        try:
            session = await asyncio.to_thread(
                stripe.checkout.Session.create,
                customer=customer_id,
                mode="subscription",
                payment_method_types=["card"],
                line_items=[{"price": price_id, "quantity": 1}],
                success_url=success_url,
                cancel_url=cancel_url,
                metadata={"userId": str(user.id), "planId": plan.id, "interval": interval},
                **discount,
            )
        except stripe.StripeError as e:
            raise BillingError(f"Failed to create checkout session: {e}") from e

        logger.info("Checkout session %s for user %s plan %s", stripe_field(session, "id"), user.id, plan.id)
        return stripe_field(session, "url")

    async def resolve_promo_code(self, code: str, plan_id: str) -> PromoCode:
        """Active, unexpired promo code usable with plan_id."""
        result = await self.db.execute(
            select(PromoCode).where(PromoCode.code == code.strip().upper())
        )
        promo = result.scalar_one_or_none()
        if promo is None or not promo.is_active or not promo.stripe_coupon_id:
            raise ValueError("Invalid promo code")
        if promo.expires_at and as_utc(promo.expires_at) <= utcnow():
            raise ValueError("Promo code has expired")
        if promo.plan_ids and plan_id not in promo.plan_ids:
            raise ValueError("Promo code does not apply to this plan")
        return promo

    async def create_portal_session(self, user: User) -> str:
        """
        Raises:
            ValueError: If the user has never been a Stripe customer
        """
        customer_id = await self._customer_id_for(user.id)
        if not customer_id:
            raise ValueError("No billing account found")

        configure_stripe()
        try:
            session = await asyncio.to_thread(
                stripe.billing_portal.Session.create,
                customer=customer_id,
                return_url=f"{settings.APP_URL}/settings/billing",
            )
        except stripe.StripeError as e:
            raise BillingError(f"Failed to create portal session: {e}") from e
        return stripe_field(session, "url")

    # ==================== Webhook ====================

    def verify_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify the Stripe signature and return the event as a dict.

        Raises:
            InvalidWebhookError: Missing secret, signature or bad payload
        """
        if not settings.STRIPE_WEBHOOK_SECRET or not signature:
            raise InvalidWebhookError("Missing webhook signature")
        try:
            stripe.Webhook.construct_event(payload, signature, settings.STRIPE_WEBHOOK_SECRET)
        except (ValueError, stripe.SignatureVerificationError) as e:
            raise InvalidWebhookError(str(e)) from e
        return json.loads(payload)

    async def handle_webhook(self, payload: bytes, signature: Optional[str]) -> None:
        event = self.verify_event(payload, signature)
        await self.dispatch_event(event)

    async def dispatch_event(self, event: Dict[str, Any]) -> None:
        event_type = event.get("type")
        obj = (event.get("data") or {}).get("object") or {}
        logger.info("Stripe webhook %s (%s)", event_type, event.get("id"))

        if event_type == "checkout.session.completed":
            await self._on_checkout_completed(obj)
        elif event_type in ("customer.subscription.created", "customer.subscription.updated"):
            await self.apply_subscription_change(obj)
        elif event_type == "customer.subscription.deleted":
            await self._on_subscription_deleted(obj)
        elif event_type == "invoice.payment_succeeded":
            logger.info(
                "Payment succeeded: invoice=%s customer=%s amount=%s",
                obj.get("id"), obj.get("customer"), obj.get("amount_paid"),
            )
        elif event_type == "invoice.payment_failed":
            await self._set_customer_status(obj.get("customer"), "past_due")
        else:
            logger.info("Unhandled Stripe event type: %s", event_type)

    async def _on_checkout_completed(self, session: Dict[str, Any]) -> None:
        if session.get("mode") != "subscription" or not session.get("subscription"):
            logger.info("Checkout session %s has no subscription", session.get("id"))
            return

        configure_stripe()
        try:
            subscription = await asyncio.to_thread(
                stripe.Subscription.retrieve, session["subscription"]
            )
        except stripe.StripeError:
            logger.exception("Failed to retrieve subscription %s", session["subscription"])
            return
        await self.apply_subscription_change(subscription)

    async def _resolve_user_id(self, customer_id: str) -> Optional[UUID]:
        result = await self.db.execute(
            select(Subscription.user_id)
            .where(Subscription.stripe_customer_id == customer_id)
            .limit(1)
        )
        user_id = result.scalar_one_or_none()
        if user_id is not None:
            return user_id

        configure_stripe()
        try:
            customer = await asyncio.to_thread(stripe.Customer.retrieve, customer_id)
        except stripe.StripeError:
            logger.exception("Failed to retrieve Stripe customer %s", customer_id)
            return None

        if stripe_field(customer, "deleted"):
            return None
        raw = stripe_field(stripe_field(customer, "metadata"), "userId")
        if not raw:
            return None
        try:
            user_id = UUID(str(raw))
        except ValueError:
            logger.warning("Customer %s has malformed userId metadata", customer_id)
            return None
        return user_id if await self.db.get(User, user_id) else None

    async def apply_subscription_change(self, subscription: Any) -> Optional[Subscription]:
        """Upsert the local subscription row from a Stripe subscription."""
        customer_id = stripe_field(subscription, "customer")
        user_id = await self._resolve_user_id(customer_id) if customer_id else None
        if user_id is None:
            logger.error("No user found for Stripe customer %s", customer_id)
            return None

        item = _first_item(subscription)
        price_id = stripe_field(stripe_field(item, "price"), "id")
        if not price_id:
            logger.error("No price id on subscription %s", stripe_field(subscription, "id"))
            return None

        plan, interval = await self.plans.get_plan_by_price_id(price_id)
        if plan is None:
            logger.error("No plan found for price id %s", price_id)
            return None

        if plan.id != FREE_PLAN_ID:
            await self.db.execute(
                update(Subscription)
                .where(
                    Subscription.user_id == user_id,
                    Subscription.plan_id == FREE_PLAN_ID,
                    Subscription.status == "active",
                )
                .values(status="cancelled", updated_at=utcnow())
            )

        sub_id = subscription_id(user_id, plan.id)
        sub = await self.db.get(Subscription, sub_id)
        if sub is None:
            sub = Subscription(id=sub_id, user_id=user_id, plan_id=plan.id)
            self.db.add(sub)

        # Newer API versions carry the billing period on the item
        period_start = stripe_field(subscription, "current_period_start") or stripe_field(item, "current_period_start")
        period_end = stripe_field(subscription, "current_period_end") or stripe_field(item, "current_period_end")

        sub.status = map_stripe_status(stripe_field(subscription, "status"))
        sub.billing_interval = interval
        sub.stripe_subscription_id = stripe_field(subscription, "id")
        sub.stripe_customer_id = customer_id
        sub.current_period_start = _timestamp(period_start)
        sub.current_period_end = _timestamp(period_end)
        sub.trial_start_date = _timestamp(stripe_field(subscription, "trial_start"))
        sub.trial_end_date = _timestamp(stripe_field(subscription, "trial_end"))
        sub.cancel_at_period_end = bool(stripe_field(subscription, "cancel_at_period_end", False))

        await self.db.commit()
        logger.info("Subscription %s is now %s", sub_id, sub.status)
        return sub

    async def _on_subscription_deleted(self, subscription: Dict[str, Any]) -> None:
        customer_id = subscription.get("customer")
        result = await self.db.execute(
            select(Subscription.user_id)
            .where(Subscription.stripe_customer_id == customer_id)
            .limit(1)
        )
        user_id = result.scalar_one_or_none()
        if user_id is None:
            logger.info("No subscription found for deleted customer %s", customer_id)
            return

        await self._set_customer_status(customer_id, "cancelled", commit=False)

        free = await self.db.get(Subscription, free_subscription_id(user_id))
        if free is None:
            await self.plans.get_free_plan()
            self.db.add(
                Subscription(
                    id=free_subscription_id(user_id),
                    user_id=user_id,
                    plan_id=FREE_PLAN_ID,
                    status="active",
                )
            )
        else:
            free.status = "active"
        await self.db.commit()
        logger.info("User %s moved back to the free plan", user_id)

    async def _set_customer_status(
        self, customer_id: Optional[str], status: str, commit: bool = True
    ) -> None:
        if not customer_id:
            return
        await self.db.execute(
            update(Subscription)
            .where(
                Subscription.stripe_customer_id == customer_id,
                Subscription.plan_id != FREE_PLAN_ID,
            )
            .values(status=status, updated_at=utcnow())
            .execution_options(synchronize_session="fetch")
        )
        if commit:
            await self.db.commit()
        logger.info("Subscriptions of customer %s set to %s", customer_id, status)
