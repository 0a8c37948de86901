"""
Billing Routes

Plans, current subscription and Stripe endpoints.
"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from spare_finance.api.db.session import get_db
from spare_finance.api.db.models import User
from spare_finance.api.dependencies import get_current_user
from spare_finance.api.billing.plans import PlanService, get_limit
from spare_finance.api.billing.service import BillingService, InvalidWebhookError
from spare_finance.api.billing.schemas import (
    CheckoutRequest,
    PlanListResponse,
    PlanResponse,
    SessionUrlResponse,
    SubscriptionOverviewResponse,
    SubscriptionResponse,
    UsageResponse,
    WebhookResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def get_billing_service(db: AsyncSession = Depends(get_db)) -> BillingService:
    return BillingService(db)


@router.get("/plans", response_model=PlanListResponse, summary="List plans")
async def list_plans(db: AsyncSession = Depends(get_db)) -> PlanListResponse:
    plans = await PlanService(db).list_plans()
    return PlanListResponse(plans=[PlanResponse.model_validate(p) for p in plans])


@router.get(
    "/subscription",
    response_model=SubscriptionOverviewResponse,
    summary="Current subscription and usage",
)
async def get_subscription(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> SubscriptionOverviewResponse:
    plans = PlanService(db)
    subscription = await plans.get_current_subscription(user.id)
    plan = await plans.get_current_plan(user.id)

    return SubscriptionOverviewResponse(
        subscription=SubscriptionResponse.model_validate(subscription) if subscription else None,
        plan=PlanResponse.model_validate(plan),
        usage=UsageResponse(
            transactions_this_month=await plans.get_monthly_usage(user.id, date.today()),
            transactions_limit=get_limit(plan, "max_transactions"),
            accounts=await plans.count_accounts(user.id),
            accounts_limit=get_limit(plan, "max_accounts"),
        ),
    )


@router.post("/checkout", response_model=SessionUrlResponse, summary="Start checkout")
async def create_checkout(
    data: CheckoutRequest,
    user: User = Depends(get_current_user),
    service: BillingService = Depends(get_billing_service),
) -> SessionUrlResponse:
    try:
        url = await service.create_checkout_session(
            user, data.plan_id, data.interval, data.return_url, data.promo_code
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return SessionUrlResponse(url=url)


@router.post("/portal", response_model=SessionUrlResponse, summary="Customer portal")
async def create_portal(
    user: User = Depends(get_current_user),
    service: BillingService = Depends(get_billing_service),
) -> SessionUrlResponse:
    try:
        url = await service.create_portal_session(user)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return SessionUrlResponse(url=url)


@router.post("/webhook", response_model=WebhookResponse, summary="Stripe webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="stripe-signature"),
    service: BillingService = Depends(get_billing_service),
) -> WebhookResponse:
    """
    Receive Stripe events.

    Requests with an invalid signature are rejected with 400.
    """
    payload = await request.body()
    try:
        await service.handle_webhook(payload, stripe_signature)
    except InvalidWebhookError as e:
        logger.warning("Rejected Stripe webhook: %s", e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid signature")
    return WebhookResponse(received=True)
