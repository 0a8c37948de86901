"""
Billing Schemas

Plans, subscriptions, usage and Stripe session responses.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class PlanResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    price_monthly: Decimal
    price_yearly: Decimal
    features: Dict[str, Any]
    stripe_price_id_monthly: Optional[str] = None
    stripe_price_id_yearly: Optional[str] = None


class SubscriptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    plan_id: str
    status: str
    billing_interval: Optional[str]
    current_period_start: Optional[datetime]
    current_period_end: Optional[datetime]
    trial_end_date: Optional[datetime]
    cancel_at_period_end: bool


class UsageResponse(BaseModel):
    transactions_this_month: int
    transactions_limit: int
    accounts: int
    accounts_limit: int


class SubscriptionOverviewResponse(BaseModel):
    """Current subscription, effective plan and usage against its limits."""

    subscription: Optional[SubscriptionResponse]
    plan: PlanResponse
    usage: UsageResponse


class CheckoutRequest(BaseModel):
    plan_id: str = Field(..., min_length=1, max_length=50)
    interval: Literal["month", "year"] = "month"
    return_url: Optional[str] = Field(None, max_length=500)
    promo_code: Optional[str] = Field(None, max_length=50)


class SessionUrlResponse(BaseModel):
    url: str


class WebhookResponse(BaseModel):
    received: bool = True


class PlanListResponse(BaseModel):
    plans: List[PlanResponse]
