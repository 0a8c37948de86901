"""
Admin Schemas

Pydantic models for admin dashboard and management endpoints.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ==================== Dashboard ====================


class SubscriptionCountsResponse(BaseModel):
    """Subscription counts by status."""

    total: int = 0
    active: int = 0
    trialing: int = 0
    cancelled: int = 0
    past_due: int = 0


class UpcomingTrialResponse(BaseModel):
    subscription_id: str
    user_id: UUID
    plan_id: str
    plan_name: str
    trial_end_date: datetime
    days_until_end: int
    estimated_monthly_revenue: Decimal


class PlanDistributionResponse(BaseModel):
    plan_id: str
    plan_name: str
    active_count: int
    trialing_count: int
    total_count: int


class DashboardResponse(BaseModel):
    """Complete admin dashboard data."""

    total_users: int
    subscriptions: SubscriptionCountsResponse
    mrr: Decimal
    estimated_future_mrr: Decimal
    total_estimated_mrr: Decimal
    upcoming_trials: List[UpcomingTrialResponse]
    plan_distribution: List[PlanDistributionResponse]


# ==================== User Management ====================


class AdminUserResponse(BaseModel):
    """User details for admin view."""

    id: UUID
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    plan_id: Optional[str] = None
    subscription_status: Optional[str] = None
    is_active: bool
    is_blocked: bool
    is_admin: bool
    is_verified: bool
    account_count: int = 0
    created_at: datetime
    last_login_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AdminUserListResponse(BaseModel):
    """Paginated list of users."""

    users: List[AdminUserResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class UserUpdateRequest(BaseModel):
    """Admin request to update user."""

    is_active: Optional[bool] = None
    is_blocked: Optional[bool] = None
    is_admin: Optional[bool] = None


# ==================== Plans ====================


class PlanUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    price_monthly: Optional[Decimal] = Field(None, ge=0)
    price_yearly: Optional[Decimal] = Field(None, ge=0)
    stripe_product_id: Optional[str] = None
    stripe_price_id_monthly: Optional[str] = None
    stripe_price_id_yearly: Optional[str] = None
    features: Optional[Dict[str, Any]] = None

    @field_validator("name", "price_monthly", "price_yearly", mode="before")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("Field cannot be null")
        return v

    @field_validator("features")
    @classmethod
    def limits_are_integers(cls, v):
        if v is None:
            return v
        for key in ("max_transactions", "max_accounts"):
            if key in v and (not isinstance(v[key], int) or v[key] < -1):
                raise ValueError(f"{key} must be an integer >= -1")
        if "has_csv_import" in v and not isinstance(v["has_csv_import"], bool):
            raise ValueError("has_csv_import must be a boolean")
        return v


# ==================== Promo Codes ====================


class PromoCodeCreateRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=50, pattern=r"^[A-Za-z0-9_-]+$")
    discount_type: Literal["percent", "fixed"]
    discount_value: Decimal = Field(..., gt=0)
    duration: Literal["once", "forever", "repeating"]
    duration_in_months: Optional[int] = Field(None, ge=1)
    max_redemptions: Optional[int] = Field(None, ge=1)
    expires_at: Optional[datetime] = None
    plan_ids: List[str] = []

    @model_validator(mode="after")
    def check_discount(self):
        if self.discount_type == "percent" and self.discount_value > 100:
            raise ValueError("Percent discount cannot exceed 100")
        return self


class PromoCodeToggleRequest(BaseModel):
    is_active: bool


class PromoCodeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    discount_type: str
    discount_value: Decimal
    duration: str
    duration_in_months: Optional[int]
    max_redemptions: Optional[int]
    expires_at: Optional[datetime]
    is_active: bool
    stripe_coupon_id: Optional[str]
    plan_ids: List[str]
    created_at: datetime


class PromoCodeListResponse(BaseModel):
    items: List[PromoCodeResponse]
