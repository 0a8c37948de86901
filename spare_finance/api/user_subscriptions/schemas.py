"""
User Subscription Schemas
"""

import datetime as dt
from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


BillingFrequency = Literal["monthly", "weekly", "biweekly", "semimonthly", "daily"]


class UserSubscriptionCreateRequest(BaseModel):
    service_name: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., gt=0)
    account_id: UUID
    subcategory_id: Optional[UUID] = None
    description: Optional[str] = Field(None, max_length=1000)
    billing_frequency: BillingFrequency = "monthly"
    billing_day: Optional[int] = Field(None, ge=1, le=31)
    first_billing_date: dt.date


class UserSubscriptionUpdateRequest(BaseModel):
    service_name: Optional[str] = Field(None, min_length=1, max_length=200)
    amount: Optional[Decimal] = Field(None, gt=0)
    account_id: Optional[UUID] = None
    subcategory_id: Optional[UUID] = None
    description: Optional[str] = Field(None, max_length=1000)
    billing_frequency: Optional[BillingFrequency] = None
    billing_day: Optional[int] = Field(None, ge=1, le=31)
    first_billing_date: Optional[dt.date] = None

    @field_validator(
        "service_name", "amount", "account_id", "billing_frequency", "first_billing_date",
        mode="before",
    )
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("Field cannot be null")
        return v


class UserSubscriptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    service_name: str
    amount: Decimal
    account_id: UUID
    subcategory_id: Optional[UUID]
    description: Optional[str]
    billing_frequency: str
    billing_day: Optional[int]
    first_billing_date: dt.date
    is_active: bool
    created_at: datetime
    monthly_cost: Decimal = Decimal("0")


class UserSubscriptionListResponse(BaseModel):
    items: List[UserSubscriptionResponse]
    active_count: int
    monthly_total: Decimal
