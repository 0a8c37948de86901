"""
Goal Schemas
"""

import datetime as dt
from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


Priority = Literal["High", "Medium", "Low"]


class GoalCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    target_amount: Decimal = Field(..., gt=0)
    current_balance: Decimal = Field(Decimal("0"), ge=0)
    income_percentage: Decimal = Field(Decimal("0"), ge=0, le=100)
    priority: Priority = "Medium"
    target_months: Optional[int] = Field(None, ge=1, le=1200)
    target_date: Optional[dt.date] = None
    account_id: Optional[UUID] = None


class GoalUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    target_amount: Optional[Decimal] = Field(None, gt=0)
    income_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    priority: Optional[Priority] = None
    target_months: Optional[int] = Field(None, ge=1, le=1200)
    target_date: Optional[dt.date] = None
    account_id: Optional[UUID] = None
    is_paused: Optional[bool] = None

    @field_validator(
        "name", "target_amount", "income_percentage", "priority", "is_paused", mode="before"
    )
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("Field cannot be null")
        return v


class GoalAmountRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)


class GoalResponse(BaseModel):
    """Goal with progress figures."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: Optional[str]
    target_amount: Decimal
    current_balance: Decimal
    income_percentage: Decimal
    priority: str
    target_months: Optional[int]
    target_date: Optional[dt.date]
    account_id: Optional[UUID]
    is_paused: bool
    is_completed: bool
    completed_at: Optional[datetime]
    progress_pct: float = 0.0
    monthly_contribution: Decimal = Decimal("0")
    months_to_goal: Optional[int] = None
    income_basis: Decimal = Decimal("0")


class GoalListResponse(BaseModel):
    items: List[GoalResponse]
    income_basis: Decimal
    total_allocation: Decimal
