"""
Budget Schemas
"""

import datetime as dt
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class BudgetCreateRequest(BaseModel):
    period: dt.date = Field(..., description="Any day of the budget month")
    category_id: UUID
    subcategory_id: Optional[UUID] = None
    amount: Decimal = Field(..., gt=0)
    is_recurring: bool = True
    note: Optional[str] = Field(None, max_length=500)


class BudgetUpdateRequest(BaseModel):
    amount: Optional[Decimal] = Field(None, gt=0)
    is_recurring: Optional[bool] = None
    note: Optional[str] = Field(None, max_length=500)

    @field_validator("amount", "is_recurring", mode="before")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("Field cannot be null")
        return v


class CopyRecurringRequest(BaseModel):
    period: dt.date


class BudgetResponse(BaseModel):
    """Budget with month-to-date spend."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    period: dt.date
    category_id: UUID
    subcategory_id: Optional[UUID]
    amount: Decimal
    is_recurring: bool
    note: Optional[str]
    actual_spend: Decimal = Decimal("0")
    percentage: float = 0.0
    status: str = "ok"


class BudgetListResponse(BaseModel):
    period: dt.date
    items: List[BudgetResponse]
    total_budgeted: Decimal
    total_spent: Decimal


class CopyRecurringResponse(BaseModel):
    created: int
