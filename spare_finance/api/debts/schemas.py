"""
Debt Schemas
"""

import datetime as dt
from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


LoanType = Literal[
    "mortgage",
    "car_loan",
    "personal_loan",
    "credit_card",
    "student_loan",
    "business_loan",
    "other",
]
PaymentFrequency = Literal["monthly", "biweekly", "weekly", "semimonthly", "daily"]
Priority = Literal["High", "Medium", "Low"]


class DebtCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    loan_type: LoanType
    initial_amount: Decimal = Field(..., gt=0)
    down_payment: Decimal = Field(Decimal("0"), ge=0)
    interest_rate: Decimal = Field(Decimal("0"), ge=0, le=100)
    total_months: Optional[int] = Field(None, ge=1, le=1200)
    first_payment_date: Optional[dt.date] = None
    monthly_payment: Decimal = Field(..., gt=0)
    payment_frequency: PaymentFrequency = "monthly"
    priority: Priority = "Medium"
    account_id: Optional[UUID] = None
    is_paused: bool = False


class DebtUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    loan_type: Optional[LoanType] = None
    current_balance: Optional[Decimal] = Field(None, ge=0)
    interest_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    total_months: Optional[int] = Field(None, ge=1, le=1200)
    first_payment_date: Optional[dt.date] = None
    monthly_payment: Optional[Decimal] = Field(None, gt=0)
    payment_frequency: Optional[PaymentFrequency] = None
    priority: Optional[Priority] = None
    account_id: Optional[UUID] = None
    is_paused: Optional[bool] = None

    @field_validator(
        "name", "loan_type", "current_balance", "interest_rate",
        "monthly_payment", "payment_frequency", "priority", "is_paused",
        mode="before",
    )
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("Field cannot be null")
        return v


class DebtPaymentRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)


class PayoffScheduleResponse(BaseModel):
    months: int
    total_interest: Decimal
    total_paid: Decimal


class DebtResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    loan_type: str
    initial_amount: Decimal
    down_payment: Decimal
    current_balance: Decimal
    interest_rate: Decimal
    total_months: Optional[int]
    first_payment_date: Optional[dt.date]
    monthly_payment: Decimal
    payment_frequency: str
    principal_paid: Decimal
    interest_paid: Decimal
    priority: str
    status: str
    is_paused: bool
    is_paid_off: bool
    paid_off_at: Optional[datetime]
    account_id: Optional[UUID]
    payoff: Optional[PayoffScheduleResponse] = None


class DebtPaymentResponse(BaseModel):
    debt: DebtResponse
    principal: Decimal
    interest: Decimal


class DebtListResponse(BaseModel):
    items: List[DebtResponse]
    total_balance: Decimal
