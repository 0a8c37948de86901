"""
Planned Payment Schemas
"""

import datetime as dt
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator


PaymentType = Literal["income", "expense", "transfer"]
PaymentSource = Literal["manual", "recurring", "debt", "goal", "subscription"]
PaymentStatus = Literal["scheduled", "paid", "skipped", "cancelled"]


class PlannedPaymentCreateRequest(BaseModel):
    date: dt.date
    type: PaymentType
    amount: Decimal = Field(..., gt=0)
    account_id: UUID
    to_account_id: Optional[UUID] = None
    category_id: Optional[UUID] = None
    subcategory_id: Optional[UUID] = None
    description: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def transfer_accounts(self):
        if self.type == "transfer":
            if self.to_account_id is None:
                raise ValueError("Transfers require a destination account")
            if self.to_account_id == self.account_id:
                raise ValueError("Source and destination accounts must differ")
        return self


class PlannedPaymentUpdateRequest(BaseModel):
    """Partial update; only scheduled payments can change."""

    date: Optional[dt.date] = None
    type: Optional[PaymentType] = None
    amount: Optional[Decimal] = Field(None, gt=0)
    account_id: Optional[UUID] = None
    to_account_id: Optional[UUID] = None
    category_id: Optional[UUID] = None
    subcategory_id: Optional[UUID] = None
    description: Optional[str] = Field(None, max_length=500)

    @field_validator("date", "type", "amount", "account_id", mode="before")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("Field cannot be null")
        return v


class PlannedPaymentResponse(BaseModel):
    id: UUID
    date: dt.date
    type: str
    amount: Decimal
    account_id: UUID
    to_account_id: Optional[UUID]
    category_id: Optional[UUID]
    subcategory_id: Optional[UUID]
    description: Optional[str]
    source: str
    status: str
    linked_transaction_id: Optional[UUID]
    debt_id: Optional[UUID]
    goal_id: Optional[UUID]
    subscription_id: Optional[UUID]
    created_at: datetime

    @classmethod
    def from_model(cls, payment, description: Optional[str]) -> "PlannedPaymentResponse":
        return cls(
            id=payment.id,
            date=payment.date,
            type=payment.type,
            amount=payment.amount,
            account_id=payment.account_id,
            to_account_id=payment.to_account_id,
            category_id=payment.category_id,
            subcategory_id=payment.subcategory_id,
            description=description,
            source=payment.source,
            status=payment.status,
            linked_transaction_id=payment.linked_transaction_id,
            debt_id=payment.debt_id,
            goal_id=payment.goal_id,
            subscription_id=payment.subscription_id,
            created_at=payment.created_at,
        )


class PlannedPaymentListResponse(BaseModel):
    items: List[PlannedPaymentResponse]
    total: int
    counts_by_type: Dict[str, int]
    page: int
    page_size: int


class GenerateResponse(BaseModel):
    created: int


class SyncCounts(BaseModel):
    created: int = 0
    removed: int = 0
    errors: int = 0


class PlanningSyncResponse(BaseModel):
    """Result of regenerating planned payments."""

    users: int
    debts: SyncCounts
    goals: SyncCounts
    recurring: SyncCounts
    subscriptions: SyncCounts
