"""
Account Schemas

Pydantic models for account request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


AccountType = Literal["cash", "checking", "savings", "credit", "investment", "other"]


class AccountCreateRequest(BaseModel):
    """Manual account creation."""

    name: str = Field(..., min_length=1, max_length=200)
    type: AccountType
    initial_balance: Decimal = Decimal("0")
    credit_limit: Optional[Decimal] = Field(None, ge=0)
    currency: str = Field("USD", min_length=3, max_length=3)
    household_id: Optional[UUID] = None


class AccountUpdateRequest(BaseModel):
    """Account update. Only provided fields change."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    type: Optional[AccountType] = None
    initial_balance: Optional[Decimal] = None
    credit_limit: Optional[Decimal] = Field(None, ge=0)
    sync_enabled: Optional[bool] = None

    @field_validator("name", "type", "initial_balance", "sync_enabled", mode="before")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("Field cannot be null")
        return v


class AccountResponse(BaseModel):
    """Account with computed balance."""

    id: UUID
    name: str
    type: str
    initial_balance: Decimal
    balance: Decimal
    credit_limit: Optional[Decimal]
    currency: str
    household_id: Optional[UUID]
    is_connected: bool
    sync_enabled: bool
    plaid_mask: Optional[str]
    questrade_account_number: Optional[str]
    last_synced_at: Optional[datetime]
    created_at: datetime

    @classmethod
    def from_model(cls, account, balance: Decimal) -> "AccountResponse":
        return cls(
            id=account.id,
            name=account.name,
            type=account.type,
            initial_balance=account.initial_balance or Decimal("0"),
            balance=balance,
            credit_limit=account.credit_limit,
            currency=account.currency,
            household_id=account.household_id,
            is_connected=account.is_connected,
            sync_enabled=account.sync_enabled,
            plaid_mask=account.plaid_mask,
            questrade_account_number=account.questrade_account_number,
            last_synced_at=account.last_synced_at,
            created_at=account.created_at,
        )


class AccountListResponse(BaseModel):
    items: List[AccountResponse]
    total: int
    total_balance: Decimal
