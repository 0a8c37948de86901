"""
Transaction Schemas

Pydantic models for transaction request/response validation.
"""

import datetime as dt
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class TransactionCreateRequest(BaseModel):
    """Create an income or expense transaction."""

    account_id: UUID
    type: Literal["income", "expense"]
    amount: Decimal = Field(..., gt=0)
    date: dt.date
    description: Optional[str] = Field(None, max_length=500)
    category_id: Optional[UUID] = None
    subcategory_id: Optional[UUID] = None
    expense_type: Optional[Literal["fixed", "variable"]] = None
    is_recurring: bool = False
    tags: List[str] = Field(default_factory=list)


class TransferCreateRequest(BaseModel):
    """Move money between two of the user's accounts."""

    from_account_id: UUID
    to_account_id: UUID
    amount: Decimal = Field(..., gt=0)
    date: dt.date
    description: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def accounts_differ(self):
        if self.from_account_id == self.to_account_id:
            raise ValueError("Source and destination accounts must differ")
        return self


class TransactionUpdateRequest(BaseModel):
    """Partial update. Transfers only accept amount, date and description."""

    account_id: Optional[UUID] = None
    amount: Optional[Decimal] = Field(None, gt=0)
    date: Optional[dt.date] = None
    description: Optional[str] = Field(None, max_length=500)
    category_id: Optional[UUID] = None
    subcategory_id: Optional[UUID] = None
    expense_type: Optional[Literal["fixed", "variable"]] = None
    is_recurring: Optional[bool] = None
    tags: Optional[List[str]] = None


class BulkDeleteRequest(BaseModel):
    ids: List[UUID] = Field(..., min_length=1, max_length=500)
    permanent: bool = False


class TransactionResponse(BaseModel):
    """Transaction with decrypted description."""

    id: UUID
    account_id: UUID
    type: str
    amount: Decimal
    date: dt.date
    description: Optional[str]
    category_id: Optional[UUID]
    subcategory_id: Optional[UUID]
    suggested_category_id: Optional[UUID]
    suggested_subcategory_id: Optional[UUID]
    expense_type: Optional[str]
    is_recurring: bool
    tags: List[str]
    transfer_to_id: Optional[UUID]
    transfer_from_id: Optional[UUID]
    deleted_at: Optional[datetime]
    created_at: datetime

    @classmethod
    def from_model(cls, tx, description: Optional[str]) -> "TransactionResponse":
        return cls(
            id=tx.id,
            account_id=tx.account_id,
            type=tx.type,
            amount=tx.amount,
            date=tx.date,
            description=description,
            category_id=tx.category_id,
            subcategory_id=tx.subcategory_id,
            suggested_category_id=tx.suggested_category_id,
            suggested_subcategory_id=tx.suggested_subcategory_id,
            expense_type=tx.expense_type,
            is_recurring=bool(tx.is_recurring),
            tags=list(tx.tags or []),
            transfer_to_id=tx.transfer_to_id,
            transfer_from_id=tx.transfer_from_id,
            deleted_at=tx.deleted_at,
            created_at=tx.created_at,
        )


class TransactionListResponse(BaseModel):
    items: List[TransactionResponse]
    total: int
    page: int
    page_size: int


class TransferResponse(BaseModel):
    outgoing: TransactionResponse
    incoming: TransactionResponse


class BulkDeleteResponse(BaseModel):
    deleted: int


# ==================== CSV Import ====================


class CsvColumnMapping(BaseModel):
    """CSV header used for each field; unset fields are not read."""

    date: Optional[str] = None
    amount: str
    description: Optional[str] = None
    account: Optional[str] = None
    to_account: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    type: Optional[str] = None


class CsvImportRequest(BaseModel):
    csv: str = Field(..., min_length=1)
    mapping: CsvColumnMapping
    account_mapping: Dict[str, UUID] = Field(
        default_factory=dict, description="CSV account name -> account id"
    )
    default_account_id: Optional[UUID] = None


class CsvRowError(BaseModel):
    row_index: int
    error: str


class CsvImportResponse(BaseModel):
    imported: int
    errors: int
    error_details: List[CsvRowError]


class CsvPreviewRow(BaseModel):
    row_index: int
    date: Optional[dt.date] = None
    type: Optional[str] = None
    amount: Optional[Decimal] = None
    account_id: Optional[UUID] = None
    to_account_id: Optional[UUID] = None
    category_id: Optional[UUID] = None
    subcategory_id: Optional[UUID] = None
    description: Optional[str] = None
    error: Optional[str] = None


class CsvPreviewResponse(BaseModel):
    columns: List[str]
    account_names: List[str]
    rows: List[CsvPreviewRow]
