"""
Plaid Schemas
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class LinkTokenResponse(BaseModel):
    link_token: str
    expiration: Optional[str] = None


class InstitutionInfo(BaseModel):
    institution_id: Optional[str] = None
    name: Optional[str] = None


class PublicTokenExchangeRequest(BaseModel):
    public_token: str = Field(..., min_length=1)
    institution: Optional[InstitutionInfo] = None


class PlaidConnectionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    item_id: str
    institution_id: Optional[str]
    institution_name: Optional[str]
    error_code: Optional[str]
    error_message: Optional[str]
    created_at: datetime


class PlaidConnectionListResponse(BaseModel):
    connections: List[PlaidConnectionResponse]


class SyncResultResponse(BaseModel):
    synced: int
    skipped: int
    errors: int
