"""
Household Schemas

Pydantic models for household and member endpoints.
"""

from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class HouseholdCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: Literal["personal", "shared"] = "shared"


class MemberInviteRequest(BaseModel):
    email: EmailStr
    name: Optional[str] = Field(None, max_length=200)
    role: Literal["admin", "member"] = "member"


class MemberRoleUpdateRequest(BaseModel):
    role: Literal["admin", "member"]


class InvitationTokenRequest(BaseModel):
    token: str = Field(..., min_length=10)


class MemberResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    household_id: UUID
    user_id: Optional[UUID]
    email: str
    name: Optional[str]
    role: str
    status: str
    invited_at: datetime
    accepted_at: Optional[datetime]


class InvitationResponse(MemberResponse):
    """Returned to the inviter; carries the token for out-of-band sharing."""

    invitation_token: Optional[str]


class HouseholdResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    type: str
    created_by: UUID
    created_at: datetime
    members: List[MemberResponse] = []
