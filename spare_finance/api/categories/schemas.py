"""
Category Schemas
"""

from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class GroupCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: Literal["income", "expense"] = "expense"


class CategoryCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    group_id: UUID


class SubcategoryCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    category_id: UUID
    logo: Optional[str] = Field(None, max_length=500)


class RenameRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class SubcategoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    category_id: UUID
    logo: Optional[str]
    user_id: Optional[UUID]


class CategoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    group_id: UUID
    user_id: Optional[UUID]


class CategoryTreeResponse(CategoryResponse):
    subcategories: List[SubcategoryResponse] = []


class GroupResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    type: str
    user_id: Optional[UUID]


class GroupTreeResponse(GroupResponse):
    categories: List[CategoryTreeResponse] = []


class SuggestionRequest(BaseModel):
    description: str
    amount: float = Field(..., gt=0)
    type: Literal["income", "expense"] = "expense"


class SuggestionResponse(BaseModel):
    category_id: UUID
    subcategory_id: Optional[UUID]
    confidence: str
    match_count: int
    match_type: str
