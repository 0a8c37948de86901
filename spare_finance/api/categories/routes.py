"""
Category Routes

Category tree, user-defined categories and learned suggestions.
"""

from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from spare_finance.api.db.session import get_db
from spare_finance.api.db.models import Category, CategoryGroup, Subcategory, User
from spare_finance.api.dependencies import get_current_user
from spare_finance.api.auth.schemas import MessageResponse
from spare_finance.api.categories.service import CategoryService
from spare_finance.api.categories.suggestion import suggest_category
from spare_finance.api.categories.schemas import (
    CategoryCreateRequest,
    CategoryResponse,
    GroupCreateRequest,
    GroupResponse,
    GroupTreeResponse,
    RenameRequest,
    SubcategoryCreateRequest,
    SubcategoryResponse,
    SuggestionRequest,
    SuggestionResponse,
)


router = APIRouter()

_MODELS = {
    "groups": CategoryGroup,
    "categories": Category,
    "subcategories": Subcategory,
}


def get_category_service(db: AsyncSession = Depends(get_db)) -> CategoryService:
    return CategoryService(db)


async def _get_owned(service: CategoryService, kind: str, object_id: UUID, user: User):
    model = _MODELS.get(kind)
    if model is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    try:
        return await service.get_owned(model, object_id, user.id)
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))


@router.get("", response_model=List[GroupTreeResponse], summary="Category tree")
async def list_categories(
    user: User = Depends(get_current_user),
    service: CategoryService = Depends(get_category_service),
) -> List[GroupTreeResponse]:
    return await service.list_tree(user.id)


@router.post(
    "/groups",
    response_model=GroupResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a category group",
)
async def create_group(
    data: GroupCreateRequest,
    user: User = Depends(get_current_user),
    service: CategoryService = Depends(get_category_service),
) -> GroupResponse:
    group = await service.create_group(user.id, data.name, data.type)
    return GroupResponse.model_validate(group)


@router.post(
    "/categories",
    response_model=CategoryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a category",
)
async def create_category(
    data: CategoryCreateRequest,
    user: User = Depends(get_current_user),
    service: CategoryService = Depends(get_category_service),
) -> CategoryResponse:
    try:
        category = await service.create_category(user.id, data.name, data.group_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return CategoryResponse.model_validate(category)


@router.post(
    "/subcategories",
    response_model=SubcategoryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a subcategory",
)
async def create_subcategory(
    data: SubcategoryCreateRequest,
    user: User = Depends(get_current_user),
    service: CategoryService = Depends(get_category_service),
) -> SubcategoryResponse:
    try:
        subcategory = await service.create_subcategory(
            user.id, data.name, data.category_id, data.logo
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return SubcategoryResponse.model_validate(subcategory)


@router.patch("/{kind}/{object_id}", response_model=MessageResponse, summary="Rename")
async def rename(
    kind: str,
    object_id: UUID,
    data: RenameRequest,
    user: User = Depends(get_current_user),
    service: CategoryService = Depends(get_category_service),
) -> MessageResponse:
    obj = await _get_owned(service, kind, object_id, user)
    await service.rename(obj, data.name)
    return MessageResponse(message="Renamed")


@router.delete("/{kind}/{object_id}", response_model=MessageResponse, summary="Delete")
async def delete(
    kind: str,
    object_id: UUID,
    user: User = Depends(get_current_user),
    service: CategoryService = Depends(get_category_service),
) -> MessageResponse:
    obj = await _get_owned(service, kind, object_id, user)
    await service.delete(obj)
    return MessageResponse(message="Deleted")


@router.post(
    "/suggest",
    response_model=Optional[SuggestionResponse],
    summary="Suggest a category from history",
)
async def suggest(
    data: SuggestionRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Optional[SuggestionResponse]:
    """Returns null when the history has no matching description."""
    suggestion = await suggest_category(
        db, user.id, data.description, Decimal(str(data.amount)), data.type
    )
    if suggestion is None:
        return None
    return SuggestionResponse(**suggestion.__dict__)
