"""
Category Service

System categories (no owner) plus each user's own groups, categories
and subcategories.
"""

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from spare_finance.api.db.models import Category, CategoryGroup, Subcategory
from spare_finance.api.categories.schemas import (
    CategoryTreeResponse,
    GroupTreeResponse,
    SubcategoryResponse,
)


class CategoryService:
    """Service for category tree operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_tree(self, user_id: UUID) -> List[GroupTreeResponse]:
        """Groups visible to the user with their categories and subcategories."""
        result = await self.db.execute(
            select(CategoryGroup)
            .where(or_(CategoryGroup.user_id.is_(None), CategoryGroup.user_id == user_id))
            .options(
                selectinload(CategoryGroup.categories).selectinload(Category.subcategories)
            )
            .order_by(CategoryGroup.name)
        )
        groups = result.scalars().unique().all()

        # System groups may hold other users' rows; only show ours
        visible = (None, user_id)
        tree = []
        for group in groups:
            categories = []
            for category in group.categories:
                if category.user_id not in visible:
                    continue
                categories.append(
                    CategoryTreeResponse(
                        id=category.id,
                        name=category.name,
                        group_id=category.group_id,
                        user_id=category.user_id,
                        subcategories=[
                            SubcategoryResponse.model_validate(s)
                            for s in category.subcategories
                            if s.user_id in visible
                        ],
                    )
                )
            tree.append(
                GroupTreeResponse(
                    id=group.id,
                    name=group.name,
                    type=group.type,
                    user_id=group.user_id,
                    categories=categories,
                )
            )
        return tree

    async def is_visible(self, model, object_id: UUID, user_id: UUID):
        """Return the row if it is a system row or owned by user_id."""
        obj = await self.db.get(model, object_id)
        if obj is None or obj.user_id not in (None, user_id):
            return None
        return obj

    async def create_group(self, user_id: UUID, name: str, group_type: str) -> CategoryGroup:
        group = CategoryGroup(user_id=user_id, name=name, type=group_type)
        self.db.add(group)
        await self.db.commit()
        await self.db.refresh(group)
        return group

    async def create_category(self, user_id: UUID, name: str, group_id: UUID) -> Category:
        group = await self.is_visible(CategoryGroup, group_id, user_id)
        if group is None:
            raise ValueError("Category group not found")

        category = Category(user_id=user_id, name=name, group_id=group.id)
        self.db.add(category)
        await self.db.commit()
        await self.db.refresh(category)
        return category

    async def create_subcategory(
        self, user_id: UUID, name: str, category_id: UUID, logo: Optional[str] = None
    ) -> Subcategory:
        category = await self.is_visible(Category, category_id, user_id)
        if category is None:
            raise ValueError("Category not found")

        subcategory = Subcategory(
            user_id=user_id, name=name, category_id=category.id, logo=logo
        )
        self.db.add(subcategory)
        await self.db.commit()
        await self.db.refresh(subcategory)
        return subcategory

    async def get_owned(self, model, object_id: UUID, user_id: UUID):
        """
        Row that the user may modify. System rows are read-only.

        Raises:
            LookupError: Not found or not visible
            PermissionError: System row
        """
        obj = await self.is_visible(model, object_id, user_id)
        if obj is None:
            raise LookupError(f"{model.__name__} not found")
        if obj.user_id is None:
            raise PermissionError("System categories cannot be modified")
        return obj

    async def rename(self, obj, name: str):
        obj.name = name
        await self.db.commit()
        await self.db.refresh(obj)
        return obj

    async def delete(self, obj) -> None:
        await self.db.delete(obj)
        await self.db.commit()

    async def validate_selection(
        self,
        user_id: UUID,
        category_id: Optional[UUID],
        subcategory_id: Optional[UUID],
    ) -> None:
        """
        Raises:
            ValueError: Unknown category, or subcategory not under category
        """
        if category_id is None:
            if subcategory_id is not None:
                raise ValueError("Subcategory requires a category")
            return

        category = await self.is_visible(Category, category_id, user_id)
        if category is None:
            raise ValueError("Category not found")

        if subcategory_id is not None:
            subcategory = await self.is_visible(Subcategory, subcategory_id, user_id)
            if subcategory is None or subcategory.category_id != category.id:
                raise ValueError("Subcategory does not belong to category")
