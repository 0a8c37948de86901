"""
Budget Routes
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from spare_finance.api.db.session import get_db
from spare_finance.api.db.models import Budget, User, month_start
from spare_finance.api.dependencies import get_current_user, ensure_owner
from spare_finance.api.auth.schemas import MessageResponse
from spare_finance.api.budgets.service import BudgetService, with_spend
from spare_finance.api.budgets.schemas import (
    BudgetCreateRequest,
    BudgetListResponse,
    BudgetResponse,
    BudgetUpdateRequest,
    CopyRecurringRequest,
    CopyRecurringResponse,
)


router = APIRouter()


def get_budget_service(db: AsyncSession = Depends(get_db)) -> BudgetService:
    return BudgetService(db)


async def get_budget_with_access(
    budget_id: UUID,
    user: User = Depends(get_current_user),
    service: BudgetService = Depends(get_budget_service),
) -> Budget:
    return ensure_owner(await service.get_budget(budget_id), user, "Budget")


@router.get("", response_model=BudgetListResponse, summary="List budgets for a month")
async def list_budgets(
    period: Optional[date] = Query(None, description="Any day of the month; defaults to today"),
    user: User = Depends(get_current_user),
    service: BudgetService = Depends(get_budget_service),
) -> BudgetListResponse:
    month = month_start(period or date.today())
    items = await service.list_budgets(user.id, month)
    return BudgetListResponse(
        period=month,
        items=items,
        total_budgeted=sum((i.amount for i in items), Decimal("0")),
        total_spent=sum((i.actual_spend for i in items), Decimal("0")),
    )


@router.post(
    "",
    response_model=BudgetResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create budget",
)
async def create_budget(
    data: BudgetCreateRequest,
    user: User = Depends(get_current_user),
    service: BudgetService = Depends(get_budget_service),
) -> BudgetResponse:
    try:
        budget = await service.create_budget(user.id, data)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return with_spend(budget, Decimal("0"))


@router.post(
    "/copy-recurring",
    response_model=CopyRecurringResponse,
    summary="Copy last month's recurring budgets",
)
async def copy_recurring(
    data: CopyRecurringRequest,
    user: User = Depends(get_current_user),
    service: BudgetService = Depends(get_budget_service),
) -> CopyRecurringResponse:
    created = await service.copy_recurring(user.id, data.period)
    return CopyRecurringResponse(created=created)


@router.patch("/{budget_id}", response_model=BudgetResponse, summary="Update budget")
async def update_budget(
    data: BudgetUpdateRequest,
    budget: Budget = Depends(get_budget_with_access),
    service: BudgetService = Depends(get_budget_service),
) -> BudgetResponse:
    budget = await service.update_budget(budget, data)
    for item in await service.list_budgets(budget.user_id, budget.period):
        if item.id == budget.id:
            return item
    return with_spend(budget, Decimal("0"))


@router.delete("/{budget_id}", response_model=MessageResponse, summary="Delete budget")
async def delete_budget(
    budget: Budget = Depends(get_budget_with_access),
    service: BudgetService = Depends(get_budget_service),
) -> MessageResponse:
    await service.delete_budget(budget)
    return MessageResponse(message="Budget deleted")
