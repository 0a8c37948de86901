"""
Goal Routes
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from spare_finance.api.db.session import get_db
from spare_finance.api.db.models import Goal, User
from spare_finance.api.dependencies import get_current_user, ensure_owner
from spare_finance.api.auth.schemas import MessageResponse
from spare_finance.api.goals.service import GoalService, goal_progress
from spare_finance.api.goals.schemas import (
    GoalAmountRequest,
    GoalCreateRequest,
    GoalListResponse,
    GoalResponse,
    GoalUpdateRequest,
)


router = APIRouter()


def get_goal_service(db: AsyncSession = Depends(get_db)) -> GoalService:
    return GoalService(db)


async def get_goal_with_access(
    goal_id: UUID,
    user: User = Depends(get_current_user),
    service: GoalService = Depends(get_goal_service),
) -> Goal:
    return ensure_owner(await service.get_goal(goal_id), user, "Goal")


async def _respond(service: GoalService, goal: Goal) -> GoalResponse:
    return goal_progress(goal, await service.income_basis(goal.user_id))


@router.get("", response_model=GoalListResponse, summary="List goals with progress")
async def list_goals(
    user: User = Depends(get_current_user),
    service: GoalService = Depends(get_goal_service),
) -> GoalListResponse:
    basis = await service.income_basis(user.id)
    goals = await service.list_goals(user.id)
    return GoalListResponse(
        items=[goal_progress(g, basis) for g in goals],
        income_basis=basis,
        total_allocation=await service.total_allocation(user.id),
    )


@router.post(
    "",
    response_model=GoalResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create goal",
)
async def create_goal(
    data: GoalCreateRequest,
    user: User = Depends(get_current_user),
    service: GoalService = Depends(get_goal_service),
) -> GoalResponse:
    try:
        goal = await service.create_goal(user.id, data)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return await _respond(service, goal)


@router.get("/{goal_id}", response_model=GoalResponse, summary="Get goal")
async def get_goal(
    goal: Goal = Depends(get_goal_with_access),
    service: GoalService = Depends(get_goal_service),
) -> GoalResponse:
    return await _respond(service, goal)


@router.patch("/{goal_id}", response_model=GoalResponse, summary="Update goal")
async def update_goal(
    data: GoalUpdateRequest,
    goal: Goal = Depends(get_goal_with_access),
    service: GoalService = Depends(get_goal_service),
) -> GoalResponse:
    try:
        goal = await service.update_goal(goal, data)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return await _respond(service, goal)


@router.post("/{goal_id}/top-up", response_model=GoalResponse, summary="Add to goal")
async def top_up(
    data: GoalAmountRequest,
    goal: Goal = Depends(get_goal_with_access),
    service: GoalService = Depends(get_goal_service),
) -> GoalResponse:
    goal = await service.top_up(goal, data.amount)
    return await _respond(service, goal)


@router.post("/{goal_id}/withdraw", response_model=GoalResponse, summary="Withdraw from goal")
async def withdraw(
    data: GoalAmountRequest,
    goal: Goal = Depends(get_goal_with_access),
    service: GoalService = Depends(get_goal_service),
) -> GoalResponse:
    try:
        goal = await service.withdraw(goal, data.amount)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return await _respond(service, goal)


@router.delete("/{goal_id}", response_model=MessageResponse, summary="Delete goal")
async def delete_goal(
    goal: Goal = Depends(get_goal_with_access),
    service: GoalService = Depends(get_goal_service),
) -> MessageResponse:
    await service.delete_goal(goal)
    return MessageResponse(message="Goal deleted")
