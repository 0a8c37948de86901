"""
Admin Routes

API endpoints for the admin dashboard, users, plans and promo codes.
All endpoints require admin authentication.
"""

import math
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from spare_finance.api.db.session import get_db
from spare_finance.api.db.models import PromoCode, User
from spare_finance.api.dependencies import get_admin_user
from spare_finance.api.auth.schemas import MessageResponse
from spare_finance.api.billing.plans import PlanService
from spare_finance.api.billing.schemas import PlanResponse
from spare_finance.api.admin.schemas import (
    AdminUserListResponse,
    AdminUserResponse,
    DashboardResponse,
    PlanUpdateRequest,
    PromoCodeCreateRequest,
    PromoCodeListResponse,
    PromoCodeResponse,
    PromoCodeToggleRequest,
    UserUpdateRequest,
)
from spare_finance.api.admin.service import AdminService


router = APIRouter()


def get_admin_service(db: AsyncSession = Depends(get_db)) -> AdminService:
    return AdminService(db)


# ==================== Dashboard ====================


@router.get(
    "/dashboard",
    response_model=DashboardResponse,
    summary="Get admin dashboard",
)
async def get_dashboard(
    admin: User = Depends(get_admin_user),
    service: AdminService = Depends(get_admin_service),
) -> DashboardResponse:
    """
    Get complete admin dashboard data.

    Includes subscription counts, MRR, the revenue expected from running
    trials and the plan distribution.
    """
    return await service.get_dashboard()


# ==================== User Management ====================


@router.get(
    "/users",
    response_model=AdminUserListResponse,
    summary="List all users",
)
async def list_users(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None, description="Search email or name"),
    plan_id: Optional[str] = Query(None, description="Filter by current plan"),
    is_active: Optional[bool] = Query(None, description="Filter by active status"),
    admin: User = Depends(get_admin_user),
    service: AdminService = Depends(get_admin_service),
) -> AdminUserListResponse:
    """Get paginated list of all users with filters."""
    users, total = await service.get_users(
        page=page,
        page_size=page_size,
        search=search,
        plan_id=plan_id,
        is_active=is_active,
    )
    return AdminUserListResponse(
        users=users,
        total=total,
        page=page,
        page_size=page_size,
        total_pages=math.ceil(total / page_size) if total > 0 else 1,
    )


@router.patch(
    "/users/{user_id}",
    response_model=AdminUserResponse,
    summary="Update user",
)
async def update_user(
    user_id: UUID,
    data: UserUpdateRequest,
    admin: User = Depends(get_admin_user),
    service: AdminService = Depends(get_admin_service),
) -> AdminUserResponse:
    """Activate, block or change the admin flag of a user."""
    user = await service.get_user_by_id(user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )
    try:
        user = await service.update_user(admin, user, data)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return AdminUserResponse.model_validate(user)


# ==================== Plans ====================


@router.get("/plans", response_model=List[PlanResponse], summary="List plans")
async def list_plans(
    admin: User = Depends(get_admin_user),
    db: AsyncSession = Depends(get_db),
) -> List[PlanResponse]:
    return await PlanService(db).list_plans()


@router.patch("/plans/{plan_id}", response_model=PlanResponse, summary="Update plan")
async def update_plan(
    plan_id: str,
    data: PlanUpdateRequest,
    admin: User = Depends(get_admin_user),
    service: AdminService = Depends(get_admin_service),
) -> PlanResponse:
    plan = await PlanService(service.db).get_plan(plan_id)
    if plan is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Plan not found")
    return PlanResponse.model_validate(await service.update_plan(plan, data))


# ==================== Promo Codes ====================


async def get_promo_code_or_404(
    promo_id: UUID,
    admin: User = Depends(get_admin_user),
    service: AdminService = Depends(get_admin_service),
) -> PromoCode:
    promo = await service.get_promo_code(promo_id)
    if promo is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Promo code not found")
    return promo


@router.get("/promo-codes", response_model=PromoCodeListResponse, summary="List promo codes")
async def list_promo_codes(
    admin: User = Depends(get_admin_user),
    service: AdminService = Depends(get_admin_service),
) -> PromoCodeListResponse:
    return PromoCodeListResponse(items=await service.list_promo_codes())


@router.post(
    "/promo-codes",
    response_model=PromoCodeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create promo code",
)
async def create_promo_code(
    data: PromoCodeCreateRequest,
    admin: User = Depends(get_admin_user),
    service: AdminService = Depends(get_admin_service),
) -> PromoCodeResponse:
    """Creates the matching Stripe coupon; Stripe failures surface as 502."""
    try:
        promo = await service.create_promo_code(data)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return PromoCodeResponse.model_validate(promo)


@router.patch(
    "/promo-codes/{promo_id}",
    response_model=PromoCodeResponse,
    summary="Activate or deactivate promo code",
)
async def toggle_promo_code(
    data: PromoCodeToggleRequest,
    promo: PromoCode = Depends(get_promo_code_or_404),
    service: AdminService = Depends(get_admin_service),
) -> PromoCodeResponse:
    return PromoCodeResponse.model_validate(
        await service.set_promo_code_active(promo, data.is_active)
    )


@router.delete(
    "/promo-codes/{promo_id}",
    response_model=MessageResponse,
    summary="Delete promo code",
)
async def delete_promo_code(
    promo: PromoCode = Depends(get_promo_code_or_404),
    service: AdminService = Depends(get_admin_service),
) -> MessageResponse:
    await service.delete_promo_code(promo)
    return MessageResponse(message="Promo code deleted")
