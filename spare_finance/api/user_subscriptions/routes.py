"""
User Subscription Routes
"""

from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from spare_finance.api.db.session import get_db
from spare_finance.api.db.models import User, UserServiceSubscription
from spare_finance.api.dependencies import ensure_owner, get_current_user
from spare_finance.api.auth.schemas import MessageResponse
from spare_finance.api.user_subscriptions.service import (
    UserSubscriptionService,
    subscription_response,
)
from spare_finance.api.user_subscriptions.schemas import (
    UserSubscriptionCreateRequest,
    UserSubscriptionListResponse,
    UserSubscriptionResponse,
    UserSubscriptionUpdateRequest,
)


router = APIRouter()


def get_user_subscription_service(db: AsyncSession = Depends(get_db)) -> UserSubscriptionService:
    return UserSubscriptionService(db)


async def get_subscription_with_access(
    subscription_id: UUID,
    user: User = Depends(get_current_user),
    service: UserSubscriptionService = Depends(get_user_subscription_service),
) -> UserServiceSubscription:
    return ensure_owner(await service.get_subscription(subscription_id), user, "Subscription")


def _raise_for(error: Exception):
    if isinstance(error, LookupError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, PermissionError):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(error))
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))


@router.get("", response_model=UserSubscriptionListResponse, summary="List tracked subscriptions")
async def list_subscriptions(
    user: User = Depends(get_current_user),
    service: UserSubscriptionService = Depends(get_user_subscription_service),
) -> UserSubscriptionListResponse:
    items = [subscription_response(s) for s in await service.list_subscriptions(user.id)]
    active = [s for s in items if s.is_active]
    return UserSubscriptionListResponse(
        items=items,
        active_count=len(active),
        monthly_total=sum((s.monthly_cost for s in active), Decimal("0")),
    )


@router.post(
    "",
    response_model=UserSubscriptionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Track subscription",
)
async def create_subscription(
    data: UserSubscriptionCreateRequest,
    user: User = Depends(get_current_user),
    service: UserSubscriptionService = Depends(get_user_subscription_service),
) -> UserSubscriptionResponse:
    """Also schedules the coming year of charges as planned payments."""
    try:
        subscription = await service.create_subscription(user.id, data)
    except (LookupError, PermissionError, ValueError) as e:
        _raise_for(e)
    return subscription_response(subscription)


@router.get(
    "/{subscription_id}", response_model=UserSubscriptionResponse, summary="Get subscription"
)
async def get_subscription(
    subscription: UserServiceSubscription = Depends(get_subscription_with_access),
) -> UserSubscriptionResponse:
    return subscription_response(subscription)


@router.patch(
    "/{subscription_id}", response_model=UserSubscriptionResponse, summary="Update subscription"
)
async def update_subscription(
    data: UserSubscriptionUpdateRequest,
    subscription: UserServiceSubscription = Depends(get_subscription_with_access),
    service: UserSubscriptionService = Depends(get_user_subscription_service),
) -> UserSubscriptionResponse:
    try:
        subscription = await service.update_subscription(subscription, data)
    except (LookupError, PermissionError, ValueError) as e:
        _raise_for(e)
    return subscription_response(subscription)


@router.post(
    "/{subscription_id}/pause", response_model=UserSubscriptionResponse, summary="Pause subscription"
)
async def pause_subscription(
    subscription: UserServiceSubscription = Depends(get_subscription_with_access),
    service: UserSubscriptionService = Depends(get_user_subscription_service),
) -> UserSubscriptionResponse:
    try:
        subscription = await service.pause_subscription(subscription)
    except ValueError as e:
        _raise_for(e)
    return subscription_response(subscription)


@router.post(
    "/{subscription_id}/resume",
    response_model=UserSubscriptionResponse,
    summary="Resume subscription",
)
async def resume_subscription(
    subscription: UserServiceSubscription = Depends(get_subscription_with_access),
    service: UserSubscriptionService = Depends(get_user_subscription_service),
) -> UserSubscriptionResponse:
    try:
        subscription = await service.resume_subscription(subscription)
    except ValueError as e:
        _raise_for(e)
    return subscription_response(subscription)


@router.delete(
    "/{subscription_id}", response_model=MessageResponse, summary="Stop tracking subscription"
)
async def delete_subscription(
    subscription: UserServiceSubscription = Depends(get_subscription_with_access),
    service: UserSubscriptionService = Depends(get_user_subscription_service),
) -> MessageResponse:
    await service.delete_subscription(subscription)
    return MessageResponse(message="Subscription deleted")
