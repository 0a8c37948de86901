"""
Account Routes

API endpoints for account management.
"""

from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from spare_finance.api.db.session import get_db
from spare_finance.api.db.models import Account, User
from spare_finance.api.dependencies import get_current_user, get_account_with_access
from spare_finance.api.auth.schemas import MessageResponse
from spare_finance.api.accounts.service import AccountService
from spare_finance.api.accounts.schemas import (
    AccountCreateRequest,
    AccountUpdateRequest,
    AccountResponse,
    AccountListResponse,
)


router = APIRouter()


def get_account_service(db: AsyncSession = Depends(get_db)) -> AccountService:
    """Dependency to get account service."""
    return AccountService(db)


@router.get(
    "",
    response_model=AccountListResponse,
    summary="List accounts",
)
async def list_accounts(
    user: User = Depends(get_current_user),
    service: AccountService = Depends(get_account_service),
) -> AccountListResponse:
    """All accounts of the current user with computed balances."""
    accounts = await service.get_user_accounts(user.id)
    balances = await service.get_balances(accounts)

    items = [AccountResponse.from_model(a, balances[a.id]) for a in accounts]
    return AccountListResponse(
        items=items,
        total=len(items),
        total_balance=sum((i.balance for i in items), Decimal("0")),
    )


@router.post(
    "",
    response_model=AccountResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create account",
)
async def create_account(
    data: AccountCreateRequest,
    user: User = Depends(get_current_user),
    service: AccountService = Depends(get_account_service),
) -> AccountResponse:
    """Subject to the plan's account limit."""
    try:
        account = await service.create_account(user, data)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )
    return AccountResponse.from_model(account, await service.get_balance(account))


@router.get(
    "/{account_id}",
    response_model=AccountResponse,
    summary="Get account",
)
async def get_account(
    account: Account = Depends(get_account_with_access),
    service: AccountService = Depends(get_account_service),
) -> AccountResponse:
    return AccountResponse.from_model(account, await service.get_balance(account))


@router.patch(
    "/{account_id}",
    response_model=AccountResponse,
    summary="Update account",
)
async def update_account(
    data: AccountUpdateRequest,
    account: Account = Depends(get_account_with_access),
    service: AccountService = Depends(get_account_service),
) -> AccountResponse:
    account = await service.update_account(account, data)
    return AccountResponse.from_model(account, await service.get_balance(account))


@router.delete(
    "/{account_id}",
    response_model=MessageResponse,
    summary="Delete account",
)
async def delete_account(
    account: Account = Depends(get_account_with_access),
    service: AccountService = Depends(get_account_service),
) -> MessageResponse:
    """Deletes the account and all of its transactions."""
    await service.delete_account(account)
    return MessageResponse(message="Account deleted")
