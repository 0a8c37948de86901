"""
Debt Routes
"""

from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from spare_finance.api.db.session import get_db
from spare_finance.api.db.models import Debt, User
from spare_finance.api.dependencies import get_current_user, ensure_owner
from spare_finance.api.auth.schemas import MessageResponse
from spare_finance.api.debts.service import DebtService, debt_response
from spare_finance.api.debts.schemas import (
    DebtCreateRequest,
    DebtListResponse,
    DebtPaymentRequest,
    DebtPaymentResponse,
    DebtResponse,
    DebtUpdateRequest,
)


router = APIRouter()


def get_debt_service(db: AsyncSession = Depends(get_db)) -> DebtService:
    return DebtService(db)


async def get_debt_with_access(
    debt_id: UUID,
    user: User = Depends(get_current_user),
    service: DebtService = Depends(get_debt_service),
) -> Debt:
    return ensure_owner(await service.get_debt(debt_id), user, "Debt")


@router.get("", response_model=DebtListResponse, summary="List debts")
async def list_debts(
    user: User = Depends(get_current_user),
    service: DebtService = Depends(get_debt_service),
) -> DebtListResponse:
    debts = await service.list_debts(user.id)
    return DebtListResponse(
        items=[debt_response(d) for d in debts],
        total_balance=sum((Decimal(d.current_balance) for d in debts), Decimal("0")),
    )


@router.post(
    "",
    response_model=DebtResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create debt",
)
async def create_debt(
    data: DebtCreateRequest,
    user: User = Depends(get_current_user),
    service: DebtService = Depends(get_debt_service),
) -> DebtResponse:
    try:
        debt = await service.create_debt(user.id, data)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return debt_response(debt)


@router.get("/{debt_id}", response_model=DebtResponse, summary="Get debt")
async def get_debt(debt: Debt = Depends(get_debt_with_access)) -> DebtResponse:
    """Includes the payoff projection at the current monthly payment."""
    return debt_response(debt)


@router.patch("/{debt_id}", response_model=DebtResponse, summary="Update debt")
async def update_debt(
    data: DebtUpdateRequest,
    debt: Debt = Depends(get_debt_with_access),
    service: DebtService = Depends(get_debt_service),
) -> DebtResponse:
    debt = await service.update_debt(debt, data)
    return debt_response(debt)


@router.post("/{debt_id}/payments", response_model=DebtPaymentResponse, summary="Record payment")
async def record_payment(
    data: DebtPaymentRequest,
    debt: Debt = Depends(get_debt_with_access),
    service: DebtService = Depends(get_debt_service),
) -> DebtPaymentResponse:
    try:
        debt, principal, interest = await service.record_payment(debt, data.amount)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return DebtPaymentResponse(debt=debt_response(debt), principal=principal, interest=interest)


@router.delete("/{debt_id}", response_model=MessageResponse, summary="Delete debt")
async def delete_debt(
    debt: Debt = Depends(get_debt_with_access),
    service: DebtService = Depends(get_debt_service),
) -> MessageResponse:
    await service.delete_debt(debt)
    return MessageResponse(message="Debt deleted")
