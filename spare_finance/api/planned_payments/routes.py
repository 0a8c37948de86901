"""
Planned Payment Routes

Scheduled payments for the signed-in user, plus the cron endpoint that
regenerates them for everyone.
"""

import hmac
import logging
from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from spare_finance.api.config import settings
from spare_finance.api.db.session import get_db
from spare_finance.api.db.models import PlannedPayment, Transaction, User
from spare_finance.api.dependencies import (
    ensure_owner,
    get_current_user,
    get_transaction_with_access,
)
from spare_finance.api.auth.schemas import MessageResponse
from spare_finance.api.planned_payments.service import PlannedPaymentService
from spare_finance.api.planned_payments.schemas import (
    GenerateResponse,
    PaymentSource,
    PaymentStatus,
    PaymentType,
    PlannedPaymentCreateRequest,
    PlannedPaymentListResponse,
    PlannedPaymentResponse,
    PlannedPaymentUpdateRequest,
    PlanningSyncResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()
cron_router = APIRouter()


def get_planned_payment_service(db: AsyncSession = Depends(get_db)) -> PlannedPaymentService:
    return PlannedPaymentService(db)


async def get_payment_with_access(
    payment_id: UUID,
    user: User = Depends(get_current_user),
    service: PlannedPaymentService = Depends(get_planned_payment_service),
) -> PlannedPayment:
    return ensure_owner(await service.get_payment(payment_id), user, "Planned payment")


def _raise_for(error: Exception):
    if isinstance(error, LookupError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, PermissionError):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(error))
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))


def _to_response(service: PlannedPaymentService, payment: PlannedPayment) -> PlannedPaymentResponse:
    return PlannedPaymentResponse.from_model(payment, service.read_description(payment))


# ==================== Query ====================


@router.get("", response_model=PlannedPaymentListResponse, summary="List planned payments")
async def list_planned_payments(
    user: User = Depends(get_current_user),
    service: PlannedPaymentService = Depends(get_planned_payment_service),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    status_filter: Optional[PaymentStatus] = Query(None, alias="status"),
    source: Optional[PaymentSource] = Query(None),
    type: Optional[PaymentType] = Query(None),
    account_id: Optional[UUID] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
) -> PlannedPaymentListResponse:
    items, total, counts = await service.list_payments(
        user.id,
        start_date=start_date,
        end_date=end_date,
        status=status_filter,
        source=source,
        type=type,
        account_id=account_id,
        page=page,
        page_size=page_size,
    )
    return PlannedPaymentListResponse(
        items=[_to_response(service, p) for p in items],
        total=total,
        counts_by_type=counts,
        page=page,
        page_size=page_size,
    )


@router.get("/{payment_id}", response_model=PlannedPaymentResponse, summary="Get planned payment")
async def get_planned_payment(
    payment: PlannedPayment = Depends(get_payment_with_access),
    service: PlannedPaymentService = Depends(get_planned_payment_service),
) -> PlannedPaymentResponse:
    return _to_response(service, payment)


# ==================== Create / Update ====================


@router.post(
    "",
    response_model=PlannedPaymentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create planned payment",
)
async def create_planned_payment(
    data: PlannedPaymentCreateRequest,
    user: User = Depends(get_current_user),
    service: PlannedPaymentService = Depends(get_planned_payment_service),
) -> PlannedPaymentResponse:
    try:
        payment = await service.create_payment(user.id, data)
    except (LookupError, PermissionError, ValueError) as e:
        _raise_for(e)
    return _to_response(service, payment)


@router.patch("/{payment_id}", response_model=PlannedPaymentResponse, summary="Update planned payment")
async def update_planned_payment(
    data: PlannedPaymentUpdateRequest,
    payment: PlannedPayment = Depends(get_payment_with_access),
    service: PlannedPaymentService = Depends(get_planned_payment_service),
) -> PlannedPaymentResponse:
    try:
        payment = await service.update_payment(payment, data)
    except (LookupError, PermissionError, ValueError) as e:
        _raise_for(e)
    return _to_response(service, payment)


@router.delete("/{payment_id}", response_model=MessageResponse, summary="Delete planned payment")
async def delete_planned_payment(
    payment: PlannedPayment = Depends(get_payment_with_access),
    service: PlannedPaymentService = Depends(get_planned_payment_service),
) -> MessageResponse:
    await service.delete_payment(payment)
    return MessageResponse(message="Planned payment deleted")


# ==================== Status ====================


@router.post("/{payment_id}/pay", response_model=PlannedPaymentResponse, summary="Mark as paid")
async def mark_paid(
    payment: PlannedPayment = Depends(get_payment_with_access),
    user: User = Depends(get_current_user),
    service: PlannedPaymentService = Depends(get_planned_payment_service),
) -> PlannedPaymentResponse:
    """Creates the matching transaction (or transfer) and links it."""
    try:
        payment = await service.mark_paid(user, payment)
    except (LookupError, PermissionError, ValueError) as e:
        _raise_for(e)
    return _to_response(service, payment)


@router.post("/{payment_id}/skip", response_model=PlannedPaymentResponse, summary="Skip payment")
async def skip_payment(
    payment: PlannedPayment = Depends(get_payment_with_access),
    service: PlannedPaymentService = Depends(get_planned_payment_service),
) -> PlannedPaymentResponse:
    try:
        payment = await service.skip_payment(payment)
    except ValueError as e:
        _raise_for(e)
    return _to_response(service, payment)


@router.post("/{payment_id}/cancel", response_model=PlannedPaymentResponse, summary="Cancel payment")
async def cancel_payment(
    payment: PlannedPayment = Depends(get_payment_with_access),
    service: PlannedPaymentService = Depends(get_planned_payment_service),
) -> PlannedPaymentResponse:
    try:
        payment = await service.cancel_payment(payment)
    except ValueError as e:
        _raise_for(e)
    return _to_response(service, payment)


# ==================== Generation ====================


@router.post(
    "/from-transaction/{transaction_id}",
    response_model=GenerateResponse,
    summary="Schedule repeats of a recurring transaction",
)
async def generate_from_transaction(
    tx: Transaction = Depends(get_transaction_with_access),
    service: PlannedPaymentService = Depends(get_planned_payment_service),
) -> GenerateResponse:
    try:
        created = await service.generate_from_transaction(tx)
    except ValueError as e:
        _raise_for(e)
    return GenerateResponse(created=created)


@router.post("/sync", response_model=PlanningSyncResponse, summary="Regenerate my planned payments")
async def sync_my_payments(
    user: User = Depends(get_current_user),
    service: PlannedPaymentService = Depends(get_planned_payment_service),
) -> PlanningSyncResponse:
    return PlanningSyncResponse(**await service.sync_user(user.id))


# ==================== Cron ====================


def verify_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """Require `Authorization: Bearer <CRON_SECRET>`; refuse everything when unset."""
    secret = settings.CRON_SECRET
    if not secret or not authorization or not hmac.compare_digest(
        authorization, f"Bearer {secret}"
    ):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


@cron_router.get(
    "/sync-planned-payments",
    response_model=PlanningSyncResponse,
    summary="Regenerate planned payments for all users",
    dependencies=[Depends(verify_cron_secret)],
)
async def cron_sync_planned_payments(
    service: PlannedPaymentService = Depends(get_planned_payment_service),
) -> PlanningSyncResponse:
    logger.info("Cron planned payment sync started")
    return PlanningSyncResponse(**await service.sync_all())
