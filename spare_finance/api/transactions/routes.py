"""
Transaction Routes

API endpoints for transactions, transfers and category suggestions.
"""

from datetime import date
from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from spare_finance.api.db.session import get_db
from spare_finance.api.db.models import Transaction, User
from spare_finance.api.dependencies import get_current_user, get_transaction_with_access
from spare_finance.api.transactions.service import TransactionService
from spare_finance.api.transactions.schemas import (
    BulkDeleteRequest,
    BulkDeleteResponse,
    CsvImportRequest,
    CsvImportResponse,
    CsvPreviewResponse,
    CsvPreviewRow,
    CsvRowError,
    TransactionCreateRequest,
    TransactionListResponse,
    TransactionResponse,
    TransactionUpdateRequest,
    TransferCreateRequest,
    TransferResponse,
)


router = APIRouter()


def get_transaction_service(db: AsyncSession = Depends(get_db)) -> TransactionService:
    """Dependency to get transaction service."""
    return TransactionService(db)


def _raise_for(error: Exception):
    if isinstance(error, LookupError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, PermissionError):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(error))
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))


def _to_response(service: TransactionService, tx: Transaction) -> TransactionResponse:
    return TransactionResponse.from_model(tx, service.read_description(tx))


# ==================== Create ====================


@router.post(
    "",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create transaction",
)
async def create_transaction(
    data: TransactionCreateRequest,
    user: User = Depends(get_current_user),
    service: TransactionService = Depends(get_transaction_service),
) -> TransactionResponse:
    """
    Create an income or expense.

    Counts toward the plan's monthly transaction limit. When no category
    is given, a suggestion learned from history is attached.
    """
    try:
        tx = await service.create_transaction(user, data)
    except (LookupError, PermissionError, ValueError) as e:
        _raise_for(e)
    return _to_response(service, tx)


@router.post(
    "/transfer",
    response_model=TransferResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create transfer",
)
async def create_transfer(
    data: TransferCreateRequest,
    user: User = Depends(get_current_user),
    service: TransactionService = Depends(get_transaction_service),
) -> TransferResponse:
    """Creates two linked rows; counts once toward the monthly limit."""
    try:
        outgoing, incoming = await service.create_transfer(user, data)
    except (LookupError, PermissionError, ValueError) as e:
        _raise_for(e)
    return TransferResponse(
        outgoing=_to_response(service, outgoing),
        incoming=_to_response(service, incoming),
    )


# ==================== Import ====================


@router.post(
    "/import/preview",
    response_model=CsvPreviewResponse,
    summary="Preview CSV import",
)
async def preview_csv_import(
    data: CsvImportRequest,
    user: User = Depends(get_current_user),
    service: TransactionService = Depends(get_transaction_service),
) -> CsvPreviewResponse:
    """Shows how each row maps to accounts and categories. Nothing is saved."""
    try:
        await service.check_csv_import(user.id)
        columns, names, rows = await service.map_csv(user.id, data)
    except (PermissionError, ValueError) as e:
        _raise_for(e)
    preview = []
    for row in rows:
        item = row.transaction
        preview.append(
            CsvPreviewRow(row_index=row.row_index, error=row.error)
            if item is None
            else CsvPreviewRow(row_index=row.row_index, **vars(item))
        )
    return CsvPreviewResponse(columns=columns, account_names=names, rows=preview)


@router.post(
    "/import",
    response_model=CsvImportResponse,
    summary="Import transactions from CSV",
)
async def import_csv(
    data: CsvImportRequest,
    user: User = Depends(get_current_user),
    service: TransactionService = Depends(get_transaction_service),
) -> CsvImportResponse:
    """
    Import a CSV export.

    Needs a plan with CSV import. Each row counts toward the monthly
    transaction limit; rows that cannot be imported are listed in
    error_details and the others are kept.
    """
    try:
        imported, errors = await service.import_csv(user, data)
    except (PermissionError, ValueError) as e:
        _raise_for(e)
    return CsvImportResponse(
        imported=imported,
        errors=len(errors),
        error_details=[CsvRowError(row_index=i, error=message) for i, message in errors],
    )


# ==================== Query ====================


@router.get(
    "",
    response_model=TransactionListResponse,
    summary="List transactions",
)
async def list_transactions(
    user: User = Depends(get_current_user),
    service: TransactionService = Depends(get_transaction_service),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    account_id: Optional[UUID] = Query(None),
    category_id: Optional[UUID] = Query(None),
    type: Optional[Literal["income", "expense", "transfer"]] = Query(None),
    search: Optional[str] = Query(None, max_length=200),
    deleted: bool = Query(False, description="Only soft-deleted rows"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
) -> TransactionListResponse:
    items, total = await service.list_transactions(
        user.id,
        start_date=start_date,
        end_date=end_date,
        account_id=account_id,
        category_id=category_id,
        type=type,
        search=search,
        deleted=deleted,
        page=page,
        page_size=page_size,
    )
    return TransactionListResponse(
        items=[_to_response(service, tx) for tx in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get(
    "/{transaction_id}",
    response_model=TransactionResponse,
    summary="Get transaction",
)
async def get_transaction(
    tx: Transaction = Depends(get_transaction_with_access),
    service: TransactionService = Depends(get_transaction_service),
) -> TransactionResponse:
    return _to_response(service, tx)


# ==================== Update ====================


@router.patch(
    "/{transaction_id}",
    response_model=TransactionResponse,
    summary="Update transaction",
)
async def update_transaction(
    data: TransactionUpdateRequest,
    user: User = Depends(get_current_user),
    tx: Transaction = Depends(get_transaction_with_access),
    service: TransactionService = Depends(get_transaction_service),
) -> TransactionResponse:
    try:
        tx = await service.update_transaction(user, tx, data)
    except (LookupError, PermissionError, ValueError) as e:
        _raise_for(e)
    return _to_response(service, tx)


@router.post(
    "/{transaction_id}/suggestion/apply",
    response_model=TransactionResponse,
    summary="Apply category suggestion",
)
async def apply_suggestion(
    tx: Transaction = Depends(get_transaction_with_access),
    service: TransactionService = Depends(get_transaction_service),
) -> TransactionResponse:
    try:
        tx = await service.apply_suggestion(tx)
    except ValueError as e:
        _raise_for(e)
    return _to_response(service, tx)


@router.post(
    "/{transaction_id}/suggestion/reject",
    response_model=TransactionResponse,
    summary="Reject category suggestion",
)
async def reject_suggestion(
    tx: Transaction = Depends(get_transaction_with_access),
    service: TransactionService = Depends(get_transaction_service),
) -> TransactionResponse:
    tx = await service.reject_suggestion(tx)
    return _to_response(service, tx)


# ==================== Delete ====================


@router.post(
    "/bulk-delete",
    response_model=BulkDeleteResponse,
    summary="Delete many transactions",
)
async def bulk_delete(
    data: BulkDeleteRequest,
    user: User = Depends(get_current_user),
    service: TransactionService = Depends(get_transaction_service),
) -> BulkDeleteResponse:
    deleted = await service.bulk_delete(user.id, data.ids, permanent=data.permanent)
    return BulkDeleteResponse(deleted=deleted)


@router.post(
    "/{transaction_id}/restore",
    response_model=TransactionResponse,
    summary="Restore deleted transaction",
)
async def restore_transaction(
    tx: Transaction = Depends(get_transaction_with_access),
    service: TransactionService = Depends(get_transaction_service),
) -> TransactionResponse:
    tx = await service.restore(tx)
    return _to_response(service, tx)


@router.delete(
    "/{transaction_id}",
    response_model=BulkDeleteResponse,
    summary="Delete transaction",
)
async def delete_transaction(
    tx: Transaction = Depends(get_transaction_with_access),
    service: TransactionService = Depends(get_transaction_service),
    permanent: bool = Query(False, description="Remove instead of soft delete"),
) -> BulkDeleteResponse:
    """Deleting either side of a transfer deletes both sides."""
    if permanent:
        deleted = await service.hard_delete(tx)
    else:
        deleted = await service.soft_delete(tx)
    return BulkDeleteResponse(deleted=deleted)
