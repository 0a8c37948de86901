"""
Questrade Routes
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from spare_finance.api.db.session import get_db
from spare_finance.api.db.models import Account, InvestmentBalance, QuestradeConnection, User
from spare_finance.api.dependencies import get_current_user, get_account_with_access
from spare_finance.api.auth.schemas import MessageResponse
from spare_finance.api.accounts.schemas import AccountResponse
from spare_finance.api.accounts.service import AccountService
from spare_finance.api.questrade.service import QuestradeService
from spare_finance.api.questrade.schemas import (
    BalanceResponse,
    CandleResponse,
    ConnectRequest,
    ConnectResponse,
    ExecutionResponse,
    InvestmentTransactionResponse,
    OrderResponse,
    PositionResponse,
    QuestradeConnectionResponse,
    QuestradeStatusResponse,
    QuestradeSyncResponse,
    SyncCountsResponse,
    SyncRequest,
    TransactionSyncRequest,
)


router = APIRouter()


def get_questrade_service(db: AsyncSession = Depends(get_db)) -> QuestradeService:
    return QuestradeService(db)


async def get_user_connection(
    user: User = Depends(get_current_user),
    service: QuestradeService = Depends(get_questrade_service),
) -> QuestradeConnection:
    connection = await service.get_connection(user.id)
    if connection is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Questrade is not connected",
        )
    return connection


def _linked(account: Account) -> Account:
    if account.questrade_connection_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Account is not linked to Questrade",
        )
    return account


async def _account_responses(db: AsyncSession, accounts: List[Account]) -> List[AccountResponse]:
    balances = await AccountService(db).get_balances(accounts)
    return [AccountResponse.from_model(a, balances[a.id]) for a in accounts]


@router.post(
    "/connect",
    response_model=ConnectResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Connect Questrade",
)
async def connect(
    data: ConnectRequest,
    user: User = Depends(get_current_user),
    service: QuestradeService = Depends(get_questrade_service),
) -> ConnectResponse:
    try:
        connection, accounts = await service.connect(user, data.token)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return ConnectResponse(
        connection=QuestradeConnectionResponse.model_validate(connection),
        accounts=await _account_responses(service.db, accounts),
    )


@router.get("/connection", response_model=QuestradeStatusResponse, summary="Connection status")
async def connection_status(
    user: User = Depends(get_current_user),
    service: QuestradeService = Depends(get_questrade_service),
) -> QuestradeStatusResponse:
    connection = await service.get_connection(user.id)
    if connection is None:
        return QuestradeStatusResponse(connected=False)
    accounts = await service.linked_accounts(connection)
    return QuestradeStatusResponse(
        connected=True,
        connection=QuestradeConnectionResponse.model_validate(connection),
        accounts=await _account_responses(service.db, accounts),
    )


@router.delete("/connection", response_model=MessageResponse, summary="Disconnect Questrade")
async def disconnect(
    connection: QuestradeConnection = Depends(get_user_connection),
    service: QuestradeService = Depends(get_questrade_service),
) -> MessageResponse:
    await service.disconnect(connection)
    return MessageResponse(message="Questrade disconnected")


@router.post("/sync", response_model=QuestradeSyncResponse, summary="Sync everything")
async def sync_all(
    data: Optional[SyncRequest] = None,
    connection: QuestradeConnection = Depends(get_user_connection),
    service: QuestradeService = Depends(get_questrade_service),
) -> QuestradeSyncResponse:
    try:
        totals = await service.sync_all(connection, since=data.since if data else None)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return QuestradeSyncResponse(**totals)


@router.post(
    "/accounts/{account_id}/transactions/sync",
    response_model=SyncCountsResponse,
    summary="Sync trades for one account",
)
async def sync_account_transactions(
    data: Optional[TransactionSyncRequest] = None,
    account: Account = Depends(get_account_with_access),
    connection: QuestradeConnection = Depends(get_user_connection),
    service: QuestradeService = Depends(get_questrade_service),
) -> SyncCountsResponse:
    _linked(account)
    client = await service.get_valid_client(connection)
    try:
        result = await service.sync_transactions(
            account, client, start=data.start if data else None, end=data.end if data else None
        )
    finally:
        await client.close()
    return SyncCountsResponse(**result)


@router.get(
    "/accounts/{account_id}/balance",
    response_model=BalanceResponse,
    summary="Latest brokerage balance",
)
async def get_balance(
    account: Account = Depends(get_account_with_access),
    service: QuestradeService = Depends(get_questrade_service),
) -> BalanceResponse:
    snapshot = await service.db.get(InvestmentBalance, account.id)
    if snapshot is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Balance not synced yet")
    return BalanceResponse.model_validate(snapshot)


@router.get(
    "/accounts/{account_id}/positions",
    response_model=List[PositionResponse],
    summary="Open positions",
)
async def list_positions(
    account: Account = Depends(get_account_with_access),
    service: QuestradeService = Depends(get_questrade_service),
) -> List[PositionResponse]:
    return [PositionResponse.from_model(p) for p in await service.list_positions(account.id)]


@router.get(
    "/accounts/{account_id}/transactions",
    response_model=List[InvestmentTransactionResponse],
    summary="Investment transactions",
)
async def list_transactions(
    account: Account = Depends(get_account_with_access),
    service: QuestradeService = Depends(get_questrade_service),
) -> List[InvestmentTransactionResponse]:
    return await service.list_transactions(account.id)


@router.get(
    "/accounts/{account_id}/orders",
    response_model=List[OrderResponse],
    summary="Orders",
)
async def list_orders(
    account: Account = Depends(get_account_with_access),
    service: QuestradeService = Depends(get_questrade_service),
) -> List[OrderResponse]:
    return await service.list_orders(account.id)


@router.get(
    "/accounts/{account_id}/executions",
    response_model=List[ExecutionResponse],
    summary="Executions",
)
async def list_executions(
    account: Account = Depends(get_account_with_access),
    service: QuestradeService = Depends(get_questrade_service),
) -> List[ExecutionResponse]:
    return await service.list_executions(account.id)


@router.get("/candles/{symbol_id}", response_model=List[CandleResponse], summary="Price candles")
async def get_candles(
    symbol_id: int,
    start: datetime = Query(...),
    end: datetime = Query(...),
    interval: str = Query("OneDay"),
    connection: QuestradeConnection = Depends(get_user_connection),
    service: QuestradeService = Depends(get_questrade_service),
) -> List[CandleResponse]:
    if end <= start:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="end must be after start")
    client = await service.get_valid_client(connection)
    try:
        candles = await service.get_candles(client, symbol_id, start, end, interval)
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    finally:
        await client.close()
    return candles
