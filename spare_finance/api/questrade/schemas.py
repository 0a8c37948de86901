"""
Questrade Schemas
"""

import datetime as dt
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from spare_finance.api.accounts.schemas import AccountResponse


class ConnectRequest(BaseModel):
    """Manual authorization token generated in the Questrade API hub."""

    token: str = Field(..., min_length=1)


class QuestradeConnectionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    api_server: str
    token_expires_at: dt.datetime
    last_synced_at: Optional[dt.datetime]
    created_at: dt.datetime


class ConnectResponse(BaseModel):
    connection: QuestradeConnectionResponse
    accounts: List[AccountResponse]


class QuestradeStatusResponse(BaseModel):
    connected: bool
    connection: Optional[QuestradeConnectionResponse] = None
    accounts: List[AccountResponse] = []


class SyncRequest(BaseModel):
    since: Optional[dt.date] = None


class TransactionSyncRequest(BaseModel):
    start: Optional[dt.datetime] = None
    end: Optional[dt.datetime] = None


class QuestradeSyncResponse(BaseModel):
    accounts: int
    holdings: int
    transactions: int
    errors: int


class SyncCountsResponse(BaseModel):
    synced: int
    skipped: int = 0
    errors: int = 0


class BalanceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    account_id: UUID
    cash: Decimal
    market_value: Decimal
    total_equity: Decimal
    buying_power: Decimal
    maintenance_excess: Decimal
    currency: str
    updated_at: dt.datetime


class PositionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    security_id: UUID
    symbol: str
    open_quantity: Decimal
    current_market_value: Decimal
    current_price: Decimal
    average_entry_price: Decimal
    total_cost: Decimal
    open_pnl: Decimal
    closed_pnl: Decimal
    last_updated_at: dt.datetime

    @classmethod
    def from_model(cls, position) -> "PositionResponse":
        return cls(
            id=position.id,
            security_id=position.security_id,
            symbol=position.security.symbol,
            open_quantity=position.open_quantity,
            current_market_value=position.current_market_value,
            current_price=position.current_price,
            average_entry_price=position.average_entry_price,
            total_cost=position.total_cost,
            open_pnl=position.open_pnl,
            closed_pnl=position.closed_pnl,
            last_updated_at=position.last_updated_at,
        )


class InvestmentTransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    security_id: Optional[UUID]
    date: dt.date
    type: str
    quantity: Decimal
    price: Decimal
    fees: Decimal
    notes: Optional[str]


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    questrade_order_id: int
    symbol: str
    side: Optional[str]
    order_type: Optional[str]
    state: Optional[str]
    total_quantity: Decimal
    filled_quantity: Decimal
    limit_price: Optional[Decimal]
    avg_exec_price: Optional[Decimal]
    creation_time: Optional[dt.datetime]


class ExecutionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    questrade_execution_id: int
    questrade_order_id: Optional[int]
    symbol: str
    side: Optional[str]
    quantity: Decimal
    price: Decimal
    commission: Decimal
    timestamp: Optional[dt.datetime]


class CandleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    start: dt.datetime
    end: dt.datetime
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: int
