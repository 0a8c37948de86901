"""
Plaid Routes

Link flow, manual sync, disconnect and the Plaid webhook receiver.
"""

import logging
from typing import Any, Dict
from uuid import UUID

from fastapi import APIRouter, Body, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from spare_finance.api.db.session import get_db
from spare_finance.api.db.models import Account, User
from spare_finance.api.dependencies import get_current_user, get_account_with_access
from spare_finance.api.auth.schemas import MessageResponse
from spare_finance.api.billing.schemas import WebhookResponse
from spare_finance.api.plaid.client import PlaidClient
from spare_finance.api.plaid.service import PlaidService
from spare_finance.api.plaid.schemas import (
    LinkTokenResponse,
    PlaidConnectionListResponse,
    PlaidConnectionResponse,
    PublicTokenExchangeRequest,
    SyncResultResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def get_plaid_client() -> PlaidClient:
    return PlaidClient()


def get_plaid_service(
    db: AsyncSession = Depends(get_db),
    client: PlaidClient = Depends(get_plaid_client),
) -> PlaidService:
    return PlaidService(db, client)


@router.post("/link-token", response_model=LinkTokenResponse, summary="Create Link token")
async def create_link_token(
    user: User = Depends(get_current_user),
    service: PlaidService = Depends(get_plaid_service),
) -> LinkTokenResponse:
    return LinkTokenResponse(**await service.create_link_token(user))


@router.post(
    "/exchange-public-token",
    response_model=PlaidConnectionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Link a bank item",
)
async def exchange_public_token(
    data: PublicTokenExchangeRequest,
    user: User = Depends(get_current_user),
    service: PlaidService = Depends(get_plaid_service),
) -> PlaidConnectionResponse:
    """Stores the connection and creates an account per Plaid account."""
    institution = data.institution
    try:
        connection = await service.exchange_public_token(
            user,
            data.public_token,
            institution_id=institution.institution_id if institution else None,
            institution_name=institution.name if institution else None,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return PlaidConnectionResponse.model_validate(connection)


@router.get("/connections", response_model=PlaidConnectionListResponse, summary="List connections")
async def list_connections(
    user: User = Depends(get_current_user),
    service: PlaidService = Depends(get_plaid_service),
) -> PlaidConnectionListResponse:
    connections = await service.list_connections(user.id)
    return PlaidConnectionListResponse(
        connections=[PlaidConnectionResponse.model_validate(c) for c in connections]
    )


@router.post(
    "/accounts/{account_id}/sync",
    response_model=SyncResultResponse,
    summary="Sync one account",
)
async def sync_account(
    account: Account = Depends(get_account_with_access),
    service: PlaidService = Depends(get_plaid_service),
) -> SyncResultResponse:
    try:
        result = await service.sync_account_transactions(account)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return SyncResultResponse(**result)


@router.post("/sync", response_model=SyncResultResponse, summary="Sync all linked accounts")
async def sync_all(
    user: User = Depends(get_current_user),
    service: PlaidService = Depends(get_plaid_service),
) -> SyncResultResponse:
    return SyncResultResponse(**await service.sync_all_user_accounts(user.id))


@router.delete(
    "/connections/{connection_id}",
    response_model=MessageResponse,
    summary="Disconnect a bank item",
)
async def disconnect(
    connection_id: UUID,
    user: User = Depends(get_current_user),
    service: PlaidService = Depends(get_plaid_service),
) -> MessageResponse:
    connection = await service.get_connection(connection_id)
    if connection is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Connection not found")
    if connection.user_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    await service.disconnect(connection)
    return MessageResponse(message="Bank connection removed")


@router.post("/webhook", response_model=WebhookResponse, summary="Plaid webhook")
async def plaid_webhook(
    body: Dict[str, Any] = Body(...),
    service: PlaidService = Depends(get_plaid_service),
) -> WebhookResponse:
    """Always acknowledges known and unknown items so Plaid does not retry."""
    try:
        await service.handle_webhook(body)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return WebhookResponse(received=True)
