"""
Questrade REST client.

Questrade issues a short-lived access token bound to a per-user api_server
host. Tokens are obtained by trading a refresh token on the login server.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from spare_finance.api.config import settings
from spare_finance.api.exceptions import QuestradeError

logger = logging.getLogger(__name__)


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or f"HTTP error {resp.status_code}"
    return body.get("message") or body.get("error") or f"HTTP error {resp.status_code}"


async def refresh_token(
    token: str,
    token_url: Optional[str] = None,
    timeout: Optional[float] = None,
) -> Dict[str, Any]:
    """
    Trade a refresh token (or a manual authorization token) for new tokens.

    Returns:
        Dict with access_token, refresh_token, api_server and expires_in
    """
    url = token_url or settings.QUESTRADE_TOKEN_URL
    try:
        async with httpx.AsyncClient(timeout=timeout or settings.HTTP_TIMEOUT_SEC) as client:
            resp = await client.get(
                url,
                params={"grant_type": "refresh_token", "refresh_token": token},
                headers={"Accept": "application/json"},
            )
    except httpx.HTTPError as e:
        logger.error("Questrade token request failed: %s", e)
        raise QuestradeError(f"Questrade token request failed: {e}", code="NETWORK_ERROR") from e

    if not resp.is_success:
        message = _error_message(resp)
        logger.warning("Questrade token refresh returned %d: %s", resp.status_code, message)
        raise QuestradeError(
            message, code="TOKEN_REFRESH_FAILED", details={"status": resp.status_code}
        )

    data = resp.json()
    logger.info("Questrade token refreshed, api server %s", data.get("api_server"))
    return data


class QuestradeClient:
    """Async HTTP client bound to one api_server and access token."""

    def __init__(self, api_server: str, access_token: str, timeout: Optional[float] = None):
        self.api_server = api_server.rstrip("/")
        self.access_token = access_token
        self._timeout = timeout or settings.HTTP_TIMEOUT_SEC
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.api_server,
                timeout=self._timeout,
                headers={
                    "Accept": "application/json",
                    "Authorization": f"Bearer {self.access_token}",
                },
            )
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        client = await self._get_client()
        query = {k: v for k, v in (params or {}).items() if v is not None}
        try:
            resp = await client.get(path, params=query or None)
        except httpx.HTTPError as e:
            logger.error("Questrade request %s failed: %s", path, e)
            raise QuestradeError(f"Questrade request failed: {e}", code="NETWORK_ERROR") from e

        if not resp.is_success:
            message = _error_message(resp)
            logger.warning("Questrade %s returned %d: %s", path, resp.status_code, message)
            raise QuestradeError(message, details={"status": resp.status_code, "path": path})
        return resp.json()

    # ==================== Accounts ====================

    async def get_accounts(self) -> List[Dict[str, Any]]:
        data = await self._get("/v1/accounts")
        return data.get("accounts", [])

    async def get_positions(self, account_number: str) -> List[Dict[str, Any]]:
        data = await self._get(f"/v1/accounts/{account_number}/positions")
        return data.get("positions", [])

    async def get_balances(self, account_number: str) -> Dict[str, Any]:
        return await self._get(f"/v1/accounts/{account_number}/balances")

    async def get_activities(
        self, account_number: str, start_time: str, end_time: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        data = await self._get(
            f"/v1/accounts/{account_number}/activities",
            {"startTime": start_time, "endTime": end_time},
        )
        return data.get("activities", [])

    async def get_orders(
        self,
        account_number: str,
        state_filter: Optional[str] = None,
        start_time: Optional[str] = None,
        end_time: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        data = await self._get(
            f"/v1/accounts/{account_number}/orders",
            {"stateFilter": state_filter, "startTime": start_time, "endTime": end_time},
        )
        return data.get("orders", [])

    async def get_executions(
        self,
        account_number: str,
        start_time: Optional[str] = None,
        end_time: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        data = await self._get(
            f"/v1/accounts/{account_number}/executions",
            {"startTime": start_time, "endTime": end_time},
        )
        return data.get("executions", [])

    # ==================== Markets ====================

    async def get_quotes(self, symbol_ids: Sequence[int]) -> List[Dict[str, Any]]:
        if not symbol_ids:
            return []
        data = await self._get(
            "/v1/markets/quotes", {"ids": ",".join(str(i) for i in symbol_ids)}
        )
        return data.get("quotes", [])

    async def get_candles(
        self, symbol_id: int, start_time: str, end_time: str, interval: str = "OneDay"
    ) -> List[Dict[str, Any]]:
        data = await self._get(
            f"/v1/markets/candles/{symbol_id}",
            {"startTime": start_time, "endTime": end_time, "interval": interval},
        )
        return data.get("candles", [])
