"""
Plaid REST client.

Thin async wrapper over the Plaid JSON API. Every call is a POST carrying
client_id and secret; error payloads are raised as PlaidError.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from spare_finance.api.config import settings
from spare_finance.api.exceptions import PlaidError

logger = logging.getLogger(__name__)

PLAID_HOSTS = {
    "sandbox": "https://sandbox.plaid.com",
    "development": "https://development.plaid.com",
    "production": "https://production.plaid.com",
}

MUTATION_DURING_PAGINATION = "TRANSACTIONS_SYNC_MUTATION_DURING_PAGINATION"


class PlaidClient:
    """Async HTTP client for the Plaid API."""

    def __init__(
        self,
        client_id: Optional[str] = None,
        secret: Optional[str] = None,
        environment: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.client_id = client_id or settings.PLAID_CLIENT_ID
        self.secret = secret or settings.PLAID_SECRET
        env = environment or settings.PLAID_ENV
        if env not in PLAID_HOSTS:
            raise ValueError(f"Unknown Plaid environment: {env}")
        self._base_url = PLAID_HOSTS[env]
        self._timeout = timeout or settings.HTTP_TIMEOUT_SEC
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
            )
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.client_id or not self.secret:
            raise PlaidError("Plaid is not configured", error_code="PLAID_NOT_CONFIGURED")

        client = await self._get_client()
        body = {"client_id": self.client_id, "secret": self.secret, **payload}
        try:
            resp = await client.post(path, json=body)
        except httpx.HTTPError as e:
            logger.error("Plaid request %s failed: %s", path, e)
            raise PlaidError(f"Plaid request failed: {e}", error_code="NETWORK_ERROR") from e

        if resp.is_success:
            return resp.json()

        try:
            error = resp.json()
        except ValueError:
            error = {}
        logger.warning(
            "Plaid %s returned %d: %s", path, resp.status_code, error.get("error_code")
        )
        raise PlaidError(
            error.get("error_message") or f"Plaid returned HTTP {resp.status_code}",
            error_code=error.get("error_code"),
            error_type=error.get("error_type"),
            details={"status": resp.status_code, "request_id": error.get("request_id")},
        )

    # ------------------------------------------------------------------
    # Link
    # ------------------------------------------------------------------

    async def create_link_token(
        self,
        user_id: str,
        products: Optional[List[str]] = None,
        country_codes: Optional[List[str]] = None,
        webhook: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "client_name": "Spare Finance",
            "user": {"client_user_id": user_id},
            "products": products or ["transactions"],
            "country_codes": country_codes or settings.PLAID_COUNTRY_CODES,
            "language": "en",
        }
        if webhook:
            payload["webhook"] = webhook
        return await self._post("/link/token/create", payload)

    async def exchange_public_token(self, public_token: str) -> Dict[str, Any]:
        return await self._post("/item/public_token/exchange", {"public_token": public_token})

    # ------------------------------------------------------------------
    # Data
    # ------------------------------------------------------------------

    async def get_accounts(self, access_token: str) -> List[Dict[str, Any]]:
        data = await self._post("/accounts/get", {"access_token": access_token})
        return data.get("accounts", [])

    async def sync_transactions(
        self, access_token: str, cursor: Optional[str] = None, count: int = 500
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"access_token": access_token, "count": count}
        if cursor:
            payload["cursor"] = cursor
        return await self._post("/transactions/sync", payload)

    async def remove_item(self, access_token: str) -> Dict[str, Any]:
        return await self._post("/item/remove", {"access_token": access_token})
