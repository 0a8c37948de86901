"""
Plaid Service

Bank connections through Plaid: linking, cursor-based transaction sync,
disconnects and webhook handling.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from spare_finance.api.config import settings
from spare_finance.api.db.models import (
    Account,
    PlaidConnection,
    Transaction,
    TransactionSync,
    User,
    utcnow,
)
from spare_finance.api.billing.plans import PlanService
from spare_finance.api.categories.suggestion import suggest_category
from spare_finance.api.exceptions import PlaidError
from spare_finance.api.plaid.client import MUTATION_DURING_PAGINATION, PlaidClient
from spare_finance.api.services.encryption import get_encryption_service
from spare_finance.api.transactions.service import TransactionService

logger = logging.getLogger(__name__)

DEFAULT_DESCRIPTION = "Plaid Transaction"
MAX_SYNC_RESTARTS = 3

SYNC_WEBHOOK_CODES = {
    "SYNC_UPDATES_AVAILABLE",
    "INITIAL_UPDATE",
    "HISTORICAL_UPDATE",
    "DEFAULT_UPDATE",
}

METADATA_FIELDS = (
    "category",
    "category_id",
    "pending",
    "authorized_date",
    "authorized_datetime",
    "datetime",
    "iso_currency_code",
    "unofficial_currency_code",
    "transaction_code",
    "account_owner",
    "pending_transaction_id",
    "merchant_name",
    "merchant_entity_id",
    "logo_url",
)


def map_account_type(plaid_type: Optional[str], subtype: Optional[str]) -> str:
    """Map a Plaid account type/subtype to a local account type."""
    if plaid_type == "depository":
        return "savings" if subtype == "savings" else "checking"
    if plaid_type == "credit":
        return "credit"
    if plaid_type in ("investment", "brokerage"):
        return "investment"
    return "other"


def transaction_description(plaid_tx: Dict[str, Any]) -> str:
    return (
        plaid_tx.get("name")
        or plaid_tx.get("merchant_name")
        or plaid_tx.get("original_description")
        or DEFAULT_DESCRIPTION
    )


def transaction_type(amount: Decimal) -> str:
    return "expense" if amount < 0 else "income"


def build_metadata(plaid_tx: Dict[str, Any]) -> Dict[str, Any]:
    metadata = {key: plaid_tx.get(key) for key in METADATA_FIELDS}
    metadata["pending"] = bool(plaid_tx.get("pending"))
    return metadata


@dataclass
class SyncStats:
    synced: int = 0
    skipped: int = 0
    errors: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {"synced": self.synced, "skipped": self.skipped, "errors": self.errors}


@dataclass
class SyncChanges:
    added: List[Dict[str, Any]] = field(default_factory=list)
    modified: List[Dict[str, Any]] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)


class PlaidService:
    """Service for Plaid-linked accounts."""

    def __init__(self, db: AsyncSession, client: Optional[PlaidClient] = None):
        self.db = db
        self.client = client or PlaidClient()
        self.encryption = get_encryption_service()

    def _access_token(self, connection: PlaidConnection) -> str:
        return self.encryption.decrypt(connection.access_token_encrypted)

    async def get_connection(self, connection_id: UUID) -> Optional[PlaidConnection]:
        return await self.db.get(PlaidConnection, connection_id)

    async def get_connection_by_item(self, item_id: str) -> Optional[PlaidConnection]:
        result = await self.db.execute(
            select(PlaidConnection).where(PlaidConnection.item_id == item_id)
        )
        return result.scalar_one_or_none()

    async def list_connections(self, user_id: UUID) -> List[PlaidConnection]:
        result = await self.db.execute(
            select(PlaidConnection)
            .where(PlaidConnection.user_id == user_id)
            .order_by(PlaidConnection.created_at)
        )
        return list(result.scalars().all())

    async def _connection_accounts(self, connection: PlaidConnection) -> List[Account]:
        result = await self.db.execute(
            select(Account).where(Account.plaid_connection_id == connection.id)
        )
        return list(result.scalars().all())

    # ==================== Linking ====================

    async def create_link_token(self, user: User) -> Dict[str, Any]:
        data = await self.client.create_link_token(
            str(user.id), webhook=settings.PLAID_WEBHOOK_URL
        )
        return {"link_token": data["link_token"], "expiration": data.get("expiration")}

    async def exchange_public_token(
        self,
        user: User,
        public_token: str,
        institution_id: Optional[str] = None,
        institution_name: Optional[str] = None,
    ) -> PlaidConnection:
        """
        Exchange a Link public token and create accounts for the item.

        Accounts already linked (same plaid_account_id) are reconnected
        instead of duplicated.
        """
        exchange = await self.client.exchange_public_token(public_token)
        access_token = exchange["access_token"]
        item_id = exchange["item_id"]

        connection = await self.get_connection_by_item(item_id)
        if connection is None:
            connection = PlaidConnection(user_id=user.id, item_id=item_id)
            self.db.add(connection)
        connection.access_token_encrypted = self.encryption.encrypt(access_token)
        connection.institution_id = institution_id
        connection.institution_name = institution_name
        connection.error_code = None
        connection.error_message = None
        await self.db.flush()

        plaid_accounts = await self.client.get_accounts(access_token)
        plans = PlanService(self.db)
        for plaid_account in plaid_accounts:
            result = await self.db.execute(
                select(Account).where(
                    Account.user_id == user.id,
                    Account.plaid_account_id == plaid_account["account_id"],
                )
            )
            account = result.scalar_one_or_none()
            if account is None:
                await plans.check_account_limit(user.id)
                balances = plaid_account.get("balances") or {}
                account = Account(
                    user_id=user.id,
                    name=plaid_account.get("official_name") or plaid_account.get("name") or "Plaid Account",
                    type=map_account_type(plaid_account.get("type"), plaid_account.get("subtype")),
                    initial_balance=Decimal("0"),
                    credit_limit=balances.get("limit"),
                    currency=(balances.get("iso_currency_code") or "USD")[:3],
                    plaid_account_id=plaid_account["account_id"],
                )
                self.db.add(account)
            account.plaid_connection_id = connection.id
            account.plaid_mask = plaid_account.get("mask")
            account.is_connected = True
            account.sync_enabled = True

        await self.db.commit()
        await self.db.refresh(connection)
        logger.info(
            "Linked Plaid item %s (%s) with %d accounts for user %s",
            item_id, institution_name, len(plaid_accounts), user.id,
        )
        return connection

    # ==================== Sync ====================

    async def fetch_changes(self, connection: PlaidConnection) -> SyncChanges:
        """
        Page through /transactions/sync from the stored cursor.

        The cursor is persisted after each page. A mutation during
        pagination restarts from the cursor the update started at.
        """
        access_token = self._access_token(connection)
        start_cursor = connection.transactions_cursor
        restarts = 0

        while True:
            changes = SyncChanges()
            cursor = start_cursor
            try:
                while True:
                    page = await self.client.sync_transactions(access_token, cursor)
                    changes.added.extend(page.get("added") or [])
                    changes.modified.extend(page.get("modified") or [])
                    changes.removed.extend(
                        r["transaction_id"] for r in page.get("removed") or []
                    )
                    cursor = page.get("next_cursor") or cursor
                    if cursor:
                        connection.transactions_cursor = cursor
                        await self.db.commit()
                    if not page.get("has_more"):
                        return changes
            except PlaidError as e:
                if e.error_code != MUTATION_DURING_PAGINATION or restarts >= MAX_SYNC_RESTARTS:
                    raise
                restarts += 1
                logger.warning(
                    "Plaid item %s mutated during pagination, restarting (%d)",
                    connection.item_id, restarts,
                )
                connection.transactions_cursor = start_cursor
                await self.db.commit()

    async def _existing_syncs(self, account_id: UUID) -> Dict[str, Optional[UUID]]:
        """
        plaid_transaction_id -> local transaction id for synced rows.

        Rows whose last attempt failed are left out so they are retried.
        """
        result = await self.db.execute(
            select(TransactionSync.plaid_transaction_id, TransactionSync.transaction_id)
            .where(
                TransactionSync.account_id == account_id,
                TransactionSync.status == "synced",
            )
        )
        return {plaid_id: tx_id for plaid_id, tx_id in result.all()}

    async def _create_from_plaid(
        self, account_id: UUID, user_id: UUID, plaid_tx: Dict[str, Any]
    ) -> Transaction:
        raw_amount = Decimal(str(plaid_tx["amount"]))
        tx_date = date.fromisoformat(plaid_tx["date"])
        tx_type = transaction_type(raw_amount)
        amount = abs(raw_amount)
        description = transaction_description(plaid_tx)

        await PlanService(self.db).consume_transaction_quota(user_id, tx_date)

        tx = Transaction(
            user_id=user_id,
            account_id=account_id,
            type=tx_type,
            amount=amount,
            date=tx_date,
            tags=[],
            plaid_metadata=build_metadata(plaid_tx),
        )
        TransactionService(self.db).set_description(tx, description)

        suggestion = await suggest_category(self.db, user_id, description, amount, tx_type)
        if suggestion is not None:
            tx.suggested_category_id = suggestion.category_id
            tx.suggested_subcategory_id = suggestion.subcategory_id

        self.db.add(tx)
        await self.db.flush()
        return tx

    async def _record_added(
        self,
        account_id: UUID,
        user_id: UUID,
        plaid_tx: Dict[str, Any],
        stats: SyncStats,
    ) -> Optional[UUID]:
        """Create the transaction and its sync row, replacing any earlier record."""
        plaid_id = plaid_tx["transaction_id"]
        try:
            await self.db.execute(
                delete(TransactionSync).where(TransactionSync.plaid_transaction_id == plaid_id)
            )
            tx = await self._create_from_plaid(account_id, user_id, plaid_tx)
            tx_id = tx.id
            self.db.add(
                TransactionSync(
                    account_id=account_id,
                    plaid_transaction_id=plaid_id,
                    transaction_id=tx_id,
                    status="synced",
                )
            )
            await self.db.commit()
            stats.synced += 1
            return tx_id
        except Exception as e:
            await self.db.rollback()
            logger.error("Failed to sync Plaid transaction %s: %s", plaid_id, e)
            stats.errors += 1
            await self._record_failure(account_id, plaid_id, str(e)[:500])
            return None

    async def _record_failure(self, account_id: UUID, plaid_id: str, message: str) -> None:
        result = await self.db.execute(
            update(TransactionSync)
            .where(TransactionSync.plaid_transaction_id == plaid_id)
            .values(status="error", transaction_id=None, error_message=message, sync_date=utcnow())
        )
        if result.rowcount == 0:
            self.db.add(
                TransactionSync(
                    account_id=account_id,
                    plaid_transaction_id=plaid_id,
                    status="error",
                    error_message=message,
                )
            )
        await self.db.commit()

    async def apply_changes(self, account_id: UUID, changes: SyncChanges) -> SyncStats:
        """Apply the added/modified/removed rows that belong to one account."""
        stats = SyncStats()
        account = await self.db.get(Account, account_id)
        user_id = account.user_id
        plaid_account_id = account.plaid_account_id
        synced_ids = await self._existing_syncs(account_id)

        for plaid_tx in changes.added:
            if plaid_tx.get("account_id") != plaid_account_id:
                continue
            plaid_id = plaid_tx["transaction_id"]
            if plaid_id in synced_ids:
                stats.skipped += 1
                continue
            tx_id = await self._record_added(account_id, user_id, plaid_tx, stats)
            if tx_id is not None:
                synced_ids[plaid_id] = tx_id

        for plaid_tx in changes.modified:
            if plaid_tx.get("account_id") != plaid_account_id:
                continue
            plaid_id = plaid_tx["transaction_id"]
            tx_id = synced_ids.get(plaid_id)
            tx = await self.db.get(Transaction, tx_id) if tx_id else None
            if tx is None:
                tx_id = await self._record_added(account_id, user_id, plaid_tx, stats)
                if tx_id is not None:
                    synced_ids[plaid_id] = tx_id
                continue

            raw_amount = Decimal(str(plaid_tx["amount"]))
            tx.type = transaction_type(raw_amount)
            tx.amount = abs(raw_amount)
            tx.date = date.fromisoformat(plaid_tx["date"])
            tx.plaid_metadata = build_metadata(plaid_tx)
            TransactionService(self.db).set_description(tx, transaction_description(plaid_tx))
            await self.db.commit()
            stats.synced += 1

        if changes.removed:
            result = await self.db.execute(
                select(TransactionSync).where(
                    TransactionSync.account_id == account_id,
                    TransactionSync.plaid_transaction_id.in_(changes.removed),
                )
            )
            for sync in result.scalars().all():
                if sync.transaction_id:
                    tx = await self.db.get(Transaction, sync.transaction_id)
                    if tx is not None:
                        await self.db.delete(tx)
                await self.db.delete(sync)
            await self.db.commit()

        account = await self.db.get(Account, account_id)
        account.last_synced_at = utcnow()
        await self.db.commit()

        logger.info(
            "Plaid sync for account %s: %d synced, %d skipped, %d errors",
            account_id, stats.synced, stats.skipped, stats.errors,
        )
        return stats

    async def sync_connection(self, connection: PlaidConnection) -> Dict[UUID, SyncStats]:
        """Pull pending changes for an item and apply them to its accounts."""
        account_ids = [
            a.id for a in await self._connection_accounts(connection)
            if a.is_connected and a.sync_enabled
        ]
        if not account_ids:
            return {}

        changes = await self.fetch_changes(connection)
        return {
            account_id: await self.apply_changes(account_id, changes)
            for account_id in account_ids
        }

    async def sync_account_transactions(self, account: Account) -> Dict[str, int]:
        """
        Sync one account.

        The Plaid cursor is shared by every account of an item, so the
        whole item is synced and this account's counts are returned.
        """
        if account.plaid_connection_id is None:
            raise ValueError("Account is not linked to Plaid")
        connection = await self.get_connection(account.plaid_connection_id)
        if connection is None:
            raise ValueError("Plaid connection not found")

        account_id = account.id
        results = await self.sync_connection(connection)
        return results.get(account_id, SyncStats()).as_dict()

    async def sync_all_user_accounts(self, user_id: UUID) -> Dict[str, int]:
        """Sync every connected, sync-enabled account of the user."""
        totals = SyncStats()
        items = [(c.id, c.item_id) for c in await self.list_connections(user_id)]
        for connection_id, item_id in items:
            connection = await self.get_connection(connection_id)
            try:
                results = await self.sync_connection(connection)
            except PlaidError as e:
                logger.error("Plaid sync failed for item %s: %s", item_id, e)
                totals.errors += 1
                continue
            for stats in results.values():
                totals.synced += stats.synced
                totals.skipped += stats.skipped
                totals.errors += stats.errors
        return totals.as_dict()

    # ==================== Disconnect ====================

    async def _mark_disconnected(self, connection: PlaidConnection) -> None:
        for account in await self._connection_accounts(connection):
            account.is_connected = False
            account.sync_enabled = False

    async def disconnect(self, connection: PlaidConnection) -> None:
        """Remove the item at Plaid and keep the accounts as manual ones."""
        try:
            await self.client.remove_item(self._access_token(connection))
        except PlaidError as e:
            logger.warning("Plaid item/remove failed for %s: %s", connection.item_id, e)

        for account in await self._connection_accounts(connection):
            account.is_connected = False
            account.sync_enabled = False
            account.plaid_connection_id = None
        await self.db.delete(connection)
        await self.db.commit()
        logger.info("Disconnected Plaid item %s", connection.item_id)

    # ==================== Webhooks ====================

    async def handle_webhook(self, body: Dict[str, Any]) -> None:
        """
        Process a Plaid webhook.

        Raises:
            ValueError: If item_id is missing
        """
        webhook_type = body.get("webhook_type")
        webhook_code = body.get("webhook_code")
        item_id = body.get("item_id")
        logger.info("Plaid webhook %s/%s for item %s", webhook_type, webhook_code, item_id)

        if not item_id:
            raise ValueError("Missing item_id")

        connection = await self.get_connection_by_item(item_id)
        if connection is None:
            logger.warning("Plaid webhook for unknown item %s", item_id)
            return

        if webhook_type == "TRANSACTIONS":
            await self._on_transactions_webhook(connection, webhook_code)
        elif webhook_type == "ITEM":
            await self._on_item_webhook(connection, webhook_code, body.get("error") or {})
        else:
            logger.info("Unhandled Plaid webhook type %s", webhook_type)

    async def _on_transactions_webhook(
        self, connection: PlaidConnection, code: Optional[str]
    ) -> None:
        item_id = connection.item_id
        if code in SYNC_WEBHOOK_CODES:
            try:
                await self.sync_connection(connection)
            except PlaidError:
                logger.exception("Webhook-triggered sync failed for item %s", item_id)
        elif code == "TRANSACTIONS_REMOVED":
            logger.info("Transactions removed for item %s; handled on next sync", connection.item_id)
        else:
            logger.info("Unhandled TRANSACTIONS webhook code %s", code)

    async def _on_item_webhook(
        self, connection: PlaidConnection, code: Optional[str], error: Dict[str, Any]
    ) -> None:
        if code == "ERROR":
            error_code = error.get("error_code")
            error_type = error.get("error_type")
            connection.error_code = error_code
            connection.error_message = error.get("error_message") or error.get("display_message")
            # Transient Plaid-side failures keep sync enabled
            if error_code != "INTERNAL_SERVER_ERROR" and error_type != "API_ERROR":
                for account in await self._connection_accounts(connection):
                    account.sync_enabled = False
            logger.warning("Plaid item %s error: %s", connection.item_id, error_code)
        elif code == "PENDING_EXPIRATION":
            connection.error_code = "PENDING_EXPIRATION"
            connection.error_message = "Bank connection expires soon. Please re-authenticate."
        elif code == "USER_PERMISSION_REVOKED":
            connection.error_code = error.get("error_code") or "USER_PERMISSION_REVOKED"
            connection.error_message = error.get("error_message") or "Access was revoked at the bank."
            await self._mark_disconnected(connection)
        elif code == "WEBHOOK_UPDATE_ACKNOWLEDGED":
            logger.info("Webhook URL update acknowledged for item %s", connection.item_id)
            return
        else:
            logger.info("Unhandled ITEM webhook code %s", code)
            return
        await self.db.commit()
