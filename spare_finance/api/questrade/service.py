"""
Questrade Service

Brokerage connection lifecycle and the sync routines that mirror
Questrade accounts, balances, positions, trades, orders and executions.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from spare_finance.api.config import settings
from spare_finance.api.db.models import (
    Account,
    Candle,
    Execution,
    InvestmentBalance,
    InvestmentTransaction,
    Order,
    Position,
    QuestradeConnection,
    Security,
    SecurityPrice,
    User,
    as_utc,
    utcnow,
)
from spare_finance.api.billing.plans import PlanService
from spare_finance.api.exceptions import QuestradeError
from spare_finance.api.questrade.client import QuestradeClient, refresh_token
from spare_finance.api.services.encryption import get_encryption_service

logger = logging.getLogger(__name__)

TOKEN_REFRESH_MARGIN = timedelta(minutes=5)
DEFAULT_ACTIVITY_DAYS = 30
TRADE_ACTIONS = ("Buy", "Sell")


def _dec(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    return Decimal(str(value))


def _opt_dec(value: Any) -> Optional[Decimal]:
    return None if value is None else Decimal(str(value))


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def activity_range(
    start: Optional[datetime], end: Optional[datetime], now: Optional[datetime] = None
) -> Tuple[datetime, datetime]:
    """
    Resolve the activities window.

    Questrade rejects activity queries longer than 31 days; an oversized
    window keeps its end and moves the start forward.
    """
    end = end or now or utcnow()
    start = start or end - timedelta(days=DEFAULT_ACTIVITY_DAYS)
    max_span = timedelta(days=settings.QUESTRADE_MAX_ACTIVITY_DAYS)
    if end - start > max_span:
        logger.info("Activity range of %s too large, limiting to %s", end - start, max_span)
        start = end - max_span
    return start, end


def trade_type(activity: Dict[str, Any]) -> Optional[str]:
    """buy/sell for trade activities, None for everything else."""
    action = activity.get("action") or ""
    if action not in TRADE_ACTIONS and activity.get("type") != "Trade":
        return None
    lowered = action.lower()
    if lowered in ("buy", "sell"):
        return lowered
    return "buy" if _dec(activity.get("quantity")) > 0 else "sell"


def pick_balance(balances: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    combined = balances.get("combinedBalances") or []
    if combined:
        return combined[0]
    per_currency = balances.get("perCurrencyBalances") or []
    return per_currency[0] if per_currency else None


class QuestradeService:
    """Service for the Questrade integration."""

    def __init__(
        self,
        db: AsyncSession,
        client_factory: Callable[[str, str], QuestradeClient] = QuestradeClient,
        token_refresher: Callable = refresh_token,
    ):
        self.db = db
        self.encryption = get_encryption_service()
        self.client_factory = client_factory
        self.token_refresher = token_refresher

    # ==================== Connection ====================

    async def get_connection(self, user_id: UUID) -> Optional[QuestradeConnection]:
        result = await self.db.execute(
            select(QuestradeConnection).where(QuestradeConnection.user_id == user_id)
        )
        return result.scalar_one_or_none()

    def _store_tokens(self, connection: QuestradeConnection, tokens: Dict[str, Any]) -> None:
        connection.access_token_encrypted = self.encryption.encrypt(tokens["access_token"])
        connection.refresh_token_encrypted = self.encryption.encrypt(tokens["refresh_token"])
        connection.api_server = tokens["api_server"]
        connection.token_expires_at = utcnow() + timedelta(
            seconds=int(tokens.get("expires_in") or 1800)
        )

    async def connect(
        self, user: User, token: str
    ) -> Tuple[QuestradeConnection, List[Account]]:
        """
        Link a Questrade login using a manual authorization token.

        The token is used as the first refresh token; accounts are synced
        immediately afterwards.
        """
        tokens = await self.token_refresher(token)

        connection = await self.get_connection(user.id)
        if connection is None:
            connection = QuestradeConnection(user_id=user.id)
            self.db.add(connection)
        self._store_tokens(connection, tokens)
        await self.db.commit()
        logger.info("Questrade connected for user %s", user.id)

        client = self.client_factory(tokens["api_server"], tokens["access_token"])
        try:
            accounts = await self.sync_accounts(connection, client)
        finally:
            await client.close()
        return connection, accounts

    async def get_valid_client(self, connection: QuestradeConnection) -> QuestradeClient:
        """Client with a usable access token, refreshing it when close to expiry."""
        expires_at = as_utc(connection.token_expires_at)
        if expires_at - utcnow() <= TOKEN_REFRESH_MARGIN:
            logger.info("Refreshing Questrade token for user %s", connection.user_id)
            tokens = await self.token_refresher(
                self.encryption.decrypt(connection.refresh_token_encrypted)
            )
            self._store_tokens(connection, tokens)
            await self.db.commit()
            return self.client_factory(tokens["api_server"], tokens["access_token"])

        return self.client_factory(
            connection.api_server,
            self.encryption.decrypt(connection.access_token_encrypted),
        )

    async def disconnect(self, connection: QuestradeConnection) -> None:
        """Delete the connection and keep its accounts as unlinked ones."""
        result = await self.db.execute(
            select(Account).where(Account.questrade_connection_id == connection.id)
        )
        for account in result.scalars().all():
            account.questrade_connection_id = None
            account.is_connected = False
        user_id = connection.user_id
        await self.db.delete(connection)
        await self.db.commit()
        logger.info("Questrade disconnected for user %s", user_id)

    # ==================== Accounts ====================

    async def linked_accounts(self, connection: QuestradeConnection) -> List[Account]:
        result = await self.db.execute(
            select(Account)
            .where(Account.questrade_connection_id == connection.id)
            .order_by(Account.name)
        )
        return list(result.scalars().all())

    async def sync_accounts(
        self, connection: QuestradeConnection, client: QuestradeClient
    ) -> List[Account]:
        """Create or update one investment account per Questrade account."""
        remote_accounts = await client.get_accounts()
        plans = PlanService(self.db)
        accounts = []

        for remote in remote_accounts:
            number = str(remote["number"])
            result = await self.db.execute(
                select(Account).where(
                    Account.user_id == connection.user_id,
                    Account.questrade_account_number == number,
                )
            )
            account = result.scalar_one_or_none()
            if account is None:
                await plans.check_account_limit(connection.user_id)
                account = Account(
                    user_id=connection.user_id,
                    type="investment",
                    initial_balance=Decimal("0"),
                    currency="CAD",
                    questrade_account_number=number,
                )
                self.db.add(account)
            account.name = f"{remote.get('type', 'Account')} - {number}"
            account.questrade_connection_id = connection.id
            account.is_connected = True
            accounts.append(account)
            # new rows must count toward the account limit of the next iteration
            await self.db.flush()

        connection.last_synced_at = utcnow()
        await self.db.commit()
        logger.info(
            "Synced %d Questrade accounts for user %s", len(accounts), connection.user_id
        )
        return accounts

    def _linked_number(self, account: Account) -> str:
        if account.questrade_connection_id is None or not account.questrade_account_number:
            raise ValueError("Account is not linked to Questrade")
        return account.questrade_account_number

    # ==================== Balances ====================

    async def sync_balances(self, account: Account, client: QuestradeClient) -> Optional[InvestmentBalance]:
        number = self._linked_number(account)
        balance = pick_balance(await client.get_balances(number))
        if balance is None:
            logger.warning("No balances returned for Questrade account %s", number)
            return None

        snapshot = await self.db.get(InvestmentBalance, account.id)
        if snapshot is None:
            snapshot = InvestmentBalance(account_id=account.id)
            self.db.add(snapshot)
        snapshot.cash = _dec(balance.get("cash"))
        snapshot.market_value = _dec(balance.get("marketValue"))
        snapshot.total_equity = _dec(balance.get("totalEquity"))
        snapshot.buying_power = _dec(balance.get("buyingPower"))
        snapshot.maintenance_excess = _dec(balance.get("maintenanceExcess"))
        snapshot.currency = (balance.get("currency") or "CAD")[:3]
        snapshot.updated_at = utcnow()
        await self.db.commit()
        return snapshot

    # ==================== Holdings ====================

    async def _find_or_create_security(
        self,
        symbol: str,
        symbol_id: Optional[int] = None,
        currency: Optional[str] = None,
    ) -> Tuple[Security, bool]:
        result = await self.db.execute(select(Security).where(Security.symbol == symbol))
        security = result.scalar_one_or_none()
        if security is not None:
            if symbol_id and security.questrade_symbol_id is None:
                security.questrade_symbol_id = symbol_id
            return security, False

        security = Security(
            symbol=symbol,
            name=symbol,
            security_class="stock",
            currency=currency,
            questrade_symbol_id=symbol_id,
        )
        self.db.add(security)
        await self.db.flush()
        return security, True

    async def _fetch_quotes(
        self, client: QuestradeClient, symbol_ids: List[int]
    ) -> Dict[int, Dict[str, Any]]:
        quotes: Dict[int, Dict[str, Any]] = {}
        batch_size = settings.QUESTRADE_QUOTE_BATCH_SIZE
        try:
            for i in range(0, len(symbol_ids), batch_size):
                for quote in await client.get_quotes(symbol_ids[i:i + batch_size]):
                    quotes[quote["symbolId"]] = quote
        except QuestradeError as e:
            logger.error("Error fetching Questrade quotes: %s", e)
        return quotes

    async def sync_holdings(self, account: Account, client: QuestradeClient) -> Dict[str, int]:
        """Mirror open positions and seed prices for newly seen securities."""
        number = self._linked_number(account)
        positions = await client.get_positions(number)
        open_positions = [p for p in positions if _dec(p.get("openQuantity")) != 0]
        skipped = len(positions) - len(open_positions)

        quotes = await self._fetch_quotes(
            client, [p["symbolId"] for p in open_positions if p.get("symbolId")]
        )

        synced = 0
        for remote in open_positions:
            security, created = await self._find_or_create_security(
                remote["symbol"], remote.get("symbolId")
            )
            quote = quotes.get(remote.get("symbolId"))
            if created and quote and quote.get("lastTradePrice"):
                self.db.add(
                    SecurityPrice(
                        security_id=security.id,
                        date=utcnow(),
                        price=_dec(quote["lastTradePrice"]),
                    )
                )

            result = await self.db.execute(
                select(Position).where(
                    Position.account_id == account.id,
                    Position.security_id == security.id,
                )
            )
            position = result.scalar_one_or_none()
            if position is None:
                position = Position(account_id=account.id, security_id=security.id)
                self.db.add(position)
            position.open_quantity = _dec(remote.get("openQuantity"))
            position.closed_quantity = _dec(remote.get("closedQuantity"))
            position.current_market_value = _dec(remote.get("currentMarketValue"))
            position.current_price = _dec(remote.get("currentPrice"))
            position.average_entry_price = _dec(remote.get("averageEntryPrice"))
            position.total_cost = _dec(remote.get("totalCost"))
            position.open_pnl = _dec(remote.get("openPnl"))
            position.closed_pnl = _dec(remote.get("closedPnl"))
            position.is_real_time = bool(remote.get("isRealTime"))
            position.is_under_reorg = bool(remote.get("isUnderReorg"))
            position.last_updated_at = utcnow()
            synced += 1

        await self.db.commit()
        return {"synced": synced, "skipped": skipped, "errors": 0}

    async def list_positions(self, account_id: UUID) -> List[Position]:
        result = await self.db.execute(
            select(Position).where(Position.account_id == account_id)
        )
        return list(result.scalars().all())

    # ==================== Trades ====================

    async def sync_transactions(
        self,
        account: Account,
        client: QuestradeClient,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Dict[str, int]:
        """Import Buy/Sell activities as investment transactions."""
        number = self._linked_number(account)
        start, end = activity_range(start, end)
        activities = await client.get_activities(number, start.isoformat(), end.isoformat())

        synced = skipped = errors = 0
        for activity in activities:
            tx_type = trade_type(activity)
            if tx_type is None or not activity.get("symbol"):
                skipped += 1
                continue
            try:
                trade_date = _parse_time(activity.get("tradeDate") or activity.get("transactionDate")).date()
                quantity = abs(_dec(activity.get("quantity")))
                price = _dec(activity.get("price"))
                fees = abs(_dec(activity.get("commission")))
            except (AttributeError, InvalidOperation, ValueError) as e:
                logger.error("Unreadable Questrade activity on %s: %s", number, e)
                errors += 1
                continue

            security, _ = await self._find_or_create_security(
                activity["symbol"], activity.get("symbolId"), activity.get("currency")
            )
            result = await self.db.execute(
                select(InvestmentTransaction.id).where(
                    InvestmentTransaction.account_id == account.id,
                    InvestmentTransaction.security_id == security.id,
                    InvestmentTransaction.date == trade_date,
                    InvestmentTransaction.type == tx_type,
                    InvestmentTransaction.quantity == quantity,
                )
            )
            if result.first() is not None:
                skipped += 1
                continue

            self.db.add(
                InvestmentTransaction(
                    account_id=account.id,
                    security_id=security.id,
                    date=trade_date,
                    type=tx_type,
                    quantity=quantity,
                    price=price,
                    fees=fees,
                    notes=f"Questrade: {activity.get('type')}",
                )
            )
            await self.db.flush()
            synced += 1

        await self.db.commit()
        logger.info(
            "Questrade activities for %s: %d synced, %d skipped, %d errors",
            number, synced, skipped, errors,
        )
        return {"synced": synced, "skipped": skipped, "errors": errors}

    async def list_transactions(self, account_id: UUID) -> List[InvestmentTransaction]:
        result = await self.db.execute(
            select(InvestmentTransaction)
            .where(InvestmentTransaction.account_id == account_id)
            .order_by(InvestmentTransaction.date.desc())
        )
        return list(result.scalars().all())

    # ==================== Orders & executions ====================

    async def sync_orders(
        self, account: Account, client: QuestradeClient, state_filter: str = "All"
    ) -> Dict[str, int]:
        number = self._linked_number(account)
        synced = 0
        for remote in await client.get_orders(number, state_filter=state_filter):
            result = await self.db.execute(
                select(Order).where(Order.questrade_order_id == remote["id"])
            )
            order = result.scalar_one_or_none()
            if order is None:
                order = Order(account_id=account.id, questrade_order_id=remote["id"])
                self.db.add(order)
            order.symbol = remote.get("symbol") or ""
            order.symbol_id = remote.get("symbolId")
            order.side = remote.get("side")
            order.order_type = remote.get("orderType")
            order.state = remote.get("state")
            order.time_in_force = remote.get("timeInForce")
            order.total_quantity = _dec(remote.get("totalQuantity"))
            order.open_quantity = _dec(remote.get("openQuantity"))
            order.filled_quantity = _dec(remote.get("filledQuantity"))
            order.limit_price = _opt_dec(remote.get("limitPrice"))
            order.stop_price = _opt_dec(remote.get("stopPrice"))
            order.avg_exec_price = _opt_dec(remote.get("avgExecPrice"))
            order.creation_time = _parse_time(remote.get("creationTime"))
            order.update_time = _parse_time(remote.get("updateTime"))
            order.raw = remote
            synced += 1
        await self.db.commit()
        return {"synced": synced}

    async def sync_executions(self, account: Account, client: QuestradeClient) -> Dict[str, int]:
        number = self._linked_number(account)
        synced = 0
        for remote in await client.get_executions(number):
            result = await self.db.execute(
                select(Execution).where(Execution.questrade_execution_id == remote["id"])
            )
            execution = result.scalar_one_or_none()
            if execution is None:
                execution = Execution(account_id=account.id, questrade_execution_id=remote["id"])
                self.db.add(execution)
            execution.questrade_order_id = remote.get("orderId")
            execution.symbol = remote.get("symbol") or ""
            execution.symbol_id = remote.get("symbolId")
            execution.side = remote.get("side")
            execution.quantity = _dec(remote.get("quantity"))
            execution.price = _dec(remote.get("price"))
            execution.commission = _dec(remote.get("commission"))
            execution.timestamp = _parse_time(remote.get("timestamp"))
            synced += 1
        await self.db.commit()
        return {"synced": synced}

    async def list_orders(self, account_id: UUID) -> List[Order]:
        result = await self.db.execute(
            select(Order).where(Order.account_id == account_id).order_by(Order.creation_time.desc())
        )
        return list(result.scalars().all())

    async def list_executions(self, account_id: UUID) -> List[Execution]:
        result = await self.db.execute(
            select(Execution)
            .where(Execution.account_id == account_id)
            .order_by(Execution.timestamp.desc())
        )
        return list(result.scalars().all())

    # ==================== Market data ====================

    async def get_candles(
        self,
        client: QuestradeClient,
        symbol_id: int,
        start: datetime,
        end: datetime,
        interval: str = "OneDay",
    ) -> List[Candle]:
        """Fetch candles for a known security and store one row per bar start."""
        result = await self.db.execute(
            select(Security).where(Security.questrade_symbol_id == symbol_id)
        )
        security = result.scalar_one_or_none()
        if security is None:
            raise LookupError(f"Security not found for symbol id {symbol_id}")

        candles = []
        for remote in await client.get_candles(
            symbol_id, start.isoformat(), end.isoformat(), interval
        ):
            bar_start = _parse_time(remote["start"])
            result = await self.db.execute(
                select(Candle).where(
                    Candle.security_id == security.id,
                    Candle.start == bar_start,
                )
            )
            candle = result.scalar_one_or_none()
            if candle is None:
                candle = Candle(security_id=security.id, start=bar_start)
                self.db.add(candle)
            candle.end = _parse_time(remote["end"])
            candle.open = _dec(remote.get("open"))
            candle.high = _dec(remote.get("high"))
            candle.low = _dec(remote.get("low"))
            candle.close = _dec(remote.get("close"))
            candle.volume = int(remote.get("volume") or 0)
            candles.append(candle)
        await self.db.commit()
        return candles

    # ==================== Full sync ====================

    async def sync_all(
        self, connection: QuestradeConnection, since: Optional[date] = None
    ) -> Dict[str, Any]:
        """Accounts first, then balances, holdings and trades per account."""
        client = await self.get_valid_client(connection)
        totals = {"accounts": 0, "holdings": 0, "transactions": 0, "errors": 0}
        start = (
            datetime.combine(since, datetime.min.time(), tzinfo=timezone.utc)
            if since else None
        )
        try:
            accounts = await self.sync_accounts(connection, client)
            totals["accounts"] = len(accounts)
            for account in accounts:
                try:
                    await self.sync_balances(account, client)
                    holdings = await self.sync_holdings(account, client)
                    trades = await self.sync_transactions(account, client, start=start)
                    await self.sync_orders(account, client)
                    await self.sync_executions(account, client)
                except QuestradeError as e:
                    logger.error(
                        "Questrade sync failed for account %s: %s",
                        account.questrade_account_number, e,
                    )
                    totals["errors"] += 1
                    continue
                totals["holdings"] += holdings["synced"]
                totals["transactions"] += trades["synced"]
                totals["errors"] += trades["errors"]
        finally:
            await client.close()
        return totals
