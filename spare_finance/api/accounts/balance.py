"""
Account balance calculation from an opening balance and transactions.
"""

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, Optional
from uuid import UUID


def _as_amount(value) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite() or amount == 0:
        return None
    return amount


def apply_transaction(balance: Decimal, tx) -> Decimal:
    """Return balance after tx. Unknown types leave it unchanged."""
    amount = _as_amount(tx.amount)
    if amount is None:
        return balance

    if tx.type == "transfer":
        if tx.transfer_to_id:
            balance -= abs(amount)
        if tx.transfer_from_id:
            balance += amount
    elif tx.type == "income":
        balance += amount
    elif tx.type == "expense":
        balance -= abs(amount)
    return balance


def calculate_account_balances(
    accounts: Iterable,
    transactions: Iterable,
    up_to: Optional[date] = None,
) -> Dict[UUID, Decimal]:
    """
    Balances for many accounts in one pass over transactions.

    Transactions dated after up_to (default today) and soft-deleted rows
    are ignored.
    """
    cutoff = up_to or date.today()
    balances: Dict[UUID, Decimal] = {
        account.id: Decimal(str(account.initial_balance or 0)) for account in accounts
    }

    for tx in transactions:
        if tx.account_id not in balances:
            continue
        if tx.date > cutoff or getattr(tx, "deleted_at", None) is not None:
            continue
        balances[tx.account_id] = apply_transaction(balances[tx.account_id], tx)

    return balances
