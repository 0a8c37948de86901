"""
CSV Transaction Import

Parses a CSV export and maps its rows onto the user's accounts and
categories. Rows that cannot be mapped carry an error instead of a
transaction; the rest of the file is unaffected.
"""

import io
import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Mapping, Optional, Sequence
from uuid import UUID

import pandas as pd

TRANSACTION_TYPES = ("expense", "income", "transfer")

_NOT_AMOUNT = re.compile(r"[^0-9.\-]")


@dataclass
class CategoryRef:
    id: UUID
    name: str
    subcategories: Dict[str, UUID] = field(default_factory=dict)


@dataclass
class ImportedTransaction:
    date: date
    type: str
    amount: Decimal
    account_id: UUID
    to_account_id: Optional[UUID] = None
    category_id: Optional[UUID] = None
    subcategory_id: Optional[UUID] = None
    description: str = ""


@dataclass
class MappedRow:
    """One CSV row; row_index counts data rows from 1."""

    row_index: int
    transaction: Optional[ImportedTransaction] = None
    error: Optional[str] = None


def read_csv(text: str) -> pd.DataFrame:
    """
    Parse CSV text with a header row into a frame of strings.

    Raises:
        ValueError: Text is not parseable CSV
    """
    try:
        frame = pd.read_csv(
            io.StringIO(text.lstrip("\ufeff")),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except (pd.errors.EmptyDataError, pd.errors.ParserError) as e:
        raise ValueError(f"Could not parse CSV: {e}")
    frame.columns = [str(column).replace("\ufeff", "").strip() for column in frame.columns]
    return frame


def account_names(frame: pd.DataFrame, column: Optional[str]) -> List[str]:
    """Distinct non-blank values of the account column, sorted."""
    if not column or column not in frame.columns:
        return []
    names = {str(value).strip() for value in frame[column] if str(value).strip()}
    return sorted(names)


def parse_amount(raw: Optional[str]) -> Optional[Decimal]:
    """Strip currency symbols and separators; None when unusable or zero."""
    cleaned = _NOT_AMOUNT.sub("", raw or "")
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not amount.is_finite() or amount == 0:
        return None
    return amount


def parse_date(raw: Optional[str]) -> Optional[date]:
    value = pd.to_datetime(raw, errors="coerce")
    if pd.isna(value):
        return None
    return value.date()


def _find_account(
    name: str, accounts: Sequence, account_mapping: Mapping[str, UUID]
):
    if not name:
        return None
    by_id = {account.id: account for account in accounts}
    if name in account_mapping:
        return by_id.get(account_mapping[name])
    for account in accounts:
        if account.name == name:
            return account
    lowered = name.lower()
    for account in accounts:
        if account.name.lower() == lowered:
            return account
    return None


def map_rows(
    frame: pd.DataFrame,
    mapping,
    accounts: Sequence,
    categories: Iterable[CategoryRef],
    account_mapping: Optional[Mapping[str, UUID]] = None,
    default_account_id: Optional[UUID] = None,
    today: Optional[date] = None,
) -> List[MappedRow]:
    """
    Map CSV rows to transactions.

    Args:
        frame: Output of read_csv
        mapping: Column names for date, amount, description, account,
            to_account, category, subcategory and type; unset columns are
            skipped
        accounts: The user's accounts (objects with id and name)
        categories: Categories the user can assign
        account_mapping: CSV account name -> account id, checked before
            matching by name
        default_account_id: Account for rows whose account is blank or
            unknown
        today: Date for rows without a date column

    Amounts are stored positive; the type column decides direction and
    defaults to expense.
    """
    account_mapping = account_mapping or {}
    today = today or date.today()
    by_name = {category.name: category for category in categories}
    default_account = next((a for a in accounts if a.id == default_account_id), None)
    available = ", ".join(account.name for account in accounts)

    def cell(row: Mapping[str, str], column: Optional[str]) -> str:
        if not column:
            return ""
        return str(row.get(column, "") or "").strip()

    results = []
    for index, row in enumerate(frame.to_dict("records"), start=1):
        raw_date = cell(row, mapping.date)
        if raw_date:
            on = parse_date(raw_date)
            if on is None:
                results.append(MappedRow(index, error=f"Invalid date format: {raw_date}"))
                continue
        else:
            on = today

        raw_amount = cell(row, mapping.amount)
        amount = parse_amount(raw_amount)
        if amount is None:
            results.append(MappedRow(index, error=f"Invalid amount: {raw_amount}"))
            continue

        tx_type = cell(row, mapping.type).lower() or "expense"
        if tx_type not in TRANSACTION_TYPES:
            tx_type = "expense"

        account_name = cell(row, mapping.account)
        account = _find_account(account_name, accounts, account_mapping) or default_account
        if account is None:
            results.append(
                MappedRow(
                    index,
                    error=f'Account not found: "{account_name}". Available accounts: {available}',
                )
            )
            continue

        to_account = None
        if tx_type == "transfer":
            to_name = cell(row, mapping.to_account)
            if not to_name:
                results.append(
                    MappedRow(index, error="Transfer requires a destination account column")
                )
                continue
            to_account = _find_account(to_name, accounts, account_mapping)
            if to_account is None:
                results.append(
                    MappedRow(
                        index,
                        error=(
                            f'Destination account not found: "{to_name}". '
                            f"Available accounts: {available}"
                        ),
                    )
                )
                continue
            if to_account.id == account.id:
                results.append(
                    MappedRow(
                        index,
                        error=(
                            "Transfer requires different source and destination accounts. "
                            f'Both are: "{account.name}"'
                        ),
                    )
                )
                continue

        category_id = subcategory_id = None
        if tx_type != "transfer":
            category = by_name.get(cell(row, mapping.category))
            if category is not None:
                category_id = category.id
                subcategory_id = category.subcategories.get(cell(row, mapping.subcategory))

        results.append(
            MappedRow(
                index,
                transaction=ImportedTransaction(
                    date=on,
                    type=tx_type,
                    amount=abs(amount),
                    account_id=account.id,
                    to_account_id=to_account.id if to_account else None,
                    category_id=category_id,
                    subcategory_id=subcategory_id,
                    description=cell(row, mapping.description),
                ),
            )
        )
    return results
