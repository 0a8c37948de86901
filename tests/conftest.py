"""
Spare Finance Test Configuration
=================================

Pytest fixtures for the pure calculation modules (no database, no app).
"""

import uuid
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import numpy as np
import pandas as pd
import pytest

from spare_finance.api.reports.analytics import ExpenseRow


@pytest.fixture
def account_id():
    """Fixed account id shared by generated rows."""
    return uuid.UUID("00000000-0000-0000-0000-00000000a001")


@pytest.fixture
def make_tx(account_id):
    """Build a transaction-like object for balance calculations."""

    def _make(amount, type="expense", on=date(2024, 1, 15), **extra):
        fields = {
            "account_id": account_id,
            "type": type,
            "amount": amount,
            "date": on,
            "transfer_to_id": None,
            "transfer_from_id": None,
            "deleted_at": None,
        }
        fields.update(extra)
        return SimpleNamespace(**fields)

    return _make


@pytest.fixture
def monthly_charges(account_id):
    """Six months of a streaming charge billed on the 3rd."""
    dates = pd.date_range(start="2024-01-01", periods=6, freq="MS") + pd.Timedelta(days=2)
    return [
        ExpenseRow(
            transaction_id=uuid.uuid4(),
            account_id=account_id,
            account_name="Checking",
            date=ts.date(),
            amount=15.49,
            merchant="Spotify USA",
        )
        for ts in dates
    ]


@pytest.fixture
def noisy_groceries(account_id):
    """Irregular grocery runs with widely varying totals."""
    np.random.seed(42)
    offsets = np.cumsum(np.random.randint(1, 20, size=8))
    amounts = np.array([12.0, 240.0, 35.5, 180.0, 20.0, 210.0, 60.0, 150.0])
    start = pd.Timestamp("2024-01-01")
    return [
        ExpenseRow(
            transaction_id=uuid.uuid4(),
            account_id=account_id,
            account_name="Checking",
            date=(start + pd.Timedelta(days=int(offset))).date(),
            amount=round(float(amount), 2),
            merchant="Corner Market",
        )
        for offset, amount in zip(offsets, amounts)
    ]


@pytest.fixture
def cashflow_rows():
    """(date, type, amount) rows: salary on the 1st, random daily expenses."""
    np.random.seed(42)
    days = pd.date_range(start="2024-01-01", end="2024-03-31", freq="D")
    rows = [(d.date(), "income", Decimal("3000.00")) for d in days if d.day == 1]
    spend = np.random.uniform(5, 60, size=len(days)).round(2)
    rows.extend((d.date(), "expense", Decimal(str(a))) for d, a in zip(days, spend))
    return rows
