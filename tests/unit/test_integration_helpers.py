"""
Tests for Integration Helpers
==============================

Pure mapping helpers used by the Plaid, Questrade and Stripe integrations.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from spare_finance.api.billing.service import map_stripe_status, stripe_field
from spare_finance.api.plaid.service import (
    DEFAULT_DESCRIPTION,
    build_metadata,
    map_account_type,
    transaction_description,
    transaction_type,
)
from spare_finance.api.questrade.service import activity_range, pick_balance, trade_type

NOW = datetime(2024, 6, 30, 12, 0, tzinfo=timezone.utc)


class TestPlaidMapping:

    @pytest.mark.parametrize(
        "plaid_type, subtype, expected",
        [
            ("depository", "checking", "checking"),
            ("depository", "savings", "savings"),
            ("depository", "money market", "checking"),
            ("credit", "credit card", "credit"),
            ("investment", "401k", "investment"),
            ("loan", "mortgage", "other"),
        ],
    )
    def test_account_type(self, plaid_type, subtype, expected):
        assert map_account_type(plaid_type, subtype) == expected

    def test_negative_amounts_are_expenses(self):
        assert transaction_type(Decimal("-12.50")) == "expense"
        assert transaction_type(Decimal("12.50")) == "income"

    def test_description_fallbacks(self):
        assert transaction_description({"name": "Uber", "merchant_name": "Uber Inc"}) == "Uber"
        assert transaction_description({"merchant_name": "Uber Inc"}) == "Uber Inc"
        assert transaction_description({}) == DEFAULT_DESCRIPTION

    def test_metadata_keeps_known_fields(self):
        metadata = build_metadata({"merchant_name": "Uber", "pending": None, "account_id": "a"})

        assert metadata["merchant_name"] == "Uber"
        assert metadata["pending"] is False
        assert "account_id" not in metadata


class TestQuestradeHelpers:

    def test_default_activity_window(self):
        start, end = activity_range(None, None, now=NOW)
        assert end == NOW
        assert end - start == timedelta(days=30)

    def test_oversized_window_keeps_end(self):
        start, end = activity_range(NOW - timedelta(days=90), NOW)
        assert end == NOW
        assert start == NOW - timedelta(days=31)

    def test_window_within_limit_is_unchanged(self):
        start = NOW - timedelta(days=10)
        assert activity_range(start, NOW) == (start, NOW)

    @pytest.mark.parametrize(
        "activity, expected",
        [
            ({"action": "Buy", "type": "Trades", "quantity": 10}, "buy"),
            ({"action": "Sell", "type": "Trades", "quantity": -10}, "sell"),
            ({"action": "", "type": "Trade", "quantity": -3}, "sell"),
            ({"action": "", "type": "Trade", "quantity": 3}, "buy"),
            ({"action": "DIV", "type": "Dividends", "quantity": 0}, None),
            ({"type": "Deposits"}, None),
        ],
    )
    def test_trade_type(self, activity, expected):
        assert trade_type(activity) == expected

    def test_pick_balance_prefers_combined(self):
        combined = {"currency": "CAD", "cash": 10}
        per_currency = {"currency": "USD", "cash": 5}

        assert pick_balance({"combinedBalances": [combined], "perCurrencyBalances": [per_currency]}) == combined
        assert pick_balance({"combinedBalances": [], "perCurrencyBalances": [per_currency]}) == per_currency
        assert pick_balance({}) is None


class TestStripeHelpers:

    @pytest.mark.parametrize(
        "stripe_status, expected",
        [
            ("active", "active"),
            ("canceled", "cancelled"),
            ("incomplete", "trialing"),
            ("incomplete_expired", "cancelled"),
            ("past_due", "past_due"),
            ("paused", "active"),
            (None, "active"),
        ],
    )
    def test_status_mapping(self, stripe_status, expected):
        assert map_stripe_status(stripe_status) == expected

    def test_stripe_field(self):
        obj = {"customer": "cus_1", "metadata": None}

        assert stripe_field(obj, "customer") == "cus_1"
        assert stripe_field(obj, "metadata", {}) == {}
        assert stripe_field(obj, "missing", "x") == "x"
        assert stripe_field(None, "customer") is None
        assert stripe_field(["a"], "customer") is None
