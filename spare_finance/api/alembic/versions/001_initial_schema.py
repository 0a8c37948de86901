"""Initial database schema

Revision ID: 001
Revises:
Create Date: 2026-10-18

Creates the initial Spare Finance database schema with:
- users, otp_codes: Accounts and one-time login codes
- households, household_members: Shared finance groups and invitations
- plans, subscriptions, user_monthly_usage, promo_codes: Billing
- plaid_connections, questrade_connections: Linked institutions
- accounts, category_groups, categories, subcategories: Ledger structure
- transactions, transaction_syncs: Ledger entries and Plaid mapping
- budgets, goals, debts: Planning
- securities, security_prices, investment_balances, positions,
  investment_transactions, orders, executions, candles: Investments
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _uuid(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=True), nullable=nullable)


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def _money(name: str, precision: int = 15, scale: int = 2, nullable: bool = False, default: str = "0") -> sa.Column:
    return sa.Column(
        name,
        sa.Numeric(precision=precision, scale=scale),
        nullable=nullable,
        server_default=None if nullable else default,
    )


def upgrade() -> None:
    # Users table
    op.create_table(
        "users",
        _uuid("id"),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=True),
        sa.Column("last_name", sa.String(100), nullable=True),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("is_blocked", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default="false"),
        *_timestamps(),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "otp_codes",
        _uuid("id"),
        _uuid("user_id"),
        sa.Column("purpose", sa.String(20), nullable=False),
        sa.Column("code_hash", sa.String(255), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("consumed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_otp_codes_user_id", "otp_codes", ["user_id"])

    # Households
    op.create_table(
        "households",
        _uuid("id"),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("type", sa.String(20), nullable=False, server_default="personal"),
        _uuid("created_by"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "household_members",
        _uuid("id"),
        _uuid("household_id"),
        _uuid("user_id", nullable=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(200), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="member"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("invitation_token", sa.String(100), nullable=True),
        _uuid("invited_by", nullable=True),
        sa.Column("invited_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["household_id"], ["households.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["invited_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("household_id", "email"),
        sa.UniqueConstraint("invitation_token"),
    )
    op.create_index("ix_household_members_user_id", "household_members", ["user_id"])

    # Billing
    op.create_table(
        "plans",
        sa.Column("id", sa.String(50), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        _money("price_monthly", 10),
        _money("price_yearly", 10),
        sa.Column("features", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default="{}"),
        sa.Column("stripe_product_id", sa.String(100), nullable=True),
        sa.Column("stripe_price_id_monthly", sa.String(100), nullable=True),
        sa.Column("stripe_price_id_yearly", sa.String(100), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_plans_stripe_price_id_monthly", "plans", ["stripe_price_id_monthly"])
    op.create_index("ix_plans_stripe_price_id_yearly", "plans", ["stripe_price_id_yearly"])

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.String(100), nullable=False),
        _uuid("user_id"),
        sa.Column("plan_id", sa.String(50), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("billing_interval", sa.String(10), nullable=True),
        sa.Column("stripe_subscription_id", sa.String(100), nullable=True),
        sa.Column("stripe_customer_id", sa.String(100), nullable=True),
        sa.Column("current_period_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("trial_start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("trial_end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancel_at_period_end", sa.Boolean(), nullable=False, server_default="false"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["plan_id"], ["plans.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_subscriptions_user_id", "subscriptions", ["user_id"])
    op.create_index("ix_subscriptions_status", "subscriptions", ["status"])
    op.create_index("ix_subscriptions_stripe_subscription_id", "subscriptions", ["stripe_subscription_id"])
    op.create_index("ix_subscriptions_stripe_customer_id", "subscriptions", ["stripe_customer_id"])

    op.create_table(
        "user_monthly_usage",
        _uuid("user_id"),
        sa.Column("month_date", sa.Date(), nullable=False),
        sa.Column("transactions_count", sa.Integer(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("user_id", "month_date"),
    )

    op.create_table(
        "promo_codes",
        _uuid("id"),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("discount_type", sa.String(10), nullable=False),
        _money("discount_value", 10),
        sa.Column("duration", sa.String(10), nullable=False),
        sa.Column("duration_in_months", sa.Integer(), nullable=True),
        sa.Column("max_redemptions", sa.Integer(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("stripe_coupon_id", sa.String(100), nullable=True),
        sa.Column("plan_ids", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default="[]"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code"),
    )

    # Integrations
    op.create_table(
        "plaid_connections",
        _uuid("id"),
        _uuid("user_id"),
        sa.Column("item_id", sa.String(100), nullable=False),
        sa.Column("access_token_encrypted", sa.LargeBinary(), nullable=False),
        sa.Column("institution_id", sa.String(100), nullable=True),
        sa.Column("institution_name", sa.String(200), nullable=True),
        sa.Column("transactions_cursor", sa.Text(), nullable=True),
        sa.Column("error_code", sa.String(100), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("item_id"),
    )
    op.create_index("ix_plaid_connections_user_id", "plaid_connections", ["user_id"])

    op.create_table(
        "questrade_connections",
        _uuid("id"),
        _uuid("user_id"),
        sa.Column("access_token_encrypted", sa.LargeBinary(), nullable=False),
        sa.Column("refresh_token_encrypted", sa.LargeBinary(), nullable=False),
        sa.Column("api_server", sa.String(255), nullable=False),
        sa.Column("token_expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id"),
    )

    # Accounts & categories
    op.create_table(
        "accounts",
        _uuid("id"),
        _uuid("user_id"),
        _uuid("household_id", nullable=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        _money("initial_balance"),
        _money("credit_limit", nullable=True),
        sa.Column("currency", sa.String(3), nullable=False, server_default="USD"),
        _uuid("plaid_connection_id", nullable=True),
        sa.Column("plaid_account_id", sa.String(100), nullable=True),
        sa.Column("plaid_mask", sa.String(10), nullable=True),
        _uuid("questrade_connection_id", nullable=True),
        sa.Column("questrade_account_number", sa.String(50), nullable=True),
        sa.Column("is_connected", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("sync_enabled", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["household_id"], ["households.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["plaid_connection_id"], ["plaid_connections.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["questrade_connection_id"], ["questrade_connections.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_accounts_user_id", "accounts", ["user_id"])
    op.create_index("ix_accounts_plaid_account_id", "accounts", ["plaid_account_id"])
    op.create_index("ix_accounts_questrade_account_number", "accounts", ["questrade_account_number"])

    op.create_table(
        "category_groups",
        _uuid("id"),
        _uuid("user_id", nullable=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("type", sa.String(10), nullable=False, server_default="expense"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_category_groups_user_id", "category_groups", ["user_id"])

    op.create_table(
        "categories",
        _uuid("id"),
        _uuid("group_id"),
        _uuid("user_id", nullable=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.ForeignKeyConstraint(["group_id"], ["category_groups.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_categories_user_id", "categories", ["user_id"])

    op.create_table(
        "subcategories",
        _uuid("id"),
        _uuid("category_id"),
        _uuid("user_id", nullable=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("logo", sa.String(500), nullable=True),
        sa.ForeignKeyConstraint(["category_id"], ["categories.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_subcategories_user_id", "subcategories", ["user_id"])

    # Transactions
    op.create_table(
        "transactions",
        _uuid("id"),
        _uuid("user_id"),
        _uuid("account_id"),
        sa.Column("type", sa.String(10), nullable=False),
        _money("amount", default=None),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("description_search", sa.Text(), nullable=True),
        _uuid("category_id", nullable=True),
        _uuid("subcategory_id", nullable=True),
        _uuid("suggested_category_id", nullable=True),
        _uuid("suggested_subcategory_id", nullable=True),
        sa.Column("expense_type", sa.String(10), nullable=True),
        sa.Column("is_recurring", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("tags", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default="[]"),
        _uuid("transfer_to_id", nullable=True),
        _uuid("transfer_from_id", nullable=True),
        sa.Column("plaid_metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["category_id"], ["categories.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["subcategory_id"], ["subcategories.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["suggested_category_id"], ["categories.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["suggested_subcategory_id"], ["subcategories.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_transactions_user_id", "transactions", ["user_id"])
    op.create_index("ix_transactions_account_id", "transactions", ["account_id"])
    op.create_index("ix_transactions_date", "transactions", ["date"])

    op.create_table(
        "transaction_syncs",
        _uuid("id"),
        _uuid("account_id"),
        sa.Column("plaid_transaction_id", sa.String(100), nullable=False),
        _uuid("transaction_id", nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="synced"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("sync_date", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["transaction_id"], ["transactions.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("plaid_transaction_id"),
    )

    # Planning
    op.create_table(
        "budgets",
        _uuid("id"),
        _uuid("user_id"),
        sa.Column("period", sa.Date(), nullable=False),
        _uuid("category_id"),
        _uuid("subcategory_id", nullable=True),
        _money("amount", default=None),
        sa.Column("is_recurring", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("note", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["category_id"], ["categories.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["subcategory_id"], ["subcategories.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_budgets_user_id", "budgets", ["user_id"])
    op.create_index("ix_budgets_period", "budgets", ["period"])

    op.create_table(
        "goals",
        _uuid("id"),
        _uuid("user_id"),
        _uuid("account_id", nullable=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        _money("target_amount", default=None),
        _money("current_balance"),
        _money("income_percentage", 5),
        sa.Column("priority", sa.String(10), nullable=False, server_default="Medium"),
        sa.Column("target_months", sa.Integer(), nullable=True),
        sa.Column("target_date", sa.Date(), nullable=True),
        sa.Column("is_paused", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_goals_user_id", "goals", ["user_id"])

    op.create_table(
        "debts",
        _uuid("id"),
        _uuid("user_id"),
        _uuid("account_id", nullable=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("loan_type", sa.String(20), nullable=False),
        _money("initial_amount", default=None),
        _money("down_payment"),
        _money("current_balance", default=None),
        _money("interest_rate", 6, 3),
        sa.Column("total_months", sa.Integer(), nullable=True),
        sa.Column("first_payment_date", sa.Date(), nullable=True),
        _money("monthly_payment", default=None),
        sa.Column("payment_frequency", sa.String(20), nullable=False, server_default="monthly"),
        _money("principal_paid"),
        _money("interest_paid"),
        sa.Column("priority", sa.String(10), nullable=False, server_default="Medium"),
        sa.Column("status", sa.String(10), nullable=False, server_default="active"),
        sa.Column("is_paused", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("is_paid_off", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("paid_off_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_debts_user_id", "debts", ["user_id"])

    # Investments
    op.create_table(
        "securities",
        _uuid("id"),
        sa.Column("symbol", sa.String(30), nullable=False),
        sa.Column("name", sa.String(200), nullable=True),
        sa.Column("security_class", sa.String(20), nullable=False, server_default="stock"),
        sa.Column("currency", sa.String(3), nullable=True),
        sa.Column("questrade_symbol_id", sa.BigInteger(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("symbol"),
    )
    op.create_index("ix_securities_questrade_symbol_id", "securities", ["questrade_symbol_id"])

    op.create_table(
        "security_prices",
        _uuid("id"),
        _uuid("security_id"),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        _money("price", 18, 6, default=None),
        sa.ForeignKeyConstraint(["security_id"], ["securities.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_security_prices_security_id", "security_prices", ["security_id"])

    op.create_table(
        "investment_balances",
        _uuid("account_id"),
        _money("cash", 18),
        _money("market_value", 18),
        _money("total_equity", 18),
        _money("buying_power", 18),
        _money("maintenance_excess", 18),
        sa.Column("currency", sa.String(3), nullable=False, server_default="CAD"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("account_id"),
    )

    op.create_table(
        "positions",
        _uuid("id"),
        _uuid("account_id"),
        _uuid("security_id"),
        _money("open_quantity", 18, 6),
        _money("closed_quantity", 18, 6),
        _money("current_market_value", 18),
        _money("current_price", 18, 6),
        _money("average_entry_price", 18, 6),
        _money("total_cost", 18),
        _money("open_pnl", 18),
        _money("closed_pnl", 18),
        sa.Column("is_real_time", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("is_under_reorg", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("last_updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["security_id"], ["securities.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("account_id", "security_id"),
    )

    op.create_table(
        "investment_transactions",
        _uuid("id"),
        _uuid("account_id"),
        _uuid("security_id", nullable=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("type", sa.String(10), nullable=False),
        _money("quantity", 18, 6),
        _money("price", 18, 6),
        _money("fees", 18),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["security_id"], ["securities.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_investment_transactions_account_id", "investment_transactions", ["account_id"])

    op.create_table(
        "orders",
        _uuid("id"),
        _uuid("account_id"),
        sa.Column("questrade_order_id", sa.BigInteger(), nullable=False),
        sa.Column("symbol", sa.String(30), nullable=False),
        sa.Column("symbol_id", sa.BigInteger(), nullable=True),
        sa.Column("side", sa.String(20), nullable=True),
        sa.Column("order_type", sa.String(30), nullable=True),
        sa.Column("state", sa.String(30), nullable=True),
        sa.Column("time_in_force", sa.String(30), nullable=True),
        _money("total_quantity", 18, 6),
        _money("open_quantity", 18, 6),
        _money("filled_quantity", 18, 6),
        _money("limit_price", 18, 6, nullable=True),
        _money("stop_price", 18, 6, nullable=True),
        _money("avg_exec_price", 18, 6, nullable=True),
        sa.Column("creation_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("update_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("raw", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default="{}"),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("questrade_order_id"),
    )
    op.create_index("ix_orders_account_id", "orders", ["account_id"])

    op.create_table(
        "executions",
        _uuid("id"),
        _uuid("account_id"),
        sa.Column("questrade_execution_id", sa.BigInteger(), nullable=False),
        sa.Column("questrade_order_id", sa.BigInteger(), nullable=True),
        sa.Column("symbol", sa.String(30), nullable=False),
        sa.Column("symbol_id", sa.BigInteger(), nullable=True),
        sa.Column("side", sa.String(20), nullable=True),
        _money("quantity", 18, 6),
        _money("price", 18, 6),
        _money("commission", 18),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("questrade_execution_id"),
    )
    op.create_index("ix_executions_account_id", "executions", ["account_id"])

    op.create_table(
        "candles",
        _uuid("id"),
        _uuid("security_id"),
        sa.Column("start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end", sa.DateTime(timezone=True), nullable=False),
        _money("open", 18, 6, nullable=True),
        _money("high", 18, 6, nullable=True),
        _money("low", 18, 6, nullable=True),
        _money("close", 18, 6, nullable=True),
        sa.Column("volume", sa.BigInteger(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["security_id"], ["securities.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("security_id", "start"),
    )


def downgrade() -> None:
    op.drop_table("candles")
    op.drop_table("executions")
    op.drop_table("orders")
    op.drop_table("investment_transactions")
    op.drop_table("positions")
    op.drop_table("investment_balances")
    op.drop_table("security_prices")
    op.drop_table("securities")
    op.drop_table("debts")
    op.drop_table("goals")
    op.drop_table("budgets")
    op.drop_table("transaction_syncs")
    op.drop_table("transactions")
    op.drop_table("subcategories")
    op.drop_table("categories")
    op.drop_table("category_groups")
    op.drop_table("accounts")
    op.drop_table("questrade_connections")
    op.drop_table("plaid_connections")
    op.drop_table("promo_codes")
    op.drop_table("user_monthly_usage")
    op.drop_table("subscriptions")
    op.drop_table("plans")
    op.drop_table("household_members")
    op.drop_table("households")
    op.drop_table("otp_codes")
    op.drop_table("users")
