"""
SQLAlchemy ORM Models

Database models for the Spare Finance platform.
"""

import datetime as dt
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    LargeBinary,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# JSONB on Postgres, plain JSON elsewhere (sqlite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    """Get current UTC time."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from the database."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def month_start(value: date) -> date:
    """First day of the month containing value."""
    return value.replace(day=1)


# ==================== Users & Auth ====================


class User(Base):
    """User account model."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    first_name: Mapped[Optional[str]] = mapped_column(String(100))
    last_name: Mapped[Optional[str]] = mapped_column(String(100))
    phone: Mapped[Optional[str]] = mapped_column(String(20))

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    is_blocked: Mapped[bool] = mapped_column(Boolean, default=False)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Relationships
    accounts: Mapped[list["Account"]] = relationship(
        "Account", back_populates="user", cascade="all, delete-orphan"
    )
    subscriptions: Mapped[list["Subscription"]] = relationship(
        "Subscription", back_populates="user", cascade="all, delete-orphan"
    )

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)

    def __repr__(self) -> str:
        return f"<User {self.email}>"


class OTPCode(Base):
    """One-time password issued for signup verification or login."""

    __tablename__ = "otp_codes"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    purpose: Mapped[str] = mapped_column(String(20), nullable=False)  # signup, login
    code_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    consumed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )


# ==================== Households ====================


class Household(Base):
    """Group of users sharing financial data."""

    __tablename__ = "households"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[str] = mapped_column(String(20), default="personal")  # personal, shared
    created_by: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    members: Mapped[list["HouseholdMember"]] = relationship(
        "HouseholdMember", back_populates="household", cascade="all, delete-orphan"
    )


class HouseholdMember(Base):
    """Membership (or pending invitation) in a household."""

    __tablename__ = "household_members"
    __table_args__ = (UniqueConstraint("household_id", "email"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    household_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("households.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(200))

    role: Mapped[str] = mapped_column(String(20), default="member")  # owner, admin, member
    status: Mapped[str] = mapped_column(String(20), default="pending")  # pending, active, declined
    invitation_token: Mapped[Optional[str]] = mapped_column(String(100), unique=True)
    invited_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL")
    )
    invited_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    household: Mapped["Household"] = relationship("Household", back_populates="members")


# ==================== Billing ====================


class Plan(Base):
    """Subscription plan with Stripe price references and feature limits."""

    __tablename__ = "plans"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)  # free, essential, pro
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    price_monthly: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    price_yearly: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    features: Mapped[dict] = mapped_column(JSONType, default=dict)

    stripe_product_id: Mapped[Optional[str]] = mapped_column(String(100))
    stripe_price_id_monthly: Mapped[Optional[str]] = mapped_column(String(100), index=True)
    stripe_price_id_yearly: Mapped[Optional[str]] = mapped_column(String(100), index=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )


class Subscription(Base):
    """User subscription to a plan. Keyed as "{user_id}-{plan_id}"."""

    __tablename__ = "subscriptions"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    plan_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("plans.id"), nullable=False
    )

    # active, trialing, past_due, unpaid, cancelled
    status: Mapped[str] = mapped_column(String(20), default="active", index=True)
    billing_interval: Mapped[Optional[str]] = mapped_column(String(10))  # month, year

    stripe_subscription_id: Mapped[Optional[str]] = mapped_column(String(100), index=True)
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(String(100), index=True)

    current_period_start: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    current_period_end: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    trial_start_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    trial_end_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    cancel_at_period_end: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    user: Mapped["User"] = relationship("User", back_populates="subscriptions")
    plan: Mapped["Plan"] = relationship("Plan", lazy="joined")


class UserMonthlyUsage(Base):
    """Per-month transaction counter used for plan limits."""

    __tablename__ = "user_monthly_usage"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    month_date: Mapped[date] = mapped_column(Date, primary_key=True)
    transactions_count: Mapped[int] = mapped_column(Integer, default=0)


class PromoCode(Base):
    """Discount code mirrored to a Stripe coupon."""

    __tablename__ = "promo_codes"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    discount_type: Mapped[str] = mapped_column(String(10), nullable=False)  # percent, fixed
    discount_value: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    duration: Mapped[str] = mapped_column(String(10), nullable=False)  # once, forever, repeating
    duration_in_months: Mapped[Optional[int]] = mapped_column(Integer)
    max_redemptions: Mapped[Optional[int]] = mapped_column(Integer)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    stripe_coupon_id: Mapped[Optional[str]] = mapped_column(String(100))
    plan_ids: Mapped[list] = mapped_column(JSONType, default=list)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )


# ==================== Integrations ====================


class PlaidConnection(Base):
    """Plaid item linked by a user."""

    __tablename__ = "plaid_connections"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_id: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    access_token_encrypted: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    institution_id: Mapped[Optional[str]] = mapped_column(String(100))
    institution_name: Mapped[Optional[str]] = mapped_column(String(200))
    transactions_cursor: Mapped[Optional[str]] = mapped_column(Text)

    error_code: Mapped[Optional[str]] = mapped_column(String(100))
    error_message: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    accounts: Mapped[list["Account"]] = relationship(
        "Account", back_populates="plaid_connection"
    )


class QuestradeConnection(Base):
    """Questrade OAuth connection (one per user)."""

    __tablename__ = "questrade_connections"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    access_token_encrypted: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    refresh_token_encrypted: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    api_server: Mapped[str] = mapped_column(String(255), nullable=False)
    token_expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )


# ==================== Accounts & Transactions ====================


class Account(Base):
    """Financial account (manual, Plaid-linked or Questrade-linked)."""

    __tablename__ = "accounts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    household_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("households.id", ondelete="SET NULL")
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    # cash, checking, savings, credit, investment, other
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    initial_balance: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=0)
    credit_limit: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 2))
    currency: Mapped[str] = mapped_column(String(3), default="USD")

    # Plaid link
    plaid_connection_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("plaid_connections.id", ondelete="SET NULL")
    )
    plaid_account_id: Mapped[Optional[str]] = mapped_column(String(100), index=True)
    plaid_mask: Mapped[Optional[str]] = mapped_column(String(10))

    # Questrade link
    questrade_connection_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("questrade_connections.id", ondelete="SET NULL")
    )
    questrade_account_number: Mapped[Optional[str]] = mapped_column(String(50), index=True)

    is_connected: Mapped[bool] = mapped_column(Boolean, default=False)
    sync_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    user: Mapped["User"] = relationship("User", back_populates="accounts")
    plaid_connection: Mapped[Optional["PlaidConnection"]] = relationship(
        "PlaidConnection", back_populates="accounts"
    )

    def __repr__(self) -> str:
        return f"<Account {self.name} ({self.type})>"


class CategoryGroup(Base):
    """Top-level category grouping (macro). System rows have no user."""

    __tablename__ = "category_groups"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[str] = mapped_column(String(10), default="expense")  # income, expense

    categories: Mapped[list["Category"]] = relationship(
        "Category", back_populates="group", cascade="all, delete-orphan"
    )


class Category(Base):
    """Transaction category."""

    __tablename__ = "categories"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    group_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("category_groups.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    group: Mapped["CategoryGroup"] = relationship("CategoryGroup", back_populates="categories")
    subcategories: Mapped[list["Subcategory"]] = relationship(
        "Subcategory", back_populates="category", cascade="all, delete-orphan"
    )


class Subcategory(Base):
    """Transaction subcategory."""

    __tablename__ = "subcategories"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    category_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("categories.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    logo: Mapped[Optional[str]] = mapped_column(String(500))

    category: Mapped["Category"] = relationship("Category", back_populates="subcategories")


class Transaction(Base):
    """
    Income, expense, or one side of a transfer.

    Transfers are stored as two rows: an expense on the source account with
    transfer_to_id pointing at the income row on the destination account,
    which points back through transfer_from_id.
    """

    __tablename__ = "transactions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )

    type: Mapped[str] = mapped_column(String(10), nullable=False)  # income, expense, transfer
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text)  # encrypted
    description_search: Mapped[Optional[str]] = mapped_column(Text)  # normalized plaintext

    category_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("categories.id", ondelete="SET NULL")
    )
    subcategory_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("subcategories.id", ondelete="SET NULL")
    )
    suggested_category_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("categories.id", ondelete="SET NULL")
    )
    suggested_subcategory_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("subcategories.id", ondelete="SET NULL")
    )

    expense_type: Mapped[Optional[str]] = mapped_column(String(10))  # fixed, variable
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False)
    tags: Mapped[list] = mapped_column(JSONType, default=list)

    transfer_to_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    transfer_from_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))

    plaid_metadata: Mapped[Optional[dict]] = mapped_column(JSONType)

    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    @property
    def is_transfer(self) -> bool:
        return (
            self.type == "transfer"
            or self.transfer_to_id is not None
            or self.transfer_from_id is not None
        )

    def __repr__(self) -> str:
        return f"<Transaction {self.type} {self.amount} on {self.date}>"


class TransactionSync(Base):
    """Mapping from a Plaid transaction id to the local transaction."""

    __tablename__ = "transaction_syncs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    plaid_transaction_id: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    transaction_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("transactions.id", ondelete="SET NULL")
    )
    status: Mapped[str] = mapped_column(String(20), default="synced")  # synced, error
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    sync_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )


# ==================== Planning ====================


class Budget(Base):
    """Monthly spending budget for a category."""

    __tablename__ = "budgets"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    period: Mapped[date] = mapped_column(Date, nullable=False)  # first day of month
    category_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("categories.id", ondelete="CASCADE"), nullable=False
    )
    subcategory_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("subcategories.id", ondelete="CASCADE")
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=True)
    note: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )


class Goal(Base):
    """Savings goal funded by a share of income."""

    __tablename__ = "goals"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    account_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="SET NULL")
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    target_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    current_balance: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=0)
    income_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=0)
    priority: Mapped[str] = mapped_column(String(10), default="Medium")  # High, Medium, Low
    target_months: Mapped[Optional[int]] = mapped_column(Integer)
    target_date: Mapped[Optional[date]] = mapped_column(Date)

    is_paused: Mapped[bool] = mapped_column(Boolean, default=False)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )


class Debt(Base):
    """Loan or credit balance being paid down."""

    __tablename__ = "debts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    account_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="SET NULL")
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    loan_type: Mapped[str] = mapped_column(String(20), nullable=False)
    initial_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    down_payment: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=0)
    current_balance: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    interest_rate: Mapped[Decimal] = mapped_column(Numeric(6, 3), default=0)  # annual %
    total_months: Mapped[Optional[int]] = mapped_column(Integer)
    first_payment_date: Mapped[Optional[date]] = mapped_column(Date)
    monthly_payment: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    payment_frequency: Mapped[str] = mapped_column(String(20), default="monthly")
    principal_paid: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=0)
    interest_paid: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=0)

    priority: Mapped[str] = mapped_column(String(10), default="Medium")
    status: Mapped[str] = mapped_column(String(10), default="active")  # active, closed
    is_paused: Mapped[bool] = mapped_column(Boolean, default=False)
    is_paid_off: Mapped[bool] = mapped_column(Boolean, default=False)
    paid_off_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )


# ==================== Scheduling ====================


class UserServiceSubscription(Base):
    """Service the user pays for on a cycle (streaming, phone, gym)."""

    __tablename__ = "user_service_subscriptions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    subcategory_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("subcategories.id", ondelete="SET NULL")
    )

    service_name: Mapped[str] = mapped_column(String(200), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    # daily, weekly, biweekly, semimonthly, monthly
    billing_frequency: Mapped[str] = mapped_column(String(20), default="monthly")
    billing_day: Mapped[Optional[int]] = mapped_column(Integer)
    first_billing_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )


class PlannedPayment(Base):
    """
    Future income, expense or transfer.

    Becomes a real transaction when marked paid; linked_transaction_id then
    points at it (the outgoing side for transfers).
    """

    __tablename__ = "planned_payments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    to_account_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="CASCADE")
    )

    date: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(10), nullable=False)  # income, expense, transfer
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)  # encrypted
    category_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("categories.id", ondelete="SET NULL")
    )
    subcategory_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("subcategories.id", ondelete="SET NULL")
    )

    # manual, recurring, debt, goal, subscription
    source: Mapped[str] = mapped_column(String(20), default="manual")
    # scheduled, paid, skipped, cancelled
    status: Mapped[str] = mapped_column(String(10), default="scheduled", index=True)
    linked_transaction_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("transactions.id", ondelete="SET NULL")
    )
    debt_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("debts.id", ondelete="CASCADE")
    )
    goal_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("goals.id", ondelete="CASCADE")
    )
    subscription_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("user_service_subscriptions.id", ondelete="CASCADE")
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )


# ==================== Investments ====================


class Security(Base):
    """Tradable instrument referenced by holdings."""

    __tablename__ = "securities"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    symbol: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(200))
    security_class: Mapped[str] = mapped_column(String(20), default="stock")
    currency: Mapped[Optional[str]] = mapped_column(String(3))
    questrade_symbol_id: Mapped[Optional[int]] = mapped_column(BigInteger, index=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )


class SecurityPrice(Base):
    """Point-in-time price for a security."""

    __tablename__ = "security_prices"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    security_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("securities.id", ondelete="CASCADE"), nullable=False
    )
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)


class InvestmentBalance(Base):
    """Latest brokerage balance snapshot for an investment account."""

    __tablename__ = "investment_balances"

    account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True
    )
    cash: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    market_value: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    total_equity: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    buying_power: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    maintenance_excess: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    currency: Mapped[str] = mapped_column(String(3), default="CAD")
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )


class Position(Base):
    """Open holding in an investment account."""

    __tablename__ = "positions"
    __table_args__ = (UniqueConstraint("account_id", "security_id"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    security_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("securities.id", ondelete="CASCADE"), nullable=False
    )

    open_quantity: Mapped[Decimal] = mapped_column(Numeric(18, 6), default=0)
    closed_quantity: Mapped[Decimal] = mapped_column(Numeric(18, 6), default=0)
    current_market_value: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    current_price: Mapped[Decimal] = mapped_column(Numeric(18, 6), default=0)
    average_entry_price: Mapped[Decimal] = mapped_column(Numeric(18, 6), default=0)
    total_cost: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    open_pnl: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    closed_pnl: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    is_real_time: Mapped[bool] = mapped_column(Boolean, default=False)
    is_under_reorg: Mapped[bool] = mapped_column(Boolean, default=False)

    last_updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    security: Mapped["Security"] = relationship("Security", lazy="joined")


class InvestmentTransaction(Base):
    """Buy or sell activity in an investment account."""

    __tablename__ = "investment_transactions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    security_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("securities.id", ondelete="SET NULL")
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    type: Mapped[str] = mapped_column(String(10), nullable=False)  # buy, sell
    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 6), default=0)
    price: Mapped[Decimal] = mapped_column(Numeric(18, 6), default=0)
    fees: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )


class Order(Base):
    """Brokerage order mirrored from Questrade."""

    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    questrade_order_id: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False)
    symbol: Mapped[str] = mapped_column(String(30), nullable=False)
    symbol_id: Mapped[Optional[int]] = mapped_column(BigInteger)
    side: Mapped[Optional[str]] = mapped_column(String(20))
    order_type: Mapped[Optional[str]] = mapped_column(String(30))
    state: Mapped[Optional[str]] = mapped_column(String(30))
    time_in_force: Mapped[Optional[str]] = mapped_column(String(30))
    total_quantity: Mapped[Decimal] = mapped_column(Numeric(18, 6), default=0)
    open_quantity: Mapped[Decimal] = mapped_column(Numeric(18, 6), default=0)
    filled_quantity: Mapped[Decimal] = mapped_column(Numeric(18, 6), default=0)
    limit_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 6))
    stop_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 6))
    avg_exec_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 6))
    creation_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    update_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    raw: Mapped[dict] = mapped_column(JSONType, default=dict)


class Execution(Base):
    """Fill reported by Questrade."""

    __tablename__ = "executions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    questrade_execution_id: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False)
    questrade_order_id: Mapped[Optional[int]] = mapped_column(BigInteger)
    symbol: Mapped[str] = mapped_column(String(30), nullable=False)
    symbol_id: Mapped[Optional[int]] = mapped_column(BigInteger)
    side: Mapped[Optional[str]] = mapped_column(String(20))
    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 6), default=0)
    price: Mapped[Decimal] = mapped_column(Numeric(18, 6), default=0)
    commission: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    timestamp: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class Candle(Base):
    """OHLCV bar for a security."""

    __tablename__ = "candles"
    __table_args__ = (UniqueConstraint("security_id", "start"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    security_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("securities.id", ondelete="CASCADE"), nullable=False
    )
    start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    open: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    high: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    low: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    close: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    volume: Mapped[int] = mapped_column(BigInteger, default=0)
