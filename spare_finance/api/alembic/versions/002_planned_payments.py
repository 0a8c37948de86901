"""Planned payments and tracked subscriptions

Revision ID: 002
Revises: 001
Create Date: 2026-10-18

Adds:
- user_service_subscriptions: Services the user pays on a cycle
- planned_payments: Scheduled income, expenses and transfers
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _uuid(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=True), nullable=nullable)


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "user_service_subscriptions",
        _uuid("id"),
        _uuid("user_id"),
        _uuid("account_id"),
        _uuid("subcategory_id", nullable=True),
        sa.Column("service_name", sa.String(200), nullable=False),
        sa.Column("amount", sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("billing_frequency", sa.String(20), nullable=False, server_default="monthly"),
        sa.Column("billing_day", sa.Integer(), nullable=True),
        sa.Column("first_billing_date", sa.Date(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["subcategory_id"], ["subcategories.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_user_service_subscriptions_user_id", "user_service_subscriptions", ["user_id"])

    op.create_table(
        "planned_payments",
        _uuid("id"),
        _uuid("user_id"),
        _uuid("account_id"),
        _uuid("to_account_id", nullable=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("type", sa.String(10), nullable=False),
        sa.Column("amount", sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        _uuid("category_id", nullable=True),
        _uuid("subcategory_id", nullable=True),
        sa.Column("source", sa.String(20), nullable=False, server_default="manual"),
        sa.Column("status", sa.String(10), nullable=False, server_default="scheduled"),
        _uuid("linked_transaction_id", nullable=True),
        _uuid("debt_id", nullable=True),
        _uuid("goal_id", nullable=True),
        _uuid("subscription_id", nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["to_account_id"], ["accounts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["category_id"], ["categories.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["subcategory_id"], ["subcategories.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["linked_transaction_id"], ["transactions.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["debt_id"], ["debts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["goal_id"], ["goals.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["subscription_id"], ["user_service_subscriptions.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_planned_payments_user_id", "planned_payments", ["user_id"])
    op.create_index("ix_planned_payments_date", "planned_payments", ["date"])
    op.create_index("ix_planned_payments_status", "planned_payments", ["status"])


def downgrade() -> None:
    op.drop_table("planned_payments")
    op.drop_table("user_service_subscriptions")
