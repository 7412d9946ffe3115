"""Initial mobile-money schema

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

STATUS_CHECK = (
    "internal_status IN ('pending', 'processing', 'in_reconciliation', 'completed', 'failed')"
)


def upgrade() -> None:
    """Upgrade database schema."""
    op.create_table(
        "pending_payments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("deposit_id", sa.String(length=64), nullable=False),
        sa.Column("payment_token", sa.String(length=255), nullable=False),
        sa.Column("payment_type", sa.String(length=20), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("payment_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("provider", sa.String(length=64), nullable=True),
        sa.Column("msisdn", sa.String(length=20), nullable=True),
        sa.Column(
            "internal_status", sa.String(length=32), nullable=False, server_default="pending"
        ),
        sa.Column("pawapay_status", sa.String(length=32), nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("failure_code", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("payment_amount > 0", name="pending_positive_amount"),
        sa.CheckConstraint(STATUS_CHECK, name="pending_valid_status"),
        sa.CheckConstraint(
            "payment_type IN ('product', 'membership', 'promotion')",
            name="pending_valid_payment_type",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("deposit_id"),
    )
    op.create_index(
        op.f("ix_pending_payments_payment_token"), "pending_payments", ["payment_token"]
    )
    op.create_index(
        op.f("ix_pending_payments_internal_status"), "pending_payments", ["internal_status"]
    )
    op.create_index(
        "idx_pending_status_created", "pending_payments", ["internal_status", "created_at"]
    )

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("payment_token", sa.String(length=255), nullable=False),
        sa.Column("payment_status", sa.String(length=32), nullable=True),
        sa.Column("payment_method", sa.String(length=32), nullable=True),
        sa.Column("payment_id", sa.String(length=64), nullable=True),
        sa.Column("status", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("date_payment", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("payment_token"),
    )

    op.create_table(
        "order_transactions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("payment_method", sa.String(length=32), nullable=False),
        sa.Column("payment_id", sa.String(length=64), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_order_transactions_order_id"), "order_transactions", ["order_id"]
    )
    op.create_index(
        op.f("ix_order_transactions_payment_id"), "order_transactions", ["payment_id"]
    )

    op.create_table(
        "membership_payments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("payment_token", sa.String(length=255), nullable=False),
        sa.Column(
            "payment_status", sa.String(length=32), nullable=False, server_default="pending"
        ),
        sa.Column("activated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("payment_token"),
    )

    op.create_table(
        "vendor_earnings",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("vendor_id", sa.Integer(), nullable=False),
        sa.Column("available_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="ZMW"),
        sa.Column("mno_provider", sa.String(length=64), nullable=False),
        sa.Column("phone_number", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="available"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_vendor_earnings_vendor_id"), "vendor_earnings", ["vendor_id"])

    op.create_table(
        "vendor_payouts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("payout_id", sa.String(length=64), nullable=False),
        sa.Column("earnings_id", sa.Integer(), nullable=False),
        sa.Column("vendor_id", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="ZMW"),
        sa.Column("pawapay_status", sa.String(length=32), nullable=False),
        sa.Column(
            "internal_status", sa.String(length=32), nullable=False, server_default="pending"
        ),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(STATUS_CHECK, name="payout_valid_status"),
        sa.ForeignKeyConstraint(["earnings_id"], ["vendor_earnings.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("payout_id"),
    )
    op.create_index(
        "uq_vendor_payouts_earnings_id", "vendor_payouts", ["earnings_id"], unique=True
    )
    op.create_index(op.f("ix_vendor_payouts_vendor_id"), "vendor_payouts", ["vendor_id"])

    op.create_table(
        "webhook_events",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("event_id", sa.String(length=160), nullable=False),
        sa.Column("event_type", sa.String(length=32), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("processed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("event_id"),
    )
    op.create_index(op.f("ix_webhook_events_event_type"), "webhook_events", ["event_type"])


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index(op.f("ix_webhook_events_event_type"), table_name="webhook_events")
    op.drop_table("webhook_events")

    op.drop_index(op.f("ix_vendor_payouts_vendor_id"), table_name="vendor_payouts")
    op.drop_index("uq_vendor_payouts_earnings_id", table_name="vendor_payouts")
    op.drop_table("vendor_payouts")

    op.drop_index(op.f("ix_vendor_earnings_vendor_id"), table_name="vendor_earnings")
    op.drop_table("vendor_earnings")

    op.drop_table("membership_payments")

    op.drop_index(op.f("ix_order_transactions_payment_id"), table_name="order_transactions")
    op.drop_index(op.f("ix_order_transactions_order_id"), table_name="order_transactions")
    op.drop_table("order_transactions")

    op.drop_table("orders")

    op.drop_index("idx_pending_status_created", table_name="pending_payments")
    op.drop_index(op.f("ix_pending_payments_internal_status"), table_name="pending_payments")
    op.drop_index(op.f("ix_pending_payments_payment_token"), table_name="pending_payments")
    op.drop_table("pending_payments")
