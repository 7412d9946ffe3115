"""SQLAlchemy database models for mobile-money payments and payouts."""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


AMOUNT = Numeric(12, 2, asdecimal=True)

INTERNAL_STATUS_CHECK = (
    "internal_status IN ('pending', 'processing', 'in_reconciliation', 'completed', 'failed')"
)


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class PendingPayment(Base):
    """
    One deposit accepted by the gateway and awaiting its final callback.

    Created only after the gateway answers ACCEPTED. ``deposit_id`` is the
    correlation key for callbacks; rows are never deleted.
    """

    __tablename__ = "pending_payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    deposit_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    payment_token: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    payment_type: Mapped[str] = mapped_column(String(20), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    payment_amount: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False)
    provider: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    msisdn: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    internal_status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="pending", index=True
    )
    pawapay_status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    failure_code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint("payment_amount > 0", name="pending_positive_amount"),
        CheckConstraint(INTERNAL_STATUS_CHECK, name="pending_valid_status"),
        CheckConstraint(
            "payment_type IN ('product', 'membership', 'promotion')",
            name="pending_valid_payment_type",
        ),
        Index("idx_pending_status_created", "internal_status", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<PendingPayment(deposit_id={self.deposit_id}, "
            f"amount={self.payment_amount} {self.currency}, status={self.internal_status})>"
        )


class Order(Base):
    """Marketplace order, referenced by ``payment_token``. Owned by the shop."""

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    payment_token: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    payment_status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    payment_method: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    payment_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    status: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    date_payment: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    def __repr__(self) -> str:
        return f"<Order(id={self.id}, token={self.payment_token}, payment_status={self.payment_status})>"


class OrderTransaction(Base):
    """Append-only audit row, one per completed payment for an order."""

    __tablename__ = "order_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), nullable=False, index=True)
    payment_method: Mapped[str] = mapped_column(String(32), nullable=False)
    payment_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class MembershipPayment(Base):
    """Membership purchase awaiting activation, keyed by ``payment_token``."""

    __tablename__ = "membership_payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    payment_token: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    payment_status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
    activated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class VendorEarnings(Base):
    """Amount owed to a vendor, paid out at most once."""

    __tablename__ = "vendor_earnings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vendor_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    available_amount: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="ZMW")
    mno_provider: Mapped[str] = mapped_column(String(64), nullable=False)
    phone_number: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="available")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class VendorPayout(Base):
    """
    Payout of one earnings record to a vendor's mobile-money wallet.

    The unique index on ``earnings_id`` is what guarantees a single payout
    per earnings record under concurrent requests.
    """

    __tablename__ = "vendor_payouts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    payout_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    earnings_id: Mapped[int] = mapped_column(
        ForeignKey("vendor_earnings.id", ondelete="CASCADE"), nullable=False
    )
    vendor_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="ZMW")
    pawapay_status: Mapped[str] = mapped_column(String(32), nullable=False)
    internal_status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        Index("uq_vendor_payouts_earnings_id", "earnings_id", unique=True),
        CheckConstraint(INTERNAL_STATUS_CHECK, name="payout_valid_status"),
    )

    def __repr__(self) -> str:
        return (
            f"<VendorPayout(payout_id={self.payout_id}, earnings_id={self.earnings_id}, "
            f"status={self.internal_status})>"
        )


class WebhookEvent(Base):
    """Every verified gateway callback, used to short-circuit redelivery."""

    __tablename__ = "webhook_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(String(160), unique=True, nullable=False)
    event_type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    payload: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    processed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
