"""
Persistence operations used by the payment services.

Each method runs in its own session and commits on its own. Status writes
are single conditional UPDATE statements, so the affected row count tells
the caller whether it won the transition.
"""
from collections.abc import Collection
from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError

from pawapay_marketplace.core.exceptions import PayoutAlreadyInitiated
from pawapay_marketplace.database.connection import Database
from pawapay_marketplace.database.models import (
    MembershipPayment,
    Order,
    OrderTransaction,
    PendingPayment,
    VendorEarnings,
    VendorPayout,
    WebhookEvent,
    utcnow,
)
from pawapay_marketplace.domain.money import Money
from pawapay_marketplace.domain.statuses import TERMINAL_STATUSES, InternalStatus

logger = structlog.get_logger(__name__)

PAYMENT_METHOD = "pawapay"


def _status_values(statuses: Collection[InternalStatus]) -> List[str]:
    return sorted(s.value for s in statuses)


class PendingPaymentStore:
    """Deposits accepted by the gateway, keyed by ``deposit_id``."""

    def __init__(self, database: Database):
        self.database = database

    async def create(
        self,
        deposit_id: str,
        payment_token: str,
        payment_type: str,
        amount: Money,
        provider: Optional[str] = None,
        msisdn: Optional[str] = None,
        pawapay_status: str = "ACCEPTED",
    ) -> PendingPayment:
        payment = PendingPayment(
            deposit_id=deposit_id,
            payment_token=payment_token,
            payment_type=payment_type,
            currency=amount.currency,
            payment_amount=amount.amount,
            provider=provider,
            msisdn=msisdn,
            internal_status=InternalStatus.PENDING.value,
            pawapay_status=pawapay_status,
        )
        async with self.database.session() as session:
            session.add(payment)
        return payment

    async def get_by_deposit_id(self, deposit_id: str) -> Optional[PendingPayment]:
        async with self.database.session() as session:
            result = await session.execute(
                select(PendingPayment).where(PendingPayment.deposit_id == deposit_id)
            )
            return result.scalar_one_or_none()

    async def transition(
        self,
        deposit_id: str,
        target: InternalStatus,
        allowed_from: Collection[InternalStatus],
        pawapay_status: str,
        failure_reason: Optional[str] = None,
        failure_code: Optional[str] = None,
    ) -> int:
        """
        Move a payment to ``target`` if it is currently in ``allowed_from``.

        Returns:
            int: 1 if this call made the transition, 0 otherwise
        """
        values: Dict[str, Any] = {
            "internal_status": target.value,
            "pawapay_status": pawapay_status,
            "updated_at": utcnow(),
        }
        if failure_reason is not None:
            values["failure_reason"] = failure_reason
        if failure_code is not None:
            values["failure_code"] = failure_code

        async with self.database.session() as session:
            result = await session.execute(
                update(PendingPayment)
                .where(
                    PendingPayment.deposit_id == deposit_id,
                    PendingPayment.internal_status.in_(_status_values(allowed_from)),
                )
                .values(**values)
            )
            return result.rowcount

    async def list_stale(self, older_than: datetime, limit: int = 100) -> List[PendingPayment]:
        """Non-terminal payments created before ``older_than``, oldest first."""
        async with self.database.session() as session:
            result = await session.execute(
                select(PendingPayment)
                .where(
                    PendingPayment.internal_status.not_in(_status_values(TERMINAL_STATUSES)),
                    PendingPayment.created_at < older_than,
                )
                .order_by(PendingPayment.created_at)
                .limit(limit)
            )
            return list(result.scalars().all())


class OrderStore:
    """Marketplace orders and their transaction audit trail."""

    def __init__(self, database: Database):
        self.database = database

    async def mark_payment(
        self,
        payment_token: str,
        payment_status: str,
        deposit_id: str,
        status_flag: int,
        paid_at: datetime,
    ) -> int:
        """
        Record the payment outcome on the order.

        Orders already ``received`` and orders already in ``payment_status``
        are left alone, so the row count is 0 on a repeat.
        """
        async with self.database.session() as session:
            result = await session.execute(
                update(Order)
                .where(
                    Order.payment_token == payment_token,
                    or_(
                        Order.payment_status.is_(None),
                        Order.payment_status.not_in(["received", payment_status]),
                    ),
                )
                .values(
                    payment_status=payment_status,
                    payment_method=PAYMENT_METHOD,
                    payment_id=deposit_id,
                    status=status_flag,
                    date_payment=paid_at,
                )
            )
            return result.rowcount

    async def get_order_id(self, payment_token: str) -> Optional[int]:
        async with self.database.session() as session:
            result = await session.execute(
                select(Order.id).where(Order.payment_token == payment_token)
            )
            return result.scalar_one_or_none()

    async def append_transaction(
        self, order_id: int, deposit_id: str, amount: Money, status: str
    ) -> int:
        transaction = OrderTransaction(
            order_id=order_id,
            payment_method=PAYMENT_METHOD,
            payment_id=deposit_id,
            amount=amount.amount,
            currency=amount.currency,
            status=status,
        )
        async with self.database.session() as session:
            session.add(transaction)
            await session.flush()
            return transaction.id

    async def count_transactions(self, deposit_id: str) -> int:
        async with self.database.session() as session:
            result = await session.execute(
                select(func.count())
                .select_from(OrderTransaction)
                .where(OrderTransaction.payment_id == deposit_id)
            )
            return result.scalar_one()


class MembershipStore:
    def __init__(self, database: Database):
        self.database = database

    async def activate(self, payment_token: str, activated_at: datetime) -> int:
        """Mark the membership paid. Returns 0 if it was already active."""
        async with self.database.session() as session:
            result = await session.execute(
                update(MembershipPayment)
                .where(
                    MembershipPayment.payment_token == payment_token,
                    MembershipPayment.payment_status != "paid",
                )
                .values(payment_status="paid", activated_at=activated_at)
            )
            return result.rowcount


class EarningsStore:
    def __init__(self, database: Database):
        self.database = database

    async def get_available(self, earnings_id: int) -> Optional[VendorEarnings]:
        async with self.database.session() as session:
            result = await session.execute(
                select(VendorEarnings).where(
                    VendorEarnings.id == earnings_id,
                    VendorEarnings.status == "available",
                )
            )
            return result.scalar_one_or_none()

    async def mark_paid(self, earnings_id: int) -> int:
        async with self.database.session() as session:
            result = await session.execute(
                update(VendorEarnings)
                .where(VendorEarnings.id == earnings_id, VendorEarnings.status == "available")
                .values(status="paid")
            )
            return result.rowcount


class PayoutStore:
    """Vendor payouts. At most one per earnings record."""

    def __init__(self, database: Database):
        self.database = database

    async def exists_for_earnings(self, earnings_id: int) -> bool:
        async with self.database.session() as session:
            result = await session.execute(
                select(func.count())
                .select_from(VendorPayout)
                .where(VendorPayout.earnings_id == earnings_id)
            )
            return result.scalar_one() > 0

    async def create(
        self,
        payout_id: str,
        earnings: VendorEarnings,
        amount: Money,
        pawapay_status: str,
        created_by: int,
    ) -> VendorPayout:
        """
        Insert the payout record.

        Raises:
            PayoutAlreadyInitiated: Another payout holds this earnings record
        """
        payout = VendorPayout(
            payout_id=payout_id,
            earnings_id=earnings.id,
            vendor_id=earnings.vendor_id,
            amount=amount.amount,
            currency=amount.currency,
            pawapay_status=pawapay_status,
            internal_status=InternalStatus.PENDING.value,
            created_by=created_by,
        )
        try:
            async with self.database.session() as session:
                session.add(payout)
        except IntegrityError as e:
            logger.warning(
                "vendor_payout_unique_violation",
                payout_id=payout_id,
                earnings_id=earnings.id,
                error=str(e.orig),
            )
            raise PayoutAlreadyInitiated(earnings.id) from e
        return payout

    async def get_by_payout_id(self, payout_id: str) -> Optional[VendorPayout]:
        async with self.database.session() as session:
            result = await session.execute(
                select(VendorPayout).where(VendorPayout.payout_id == payout_id)
            )
            return result.scalar_one_or_none()

    async def transition(
        self,
        payout_id: str,
        target: InternalStatus,
        allowed_from: Collection[InternalStatus],
        pawapay_status: str,
        failure_reason: Optional[str] = None,
    ) -> int:
        values: Dict[str, Any] = {
            "internal_status": target.value,
            "pawapay_status": pawapay_status,
            "updated_at": utcnow(),
        }
        if failure_reason is not None:
            values["failure_reason"] = failure_reason

        async with self.database.session() as session:
            result = await session.execute(
                update(VendorPayout)
                .where(
                    VendorPayout.payout_id == payout_id,
                    VendorPayout.internal_status.in_(_status_values(allowed_from)),
                )
                .values(**values)
            )
            return result.rowcount


class WebhookEventStore:
    """Audit log of verified callbacks, keyed by a derived ``event_id``."""

    def __init__(self, database: Database):
        self.database = database

    async def record(self, event_id: str, event_type: str, payload: Dict[str, Any]) -> bool:
        """
        Store the event if it is new.

        Returns:
            bool: False when ``event_id`` was already recorded
        """
        try:
            async with self.database.session() as session:
                session.add(
                    WebhookEvent(event_id=event_id, event_type=event_type, payload=payload)
                )
        except IntegrityError:
            return False
        return True

    async def is_processed(self, event_id: str) -> bool:
        async with self.database.session() as session:
            result = await session.execute(
                select(WebhookEvent.processed).where(WebhookEvent.event_id == event_id)
            )
            return bool(result.scalar_one_or_none())

    async def mark_processed(self, event_id: str) -> int:
        async with self.database.session() as session:
            result = await session.execute(
                update(WebhookEvent)
                .where(WebhookEvent.event_id == event_id, WebhookEvent.processed.is_(False))
                .values(processed=True, processed_at=utcnow())
            )
            return result.rowcount
