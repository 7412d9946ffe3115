"""
Reconciliation of gateway callbacks against local payment records.

Callbacks arrive at least once, in any order. Each one is handled on its
own:

1. terminal records (completed/failed) are never touched again;
2. the status write is a single conditional UPDATE, and only the caller
   whose UPDATE changed a row runs the side effects;
3. side effects (order, transaction row, membership) commit separately,
   and a failure in one is logged without undoing the others.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Tuple, TypeVar, Union

import structlog

from pawapay_marketplace.core.exceptions import MalformedPayload, PaymentNotFound, PayoutNotFound
from pawapay_marketplace.database.models import utcnow
from pawapay_marketplace.database.stores import (
    EarningsStore,
    MembershipStore,
    OrderStore,
    PayoutStore,
    PendingPaymentStore,
)
from pawapay_marketplace.domain.money import Money
from pawapay_marketplace.domain.statuses import (
    TRANSITIONS,
    GatewayStatus,
    InternalStatus,
    PaymentType,
    next_status,
)
from pawapay_marketplace.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class ReconciliationOutcome(str, Enum):
    APPLIED = "applied"  # status changed, side effects attempted
    DUPLICATE = "duplicate"  # record already terminal, or another delivery won
    IGNORED = "ignored"  # known status with no transition from the current state
    UNHANDLED = "unhandled"  # status string we do not recognise


@dataclass
class ReconciliationResult:
    transaction_id: str
    kind: str
    outcome: ReconciliationOutcome
    previous_status: Optional[str]
    current_status: Optional[str]
    gateway_status: str
    side_effects: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transaction_id": self.transaction_id,
            "kind": self.kind,
            "outcome": self.outcome.value,
            "previous_status": self.previous_status,
            "current_status": self.current_status,
            "gateway_status": self.gateway_status,
            "side_effects": dict(self.side_effects),
        }


def require_fields(payload: Any, id_field: str) -> Tuple[str, str]:
    """
    Pull the transaction id and status out of a callback payload.

    Raises:
        MalformedPayload: Missing, empty or non-string fields
    """
    if not isinstance(payload, Mapping):
        raise MalformedPayload("Webhook payload must be a JSON object")
    transaction_id = payload.get(id_field)
    status = payload.get("status")
    if not isinstance(transaction_id, str) or not transaction_id.strip():
        raise MalformedPayload(f"Missing required field: {id_field}")
    if not isinstance(status, str) or not status.strip():
        raise MalformedPayload("Missing required field: status")
    return transaction_id.strip(), status.strip()


def failure_details(payload: Mapping[str, Any]) -> Tuple[Optional[str], Optional[str]]:
    """(failure_message, failure_code) from ``failureReason``."""
    reason = payload.get("failureReason")
    if isinstance(reason, Mapping):
        message = reason.get("failureMessage")
        code = reason.get("failureCode")
        return (
            str(message) if message is not None else (str(code) if code is not None else None),
            str(code) if code is not None else None,
        )
    if isinstance(reason, str) and reason:
        return reason, None
    return None, None


class _Reconciler:
    kind = ""

    async def _side_effect(
        self, step: str, transaction_id: str, operation: Callable[[], Awaitable[T]]
    ) -> Optional[T]:
        """Run one side effect; on error log it and return None."""
        try:
            return await operation()
        except Exception as e:
            metrics.record_side_effect_failure(step)
            logger.error(
                "reconciliation_side_effect_failed",
                step=step,
                kind=self.kind,
                transaction_id=transaction_id,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return None

    def _no_change(
        self,
        transaction_id: str,
        outcome: ReconciliationOutcome,
        current: str,
        raw_status: str,
    ) -> ReconciliationResult:
        return ReconciliationResult(
            transaction_id=transaction_id,
            kind=self.kind,
            outcome=outcome,
            previous_status=current,
            current_status=current,
            gateway_status=raw_status,
        )

    def _classify(
        self, transaction_id: str, current: InternalStatus, raw_status: str
    ) -> Union[Tuple[GatewayStatus, InternalStatus], ReconciliationResult]:
        """Resolve the gateway and target statuses, or the no-op result when there is none."""
        if current.is_terminal:
            logger.info(
                "webhook_replay_ignored",
                kind=self.kind,
                transaction_id=transaction_id,
                internal_status=current.value,
                gateway_status=raw_status,
            )
            return self._no_change(
                transaction_id, ReconciliationOutcome.DUPLICATE, current.value, raw_status
            )

        incoming = GatewayStatus.parse(raw_status)
        if incoming is None:
            logger.warning(
                "webhook_status_unhandled",
                kind=self.kind,
                transaction_id=transaction_id,
                gateway_status=raw_status,
            )
            return self._no_change(
                transaction_id, ReconciliationOutcome.UNHANDLED, current.value, raw_status
            )

        target = next_status(current, incoming)
        if target is None:
            logger.info(
                "webhook_transition_ignored",
                kind=self.kind,
                transaction_id=transaction_id,
                internal_status=current.value,
                gateway_status=incoming.value,
            )
            return self._no_change(
                transaction_id, ReconciliationOutcome.IGNORED, current.value, raw_status
            )
        return incoming, target


class PaymentReconciler(_Reconciler):
    """
    Drives a pending deposit and its order/membership through the state machine.

    Example:
        result = await reconciler.reconcile({"depositId": "D1", "status": "COMPLETED"})
        assert result.outcome is ReconciliationOutcome.APPLIED
    """

    kind = "deposit"

    def __init__(
        self,
        payments: PendingPaymentStore,
        orders: OrderStore,
        memberships: MembershipStore,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.payments = payments
        self.orders = orders
        self.memberships = memberships
        self._clock = clock

    async def reconcile(self, payload: Mapping[str, Any]) -> ReconciliationResult:
        """
        Apply one verified deposit callback.

        Raises:
            MalformedPayload: depositId or status missing
            PaymentNotFound: No pending payment for depositId
        """
        deposit_id, raw_status = require_fields(payload, "depositId")
        log = logger.bind(deposit_id=deposit_id, gateway_status=raw_status)

        payment = await self.payments.get_by_deposit_id(deposit_id)
        if payment is None:
            log.error("pending_payment_not_found", integrity_concern=True)
            raise PaymentNotFound(deposit_id)

        current = InternalStatus(payment.internal_status)
        decision = self._classify(deposit_id, current, raw_status)
        if isinstance(decision, ReconciliationResult):
            return decision
        incoming, target = decision

        failure_message, failure_code = (
            failure_details(payload) if target is InternalStatus.FAILED else (None, None)
        )
        changed = await self.payments.transition(
            deposit_id,
            target,
            allowed_from=TRANSITIONS[incoming][1],
            pawapay_status=incoming.value,
            failure_reason=failure_message,
            failure_code=failure_code,
        )
        if not changed:
            # A concurrent delivery moved the record first
            log.info("webhook_transition_lost_race", attempted_status=target.value)
            latest = await self.payments.get_by_deposit_id(deposit_id)
            return self._no_change(
                deposit_id,
                ReconciliationOutcome.DUPLICATE,
                latest.internal_status if latest else current.value,
                raw_status,
            )

        log.info(
            "pending_payment_transitioned",
            previous_status=current.value,
            new_status=target.value,
        )

        side_effects: Dict[str, str] = {}
        if target is InternalStatus.COMPLETED:
            amount = Money.create(payment.payment_amount, payment.currency)
            await self._complete_order(payment.payment_token, deposit_id, amount, side_effects)
            if payment.payment_type == PaymentType.MEMBERSHIP.value:
                await self._activate_membership(payment.payment_token, deposit_id, side_effects)
        elif target is InternalStatus.FAILED:
            await self._fail_order(payment.payment_token, deposit_id, side_effects)

        return ReconciliationResult(
            transaction_id=deposit_id,
            kind=self.kind,
            outcome=ReconciliationOutcome.APPLIED,
            previous_status=current.value,
            current_status=target.value,
            gateway_status=raw_status,
            side_effects=side_effects,
        )

    async def _complete_order(
        self, payment_token: str, deposit_id: str, amount: Money, side_effects: Dict[str, str]
    ) -> None:
        paid_at = self._clock()
        rows = await self._side_effect(
            "order_update",
            deposit_id,
            lambda: self.orders.mark_payment(payment_token, "received", deposit_id, 1, paid_at),
        )
        if rows is None:
            side_effects["order_update"] = "failed"
            side_effects["order_transaction"] = "skipped"
            return
        side_effects["order_update"] = "applied" if rows else "skipped"
        if not rows:
            side_effects["order_transaction"] = "skipped"
            logger.info("order_not_updated", deposit_id=deposit_id, payment_token=payment_token)
            return

        transaction_id = await self._side_effect(
            "order_transaction",
            deposit_id,
            lambda: self._append_transaction(payment_token, deposit_id, amount),
        )
        side_effects["order_transaction"] = "applied" if transaction_id else "failed"

    async def _append_transaction(
        self, payment_token: str, deposit_id: str, amount: Money
    ) -> Optional[int]:
        order_id = await self.orders.get_order_id(payment_token)
        if order_id is None:
            return None
        transaction_id = await self.orders.append_transaction(
            order_id, deposit_id, amount, "completed"
        )
        logger.info(
            "order_transaction_recorded",
            deposit_id=deposit_id,
            order_id=order_id,
            amount=str(amount),
        )
        return transaction_id

    async def _activate_membership(
        self, payment_token: str, deposit_id: str, side_effects: Dict[str, str]
    ) -> None:
        activated_at = self._clock()
        rows = await self._side_effect(
            "membership_activation",
            deposit_id,
            lambda: self.memberships.activate(payment_token, activated_at),
        )
        if rows is None:
            side_effects["membership_activation"] = "failed"
        else:
            side_effects["membership_activation"] = "applied" if rows else "skipped"

    async def _fail_order(
        self, payment_token: str, deposit_id: str, side_effects: Dict[str, str]
    ) -> None:
        failed_at = self._clock()
        rows = await self._side_effect(
            "order_update",
            deposit_id,
            lambda: self.orders.mark_payment(payment_token, "failed", deposit_id, 0, failed_at),
        )
        if rows is None:
            side_effects["order_update"] = "failed"
        else:
            side_effects["order_update"] = "applied" if rows else "skipped"


class PayoutReconciler(_Reconciler):
    """Same state machine for vendor payouts; completion consumes the earnings."""

    kind = "payout"

    def __init__(self, payouts: PayoutStore, earnings: EarningsStore):
        self.payouts = payouts
        self.earnings = earnings

    async def reconcile(self, payload: Mapping[str, Any]) -> ReconciliationResult:
        """
        Apply one verified payout callback.

        Raises:
            MalformedPayload: payoutId or status missing
            PayoutNotFound: No vendor payout for payoutId
        """
        payout_id, raw_status = require_fields(payload, "payoutId")
        log = logger.bind(payout_id=payout_id, gateway_status=raw_status)

        payout = await self.payouts.get_by_payout_id(payout_id)
        if payout is None:
            log.error("vendor_payout_not_found", integrity_concern=True)
            raise PayoutNotFound(payout_id)

        current = InternalStatus(payout.internal_status)
        decision = self._classify(payout_id, current, raw_status)
        if isinstance(decision, ReconciliationResult):
            return decision
        incoming, target = decision

        failure_message = None
        if target is InternalStatus.FAILED:
            failure_message, _ = failure_details(payload)
        changed = await self.payouts.transition(
            payout_id,
            target,
            allowed_from=TRANSITIONS[incoming][1],
            pawapay_status=incoming.value,
            failure_reason=failure_message,
        )
        if not changed:
            log.info("webhook_transition_lost_race", attempted_status=target.value)
            latest = await self.payouts.get_by_payout_id(payout_id)
            return self._no_change(
                payout_id,
                ReconciliationOutcome.DUPLICATE,
                latest.internal_status if latest else current.value,
                raw_status,
            )

        log.info("vendor_payout_transitioned", previous_status=current.value, new_status=target.value)

        side_effects: Dict[str, str] = {}
        if target is InternalStatus.COMPLETED:
            rows = await self._side_effect(
                "earnings_update",
                payout_id,
                lambda: self.earnings.mark_paid(payout.earnings_id),
            )
            if rows is None:
                side_effects["earnings_update"] = "failed"
            else:
                side_effects["earnings_update"] = "applied" if rows else "skipped"

        return ReconciliationResult(
            transaction_id=payout_id,
            kind=self.kind,
            outcome=ReconciliationOutcome.APPLIED,
            previous_status=current.value,
            current_status=target.value,
            gateway_status=raw_status,
            side_effects=side_effects,
        )
