"""Status vocabularies and the payment state machine."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class InternalStatus(str, Enum):
    """Local lifecycle of a pending payment or vendor payout."""

    PENDING = "pending"
    PROCESSING = "processing"
    IN_RECONCILIATION = "in_reconciliation"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({InternalStatus.COMPLETED, InternalStatus.FAILED})


class GatewayStatus(str, Enum):
    """
    Statuses the gateway is known to report.

    The set is open: anything not listed here is treated as unhandled and
    acknowledged without changing local state.
    """

    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    DUPLICATE_IGNORED = "DUPLICATE_IGNORED"
    ENQUEUED = "ENQUEUED"
    PROCESSING = "PROCESSING"
    IN_RECONCILIATION = "IN_RECONCILIATION"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @classmethod
    def parse(cls, value: str) -> Optional[GatewayStatus]:
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


class PaymentType(str, Enum):
    PRODUCT = "product"
    MEMBERSHIP = "membership"
    PROMOTION = "promotion"


# incoming gateway status -> (target internal status, statuses it may leave from)
TRANSITIONS: dict[GatewayStatus, tuple[InternalStatus, frozenset[InternalStatus]]] = {
    GatewayStatus.COMPLETED: (
        InternalStatus.COMPLETED,
        frozenset(
            {InternalStatus.PENDING, InternalStatus.PROCESSING, InternalStatus.IN_RECONCILIATION}
        ),
    ),
    GatewayStatus.FAILED: (
        InternalStatus.FAILED,
        frozenset(
            {InternalStatus.PENDING, InternalStatus.PROCESSING, InternalStatus.IN_RECONCILIATION}
        ),
    ),
    GatewayStatus.IN_RECONCILIATION: (
        InternalStatus.IN_RECONCILIATION,
        frozenset({InternalStatus.PENDING, InternalStatus.PROCESSING}),
    ),
    GatewayStatus.PROCESSING: (
        InternalStatus.PROCESSING,
        frozenset({InternalStatus.PENDING}),
    ),
}


def next_status(
    current: InternalStatus, incoming: GatewayStatus
) -> Optional[InternalStatus]:
    """
    Return the status ``current`` moves to on ``incoming``, or None when the
    event must not change anything.
    """
    rule = TRANSITIONS.get(incoming)
    if rule is None:
        return None
    target, allowed_from = rule
    if current not in allowed_from:
        return None
    return target
