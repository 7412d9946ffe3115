"""Database package: models, connection lifecycle and stores."""
from .connection import Database
from .models import (
    Base,
    MembershipPayment,
    Order,
    OrderTransaction,
    PendingPayment,
    VendorEarnings,
    VendorPayout,
    WebhookEvent,
)
from .stores import (
    EarningsStore,
    MembershipStore,
    OrderStore,
    PayoutStore,
    PendingPaymentStore,
    WebhookEventStore,
)

__all__ = [
    "Base",
    "Database",
    "EarningsStore",
    "MembershipPayment",
    "MembershipStore",
    "Order",
    "OrderStore",
    "OrderTransaction",
    "PayoutStore",
    "PendingPayment",
    "PendingPaymentStore",
    "VendorEarnings",
    "VendorPayout",
    "WebhookEvent",
    "WebhookEventStore",
]
