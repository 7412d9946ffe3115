"""
Service wiring.

Every collaborator is built once per application by ``build_services`` and
kept on ``app.state.services``; route handlers receive it through
``get_services``.
"""
import hmac
from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import Header, HTTPException, Request, status

from pawapay_marketplace.config import Settings
from pawapay_marketplace.core.deposits import DepositService
from pawapay_marketplace.core.operator_directory import OperatorDirectory
from pawapay_marketplace.core.payouts import PayoutService
from pawapay_marketplace.core.reconciler import PaymentReconciler, PayoutReconciler
from pawapay_marketplace.core.validator import PaymentRequestValidator
from pawapay_marketplace.core.webhook_processor import WebhookProcessor
from pawapay_marketplace.core.webhook_verifier import WebhookVerifier
from pawapay_marketplace.database.connection import Database
from pawapay_marketplace.database.stores import (
    EarningsStore,
    MembershipStore,
    OrderStore,
    PayoutStore,
    PendingPaymentStore,
    WebhookEventStore,
)
from pawapay_marketplace.integrations.pawapay_client import PawaPayClient
from pawapay_marketplace.monitoring.health import HealthCheck


@dataclass
class Services:
    settings: Settings
    database: Database
    client: PawaPayClient
    directory: OperatorDirectory
    payments: PendingPaymentStore
    payment_reconciler: PaymentReconciler
    webhooks: WebhookProcessor
    deposits: DepositService
    payouts: PayoutService
    health: HealthCheck

    async def aclose(self) -> None:
        await self.client.aclose()
        await self.database.dispose()


def build_services(
    settings: Settings,
    database: Optional[Database] = None,
    client: Optional[PawaPayClient] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> Services:
    """Construct the object graph for one process."""
    database = database or Database(settings.database_url, echo=settings.database_echo)
    client = client or PawaPayClient(settings, http_client=http_client)

    payments = PendingPaymentStore(database)
    orders = OrderStore(database)
    earnings = EarningsStore(database)
    payout_store = PayoutStore(database)

    directory = OperatorDirectory(
        client,
        country=settings.default_country,
        ttl_seconds=settings.operator_cache_ttl_seconds,
    )
    validator = PaymentRequestValidator(
        directory, configured_limits=settings.get_transaction_limits()
    )
    payment_reconciler = PaymentReconciler(payments, orders, MembershipStore(database))
    webhooks = WebhookProcessor(
        WebhookVerifier(settings.pawapay_webhook_secret),
        payment_reconciler,
        PayoutReconciler(payout_store, earnings),
        WebhookEventStore(database),
    )

    return Services(
        settings=settings,
        database=database,
        client=client,
        directory=directory,
        payments=payments,
        payment_reconciler=payment_reconciler,
        webhooks=webhooks,
        deposits=DepositService(settings, client, validator, payments),
        payouts=PayoutService(
            client, earnings, payout_store, customer_message=settings.payout_customer_message
        ),
        health=HealthCheck(database, directory),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def require_admin(
    request: Request,
    x_admin_token: Optional[str] = Header(default=None),
    x_admin_user_id: Optional[int] = Header(default=None),
) -> int:
    """
    Authorize an admin call and return the acting user id.

    Raises:
        HTTPException: 403 when the admin API is disabled or the token is wrong
    """
    expected = get_services(request).settings.admin_api_token
    if not expected:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin API disabled")
    if not x_admin_token or not hmac.compare_digest(
        x_admin_token.encode("utf-8"), expected.encode("utf-8")
    ):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid admin token")
    return x_admin_user_id or 1
