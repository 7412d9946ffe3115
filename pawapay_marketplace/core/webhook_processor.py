"""
Entry point for gateway callbacks.

Verifies the signature on the raw body, parses it, records it in the
webhook audit log, short-circuits redeliveries and routes deposit and
payout callbacks to their reconcilers.
"""
import json
import time
from typing import Any, Dict, Mapping, Optional, Tuple

import structlog

from pawapay_marketplace.core.exceptions import MalformedPayload, SignatureError
from pawapay_marketplace.core.reconciler import (
    PaymentReconciler,
    PayoutReconciler,
    ReconciliationOutcome,
    ReconciliationResult,
    require_fields,
)
from pawapay_marketplace.core.webhook_verifier import WebhookVerifier
from pawapay_marketplace.database.stores import WebhookEventStore
from pawapay_marketplace.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


def event_identity(payload: Mapping[str, Any]) -> Tuple[str, str, str, str]:
    """
    (kind, id_field, transaction_id, status) for a callback payload.

    Raises:
        MalformedPayload: Required fields missing
    """
    if isinstance(payload, Mapping) and "payoutId" in payload and "depositId" not in payload:
        kind, id_field = "payout", "payoutId"
    else:
        kind, id_field = "deposit", "depositId"
    transaction_id, status = require_fields(payload, id_field)
    return kind, id_field, transaction_id, status


class WebhookProcessor:
    """
    Verified, deduplicated callback handling.

    Example:
        result = await processor.handle(await request.body(), request.headers.get(SIGNATURE_HEADER))
    """

    def __init__(
        self,
        verifier: WebhookVerifier,
        payment_reconciler: PaymentReconciler,
        payout_reconciler: PayoutReconciler,
        events: WebhookEventStore,
    ):
        self.verifier = verifier
        self.payment_reconciler = payment_reconciler
        self.payout_reconciler = payout_reconciler
        self.events = events

    def authenticate(self, raw_body: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify and decode a callback body.

        Raises:
            SignatureError: Signature missing or wrong
            MalformedPayload: Body is not a JSON object
        """
        if not self.verifier.verify(raw_body, signature):
            metrics.record_signature_failure()
            logger.warning(
                "webhook_signature_invalid",
                security_event=True,
                signature_present=bool(signature),
                body_length=len(raw_body) if isinstance(raw_body, (bytes, bytearray)) else None,
            )
            raise SignatureError("Invalid webhook signature")

        try:
            payload = json.loads(raw_body)
        except (ValueError, UnicodeDecodeError) as e:
            raise MalformedPayload("Webhook body is not valid JSON") from e
        if not isinstance(payload, dict):
            raise MalformedPayload("Webhook payload must be a JSON object")
        return payload

    async def handle(self, raw_body: bytes, signature: Optional[str]) -> ReconciliationResult:
        payload = self.authenticate(raw_body, signature)
        return await self.process(payload)

    async def process(self, payload: Mapping[str, Any]) -> ReconciliationResult:
        """
        Reconcile an already authenticated callback.

        Raises:
            MalformedPayload: Required fields missing
            NotFoundError: No local record for the transaction id
        """
        kind, _, transaction_id, status = event_identity(payload)
        event_id = f"{kind}:{transaction_id}:{status.upper()}"
        metrics.record_webhook_received(kind)
        start = time.perf_counter()

        logger.info("processing_webhook_event", event_id=event_id, kind=kind)

        if await self.events.is_processed(event_id):
            logger.info("webhook_event_already_processed", event_id=event_id)
            metrics.record_webhook_event(
                kind, ReconciliationOutcome.DUPLICATE.value, time.perf_counter() - start
            )
            return ReconciliationResult(
                transaction_id=transaction_id,
                kind=kind,
                outcome=ReconciliationOutcome.DUPLICATE,
                previous_status=None,
                current_status=None,
                gateway_status=status,
            )

        await self.events.record(event_id, kind, dict(payload))

        reconciler = self.payout_reconciler if kind == "payout" else self.payment_reconciler
        try:
            result = await reconciler.reconcile(payload)
        except Exception as e:
            metrics.record_webhook_event(kind, "error", time.perf_counter() - start)
            logger.warning(
                "webhook_event_processing_failed",
                event_id=event_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        await self.events.mark_processed(event_id)
        metrics.record_webhook_event(kind, result.outcome.value, time.perf_counter() - start)
        logger.info(
            "webhook_event_processed",
            event_id=event_id,
            outcome=result.outcome.value,
            current_status=result.current_status,
        )
        return result
