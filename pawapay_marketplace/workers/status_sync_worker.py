"""
Deposit status sync worker.

Callbacks can be lost. Every few minutes this worker asks the gateway about
deposits that are still non-terminal after ``stale_deposit_minutes`` and
feeds the answer through the same reconciler the webhook uses.
"""
import asyncio
import signal
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import structlog

from pawapay_marketplace.config import Settings, get_settings
from pawapay_marketplace.core.reconciler import PaymentReconciler, ReconciliationOutcome
from pawapay_marketplace.database.stores import PendingPaymentStore
from pawapay_marketplace.integrations.pawapay_client import PawaPayClient
from pawapay_marketplace.monitoring.logging import setup_logging
from pawapay_marketplace.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


async def sync_stale_deposits(
    payments: PendingPaymentStore,
    client: PawaPayClient,
    reconciler: PaymentReconciler,
    stale_minutes: int,
    now: Optional[datetime] = None,
    limit: int = 100,
) -> Dict[str, int]:
    """
    Reconcile non-terminal deposits older than ``stale_minutes``.

    Each deposit is handled on its own; a failure is logged and counted and
    the run moves on.

    Returns:
        dict: checked, applied, unchanged, not_found and failed counts
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(minutes=stale_minutes)
    counts = {"checked": 0, "applied": 0, "unchanged": 0, "not_found": 0, "failed": 0}

    for payment in await payments.list_stale(cutoff, limit=limit):
        counts["checked"] += 1
        log = logger.bind(deposit_id=payment.deposit_id)
        try:
            gateway_status = await client.check_deposit_status(payment.deposit_id)
            if not gateway_status.found or not gateway_status.status:
                counts["not_found"] += 1
                log.warning("stale_deposit_not_found_upstream")
                continue

            payload = gateway_status.as_callback("depositId")
            payload["depositId"] = payment.deposit_id
            result = await reconciler.reconcile(payload)
        except Exception as e:
            counts["failed"] += 1
            log.error("stale_deposit_sync_failed", error=str(e), error_type=type(e).__name__)
            continue

        if result.outcome == ReconciliationOutcome.APPLIED:
            counts["applied"] += 1
            log.info(
                "stale_deposit_reconciled",
                previous_status=result.previous_status,
                current_status=result.current_status,
            )
        else:
            counts["unchanged"] += 1

    metrics.record_status_sync("failed" if counts["failed"] else "success")
    logger.info("status_sync_completed", **counts)
    return counts


async def start_status_sync_worker(settings: Optional[Settings] = None) -> None:
    """
    Run ``sync_stale_deposits`` every ``status_sync_interval_seconds`` until signalled.
    """
    # imported here so the API package is only loaded by the worker entry point
    from pawapay_marketplace.api.dependencies import build_services

    settings = settings or get_settings()
    setup_logging(settings)
    services = build_services(settings)

    logger.info(
        "status_sync_worker_starting",
        interval_seconds=settings.status_sync_interval_seconds,
        stale_minutes=settings.stale_deposit_minutes,
    )

    stop = asyncio.Event()

    def signal_handler(sig: int, frame: Any) -> None:
        logger.info("status_sync_worker_shutdown_signal_received", signal=sig)
        stop.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        while not stop.is_set():
            try:
                await sync_stale_deposits(
                    services.payments,
                    services.client,
                    services.payment_reconciler,
                    settings.stale_deposit_minutes,
                )
            except Exception as e:
                metrics.record_status_sync("error")
                logger.error("status_sync_run_error", error=str(e))

            try:
                await asyncio.wait_for(stop.wait(), timeout=settings.status_sync_interval_seconds)
            except asyncio.TimeoutError:
                pass
    finally:
        await services.aclose()
        logger.info("status_sync_worker_stopped")


def main() -> None:
    asyncio.run(start_status_sync_worker())


if __name__ == "__main__":
    main()
