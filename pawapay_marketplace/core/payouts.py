"""Vendor payouts from available earnings."""
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

import structlog

from pawapay_marketplace.core.exceptions import (
    EarningsNotFound,
    PaymentGatewayError,
    PayoutAlreadyInitiated,
    PayoutNotFound,
    PayoutRejected,
)
from pawapay_marketplace.database.models import VendorPayout
from pawapay_marketplace.database.stores import EarningsStore, PayoutStore
from pawapay_marketplace.domain.money import Money
from pawapay_marketplace.integrations.pawapay_client import PawaPayClient, StatusResponse
from pawapay_marketplace.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


@dataclass
class BulkPayoutSummary:
    successful: List[int] = field(default_factory=list)
    failed: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"successful": list(self.successful), "failed": list(self.failed)}


class PayoutService:
    """
    Pays out one earnings record at most once.

    The existence check avoids a needless gateway call; the unique index on
    ``vendor_payouts.earnings_id`` settles concurrent requests.
    """

    def __init__(
        self,
        client: PawaPayClient,
        earnings: EarningsStore,
        payouts: PayoutStore,
        customer_message: str = "Payout from Myzuwa.com",
    ):
        self.client = client
        self.earnings = earnings
        self.payouts = payouts
        self.customer_message = customer_message

    async def process_payout(self, earnings_id: int, actor_id: int) -> VendorPayout:
        """
        Initiate the payout for one earnings record.

        Args:
            earnings_id: vendor_earnings.id, must be ``available``
            actor_id: Admin user initiating the payout

        Returns:
            VendorPayout: The recorded payout

        Raises:
            EarningsNotFound: Earnings missing or not available
            PayoutAlreadyInitiated: A payout already exists (no gateway call)
            PayoutRejected: Gateway did not accept the payout
            GatewayError: Gateway unreachable
        """
        log = logger.bind(earnings_id=earnings_id, actor_id=actor_id)

        earnings = await self.earnings.get_available(earnings_id)
        if earnings is None:
            metrics.record_payout("not_found")
            log.warning("earnings_not_available")
            raise EarningsNotFound(earnings_id)

        if await self.payouts.exists_for_earnings(earnings_id):
            metrics.record_payout("conflict")
            log.warning("payout_already_initiated")
            raise PayoutAlreadyInitiated(earnings_id)

        amount = Money.create(earnings.available_amount, earnings.currency)
        payout_id = str(uuid.uuid4())
        response = await self.client.initiate_payout(
            payout_id,
            amount,
            earnings.mno_provider,
            earnings.phone_number,
            customer_message=self.customer_message,
        )
        metrics.record_payout(response.status)

        if not response.accepted:
            log.warning(
                "payout_not_accepted",
                payout_id=payout_id,
                status=response.status,
                failure_message=response.failure_message,
            )
            raise PayoutRejected(response.status, response.failure_message)

        payout = await self.payouts.create(
            payout_id=payout_id,
            earnings=earnings,
            amount=amount,
            pawapay_status=response.status,
            created_by=actor_id,
        )
        log.info(
            "payout_initiated",
            payout_id=payout_id,
            vendor_id=earnings.vendor_id,
            amount=str(amount),
        )
        return payout

    async def process_bulk_payouts(
        self, earnings_ids: Iterable[int], actor_id: int
    ) -> BulkPayoutSummary:
        """Process each earnings record independently; one failure never stops the batch."""
        summary = BulkPayoutSummary()
        for earnings_id in earnings_ids:
            try:
                await self.process_payout(earnings_id, actor_id)
            except PaymentGatewayError as e:
                summary.failed.append({"earnings_id": earnings_id, "error": e.user_message})
            except Exception as e:
                metrics.record_payout("error")
                logger.error(
                    "bulk_payout_item_failed",
                    earnings_id=earnings_id,
                    error=str(e),
                    exc_info=True,
                )
                summary.failed.append({"earnings_id": earnings_id, "error": str(e)})
            else:
                summary.successful.append(earnings_id)

        logger.info(
            "bulk_payout_completed",
            successful=len(summary.successful),
            failed=len(summary.failed),
        )
        return summary

    async def check_payout_status(self, payout_id: str) -> StatusResponse:
        """
        Raises:
            PayoutNotFound: The gateway has no such payout
        """
        status = await self.client.check_payout_status(payout_id)
        if not status.found:
            raise PayoutNotFound(payout_id)
        return status

    async def resend_callback(self, payout_id: str) -> Dict[str, Any]:
        return await self.client.resend_payout_callback(payout_id)

    async def cancel_enqueued(self, payout_id: str) -> Dict[str, Any]:
        return await self.client.cancel_enqueued_payout(payout_id)
