"""Deposit initiation: payment form submission to a pending payment."""
import uuid
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

import structlog

from pawapay_marketplace.config import Settings
from pawapay_marketplace.core.exceptions import DepositRejected, PaymentValidationError
from pawapay_marketplace.core.validator import PaymentRequest, PaymentRequestValidator
from pawapay_marketplace.database.stores import PendingPaymentStore
from pawapay_marketplace.domain.money import InvalidAmount, InvalidCurrency, Money
from pawapay_marketplace.domain.phone import normalize_msisdn
from pawapay_marketplace.integrations.pawapay_client import PawaPayClient
from pawapay_marketplace.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DepositSubmission:
    """Raw payment form fields."""

    payment_amount: Any
    currency: str
    msisdn: str
    payment_type: str
    payment_token: str
    provider: Optional[str] = None
    order_items: Optional[Sequence[Any]] = None


@dataclass(frozen=True)
class DepositInitiation:
    deposit_id: str
    status: str
    provider: str
    msisdn: str
    amount: Money


class DepositService:
    """
    Validates a submission, asks the gateway to collect, and records the
    pending payment once the gateway has ACCEPTED it.

    Nothing is written locally before ACCEPTED, so a failed initiation can
    be retried from scratch.
    """

    def __init__(
        self,
        settings: Settings,
        client: PawaPayClient,
        validator: PaymentRequestValidator,
        payments: PendingPaymentStore,
    ):
        self.settings = settings
        self.client = client
        self.validator = validator
        self.payments = payments

    async def resolve_provider(
        self, msisdn: str, explicit: Optional[str], hint: Optional[str]
    ) -> Optional[str]:
        """Explicit choice first, then the gateway's prediction, then the prefix table."""
        if explicit:
            return explicit.strip().upper()
        prediction = await self.client.predict_provider(msisdn)
        if prediction is not None:
            return prediction.provider
        return hint

    def _parse_amount(self, submission: DepositSubmission) -> Money:
        currency = (submission.currency or "").strip().upper()
        if currency not in self.settings.get_supported_currencies():
            supported = ", ".join(self.settings.get_supported_currencies())
            raise PaymentValidationError(
                "UNSUPPORTED_CURRENCY", f"Only {supported} payments are supported at this time."
            )
        try:
            amount = Money.create(submission.payment_amount, currency)
        except (InvalidAmount, InvalidCurrency) as e:
            raise PaymentValidationError("INVALID_AMOUNT", "Invalid payment amount.") from e
        if not amount.is_positive():
            raise PaymentValidationError("INVALID_AMOUNT", "Payment amount must be positive.")
        return amount

    async def initiate(self, submission: DepositSubmission) -> DepositInitiation:
        """
        Start a deposit.

        Raises:
            PaymentValidationError: Any validation rule failed (nothing sent)
            DepositRejected: Gateway did not accept the deposit
            GatewayError: Gateway unreachable or answered garbage
        """
        if not submission.payment_token:
            raise PaymentValidationError("MISSING_PAYMENT_TOKEN", "Missing payment reference.")

        amount = self._parse_amount(submission)

        phone = normalize_msisdn(submission.msisdn, self.settings.default_country)
        if not phone.is_valid or phone.msisdn is None:
            code = phone.error_code.value if phone.error_code else "INVALID_PHONE"
            metrics.record_deposit_initiation("validation_failed", amount.currency)
            raise PaymentValidationError(code, phone.message or "Invalid phone number.")

        provider = await self.resolve_provider(
            phone.msisdn, submission.provider, phone.provider_hint
        )
        if provider is None:
            raise PaymentValidationError(
                "PROVIDER_NOT_FOUND",
                "Unable to determine your mobile money provider. Please check the number.",
            )

        outcome = await self.validator.validate(
            PaymentRequest(
                amount=amount,
                msisdn=phone.msisdn,
                operator=provider,
                payment_type=submission.payment_type,
                order_items=submission.order_items,
            )
        )
        if not outcome.ok:
            metrics.record_deposit_initiation("validation_failed", amount.currency)
            logger.info(
                "deposit_validation_failed",
                code=outcome.code.value if outcome.code else None,
                payment_token=submission.payment_token,
            )
            outcome.raise_for_failure()

        deposit_id = str(uuid.uuid4())
        metadata: List[dict] = [
            {"paymentToken": submission.payment_token},
            {"paymentType": submission.payment_type},
        ]
        response = await self.client.initiate_deposit(
            deposit_id, amount, provider, phone.msisdn, metadata=metadata
        )
        metrics.record_deposit_initiation(response.status, amount.currency)

        if not response.accepted:
            logger.warning(
                "deposit_not_accepted",
                deposit_id=deposit_id,
                status=response.status,
                failure_code=response.failure_code,
                failure_message=response.failure_message,
            )
            raise DepositRejected(response.status, response.failure_message)

        try:
            await self.payments.create(
                deposit_id=deposit_id,
                payment_token=submission.payment_token,
                payment_type=submission.payment_type,
                amount=amount,
                provider=provider,
                msisdn=phone.msisdn,
                pawapay_status=response.status,
            )
        except Exception as e:
            # Accepted upstream but not recorded: the callback will 404
            logger.error(
                "pending_payment_write_failed",
                deposit_id=deposit_id,
                payment_token=submission.payment_token,
                integrity_concern=True,
                error=str(e),
            )
            raise

        metrics.record_deposit_amount(amount.currency, float(amount.amount))
        logger.info(
            "deposit_initiated",
            deposit_id=deposit_id,
            provider=provider,
            amount=str(amount),
        )
        return DepositInitiation(
            deposit_id=deposit_id,
            status=response.status,
            provider=provider,
            msisdn=phone.msisdn,
            amount=amount,
        )
