"""
Tests for deposit initiation.
"""
import json
from typing import Any, Dict

import pytest

from pawapay_marketplace.api.dependencies import Services
from pawapay_marketplace.core.deposits import DepositSubmission
from pawapay_marketplace.core.exceptions import (
    DepositRejected,
    GatewayError,
    PaymentValidationError,
)
from pawapay_marketplace.database.stores import PendingPaymentStore
from pawapay_marketplace.domain.phone import PhoneValidationResult


def _submission(data: Dict[str, Any], **overrides: Any) -> DepositSubmission:
    fields = dict(data)
    fields.update(overrides)
    return DepositSubmission(**fields)


class TestDepositService:
    """Test suite for turning a payment form into a pending payment."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_accepted_deposit_is_recorded(
        self, services: Services, fake_gateway: Any, sample_payment_data: Dict[str, Any]
    ) -> None:
        """Test an accepted deposit creates a pending payment with the normalized number."""
        initiation = await services.deposits.initiate(_submission(sample_payment_data))

        assert initiation.status == "ACCEPTED"
        assert initiation.msisdn == "260961234567"
        assert initiation.provider == "MTN_MOMO_ZMB"

        payment = await services.payments.get_by_deposit_id(initiation.deposit_id)
        assert payment is not None
        assert payment.internal_status == "pending"
        assert payment.payment_token == "ord_100"
        assert payment.msisdn == "260961234567"

        request = fake_gateway.calls("POST", "/v2/deposits")[0]
        body = json.loads(request.content)
        assert body["depositId"] == initiation.deposit_id
        assert body["amount"] == "100.00"
        assert request.headers["Idempotency-Key"] == initiation.deposit_id
        assert {"paymentToken": "ord_100"} in body["metadata"]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_explicit_provider_skips_prediction(
        self, services: Services, fake_gateway: Any, sample_payment_data: Dict[str, Any]
    ) -> None:
        initiation = await services.deposits.initiate(
            _submission(sample_payment_data, provider="airtel_oapi_zmb")
        )

        assert initiation.provider == "AIRTEL_OAPI_ZMB"
        assert fake_gateway.calls("POST", "/v2/predict-provider") == []

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_gateway_prediction_wins_over_prefix(
        self, services: Services, fake_gateway: Any, sample_payment_data: Dict[str, Any]
    ) -> None:
        """Test a ported number follows the gateway's prediction."""
        fake_gateway.prediction = {
            "country": "ZMB",
            "provider": "AIRTEL_OAPI_ZMB",
            "phoneNumber": "260961234567",
        }

        initiation = await services.deposits.initiate(_submission(sample_payment_data))

        assert initiation.provider == "AIRTEL_OAPI_ZMB"

    @pytest.mark.integration
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides, code",
        [
            ({"msisdn": "12345"}, "INVALID_LENGTH"),
            ({"msisdn": "+254712345678"}, "UNSUPPORTED_COUNTRY"),
            ({"currency": "USD"}, "UNSUPPORTED_CURRENCY"),
            ({"payment_amount": "abc"}, "INVALID_AMOUNT"),
            ({"payment_amount": "0"}, "INVALID_AMOUNT"),
            ({"payment_amount": "0.50"}, "AMOUNT_BELOW_MINIMUM"),
            ({"payment_amount": "60000.00"}, "AMOUNT_ABOVE_MAXIMUM"),
            ({"msisdn": "0951234567"}, "PROVIDER_UNAVAILABLE"),
            ({"order_items": None}, "MISSING_ORDER_ITEMS"),
            ({"payment_type": "donation"}, "INVALID_PAYMENT_TYPE"),
            ({"payment_token": ""}, "MISSING_PAYMENT_TOKEN"),
        ],
    )
    async def test_validation_failures_send_nothing(
        self,
        services: Services,
        fake_gateway: Any,
        sample_payment_data: Dict[str, Any],
        overrides: Dict[str, Any],
        code: str,
    ) -> None:
        """Test every validation failure stops before the deposit call."""
        with pytest.raises(PaymentValidationError) as exc_info:
            await services.deposits.initiate(_submission(sample_payment_data, **overrides))

        assert exc_info.value.error_code == code
        assert fake_gateway.calls("POST", "/v2/deposits") == []

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_phone_failure_without_code_still_rejects(
        self,
        services: Services,
        fake_gateway: Any,
        sample_payment_data: Dict[str, Any],
        mocker: Any,
    ) -> None:
        """Test a failed phone check with no error code is still a validation error."""
        mocker.patch(
            "pawapay_marketplace.core.deposits.normalize_msisdn",
            return_value=PhoneValidationResult(is_valid=False),
        )

        with pytest.raises(PaymentValidationError) as exc_info:
            await services.deposits.initiate(_submission(sample_payment_data))

        assert exc_info.value.error_code == "INVALID_PHONE"
        assert fake_gateway.calls("POST", "/v2/deposits") == []

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_rejected_deposit_is_not_recorded(
        self,
        services: Services,
        database: Any,
        fake_gateway: Any,
        sample_payment_data: Dict[str, Any],
    ) -> None:
        fake_gateway.deposit_status = "REJECTED"
        fake_gateway.failure_reason = {
            "failureCode": "PAYER_LIMIT_REACHED",
            "failureMessage": "Payer limit reached",
        }

        with pytest.raises(DepositRejected) as exc_info:
            await services.deposits.initiate(_submission(sample_payment_data))

        assert exc_info.value.user_message == "Payer limit reached"
        assert exc_info.value.http_status == 400
        deposit_id = json.loads(fake_gateway.calls("POST", "/v2/deposits")[0].content)["depositId"]
        assert await PendingPaymentStore(database).get_by_deposit_id(deposit_id) is None

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_gateway_outage(
        self, services: Services, fake_gateway: Any, sample_payment_data: Dict[str, Any]
    ) -> None:
        """Test an unreachable directory surfaces as a gateway error."""
        fake_gateway.server_error = 503

        with pytest.raises(GatewayError):
            await services.deposits.initiate(_submission(sample_payment_data))
