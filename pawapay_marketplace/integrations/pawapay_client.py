"""
PawaPay API client.

Implements:
- Bearer token authentication
- Idempotency-Key bound to the caller's deposit/payout id
- Bounded timeouts and a circuit breaker
- Mapping of every transport/server failure onto GatewayError

Retries are left to the caller: an initiation can be repeated safely with
the same id, because the gateway deduplicates on it.
"""
import time
from typing import Any, Dict, List, Optional

import httpx
import structlog
from pydantic import BaseModel, Field

from pawapay_marketplace.config import Settings
from pawapay_marketplace.core.exceptions import CircuitOpenError, GatewayError
from pawapay_marketplace.domain.money import Money
from pawapay_marketplace.integrations.circuit_breaker import CircuitBreaker
from pawapay_marketplace.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

SIGNATURE_HEADER = "X-PawaPay-Signature"


def _failure_reason(body: Dict[str, Any]) -> Dict[str, Optional[str]]:
    reason = body.get("failureReason")
    if isinstance(reason, dict):
        return {
            "failure_code": reason.get("failureCode"),
            "failure_message": reason.get("failureMessage"),
        }
    if isinstance(reason, str):
        return {"failure_code": None, "failure_message": reason}
    return {"failure_code": None, "failure_message": None}


class InitiationResponse(BaseModel):
    """Gateway answer to a deposit or payout initiation."""

    status: str
    transaction_id: Optional[str] = None
    failure_code: Optional[str] = None
    failure_message: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)

    @property
    def accepted(self) -> bool:
        return self.status == "ACCEPTED"

    @classmethod
    def from_body(cls, body: Dict[str, Any], id_field: str) -> "InitiationResponse":
        status = body.get("status")
        if not isinstance(status, str) or not status:
            raise GatewayError("Initiation response has no status", response=body)
        return cls(
            status=status.upper(),
            transaction_id=body.get(id_field),
            raw=body,
            **_failure_reason(body),
        )


class StatusResponse(BaseModel):
    """Gateway view of one deposit or payout."""

    found: bool
    transaction_id: Optional[str] = None
    status: Optional[str] = None
    failure_code: Optional[str] = None
    failure_message: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_body(cls, body: Any, id_field: str) -> "StatusResponse":
        # v2 wraps the record as {"status": "FOUND", "data": {...}}; v1 returned a list
        if isinstance(body, list):
            record = body[0] if body and isinstance(body[0], dict) else None
        elif isinstance(body, dict) and "data" in body:
            record = body["data"] if body.get("status") == "FOUND" else None
        elif isinstance(body, dict) and body.get("status") == "NOT_FOUND":
            record = None
        elif isinstance(body, dict):
            record = body
        else:
            raise GatewayError("Unexpected status response shape")

        if not isinstance(record, dict):
            return cls(found=False)
        status = record.get("status")
        return cls(
            found=True,
            transaction_id=record.get(id_field),
            status=status.upper() if isinstance(status, str) else None,
            raw=record,
            **_failure_reason(record),
        )

    def as_callback(self, id_field: str = "depositId") -> Dict[str, Any]:
        """Shape this status like the callback the gateway would have sent."""
        payload: Dict[str, Any] = {id_field: self.transaction_id, "status": self.status}
        if self.failure_code or self.failure_message:
            payload["failureReason"] = {
                "failureCode": self.failure_code,
                "failureMessage": self.failure_message,
            }
        return payload


class ProviderPrediction(BaseModel):
    country: str
    provider: str
    phone_number: str


class WalletBalance(BaseModel):
    country: str
    currency: str
    balance: str
    provider: Optional[str] = None


class PawaPayClient:
    """
    Async wrapper for the PawaPay v2 API.

    Example:
        client = PawaPayClient(settings)
        response = await client.initiate_deposit(
            deposit_id, Money.create("100.00", "ZMW"), "AIRTEL_OAPI_ZMB", "260976000000"
        )
        await client.aclose()
    """

    def __init__(
        self,
        settings: Settings,
        http_client: Optional[httpx.AsyncClient] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self.settings = settings
        self.base_url = settings.base_url
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.pawapay_timeout_seconds)
        )
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=settings.circuit_breaker_failure_threshold,
            reset_timeout=settings.circuit_breaker_reset_seconds,
        )

        logger.info(
            "pawapay_client_initialized",
            environment=settings.pawapay_environment,
            base_url=self.base_url,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()

    def _headers(self, idempotency_key: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.settings.pawapay_api_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        return headers

    async def _send(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]],
        params: Optional[Dict[str, Any]],
        headers: Dict[str, str],
    ) -> httpx.Response:
        try:
            response = await self.http_client.request(
                method, f"{self.base_url}{path}", json=json, params=params, headers=headers
            )
        except httpx.TimeoutException as e:
            raise GatewayError(f"PawaPay request timed out: {path}", original_error=e) from e
        except httpx.HTTPError as e:
            raise GatewayError(f"PawaPay request failed: {e}", original_error=e) from e

        if response.status_code >= 500:
            raise GatewayError(
                f"PawaPay server error {response.status_code} on {path}",
                status_code=response.status_code,
            )
        return response

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> Any:
        """
        Send one request and decode its JSON body.

        4xx answers are returned when their body is a JSON object carrying a
        ``status`` (the gateway reports REJECTED this way).

        Raises:
            GatewayError: Transport failure, 5xx, open circuit or bad body
        """
        start = time.perf_counter()
        try:
            response = await self.circuit_breaker.call(
                self._send, method, path, json, params, self._headers(idempotency_key)
            )
        except CircuitOpenError:
            metrics.record_gateway_call(operation, "circuit_open", time.perf_counter() - start)
            logger.warning("pawapay_circuit_open", operation=operation)
            raise
        except GatewayError as e:
            metrics.record_gateway_call(operation, "error", time.perf_counter() - start)
            logger.error("pawapay_request_failed", operation=operation, error=str(e))
            raise

        metrics.record_gateway_call(
            operation, str(response.status_code), time.perf_counter() - start
        )

        try:
            body = response.json()
        except ValueError as e:
            logger.error(
                "pawapay_invalid_json",
                operation=operation,
                status_code=response.status_code,
            )
            raise GatewayError(f"PawaPay returned a non-JSON body for {operation}") from e

        if response.status_code >= 400 and not (
            isinstance(body, dict) and isinstance(body.get("status"), str)
        ):
            logger.error(
                "pawapay_client_error",
                operation=operation,
                status_code=response.status_code,
                body=body,
            )
            raise GatewayError(
                f"PawaPay rejected {operation} with HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return body

    async def fetch_operator_config(
        self, country: str, operation_type: str = "DEPOSIT"
    ) -> Dict[str, Any]:
        """Active provider configuration for one country and operation type."""
        body = await self._request(
            "active_conf",
            "GET",
            "/v2/active-conf",
            params={"country": country, "operationType": operation_type},
        )
        if not isinstance(body, dict):
            raise GatewayError("Operator configuration is not a JSON object")
        return body

    async def initiate_deposit(
        self,
        deposit_id: str,
        amount: Money,
        payer_provider: str,
        payer_phone: str,
        metadata: Optional[List[Dict[str, Any]]] = None,
    ) -> InitiationResponse:
        """
        Ask the payer's operator to collect ``amount``.

        Args:
            deposit_id: Caller-generated UUID, also the idempotency key
            amount: Amount and currency to collect
            payer_provider: Operator code, e.g. MTN_MOMO_ZMB
            payer_phone: Normalized MSISDN

        Returns:
            InitiationResponse: ACCEPTED, REJECTED or DUPLICATE_IGNORED
        """
        payload: Dict[str, Any] = {
            "depositId": deposit_id,
            "amount": amount.get_amount(),
            "currency": amount.currency,
            "payer": {
                "type": "MMO",
                "accountDetails": {"phoneNumber": payer_phone, "provider": payer_provider},
            },
        }
        if metadata:
            payload["metadata"] = metadata

        logger.info(
            "initiating_deposit",
            deposit_id=deposit_id,
            amount=amount.get_amount(),
            currency=amount.currency,
            provider=payer_provider,
        )
        body = await self._request(
            "initiate_deposit", "POST", "/v2/deposits", json=payload, idempotency_key=deposit_id
        )
        return InitiationResponse.from_body(body, "depositId")

    async def check_deposit_status(self, deposit_id: str) -> StatusResponse:
        body = await self._request("deposit_status", "GET", f"/v2/deposits/{deposit_id}")
        return StatusResponse.from_body(body, "depositId")

    async def initiate_payout(
        self,
        payout_id: str,
        amount: Money,
        recipient_provider: str,
        recipient_phone: str,
        customer_message: Optional[str] = None,
    ) -> InitiationResponse:
        """Send ``amount`` to a vendor's wallet. ``payout_id`` is the idempotency key."""
        payload = {
            "payoutId": payout_id,
            "amount": amount.get_amount(),
            "currency": amount.currency,
            "recipient": {
                "type": "MMO",
                "accountDetails": {
                    "phoneNumber": recipient_phone,
                    "provider": recipient_provider,
                },
            },
            "customerMessage": customer_message or self.settings.payout_customer_message,
        }
        logger.info(
            "initiating_payout",
            payout_id=payout_id,
            amount=amount.get_amount(),
            currency=amount.currency,
            provider=recipient_provider,
        )
        body = await self._request(
            "initiate_payout", "POST", "/v2/payouts", json=payload, idempotency_key=payout_id
        )
        return InitiationResponse.from_body(body, "payoutId")

    async def check_payout_status(self, payout_id: str) -> StatusResponse:
        body = await self._request("payout_status", "GET", f"/v2/payouts/{payout_id}")
        return StatusResponse.from_body(body, "payoutId")

    async def resend_payout_callback(self, payout_id: str) -> Dict[str, Any]:
        return await self._request(
            "resend_payout_callback", "POST", f"/v2/payouts/resend-callback/{payout_id}"
        )

    async def cancel_enqueued_payout(self, payout_id: str) -> Dict[str, Any]:
        return await self._request(
            "cancel_enqueued_payout", "POST", f"/v2/payouts/fail-enqueued/{payout_id}"
        )

    async def get_wallet_balances(self, country: Optional[str] = None) -> List[WalletBalance]:
        """
        Merchant wallet balances, optionally for one country.

        Raises:
            GatewayError: Request failed or the body is not a balance list
        """
        params = {"country": country} if country else None
        body = await self._request("wallet_balances", "GET", "/v2/wallet-balances", params=params)
        entries = body.get("balances") if isinstance(body, dict) else body
        if not isinstance(entries, list):
            raise GatewayError("Unexpected wallet balance response shape", response=body)
        return [
            WalletBalance(
                country=str(entry.get("country", "")),
                currency=str(entry.get("currency", "")),
                balance=str(entry.get("balance", "")),
                provider=entry.get("provider"),
            )
            for entry in entries
            if isinstance(entry, dict)
        ]

    async def predict_provider(self, phone_number: str) -> Optional[ProviderPrediction]:
        """
        Ask the gateway which operator serves ``phone_number``.

        Best effort: any failure returns None and callers fall back to the
        local prefix table.
        """
        try:
            body = await self._request(
                "predict_provider",
                "POST",
                "/v2/predict-provider",
                json={"phoneNumber": phone_number},
            )
        except GatewayError as e:
            logger.warning("provider_prediction_unavailable", error=str(e))
            return None

        if not isinstance(body, dict) or not body.get("provider"):
            logger.warning("provider_prediction_empty", response=body)
            return None
        return ProviderPrediction(
            country=str(body.get("country", "")),
            provider=str(body["provider"]),
            phone_number=str(body.get("phoneNumber", phone_number)),
        )
