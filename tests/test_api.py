"""
Integration tests for the HTTP API.
"""
import json
from typing import Any, Callable, Dict

import httpx
import pytest

from pawapay_marketplace.integrations.pawapay_client import SIGNATURE_HEADER


def _signed(sign: Callable[[bytes], str], payload: Dict[str, Any]) -> Dict[str, Any]:
    body = json.dumps(payload, separators=(",", ":")).encode()
    return {
        "content": body,
        "headers": {SIGNATURE_HEADER: sign(body), "Content-Type": "application/json"},
    }


class TestWebhookEndpoint:
    """Test suite for POST /webhook."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_completed_callback(
        self, client: httpx.AsyncClient, seed: Any, sign: Callable[[bytes], str]
    ) -> None:
        await seed.order("ord_1")
        await seed.pending_payment("dep-1", "ord_1")

        response = await client.post(
            "/webhook", **_signed(sign, {"depositId": "dep-1", "status": "COMPLETED"})
        )

        assert response.status_code == 200
        assert response.json() == {
            "message": "Webhook processed successfully",
            "outcome": "applied",
        }
        assert response.headers["X-Request-ID"]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_redelivery_is_acknowledged(
        self, client: httpx.AsyncClient, seed: Any, sign: Callable[[bytes], str]
    ) -> None:
        await seed.pending_payment("dep-2", "ord_2")
        request = _signed(sign, {"depositId": "dep-2", "status": "FAILED"})

        await client.post("/webhook", **request)
        response = await client.post("/webhook", **request)

        assert response.status_code == 200
        assert response.json()["outcome"] == "duplicate"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_invalid_signature(self, client: httpx.AsyncClient) -> None:
        response = await client.post(
            "/webhook",
            content=b'{"depositId":"dep-3","status":"COMPLETED"}',
            headers={SIGNATURE_HEADER: "deadbeef"},
        )

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid signature"}

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_missing_signature(self, client: httpx.AsyncClient) -> None:
        response = await client.post("/webhook", content=b"{}")

        assert response.status_code == 401

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_missing_fields(
        self, client: httpx.AsyncClient, sign: Callable[[bytes], str]
    ) -> None:
        response = await client.post("/webhook", **_signed(sign, {"status": "COMPLETED"}))

        assert response.status_code == 400
        assert "depositId" in response.json()["error"]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_unknown_deposit(
        self, client: httpx.AsyncClient, sign: Callable[[bytes], str]
    ) -> None:
        response = await client.post(
            "/webhook", **_signed(sign, {"depositId": "nope", "status": "COMPLETED"})
        )

        assert response.status_code == 404
        assert response.json() == {"error": "Payment not found"}

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_unhandled_status_is_acknowledged(
        self, client: httpx.AsyncClient, seed: Any, sign: Callable[[bytes], str]
    ) -> None:
        await seed.pending_payment("dep-4", "ord_4")

        response = await client.post(
            "/webhook", **_signed(sign, {"depositId": "dep-4", "status": "REVERSED"})
        )

        assert response.status_code == 200
        assert response.json()["outcome"] == "unhandled"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_payout_callback(
        self,
        client: httpx.AsyncClient,
        seed: Any,
        sign: Callable[[bytes], str],
        admin_headers: Dict[str, str],
    ) -> None:
        earnings = await seed.earnings()
        created = await client.post(f"/admin/payouts/{earnings.id}", headers=admin_headers)
        payout_id = created.json()["payout_id"]

        response = await client.post(
            "/webhook", **_signed(sign, {"payoutId": payout_id, "status": "COMPLETED"})
        )

        assert response.status_code == 200
        assert response.json()["outcome"] == "applied"


class TestPaymentEndpoint:
    """Test suite for POST /payment."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_json_submission(
        self, client: httpx.AsyncClient, sample_payment_data: Dict[str, Any]
    ) -> None:
        response = await client.post("/payment", json=sample_payment_data)

        assert response.status_code == 200
        body = response.json()
        assert body["result"] == 1
        assert body["deposit_id"]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_form_submission(
        self, client: httpx.AsyncClient, sample_payment_data: Dict[str, Any]
    ) -> None:
        """Test the classic form post with order items as a JSON string."""
        form = dict(sample_payment_data)
        form["order_items"] = json.dumps(sample_payment_data["order_items"])

        response = await client.post("/payment", data=form)

        assert response.status_code == 200
        assert response.json()["result"] == 1

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_validation_failure(
        self, client: httpx.AsyncClient, sample_payment_data: Dict[str, Any]
    ) -> None:
        payload = dict(sample_payment_data, msisdn="12345")

        response = await client.post("/payment", json=payload)

        assert response.status_code == 400
        assert response.json()["result"] == 0
        assert "length" in response.json()["message"]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_oversized_amount_is_validation_failure(
        self,
        client: httpx.AsyncClient,
        fake_gateway: Any,
        sample_payment_data: Dict[str, Any],
    ) -> None:
        """Test an amount with more digits than decimal precision answers 400."""
        payload = dict(sample_payment_data, payment_amount="1" * 30)

        response = await client.post("/payment", json=payload)

        assert response.status_code == 400
        assert response.json() == {"result": 0, "message": "Invalid payment amount."}
        assert fake_gateway.calls("POST", "/v2/deposits") == []

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_missing_fields(self, client: httpx.AsyncClient) -> None:
        response = await client.post("/payment", json={"currency": "ZMW"})

        assert response.status_code == 400
        assert response.json()["result"] == 0
        assert "payment_amount" in response.json()["message"]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_rejected_by_gateway(
        self,
        client: httpx.AsyncClient,
        fake_gateway: Any,
        sample_payment_data: Dict[str, Any],
    ) -> None:
        fake_gateway.deposit_status = "REJECTED"
        fake_gateway.failure_reason = {"failureMessage": "Wallet not found"}

        response = await client.post("/payment", json=sample_payment_data)

        assert response.status_code == 400
        assert response.json() == {"result": 0, "message": "Wallet not found"}

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_gateway_outage_is_generic(
        self,
        client: httpx.AsyncClient,
        fake_gateway: Any,
        sample_payment_data: Dict[str, Any],
    ) -> None:
        fake_gateway.server_error = 502

        response = await client.post("/payment", json=sample_payment_data)

        assert response.status_code == 500
        assert response.json()["result"] == 0
        assert "upstream" not in response.json()["message"]


class TestOperatorEndpoints:
    """Test suite for operator lookups."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_predict_operator_from_prefix(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/predict-operator", params={"phone": "0971234567"})

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "provider": {"code": "AIRTEL_OAPI_ZMB", "phoneNumber": "260971234567"},
        }

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_predict_operator_uses_gateway(
        self, client: httpx.AsyncClient, fake_gateway: Any
    ) -> None:
        fake_gateway.prediction = {
            "country": "ZMB",
            "provider": "MTN_MOMO_ZMB",
            "phoneNumber": "260971234567",
        }

        response = await client.get("/predict-operator", params={"phone": "0971234567"})

        assert response.json()["provider"]["code"] == "MTN_MOMO_ZMB"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_predict_operator_invalid_phone(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/predict-operator", params={"phone": "123"})

        assert response.status_code == 400
        assert response.json()["success"] is False

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_list_operators(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/operators")

        assert response.status_code == 200
        codes = [operator["code"] for operator in response.json()]
        assert codes == ["AIRTEL_OAPI_ZMB", "MTN_MOMO_ZMB"]


class TestAdminEndpoints:
    """Test suite for admin payout and sync routes."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_admin_token_required(self, client: httpx.AsyncClient, seed: Any) -> None:
        earnings = await seed.earnings()

        missing = await client.post(f"/admin/payouts/{earnings.id}")
        wrong = await client.post(
            f"/admin/payouts/{earnings.id}", headers={"X-Admin-Token": "guess"}
        )

        assert missing.status_code == 403
        assert wrong.status_code == 403

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_payout_twice_conflicts(
        self, client: httpx.AsyncClient, seed: Any, admin_headers: Dict[str, str]
    ) -> None:
        earnings = await seed.earnings(amount="250.00")

        first = await client.post(f"/admin/payouts/{earnings.id}", headers=admin_headers)
        second = await client.post(f"/admin/payouts/{earnings.id}", headers=admin_headers)

        assert first.status_code == 201
        assert first.json()["amount"] == "250.00"
        assert first.json()["status"] == "ACCEPTED"
        assert second.status_code == 409
        assert second.json()["error"]["code"] == "payout_already_initiated"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_payout_missing_earnings(
        self, client: httpx.AsyncClient, admin_headers: Dict[str, str]
    ) -> None:
        response = await client.post("/admin/payouts/999", headers=admin_headers)

        assert response.status_code == 404

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_bulk_payout(
        self, client: httpx.AsyncClient, seed: Any, admin_headers: Dict[str, str]
    ) -> None:
        earnings = await seed.earnings()

        response = await client.post(
            "/admin/payouts/bulk",
            json={"earnings_ids": [earnings.id, 999]},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["successful"] == [earnings.id]
        assert response.json()["failed"][0]["earnings_id"] == 999

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_payout_status(
        self, client: httpx.AsyncClient, fake_gateway: Any, admin_headers: Dict[str, str]
    ) -> None:
        fake_gateway.payouts["pay-1"] = {
            "payoutId": "pay-1",
            "status": "FAILED",
            "failureReason": {"failureCode": "RECIPIENT_NOT_FOUND", "failureMessage": "No wallet"},
        }

        found = await client.get("/admin/payouts/pay-1/status", headers=admin_headers)
        missing = await client.get("/admin/payouts/pay-2/status", headers=admin_headers)

        assert found.json() == {
            "payout_id": "pay-1",
            "status": "FAILED",
            "failure_code": "RECIPIENT_NOT_FOUND",
            "failure_message": "No wallet",
        }
        assert missing.status_code == 404

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_wallet_balances(
        self, client: httpx.AsyncClient, fake_gateway: Any, admin_headers: Dict[str, str]
    ) -> None:
        response = await client.get(
            "/admin/wallet-balances", params={"country": "zmb"}, headers=admin_headers
        )
        denied = await client.get("/admin/wallet-balances")

        assert response.status_code == 200
        assert response.json() == {
            "balances": [
                {"country": "ZMB", "currency": "ZMW", "balance": "5000.00", "provider": None}
            ]
        }
        assert fake_gateway.calls("GET", "/v2/wallet-balances")[0].url.params["country"] == "ZMB"
        assert denied.status_code == 403

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_deposit_sync(
        self,
        client: httpx.AsyncClient,
        fake_gateway: Any,
        seed: Any,
        admin_headers: Dict[str, str],
    ) -> None:
        """Test a lost callback is recovered from the gateway status."""
        await seed.order("ord_sync")
        await seed.pending_payment("dep-sync", "ord_sync")
        fake_gateway.deposits["dep-sync"] = {"depositId": "dep-sync", "status": "COMPLETED"}

        response = await client.post("/admin/deposits/dep-sync/sync", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["outcome"] == "applied"
        assert response.json()["current_status"] == "completed"
        assert response.json()["side_effects"]["order_update"] == "applied"


class TestMonitoringEndpoints:
    """Test suite for health and metrics."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_health(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["checks"]["database"]["status"] == "healthy"
        assert body["checks"]["operator_directory"]["status"] == "degraded"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_probes(self, client: httpx.AsyncClient) -> None:
        assert (await client.get("/health/live")).json() == {"status": "alive"}
        assert (await client.get("/health/ready")).json() == {"status": "ready"}

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_metrics(self, client: httpx.AsyncClient) -> None:
        await client.post("/webhook", content=b"{}", headers={SIGNATURE_HEADER: "bad"})

        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "webhook_signature_failures_total" in response.text

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_root(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/")

        assert response.json()["status"] == "operational"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_request_id_is_propagated(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/health/live", headers={"X-Request-ID": "trace-123"})

        assert response.headers["X-Request-ID"] == "trace-123"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_requests_are_counted_by_route(self, client: httpx.AsyncClient) -> None:
        await client.get("/operators")

        response = await client.get("/metrics")

        assert 'route="/operators"' in response.text
