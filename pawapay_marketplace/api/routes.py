"""
API routes for mobile-money payments, callbacks and vendor payouts.
"""
import json
from typing import Any, Dict, List, Optional

import pydantic
import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from pawapay_marketplace.core.deposits import DepositSubmission
from pawapay_marketplace.core.exceptions import (
    DepositRejected,
    GatewayError,
    MalformedPayload,
    NotFoundError,
    PaymentNotFound,
    PaymentValidationError,
    SignatureError,
)
from pawapay_marketplace.core.reconciler import ReconciliationOutcome
from pawapay_marketplace.domain.phone import normalize_msisdn
from pawapay_marketplace.integrations.pawapay_client import SIGNATURE_HEADER
from pawapay_marketplace.monitoring.health import HealthCheckError

from .dependencies import Services, get_services, require_admin
from .schemas import (
    BulkPayoutRequest,
    BulkPayoutResponse,
    DepositSyncResponse,
    HealthCheckResponse,
    OperatorResponse,
    PaymentSubmissionRequest,
    PaymentSubmissionResponse,
    PayoutResponse,
    PayoutStatusResponse,
    PredictOperatorResponse,
    WalletBalancesResponse,
    WebhookResponse,
)

logger = structlog.get_logger(__name__)

payment_router = APIRouter(tags=["payments"])
webhook_router = APIRouter(tags=["webhooks"])
admin_router = APIRouter(prefix="/admin", tags=["admin"])
monitoring_router = APIRouter(tags=["monitoring"])

GENERIC_PAYMENT_ERROR = "Payment could not be processed at this time. Please try again later."

WEBHOOK_MESSAGES = {
    ReconciliationOutcome.APPLIED: "Webhook processed successfully",
    ReconciliationOutcome.DUPLICATE: "Webhook already processed",
    ReconciliationOutcome.IGNORED: "Webhook acknowledged, no transition applied",
    ReconciliationOutcome.UNHANDLED: "Webhook acknowledged, status not handled",
}


def _payment_failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"result": 0, "message": message})


async def _read_submission(request: Request) -> Dict[str, Any]:
    """Form fields or JSON object from the payment form."""
    content_type = request.headers.get("content-type", "")
    if "application/json" in content_type:
        data = await request.json()
        if not isinstance(data, dict):
            raise ValueError("Payment request must be a JSON object")
        return data

    form = await request.form()
    data = {key: value for key, value in form.items()}
    items = data.get("order_items")
    if isinstance(items, str):
        data["order_items"] = json.loads(items) if items.strip() else None
    return data


@payment_router.post(
    "/payment",
    response_model=PaymentSubmissionResponse,
    summary="Initiate a mobile-money deposit",
    description="Validate the payment form and ask the payer's operator to collect",
)
async def submit_payment(
    request: Request, services: Services = Depends(get_services)
) -> Any:
    try:
        data = await _read_submission(request)
        body = PaymentSubmissionRequest.model_validate(data)
    except (ValueError, pydantic.ValidationError) as e:
        # pydantic's ValidationError subclasses ValueError
        fields = (
            sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
            if isinstance(e, pydantic.ValidationError)
            else []
        )
        logger.info("payment_request_invalid", fields=fields)
        message = (
            f"Invalid payment request: {', '.join(fields)}" if fields else "Invalid payment request"
        )
        return _payment_failure(status.HTTP_400_BAD_REQUEST, message)

    submission = DepositSubmission(
        payment_amount=body.payment_amount,
        currency=body.currency,
        msisdn=body.msisdn,
        payment_type=body.payment_type,
        payment_token=body.payment_token,
        provider=body.provider,
        order_items=body.order_items,
    )

    try:
        initiation = await services.deposits.initiate(submission)
    except PaymentValidationError as e:
        return _payment_failure(status.HTTP_400_BAD_REQUEST, e.user_message)
    except DepositRejected as e:
        return _payment_failure(status.HTTP_400_BAD_REQUEST, e.user_message)
    except GatewayError as e:
        logger.error("api_payment_gateway_error", error=str(e))
        return _payment_failure(status.HTTP_500_INTERNAL_SERVER_ERROR, GENERIC_PAYMENT_ERROR)
    except Exception as e:
        logger.error("api_payment_unexpected_error", error=str(e), exc_info=True)
        return _payment_failure(status.HTTP_500_INTERNAL_SERVER_ERROR, GENERIC_PAYMENT_ERROR)

    return {
        "result": 1,
        "message": "Payment initiated. Please approve the request on your phone.",
        "deposit_id": initiation.deposit_id,
    }


@payment_router.get(
    "/predict-operator",
    response_model=PredictOperatorResponse,
    response_model_exclude_none=True,
    summary="Predict the mobile network operator for a phone number",
)
async def predict_operator(
    phone: str = Query(..., description="Phone number as entered"),
    services: Services = Depends(get_services),
) -> Any:
    result = normalize_msisdn(phone, services.settings.default_country)
    if not result.is_valid or result.msisdn is None:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "error": result.message},
        )

    prediction = await services.client.predict_provider(result.msisdn)
    code = prediction.provider if prediction else result.provider_hint
    if not code:
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"success": False, "error": "Operator prediction is unavailable"},
        )
    return {
        "success": True,
        "provider": {
            "code": code,
            "phoneNumber": prediction.phone_number if prediction else result.msisdn,
        },
    }


@payment_router.get(
    "/operators",
    response_model=List[OperatorResponse],
    summary="Operational mobile-money operators",
)
async def list_operators(services: Services = Depends(get_services)) -> Any:
    operators = await services.directory.available_operators()
    return [operator.to_dict() for operator in operators]


@webhook_router.post(
    "/webhook",
    response_model=WebhookResponse,
    summary="PawaPay callback endpoint",
    description="Verify and reconcile deposit and payout callbacks",
)
async def pawapay_webhook(request: Request, services: Services = Depends(get_services)) -> Any:
    """
    Handle PawaPay callbacks.

    The signature is checked against the raw body before anything is parsed.
    Every response carries a JSON body since the gateway retries on non-2xx.
    """
    body = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER)

    try:
        result = await services.webhooks.handle(body, signature)
    except SignatureError as e:
        return JSONResponse(status_code=e.http_status, content={"error": e.user_message})
    except MalformedPayload as e:
        logger.warning("api_webhook_malformed", error=str(e))
        return JSONResponse(status_code=e.http_status, content={"error": str(e)})
    except NotFoundError as e:
        return JSONResponse(status_code=e.http_status, content={"error": e.user_message})
    except Exception as e:
        logger.error("api_webhook_unexpected_error", error=str(e), exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Webhook processing failed"},
        )

    return {"message": WEBHOOK_MESSAGES[result.outcome], "outcome": result.outcome.value}


@admin_router.post(
    "/payouts/bulk",
    response_model=BulkPayoutResponse,
    summary="Pay out several earnings records",
)
async def bulk_payout(
    payload: BulkPayoutRequest,
    actor_id: int = Depends(require_admin),
    services: Services = Depends(get_services),
) -> Any:
    summary = await services.payouts.process_bulk_payouts(payload.earnings_ids, actor_id)
    return summary.to_dict()


@admin_router.post(
    "/payouts/{earnings_id}",
    response_model=PayoutResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Pay out one earnings record",
)
async def create_payout(
    earnings_id: int,
    actor_id: int = Depends(require_admin),
    services: Services = Depends(get_services),
) -> Any:
    payout = await services.payouts.process_payout(earnings_id, actor_id)
    return {
        "payout_id": payout.payout_id,
        "earnings_id": payout.earnings_id,
        "vendor_id": payout.vendor_id,
        "amount": f"{payout.amount:.2f}",
        "currency": payout.currency,
        "status": payout.pawapay_status,
        "internal_status": payout.internal_status,
    }


@admin_router.get(
    "/payouts/{payout_id}/status",
    response_model=PayoutStatusResponse,
    summary="Payout status from the gateway",
)
async def payout_status(
    payout_id: str,
    actor_id: int = Depends(require_admin),
    services: Services = Depends(get_services),
) -> Any:
    result = await services.payouts.check_payout_status(payout_id)
    return {
        "payout_id": payout_id,
        "status": result.status,
        "failure_code": result.failure_code,
        "failure_message": result.failure_message,
    }


@admin_router.post(
    "/payouts/{payout_id}/resend-callback",
    summary="Ask the gateway to resend a payout callback",
)
async def resend_payout_callback(
    payout_id: str,
    actor_id: int = Depends(require_admin),
    services: Services = Depends(get_services),
) -> Any:
    return await services.payouts.resend_callback(payout_id)


@admin_router.post(
    "/payouts/{payout_id}/cancel",
    summary="Fail a payout still waiting in the gateway queue",
)
async def cancel_enqueued_payout(
    payout_id: str,
    actor_id: int = Depends(require_admin),
    services: Services = Depends(get_services),
) -> Any:
    return await services.payouts.cancel_enqueued(payout_id)


@admin_router.get(
    "/wallet-balances",
    response_model=WalletBalancesResponse,
    summary="Merchant wallet balances held at the gateway",
)
async def wallet_balances(
    country: Optional[str] = Query(None, min_length=3, max_length=3),
    actor_id: int = Depends(require_admin),
    services: Services = Depends(get_services),
) -> Any:
    balances = await services.client.get_wallet_balances(country.upper() if country else None)
    logger.info("wallet_balances_queried", actor_id=actor_id, country=country)
    return {"balances": [balance.model_dump() for balance in balances]}


@admin_router.post(
    "/deposits/{deposit_id}/sync",
    response_model=DepositSyncResponse,
    summary="Reconcile a deposit from its gateway status",
)
async def sync_deposit(
    deposit_id: str,
    actor_id: int = Depends(require_admin),
    services: Services = Depends(get_services),
) -> Any:
    gateway_status = await services.client.check_deposit_status(deposit_id)
    if not gateway_status.found:
        raise PaymentNotFound(deposit_id)

    payload = gateway_status.as_callback("depositId")
    payload["depositId"] = deposit_id
    result = await services.payment_reconciler.reconcile(payload)
    logger.info(
        "deposit_synced",
        deposit_id=deposit_id,
        actor_id=actor_id,
        outcome=result.outcome.value,
    )
    return {
        "deposit_id": deposit_id,
        "gateway_status": gateway_status.status,
        "outcome": result.outcome.value,
        "current_status": result.current_status,
        "side_effects": result.side_effects,
    }


@monitoring_router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health check",
    description="Check overall system health",
)
async def health(services: Services = Depends(get_services)) -> Dict[str, Any]:
    """Health check endpoint for monitoring."""
    return await services.health.check_all()


@monitoring_router.get("/health/live", summary="Liveness probe")
async def liveness(services: Services = Depends(get_services)) -> Dict[str, Any]:
    return await services.health.liveness()


@monitoring_router.get("/health/ready", summary="Readiness probe")
async def readiness(services: Services = Depends(get_services)) -> Dict[str, Any]:
    try:
        return await services.health.readiness()
    except HealthCheckError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"status": "unhealthy", "error": str(e)},
        )


@monitoring_router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose Prometheus metrics",
    include_in_schema=False,
)
async def prometheus_metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
