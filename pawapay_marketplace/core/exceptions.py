"""
Exception taxonomy for the payment integration.

Every exception carries:
- error_code (machine readable, stable)
- user_message (safe to return to a buyer, vendor or the gateway)
- http_status (what the HTTP layer answers with)

Expected negative outcomes (an unavailable operator, an invalid phone
number) are returned as result objects, not raised. These classes are for
operations that could not be carried out.
"""

from typing import Any, Dict, Optional


class PaymentGatewayError(Exception):
    """Base exception for all payment integration errors."""

    default_code = "internal_error"
    default_status = 500
    default_user_message = "An error occurred. Please try again."

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        user_message: Optional[str] = None,
        http_status: Optional[int] = None,
        **kwargs: Any,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.user_message = user_message or self.default_user_message
        self.http_status = http_status or self.default_status
        self.metadata = kwargs

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for API responses."""
        return {
            "error": {
                "code": self.error_code,
                "message": self.user_message,
                "type": self.__class__.__name__,
            }
        }


# ============================================================================
# VALIDATION ERRORS (4xx, never retried)
# ============================================================================


class ValidationError(PaymentGatewayError):
    """Bad input from the caller."""

    default_code = "validation_error"
    default_status = 400
    default_user_message = "The request is invalid."


class PaymentValidationError(ValidationError):
    """A payment submission failed a validation rule."""

    def __init__(self, code: str, message: str, **kwargs: Any):
        super().__init__(message, error_code=code, user_message=message, **kwargs)


class MalformedPayload(ValidationError):
    """Webhook payload is not JSON or lacks required fields."""

    default_code = "malformed_payload"
    default_user_message = "Invalid webhook payload"


# ============================================================================
# SIGNATURE ERRORS (401)
# ============================================================================


class SignatureError(PaymentGatewayError):
    """Webhook signature missing or wrong. Treated as a security event."""

    default_code = "invalid_signature"
    default_status = 401
    default_user_message = "Invalid signature"


# ============================================================================
# NOT FOUND (404, integrity concern)
# ============================================================================


class NotFoundError(PaymentGatewayError):
    """A referenced local record does not exist."""

    default_code = "not_found"
    default_status = 404
    default_user_message = "Record not found"


class PaymentNotFound(NotFoundError):
    def __init__(self, deposit_id: str, **kwargs: Any):
        super().__init__(
            f"No pending payment for deposit {deposit_id}",
            error_code="payment_not_found",
            user_message="Payment not found",
            deposit_id=deposit_id,
            **kwargs,
        )
        self.deposit_id = deposit_id


class PayoutNotFound(NotFoundError):
    def __init__(self, payout_id: str, **kwargs: Any):
        super().__init__(
            f"No vendor payout {payout_id}",
            error_code="payout_not_found",
            user_message="Payout not found",
            payout_id=payout_id,
            **kwargs,
        )
        self.payout_id = payout_id


class EarningsNotFound(NotFoundError):
    def __init__(self, earnings_id: int, **kwargs: Any):
        super().__init__(
            f"Earnings record {earnings_id} not found or not available",
            error_code="earnings_not_found",
            user_message="Earnings record not found or not available for payout",
            earnings_id=earnings_id,
            **kwargs,
        )
        self.earnings_id = earnings_id


# ============================================================================
# CONFLICTS (409, rejected before any gateway call)
# ============================================================================


class ConflictError(PaymentGatewayError):
    default_code = "conflict"
    default_status = 409
    default_user_message = "The request conflicts with an existing record"


class PayoutAlreadyInitiated(ConflictError):
    def __init__(self, earnings_id: int, **kwargs: Any):
        super().__init__(
            f"Payout already initiated for earnings {earnings_id}",
            error_code="payout_already_initiated",
            user_message="Payout already initiated for this earnings record",
            earnings_id=earnings_id,
            **kwargs,
        )
        self.earnings_id = earnings_id


# ============================================================================
# GATEWAY ERRORS (5xx, no local state written)
# ============================================================================


class GatewayError(PaymentGatewayError):
    """Upstream call failed or returned something we cannot interpret."""

    default_code = "gateway_error"
    default_status = 502
    default_user_message = "Payment provider is unavailable. Please try again later."

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.original_error = original_error


class CircuitOpenError(GatewayError):
    default_code = "circuit_open"


class DirectoryFetchError(GatewayError):
    """Operator configuration could not be fetched or parsed."""

    default_code = "directory_fetch_failed"


class DepositRejected(GatewayError):
    """Gateway answered a deposit initiation with something other than ACCEPTED."""

    default_code = "deposit_rejected"

    def __init__(self, status: str, failure_message: Optional[str] = None, **kwargs: Any):
        reason = failure_message or "Payment could not be initiated"
        super().__init__(
            f"Deposit not accepted: {status} ({reason})",
            user_message=reason,
            http_status=400,
            **kwargs,
        )
        self.status = status
        self.failure_message = failure_message


class PayoutRejected(GatewayError):
    """Gateway answered a payout initiation with something other than ACCEPTED."""

    default_code = "payout_rejected"

    def __init__(self, status: str, failure_message: Optional[str] = None, **kwargs: Any):
        reason = failure_message or "Payout initiation failed"
        super().__init__(
            f"Payout not accepted: {status} ({reason})",
            user_message=reason,
            **kwargs,
        )
        self.status = status
        self.failure_message = failure_message
