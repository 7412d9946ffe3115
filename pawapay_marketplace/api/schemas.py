"""
Pydantic schemas for API request/response models.
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class PaymentSubmissionRequest(BaseModel):
    """Payment form submission (form-encoded or JSON)."""

    payment_amount: Decimal = Field(..., description="Amount as a decimal string, e.g. 100.00")
    currency: str = Field(..., min_length=3, max_length=3, description="Currency code (ZMW)")
    msisdn: str = Field(..., min_length=1, description="Payer phone number as entered")
    payment_type: str = Field(..., description="product, membership or promotion")
    payment_token: str = Field(..., min_length=1, description="Order or membership reference")
    provider: Optional[str] = Field(default=None, description="Operator code chosen by the payer")
    order_items: Optional[List[Any]] = Field(
        default=None, description="Line items with id, quantity and price (product payments)"
    )

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        """Validate currency format."""
        return v.upper()

    @field_validator("payment_type")
    @classmethod
    def normalize_payment_type(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("provider")
    @classmethod
    def blank_provider_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "payment_amount": "100.00",
                    "currency": "ZMW",
                    "msisdn": "0976000000",
                    "payment_type": "product",
                    "payment_token": "ord_5f2a9c",
                    "order_items": [{"id": 17, "quantity": 1, "price": "100.00"}],
                }
            ]
        }
    }


class PaymentSubmissionResponse(BaseModel):
    result: int = Field(..., description="1 on success, 0 on failure")
    message: str = Field(..., description="Human-readable outcome")
    deposit_id: Optional[str] = Field(default=None, description="Deposit ID when accepted")


class PredictedProvider(BaseModel):
    code: str
    phoneNumber: str


class PredictOperatorResponse(BaseModel):
    success: bool
    provider: Optional[PredictedProvider] = None
    error: Optional[str] = None


class OperatorLimits(BaseModel):
    min: Optional[str] = None
    max: Optional[str] = None


class OperatorResponse(BaseModel):
    code: str
    name: str
    country: str
    status: str
    currencies: List[str]
    limits: Dict[str, OperatorLimits]
    logo: Optional[str] = None


class WebhookResponse(BaseModel):
    """Response schema for webhook processing."""

    message: str = Field(..., description="Processing result")
    outcome: Optional[str] = Field(default=None, description="applied, duplicate, ignored, unhandled")


class BulkPayoutRequest(BaseModel):
    earnings_ids: List[int] = Field(..., min_length=1, description="Earnings records to pay out")


class BulkPayoutResponse(BaseModel):
    successful: List[int]
    failed: List[Dict[str, Any]]


class PayoutResponse(BaseModel):
    payout_id: str
    earnings_id: int
    vendor_id: int
    amount: str
    currency: str
    status: str
    internal_status: str


class PayoutStatusResponse(BaseModel):
    payout_id: str
    status: Optional[str] = None
    failure_code: Optional[str] = None
    failure_message: Optional[str] = None


class DepositSyncResponse(BaseModel):
    deposit_id: str
    gateway_status: Optional[str]
    outcome: str
    current_status: Optional[str] = None
    side_effects: Dict[str, str] = Field(default_factory=dict)


class WalletBalanceEntry(BaseModel):
    country: str
    currency: str
    balance: str
    provider: Optional[str] = None


class WalletBalancesResponse(BaseModel):
    balances: List[WalletBalanceEntry]


class HealthCheckResponse(BaseModel):
    """Response schema for health check."""

    status: str = Field(..., description="Overall health status")
    checks: Dict[str, Any] = Field(..., description="Individual service checks")
