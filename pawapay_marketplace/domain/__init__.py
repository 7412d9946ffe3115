"""Domain values: money, phone numbers and payment statuses."""
from .money import CurrencyMismatch, InvalidAmount, InvalidCurrency, Money
from .phone import PhoneErrorCode, PhoneValidationResult, normalize_msisdn
from .statuses import GatewayStatus, InternalStatus, PaymentType, next_status

__all__ = [
    "CurrencyMismatch",
    "GatewayStatus",
    "InternalStatus",
    "InvalidAmount",
    "InvalidCurrency",
    "Money",
    "PaymentType",
    "PhoneErrorCode",
    "PhoneValidationResult",
    "next_status",
    "normalize_msisdn",
]
