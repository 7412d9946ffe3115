"""Pre-flight validation of a payment submission, before any gateway call."""
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, List, Mapping, Optional, Sequence, Tuple

import structlog

from pawapay_marketplace.core.exceptions import PaymentValidationError
from pawapay_marketplace.core.operator_directory import OperatorDirectory
from pawapay_marketplace.domain.money import Money
from pawapay_marketplace.domain.statuses import PaymentType

logger = structlog.get_logger(__name__)

FALLBACK_LIMITS: Tuple[Decimal, Decimal] = (Decimal("1.00"), Decimal("10000.00"))

ORDER_ITEM_FIELDS = ("id", "quantity", "price")


class ValidationCode(str, Enum):
    PROVIDER_UNAVAILABLE = "PROVIDER_UNAVAILABLE"
    UNSUPPORTED_CURRENCY = "UNSUPPORTED_CURRENCY"
    AMOUNT_BELOW_MINIMUM = "AMOUNT_BELOW_MINIMUM"
    AMOUNT_ABOVE_MAXIMUM = "AMOUNT_ABOVE_MAXIMUM"
    INVALID_PAYMENT_TYPE = "INVALID_PAYMENT_TYPE"
    MISSING_ORDER_ITEMS = "MISSING_ORDER_ITEMS"
    INVALID_ORDER_ITEM = "INVALID_ORDER_ITEM"


@dataclass(frozen=True)
class PaymentRequest:
    """A deposit the buyer wants to make, with a normalized MSISDN."""

    amount: Money
    msisdn: str
    operator: str
    payment_type: str
    order_items: Optional[Sequence[Any]] = None


@dataclass(frozen=True)
class ValidationOutcome:
    ok: bool
    code: Optional[ValidationCode] = None
    message: Optional[str] = None
    details: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def passed(cls) -> "ValidationOutcome":
        return cls(ok=True)

    @classmethod
    def failed(cls, code: ValidationCode, message: str, **details: Any) -> "ValidationOutcome":
        return cls(ok=False, code=code, message=message, details=details)

    def raise_for_failure(self) -> None:
        """
        Raises:
            PaymentValidationError: If the outcome is a failure
        """
        if not self.ok and self.code is not None:
            raise PaymentValidationError(self.code.value, self.message or self.code.value)


class PaymentRequestValidator:
    """
    Checks, in order: operator availability, currency support, amount
    limits, then payment-type rules. The first failing check wins.
    """

    def __init__(
        self,
        directory: OperatorDirectory,
        configured_limits: Optional[Mapping[str, Tuple[Decimal, Decimal]]] = None,
        fallback_limits: Tuple[Decimal, Decimal] = FALLBACK_LIMITS,
    ):
        self.directory = directory
        self.configured_limits = dict(configured_limits or {})
        self.fallback_limits = fallback_limits

    async def resolve_limits(self, operator: str, currency: str) -> Tuple[Decimal, Decimal]:
        """
        Limits for one operator and currency.

        Directory values win; a missing bound comes from the configured
        per-currency limits, then from the fallback range.
        """
        default_low, default_high = self.configured_limits.get(currency, self.fallback_limits)
        directory_limits = await self.directory.limits(operator, currency)
        if directory_limits is None:
            return default_low, default_high
        low, high = directory_limits
        return (
            low if low is not None else default_low,
            high if high is not None else default_high,
        )

    async def validate(self, request: PaymentRequest) -> ValidationOutcome:
        amount = request.amount

        if not await self.directory.is_available(request.operator):
            return ValidationOutcome.failed(
                ValidationCode.PROVIDER_UNAVAILABLE,
                "The selected mobile money provider is currently unavailable. "
                "Please try again later or use another number.",
                operator=request.operator,
            )

        currencies = await self.directory.supported_currencies(request.operator)
        if amount.currency not in currencies:
            return ValidationOutcome.failed(
                ValidationCode.UNSUPPORTED_CURRENCY,
                f"{amount.currency} is not supported by the selected mobile money provider.",
                operator=request.operator,
                currency=amount.currency,
            )

        low, high = await self.resolve_limits(request.operator, amount.currency)
        if amount.amount < low:
            return ValidationOutcome.failed(
                ValidationCode.AMOUNT_BELOW_MINIMUM,
                f"Minimum amount is {low:.2f} {amount.currency}.",
                minimum=str(low),
            )
        if amount.amount > high:
            return ValidationOutcome.failed(
                ValidationCode.AMOUNT_ABOVE_MAXIMUM,
                f"Maximum amount is {high:.2f} {amount.currency}.",
                maximum=str(high),
            )

        return self.validate_payment_type(request.payment_type, request.order_items)

    @staticmethod
    def validate_payment_type(
        payment_type: str, order_items: Optional[Sequence[Any]]
    ) -> ValidationOutcome:
        try:
            kind = PaymentType(payment_type)
        except ValueError:
            return ValidationOutcome.failed(
                ValidationCode.INVALID_PAYMENT_TYPE,
                "Unknown payment type.",
                payment_type=payment_type,
            )

        if kind is PaymentType.PRODUCT:
            if not order_items or isinstance(order_items, (str, bytes)):
                return ValidationOutcome.failed(
                    ValidationCode.MISSING_ORDER_ITEMS,
                    "Product payment requires order items.",
                )
            invalid: List[int] = [
                index
                for index, item in enumerate(order_items)
                if not isinstance(item, Mapping)
                or any(item.get(key) in (None, "") for key in ORDER_ITEM_FIELDS)
            ]
            if invalid:
                return ValidationOutcome.failed(
                    ValidationCode.INVALID_ORDER_ITEM,
                    "Invalid order item format.",
                    items=invalid,
                )

        return ValidationOutcome.passed()
