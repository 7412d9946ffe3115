"""
Money value object.

Amounts are exact decimals with two fractional digits; binary floats are
never accepted. Arithmetic between two values requires the same currency.

Example:
    Money.create("10.10", "ZMW") + Money.create("0.05", "ZMW")  # 10.15 ZMW
    Money.create("10.00", "ZMW") + Money.create("1.00", "USD")  # CurrencyMismatch
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

from pydantic import BaseModel, ConfigDict, field_validator

CENT = Decimal("0.01")

AmountLike = Union[str, int, Decimal]


class InvalidAmount(ValueError):
    """Amount is not numeric or has more than two decimal places."""


class InvalidCurrency(ValueError):
    """Currency code is not exactly three letters."""


class CurrencyMismatch(ValueError):
    """Operation attempted between two different currencies."""


def _to_decimal(value: object) -> Decimal:
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidAmount(f"Amount must be a decimal string or integer, got {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise InvalidAmount(f"Amount is not numeric: {value!r}") from None
    else:
        raise InvalidAmount(f"Unsupported amount type: {type(value).__name__}")

    if not result.is_finite():
        raise InvalidAmount(f"Amount must be finite: {value!r}")
    return result


def _quantize(value: Decimal, source: object) -> Decimal:
    # quantize fails once the integer digits exceed the context precision
    try:
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise InvalidAmount(f"Amount is too large: {source!r}") from None


class Money(BaseModel):
    """
    Immutable monetary amount with currency.

    Construct through ``Money.create`` so bad input raises the domain
    errors above instead of a pydantic validation error.
    """

    model_config = ConfigDict(frozen=True)

    amount: Decimal
    currency: str

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        """Keep exactly two decimal places."""
        return v.quantize(CENT, rounding=ROUND_HALF_UP)

    @classmethod
    def create(cls, amount: AmountLike, currency: str) -> Money:
        """
        Build a Money value from user or gateway input.

        Raises:
            InvalidAmount: Not numeric, not finite, or more than 2 decimals
            InvalidCurrency: Currency is not a 3-letter code
        """
        value = _to_decimal(amount)
        if value != _quantize(value, amount):
            raise InvalidAmount(f"Amount has more than two decimal places: {amount!r}")

        if (
            not isinstance(currency, str)
            or len(currency) != 3
            or not currency.isascii()
            or not currency.isalpha()
        ):
            raise InvalidCurrency(f"Invalid currency code: {currency!r}")

        return cls(amount=value, currency=currency.upper())

    @classmethod
    def from_minor_units(cls, minor_units: int, currency: str) -> Money:
        """Build from an integer count of cents (ngwee for ZMW)."""
        if isinstance(minor_units, bool) or not isinstance(minor_units, int):
            raise InvalidAmount(f"Minor units must be an integer, got {minor_units!r}")
        return cls.create(Decimal(minor_units) / 100, currency)

    @classmethod
    def zero(cls, currency: str) -> Money:
        return cls.create(0, currency)

    @property
    def minor_units(self) -> int:
        return int(self.amount * 100)

    def get_amount(self) -> str:
        """Amount as a plain 2-decimal string, the format the gateway expects."""
        return f"{self.amount:.2f}"

    def _check_currency(self, other: Money) -> None:
        if self.currency != other.currency:
            raise CurrencyMismatch(
                f"Cannot combine {self.currency} with {other.currency}"
            )

    def add(self, other: Money) -> Money:
        self._check_currency(other)
        return Money(amount=self.amount + other.amount, currency=self.currency)

    def subtract(self, other: Money) -> Money:
        self._check_currency(other)
        return Money(amount=self.amount - other.amount, currency=self.currency)

    def multiply(self, factor: AmountLike) -> Money:
        """
        Multiply by a scalar, rounding half away from zero to 2 decimals.

        Example: Money.create("10.00", "ZMW").multiply("0.025") == 0.25 ZMW
        """
        product = self.amount * _to_decimal(factor)
        return Money(
            amount=_quantize(product, factor),
            currency=self.currency,
        )

    def compare_to(self, other: Money) -> int:
        self._check_currency(other)
        if self.amount < other.amount:
            return -1
        if self.amount > other.amount:
            return 1
        return 0

    def equals(self, other: Money) -> bool:
        return self.compare_to(other) == 0

    def is_zero(self) -> bool:
        return self.amount == 0

    def is_positive(self) -> bool:
        return self.amount > 0

    def is_negative(self) -> bool:
        return self.amount < 0

    def __add__(self, other: Money) -> Money:
        return self.add(other)

    def __sub__(self, other: Money) -> Money:
        return self.subtract(other)

    def __mul__(self, factor: AmountLike) -> Money:
        return self.multiply(factor)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        return self.amount == other.amount and self.currency == other.currency

    def __hash__(self) -> int:
        return hash((self.amount, self.currency))

    def __lt__(self, other: Money) -> bool:
        return self.compare_to(other) < 0

    def __le__(self, other: Money) -> bool:
        return self.compare_to(other) <= 0

    def __gt__(self, other: Money) -> bool:
        return self.compare_to(other) > 0

    def __ge__(self, other: Money) -> bool:
        return self.compare_to(other) >= 0

    def __str__(self) -> str:
        return f"{self.get_amount()} {self.currency}"

    def __repr__(self) -> str:
        return f"Money({self.get_amount()}, {self.currency})"
