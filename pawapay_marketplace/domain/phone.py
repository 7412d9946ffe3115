"""
MSISDN normalization for mobile-money payers and payees.

Pure and synchronous. Invalid input is an expected outcome, so the result
object carries an error code instead of raising.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class PhoneErrorCode(str, Enum):
    """Reasons a phone number cannot be used for a mobile-money payment."""

    INVALID_LENGTH = "INVALID_LENGTH"
    INVALID_PREFIX = "INVALID_PREFIX"
    UNSUPPORTED_COUNTRY = "UNSUPPORTED_COUNTRY"
    PROVIDER_NOT_FOUND = "PROVIDER_NOT_FOUND"


PHONE_ERROR_MESSAGES: dict[PhoneErrorCode, str] = {
    PhoneErrorCode.INVALID_LENGTH: (
        "Phone number length is incorrect for Zambia. "
        "Please enter a 9-digit number or include the 260 country code."
    ),
    PhoneErrorCode.INVALID_PREFIX: "Invalid mobile network prefix. Please check your number.",
    PhoneErrorCode.UNSUPPORTED_COUNTRY: "Only Zambian phone numbers are supported at this time.",
    PhoneErrorCode.PROVIDER_NOT_FOUND: (
        "Unable to determine your mobile money provider. Please check the number."
    ),
}


@dataclass(frozen=True)
class CountryNumbering:
    """Numbering plan for one supported country."""

    country: str
    calling_code: str
    national_length: int
    mobile_leading_digits: frozenset[str]
    operator_prefixes: dict[str, str]

    @property
    def msisdn_length(self) -> int:
        return len(self.calling_code) + self.national_length


ZAMBIA = CountryNumbering(
    country="ZMB",
    calling_code="260",
    national_length=9,
    mobile_leading_digits=frozenset({"9", "7", "5"}),
    operator_prefixes={
        "96": "MTN_MOMO_ZMB",
        "76": "MTN_MOMO_ZMB",
        "97": "AIRTEL_OAPI_ZMB",
        "77": "AIRTEL_OAPI_ZMB",
        "57": "AIRTEL_OAPI_ZMB",
        "95": "ZAMTEL_MOMO_ZMB",
        "75": "ZAMTEL_MOMO_ZMB",
    },
)

NUMBERING_PLANS: dict[str, CountryNumbering] = {ZAMBIA.country: ZAMBIA}

_NON_DIGITS = re.compile(r"\D")


@dataclass(frozen=True)
class PhoneValidationResult:
    """Outcome of normalizing one phone number."""

    is_valid: bool
    msisdn: Optional[str] = None
    country: Optional[str] = None
    provider_hint: Optional[str] = None
    error_code: Optional[PhoneErrorCode] = None
    message: Optional[str] = None

    @classmethod
    def failure(cls, code: PhoneErrorCode, msisdn: Optional[str] = None) -> PhoneValidationResult:
        return cls(
            is_valid=False,
            msisdn=msisdn,
            error_code=code,
            message=PHONE_ERROR_MESSAGES[code],
        )


def sanitize(raw: object) -> str:
    """Strip everything except digits."""
    if raw is None:
        return ""
    return _NON_DIGITS.sub("", str(raw))


def normalize_msisdn(raw: object, country: str = "ZMB") -> PhoneValidationResult:
    """
    Normalize a user-entered phone number to an international MSISDN.

    Accepted shapes for Zambia:
        976000000       -> 260976000000
        0976000000      -> 260976000000
        +260 97 600 0000 -> 260976000000
        00260976000000  -> 260976000000
        2600976000000   -> 260976000000

    Args:
        raw: Phone number as typed by the user
        country: ISO 3166 alpha-3 country the number must belong to

    Returns:
        PhoneValidationResult: valid MSISDN with an operator hint, or an error code
    """
    plan = NUMBERING_PLANS.get((country or "").upper())
    if plan is None:
        return PhoneValidationResult.failure(PhoneErrorCode.UNSUPPORTED_COUNTRY)

    digits = sanitize(raw)
    if not digits:
        return PhoneValidationResult.failure(PhoneErrorCode.INVALID_LENGTH)

    if digits.startswith("00"):
        digits = digits[2:]

    # Trunk prefix: 0976000000
    if len(digits) == plan.national_length + 1 and digits.startswith("0"):
        digits = digits[1:]

    # Trunk zero kept after the country code: 2600976000000
    redundant = plan.calling_code + "0"
    if len(digits) == plan.msisdn_length + 1 and digits.startswith(redundant):
        digits = plan.calling_code + digits[len(redundant):]

    if len(digits) == plan.national_length:
        digits = plan.calling_code + digits

    if len(digits) != plan.msisdn_length:
        return PhoneValidationResult.failure(PhoneErrorCode.INVALID_LENGTH, digits)

    if not digits.startswith(plan.calling_code):
        return PhoneValidationResult.failure(PhoneErrorCode.UNSUPPORTED_COUNTRY, digits)

    national = digits[len(plan.calling_code):]
    if national[0] not in plan.mobile_leading_digits:
        return PhoneValidationResult.failure(PhoneErrorCode.INVALID_PREFIX, digits)

    provider = plan.operator_prefixes.get(national[:2])
    if provider is None:
        return PhoneValidationResult.failure(PhoneErrorCode.PROVIDER_NOT_FOUND, digits)

    return PhoneValidationResult(
        is_valid=True,
        msisdn=digits,
        country=plan.country,
        provider_hint=provider,
    )
