"""
Cached directory of mobile network operators.

Built from the gateway's active configuration endpoint:

    {"countries": [{"country": "ZMB", "providers": [
        {"provider": "MTN_MOMO_ZMB", "displayName": "MTN", "currencies": [
            {"currency": "ZMW", "operationTypes": {"DEPOSIT": {
                "status": "OPERATIONAL", "minAmount": "1", "maxAmount": "50000"}}}]}]}]}

Queries refresh the cache lazily once it is empty or older than the TTL.
Unknown operator codes answer "unavailable", never raise.
"""
import asyncio
import time
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import structlog

from pawapay_marketplace.core.exceptions import DirectoryFetchError, GatewayError
from pawapay_marketplace.integrations.pawapay_client import PawaPayClient
from pawapay_marketplace.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

OPERATIONAL = "OPERATIONAL"

Limits = Tuple[Optional[Decimal], Optional[Decimal]]


def _decimal_or_none(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        result = Decimal(str(value))
    except InvalidOperation:
        return None
    return result if result.is_finite() else None


def _entries(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


@dataclass(frozen=True)
class OperatorInfo:
    """One operator as reported by the gateway for a single operation type."""

    code: str
    display_name: str
    country: str
    status: str
    supported_currencies: Tuple[str, ...]
    limits: Mapping[str, Limits] = field(default_factory=dict)
    currency_status: Mapping[str, str] = field(default_factory=dict)
    logo: Optional[str] = None

    @property
    def is_operational(self) -> bool:
        return self.status == OPERATIONAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "name": self.display_name,
            "country": self.country,
            "status": self.status,
            "currencies": list(self.supported_currencies),
            "limits": {
                currency: {
                    "min": str(low) if low is not None else None,
                    "max": str(high) if high is not None else None,
                }
                for currency, (low, high) in self.limits.items()
            },
            "logo": self.logo,
        }


def parse_active_configuration(
    config: Mapping[str, Any], operation_type: str = "DEPOSIT"
) -> Dict[str, OperatorInfo]:
    """
    Turn an active-conf response into operators keyed by code.

    Raises:
        DirectoryFetchError: The top-level ``countries`` list is missing
    """
    countries = config.get("countries") if isinstance(config, Mapping) else None
    if not isinstance(countries, list):
        keys = list(config) if isinstance(config, Mapping) else type(config).__name__
        raise DirectoryFetchError(
            f"Invalid active-conf response: expected 'countries' key, got {keys}"
        )

    operators: Dict[str, OperatorInfo] = {}
    for country in countries:
        if not isinstance(country, Mapping):
            continue
        country_code = str(country.get("country", ""))
        for provider in _entries(country.get("providers")):
            if not isinstance(provider, Mapping) or not provider.get("provider"):
                logger.warning("operator_entry_skipped", country=country_code)
                continue

            code = str(provider["provider"])
            currencies: List[str] = []
            limits: Dict[str, Limits] = {}
            statuses: Dict[str, str] = {}
            for entry in _entries(provider.get("currencies")):
                if not isinstance(entry, Mapping) or not entry.get("currency"):
                    continue
                currency = str(entry["currency"]).upper()
                operation_types = entry.get("operationTypes")
                if not isinstance(operation_types, Mapping):
                    continue
                operation = operation_types.get(operation_type)
                if not isinstance(operation, Mapping):
                    continue
                currencies.append(currency)
                statuses[currency] = str(operation.get("status", "UNKNOWN"))
                limits[currency] = (
                    _decimal_or_none(operation.get("minAmount")),
                    _decimal_or_none(operation.get("maxAmount")),
                )

            if OPERATIONAL in statuses.values():
                status = OPERATIONAL
            else:
                status = next(iter(statuses.values()), "UNKNOWN")

            operators[code] = OperatorInfo(
                code=code,
                display_name=str(provider.get("displayName") or code),
                country=country_code,
                status=status,
                supported_currencies=tuple(currencies),
                limits=limits,
                currency_status=statuses,
                logo=provider.get("logo"),
            )
    return operators


class OperatorDirectory:
    """
    In-memory operator cache with a TTL.

    Example:
        directory = OperatorDirectory(client, country="ZMB", ttl_seconds=3600)
        if await directory.is_available("MTN_MOMO_ZMB"):
            low, high = await directory.limits("MTN_MOMO_ZMB", "ZMW")
    """

    def __init__(
        self,
        client: PawaPayClient,
        country: str = "ZMB",
        ttl_seconds: int = 3600,
        operation_type: str = "DEPOSIT",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.country = country
        self.ttl_seconds = ttl_seconds
        self.operation_type = operation_type
        self._clock = clock
        self._operators: Optional[Dict[str, OperatorInfo]] = None
        self._fetched_at: Optional[float] = None
        self._lock = asyncio.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._operators is not None

    def age_seconds(self) -> Optional[float]:
        if self._fetched_at is None:
            return None
        return self._clock() - self._fetched_at

    def is_stale(self) -> bool:
        age = self.age_seconds()
        return self._operators is None or age is None or age >= self.ttl_seconds

    async def refresh(self, country: Optional[str] = None) -> int:
        """
        Fetch and swap in a fresh operator map.

        The previous map stays in place if anything fails.

        Returns:
            int: Number of operators loaded

        Raises:
            DirectoryFetchError: Upstream call failed or response is malformed
        """
        country = country or self.country
        try:
            config = await self.client.fetch_operator_config(country, self.operation_type)
        except DirectoryFetchError:
            metrics.record_directory_refresh("failure")
            raise
        except GatewayError as e:
            metrics.record_directory_refresh("failure")
            raise DirectoryFetchError(
                f"Failed to fetch mobile network operators: {e}", original_error=e
            ) from e

        try:
            operators = parse_active_configuration(config, self.operation_type)
        except DirectoryFetchError:
            metrics.record_directory_refresh("failure")
            raise
        except (TypeError, ValueError, AttributeError) as e:
            # Shapes the parser does not anticipate still count as a bad response
            metrics.record_directory_refresh("failure")
            raise DirectoryFetchError(
                f"Invalid active-conf response: {e}", original_error=e
            ) from e

        self._operators = operators
        self._fetched_at = self._clock()
        metrics.record_directory_refresh("success", len(operators))
        logger.info("operator_directory_refreshed", country=country, operators=len(operators))
        return len(operators)

    async def _ensure_fresh(self) -> Dict[str, OperatorInfo]:
        if not self.is_stale():
            return self._operators or {}

        async with self._lock:
            # Another query may have refreshed while we waited
            if self.is_stale():
                try:
                    await self.refresh()
                except DirectoryFetchError as e:
                    if self._operators is None:
                        raise
                    logger.warning(
                        "operator_directory_stale_refresh_failed",
                        error=str(e),
                        age_seconds=self.age_seconds(),
                    )
        return self._operators or {}

    async def get(self, code: str) -> Optional[OperatorInfo]:
        operators = await self._ensure_fresh()
        return operators.get(code)

    async def is_available(self, code: str) -> bool:
        operator = await self.get(code)
        return operator is not None and operator.is_operational

    async def supported_currencies(self, code: str) -> Tuple[str, ...]:
        operator = await self.get(code)
        return operator.supported_currencies if operator else ()

    async def limits(self, code: str, currency: str) -> Optional[Limits]:
        operator = await self.get(code)
        if operator is None:
            return None
        return operator.limits.get(currency.upper())

    async def available_operators(self, country: Optional[str] = None) -> List[OperatorInfo]:
        """Operational operators for ``country`` (default: the directory's country)."""
        country = country or self.country
        operators = await self._ensure_fresh()
        return sorted(
            (op for op in operators.values() if op.country == country and op.is_operational),
            key=lambda op: op.code,
        )
