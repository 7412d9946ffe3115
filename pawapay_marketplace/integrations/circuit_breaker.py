"""Circuit breaker guarding outbound PawaPay calls."""
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

import structlog

from pawapay_marketplace.core.exceptions import CircuitOpenError, GatewayError
from pawapay_marketplace.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Stops calling the gateway after ``failure_threshold`` consecutive
    failures.

    After ``reset_timeout`` seconds trial calls are let through; the circuit
    closes after ``success_threshold`` of them succeed and reopens on the
    first failure. Only exceptions in ``trip_on`` count as failures, so a
    bug in the caller never opens the circuit.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        reset_timeout: float = 60,
        success_threshold: int = 2,
        trip_on: Tuple[Type[BaseException], ...] = (GatewayError,),
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.success_threshold = success_threshold
        self.trip_on = trip_on
        self._clock = clock

        self.state = CircuitState.CLOSED
        self.consecutive_failures = 0
        self.trial_successes = 0
        self.opened_at: Optional[float] = None

    def allow_request(self) -> bool:
        if self.state is not CircuitState.OPEN:
            return True
        if self.opened_at is not None and self._clock() - self.opened_at >= self.reset_timeout:
            self._transition(CircuitState.HALF_OPEN)
            return True
        return False

    def record_success(self) -> None:
        self.consecutive_failures = 0
        if self.state is CircuitState.HALF_OPEN:
            self.trial_successes += 1
            if self.trial_successes >= self.success_threshold:
                self._transition(CircuitState.CLOSED)

    def record_failure(self) -> None:
        self.consecutive_failures += 1
        if (
            self.state is CircuitState.HALF_OPEN
            or self.consecutive_failures >= self.failure_threshold
        ):
            self.opened_at = self._clock()
            self._transition(CircuitState.OPEN)

    async def call(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """
        Await ``func`` unless the circuit is open.

        Raises:
            CircuitOpenError: The circuit is open and the reset timeout has not passed
        """
        if not self.allow_request():
            raise CircuitOpenError("PawaPay circuit is open", reset_timeout=self.reset_timeout)

        try:
            result = await func(*args, **kwargs)
        except self.trip_on:
            self.record_failure()
            raise
        self.record_success()
        return result

    def _transition(self, state: CircuitState) -> None:
        if state is self.state:
            return
        previous, self.state = self.state, state
        if state is CircuitState.HALF_OPEN:
            self.trial_successes = 0
        metrics.set_circuit_breaker_state(state.value)
        log = logger.warning if state is CircuitState.OPEN else logger.info
        log(
            "circuit_breaker_state_changed",
            previous=previous.value,
            state=state.value,
            consecutive_failures=self.consecutive_failures,
        )
