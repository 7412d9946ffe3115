"""
Prometheus metrics for the mobile-money integration.

Tracks:
- Deposit initiations by gateway status
- Webhook deliveries and reconciliation outcomes
- Signature failures
- Side-effect failures during reconciliation
- Vendor payouts
- Gateway API calls and circuit breaker state
- Operator directory refreshes
- HTTP requests by route template
"""
from prometheus_client import Counter, Gauge, Histogram

# Deposit metrics
deposit_initiations_total = Counter(
    "deposit_initiations_total",
    "Total deposit initiation attempts",
    ["status", "currency"],  # ACCEPTED, REJECTED, validation_failed, error
)

deposit_amount = Histogram(
    "deposit_amount",
    "Accepted deposit amounts in major currency units",
    ["currency"],
    buckets=(1, 10, 50, 100, 500, 1000, 5000, 10000, 50000),
)

# Webhook metrics
webhook_events_received_total = Counter(
    "webhook_events_received_total",
    "Total webhook events received",
    ["event_type"],  # deposit, payout
)

webhook_events_processed_total = Counter(
    "webhook_events_processed_total",
    "Total webhook events processed",
    ["event_type", "outcome"],  # applied, duplicate, ignored, unhandled, error
)

webhook_signature_failures_total = Counter(
    "webhook_signature_failures_total",
    "Webhook deliveries rejected for a bad or missing signature",
)

webhook_processing_duration_seconds = Histogram(
    "webhook_processing_duration_seconds",
    "Webhook processing duration in seconds",
    ["event_type"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

reconciliation_side_effect_failures_total = Counter(
    "reconciliation_side_effect_failures_total",
    "Reconciliation side effects that failed and were isolated",
    ["step"],  # order_update, order_transaction, membership_activation
)

# Payout metrics
payouts_total = Counter(
    "payouts_total",
    "Total vendor payout attempts",
    ["status"],  # ACCEPTED, REJECTED, conflict, not_found, error
)

# Gateway API metrics
gateway_requests_total = Counter(
    "gateway_requests_total",
    "Total PawaPay API requests",
    ["operation", "status"],  # status: HTTP status code or "error"
)

gateway_request_duration_seconds = Histogram(
    "gateway_request_duration_seconds",
    "PawaPay API call duration in seconds",
    ["operation"],
    buckets=(0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 10.0, 30.0),
)

gateway_circuit_breaker_state = Gauge(
    "gateway_circuit_breaker_state",
    "Gateway circuit breaker state (0=closed, 1=open, 2=half_open)",
)

# Operator directory metrics
operator_directory_refreshes_total = Counter(
    "operator_directory_refreshes_total",
    "Operator directory refresh attempts",
    ["result"],  # success, failure
)

operator_directory_size = Gauge(
    "operator_directory_size",
    "Number of operators in the cached directory",
)

# HTTP surface
http_requests_total = Counter(
    "http_requests_total",
    "HTTP requests served",
    ["method", "route", "status_code"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "route"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# Status sync worker
status_sync_runs_total = Counter(
    "status_sync_runs_total",
    "Deposit status sync runs",
    ["result"],
)


class MetricsCollector:
    """Helper class for collecting metrics."""

    @staticmethod
    def record_deposit_initiation(status: str, currency: str) -> None:
        deposit_initiations_total.labels(status=status, currency=currency).inc()

    @staticmethod
    def record_deposit_amount(currency: str, amount: float) -> None:
        deposit_amount.labels(currency=currency).observe(amount)

    @staticmethod
    def record_webhook_received(event_type: str) -> None:
        webhook_events_received_total.labels(event_type=event_type).inc()

    @staticmethod
    def record_webhook_event(event_type: str, outcome: str, duration_seconds: float) -> None:
        """Record webhook event processing."""
        webhook_events_processed_total.labels(event_type=event_type, outcome=outcome).inc()
        webhook_processing_duration_seconds.labels(event_type=event_type).observe(
            duration_seconds
        )

    @staticmethod
    def record_signature_failure() -> None:
        webhook_signature_failures_total.inc()

    @staticmethod
    def record_side_effect_failure(step: str) -> None:
        reconciliation_side_effect_failures_total.labels(step=step).inc()

    @staticmethod
    def record_payout(status: str) -> None:
        payouts_total.labels(status=status).inc()

    @staticmethod
    def record_gateway_call(operation: str, status: str, duration_seconds: float) -> None:
        """Record a PawaPay API call."""
        gateway_requests_total.labels(operation=operation, status=status).inc()
        gateway_request_duration_seconds.labels(operation=operation).observe(duration_seconds)

    @staticmethod
    def set_circuit_breaker_state(state: str) -> None:
        state_map = {"closed": 0, "open": 1, "half_open": 2}
        gateway_circuit_breaker_state.set(state_map.get(state, 0))

    @staticmethod
    def record_directory_refresh(result: str, size: int = 0) -> None:
        operator_directory_refreshes_total.labels(result=result).inc()
        if result == "success":
            operator_directory_size.set(size)

    @staticmethod
    def record_http_request(
        method: str, route: str, status_code: int, duration_seconds: float
    ) -> None:
        http_requests_total.labels(
            method=method, route=route, status_code=str(status_code)
        ).inc()
        http_request_duration_seconds.labels(method=method, route=route).observe(
            duration_seconds
        )

    @staticmethod
    def record_status_sync(result: str) -> None:
        status_sync_runs_total.labels(result=result).inc()


metrics = MetricsCollector()
