"""Outbound integrations."""
from .circuit_breaker import CircuitBreaker
from .pawapay_client import (
    SIGNATURE_HEADER,
    InitiationResponse,
    PawaPayClient,
    ProviderPrediction,
    StatusResponse,
)

__all__ = [
    "SIGNATURE_HEADER",
    "CircuitBreaker",
    "InitiationResponse",
    "PawaPayClient",
    "ProviderPrediction",
    "StatusResponse",
]
