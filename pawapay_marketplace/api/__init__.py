"""FastAPI application and routes."""
from .dependencies import Services, build_services
from .main import create_app
from .schemas import (
    PaymentSubmissionRequest,
    PaymentSubmissionResponse,
    PredictOperatorResponse,
    WebhookResponse,
)

__all__ = [
    "create_app",
    "build_services",
    "Services",
    "PaymentSubmissionRequest",
    "PaymentSubmissionResponse",
    "PredictOperatorResponse",
    "WebhookResponse",
]
