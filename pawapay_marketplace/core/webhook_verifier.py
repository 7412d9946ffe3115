"""
Webhook signature verification.

The gateway signs the raw request body with HMAC-SHA256 and sends the hex
digest in ``X-PawaPay-Signature``. Verification must run on the exact
bytes received: re-encoding parsed JSON changes key order and spacing.
"""
import hashlib
import hmac
from typing import Optional

import structlog

logger = structlog.get_logger(__name__)

SIGNATURE_PREFIX = "sha256="


def compute_signature(raw_body: bytes, shared_secret: str) -> str:
    """Hex HMAC-SHA256 of ``raw_body``."""
    return hmac.new(shared_secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify(raw_body: bytes, claimed_signature: Optional[str], shared_secret: str) -> bool:
    """
    Check a webhook signature in constant time.

    Args:
        raw_body: Request body exactly as received
        claimed_signature: Value of the signature header, optionally ``sha256=``-prefixed
        shared_secret: Webhook secret shared with the gateway

    Returns:
        bool: True only for a well-formed, matching signature. Never raises.
    """
    if not isinstance(raw_body, (bytes, bytearray)):
        return False
    if not claimed_signature or not isinstance(claimed_signature, str):
        return False
    if not shared_secret:
        logger.error("webhook_secret_not_configured")
        return False

    candidate = claimed_signature.strip()
    if candidate.lower().startswith(SIGNATURE_PREFIX):
        candidate = candidate[len(SIGNATURE_PREFIX):]
    if not candidate.isascii():
        return False

    expected = compute_signature(bytes(raw_body), shared_secret)
    return hmac.compare_digest(expected.encode("ascii"), candidate.lower().encode("ascii"))


class WebhookVerifier:
    """Holds the shared secret so request handlers only pass body and header."""

    def __init__(self, shared_secret: str):
        self.shared_secret = shared_secret

    def verify(self, raw_body: bytes, claimed_signature: Optional[str]) -> bool:
        return verify(raw_body, claimed_signature, self.shared_secret)

    def sign(self, raw_body: bytes) -> str:
        return compute_signature(raw_body, self.shared_secret)
