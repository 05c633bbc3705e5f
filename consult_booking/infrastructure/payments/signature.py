"""
HMAC-SHA256 verification for inbound payment gateway callbacks.
"""

import hmac
import hashlib
import logging
from typing import Optional

from ...application.ports.payment_gateway import SignatureVerifier

logger = logging.getLogger(__name__)


def compute_signature(secret: str, message: bytes) -> str:
    """Hex HMAC-SHA256 of ``message`` under ``secret``."""
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


class HmacSignatureVerifier(SignatureVerifier):
    """Checks callback signatures against the shared webhook secret"""

    def __init__(self, secret: str):
        self.secret = secret
        if not self.secret:
            logger.warning("PAYMENT_WEBHOOK_SECRET not configured - every payment callback will be rejected")

    def verify(self, message: bytes, signature: Optional[str]) -> bool:
        # No secret configured: reject rather than accept unsigned callbacks
        if not self.secret:
            return False

        if not signature:
            logger.warning("Payment callback signature missing")
            return False

        expected_signature = compute_signature(self.secret, message)

        # Constant-time comparison over bytes; header values can carry any latin-1 text
        provided = signature.strip().lower().encode("utf-8")
        return hmac.compare_digest(provided, expected_signature.encode("ascii"))
