"""Webhook authenticity checks: subscription handshake and payload signature.

All secret comparisons go through hmac.compare_digest.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from collections.abc import Mapping
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerificationResult:
    status_code: int
    content: str


def secure_compare(provided: object, expected: object) -> bool:
    """Constant-time string equality.

    A length mismatch is still run through compare_digest against the
    expected value so the timing does not depend on the provided length.
    """
    if not isinstance(provided, str) or not isinstance(expected, str):
        return False
    a = provided.encode()
    b = expected.encode()
    if len(a) != len(b):
        hmac.compare_digest(b, b)
        return False
    return hmac.compare_digest(a, b)


class WebhookVerifier:
    """Handles the platform's subscription handshake and POST signatures."""

    def __init__(self, verify_token: str, app_secret: str | None = None) -> None:
        self._verify_token = verify_token
        self._app_secret = app_secret

    @property
    def signature_required(self) -> bool:
        return bool(self._app_secret)

    def handle_verification(self, params: Mapping[str, str]) -> VerificationResult:
        """Answer GET /webhook?hub.mode=subscribe&hub.verify_token=...&hub.challenge=..."""
        mode = params.get("hub.mode")
        if mode != "subscribe":
            logger.debug("Webhook verification failed: invalid mode %r", mode)
            return VerificationResult(status_code=403, content="Forbidden")

        if not secure_compare(params.get("hub.verify_token"), self._verify_token):
            logger.debug("Webhook verification failed: invalid verify token")
            return VerificationResult(status_code=403, content="Forbidden")

        logger.info("Webhook verification successful")
        return VerificationResult(
            status_code=200, content=params.get("hub.challenge", ""),
        )

    def verify_signature(self, headers: Mapping[str, str], body: bytes) -> bool:
        """Check X-Hub-Signature-256. Always passes when no app secret is set."""
        if not self._app_secret:
            return True

        signature = headers.get("x-hub-signature-256", "")
        if not signature.startswith("sha256="):
            return False

        expected = hmac.new(
            self._app_secret.encode(), body, hashlib.sha256,
        ).hexdigest()
        return hmac.compare_digest(signature[7:].encode(), expected.encode())
