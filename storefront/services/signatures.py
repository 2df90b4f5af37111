"""
Webhook signature primitives.

The provider signs the exact request body with HMAC-SHA256 and sends the
lowercase hex digest in the cko-signature header.
"""

import hashlib
import hmac

from storefront.exceptions import WebhookVerificationError

SIGNATURE_HEADER = "cko-signature"


def compute_signature(raw_body: bytes, secret: str) -> str:
    """Lowercase hex HMAC-SHA256 of raw_body keyed with secret."""
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify_signature(raw_body: bytes, signature: str | None, secret: str) -> None:
    """
    Verify a webhook signature in constant time.

    The header is compared as sent; it is not case-folded or trimmed.

    Raises:
        WebhookVerificationError: If the signature is missing or does not match
    """
    if not signature:
        raise WebhookVerificationError("missing signature")
    expected = compute_signature(raw_body, secret)
    if not hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8")):
        raise WebhookVerificationError("signature mismatch")
