import hashlib
import hmac
from typing import Optional

from loguru import logger

SIGNATURE_HEADER = "x-vapi-signature"


def compute_signature(raw_body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of the raw request body."""
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify_signature(raw_body: bytes, signature: Optional[str], secret: Optional[str]) -> bool:
    """
    Check a webhook signature against the shared secret.

    When no secret is configured verification is skipped and every request is
    accepted. This is an operational fallback for deployments where the
    platform does not sign webhooks; set VAPI_WEBHOOK_SECRET to enforce it.

    Args:
        raw_body: Exact bytes of the request body
        signature: Value of the x-vapi-signature header (may be None)
        secret: Shared signing secret

    Returns:
        True if the signature matches or verification is disabled
    """
    if not secret:
        return True

    if not signature:
        logger.warning("Webhook signature missing")
        return False

    try:
        expected = compute_signature(raw_body, secret)
        return hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8"))
    except Exception as e:
        logger.warning(f"Webhook signature check failed: {e}")
        return False
