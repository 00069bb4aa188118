"""
Webhook authentication for the two payment providers.

Asaas sends the shared secret back verbatim in the ``asaas-access-token``
header. Stripe signs ``"{timestamp}.{raw body}"`` with HMAC-SHA256 and sends
``Stripe-Signature: t=<timestamp>,v1=<hex digest>[,v1=...]``.
"""

import hashlib
import hmac
import logging
import time

from stickerswap.models.failure import WebhookAuthenticationError

logger = logging.getLogger(__name__)

ASAAS_TOKEN_HEADER = "asaas-access-token"
STRIPE_SIGNATURE_HEADER = "stripe-signature"


def verify_asaas_token(token: str | None, secret: str) -> None:
    """
    Check the Asaas access token header.

    Raises:
        WebhookAuthenticationError: 401 when the secret is unset, the header
            is missing, or the values differ
    """
    if not secret:
        logger.warning("Asaas webhook secret is not configured, refusing event")
        raise WebhookAuthenticationError("asaas", "webhook secret not configured")
    if not token or not hmac.compare_digest(token.encode(), secret.encode()):
        logger.warning("Asaas webhook refused: bad access token")
        raise WebhookAuthenticationError("asaas", "invalid access token")


def _parse_signature_header(header: str) -> tuple[int, list[str]]:
    timestamp: int | None = None
    signatures: list[str] = []
    for item in header.split(","):
        key, _, value = item.strip().partition("=")
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                timestamp = None
        elif key == "v1" and value:
            signatures.append(value)
    if timestamp is None or not signatures:
        raise WebhookAuthenticationError(
            "stripe", "malformed signature header", status_code=400
        )
    return timestamp, signatures


def compute_stripe_signature(payload: bytes, timestamp: int, secret: str) -> str:
    """Hex HMAC-SHA256 of ``"{timestamp}.{payload}"``."""
    signed = f"{timestamp}.".encode() + payload
    return hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()


def verify_stripe_signature(
    payload: bytes,
    header: str | None,
    secret: str,
    tolerance: int = 300,
    now: float | None = None,
) -> None:
    """
    Verify a Stripe signature over the raw request body.

    Args:
        payload: Body bytes exactly as received
        header: Value of the ``Stripe-Signature`` header
        secret: Endpoint signing secret
        tolerance: Maximum age of the signed timestamp, in seconds
        now: Current UNIX time (defaults to the clock)

    Raises:
        WebhookAuthenticationError: 400 on any verification failure
    """
    if not secret:
        logger.warning("Stripe webhook secret is not configured, refusing event")
        raise WebhookAuthenticationError("stripe", "webhook secret not configured", 400)
    if not header:
        logger.warning("Stripe webhook refused: missing signature header")
        raise WebhookAuthenticationError("stripe", "missing signature header", 400)

    timestamp, signatures = _parse_signature_header(header)
    expected = compute_stripe_signature(payload, timestamp, secret)
    if not any(hmac.compare_digest(expected, sig) for sig in signatures):
        logger.warning("Stripe webhook refused: signature mismatch")
        raise WebhookAuthenticationError("stripe", "signature mismatch", 400)

    current = time.time() if now is None else now
    if abs(current - timestamp) > tolerance:
        logger.warning("Stripe webhook refused: timestamp %d outside tolerance", timestamp)
        raise WebhookAuthenticationError("stripe", "timestamp outside tolerance", 400)
