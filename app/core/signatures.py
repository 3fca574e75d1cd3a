"""
Webhook authentication helpers: the shared query-string secret used by the
training callbacks and the HMAC-SHA256 signature Polar puts on payment events.
"""

import hashlib
import hmac
import logging
from typing import Optional

logger = logging.getLogger(__name__)


def verify_shared_secret(provided: Optional[str], expected: Optional[str]) -> bool:
    """Case-insensitive, constant-time comparison of the callback secret."""
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.lower().encode(), expected.lower().encode())


def _hmac_hex(secret: str, payload: bytes) -> str:
    return hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()


def verify_polar_signature(body: bytes, header: Optional[str], secret: str) -> bool:
    """
    Check a `polar-signature` header against the raw request body.

    Accepted header shapes:
        sha256=<hex>
        <hex>
        t=<timestamp>,v1=<hex>    (signed payload is "<timestamp>.<body>")
    """
    if not header or not secret:
        return False
    header = header.strip()

    if "v1" in header:
        parts = {}
        for item in header.split(","):
            key, sep, value = item.partition("=")
            if sep:
                parts[key.strip()] = value.strip()
        timestamp = parts.get("t", "")
        signature = parts.get("v1", "")
        if not timestamp or not signature:
            return False
        expected = _hmac_hex(secret, timestamp.encode() + b"." + body)
    else:
        signature = header[len("sha256="):] if header.startswith("sha256=") else header
        expected = _hmac_hex(secret, body)

    return hmac.compare_digest(signature.lower().encode(), expected.encode())
