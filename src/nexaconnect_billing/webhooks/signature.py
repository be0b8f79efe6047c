"""Stripe webhook signature verification (v1 scheme).

Stripe sends ``Stripe-Signature: t=<timestamp>,v1=<signature>[,v1=...]``
where each signature is the hex HMAC-SHA256 of ``"<t>.<raw body>"``. The
check must run on the raw request bytes, before any JSON parsing.
"""

import hashlib
import hmac
import time
from typing import Optional


def compute_signature(payload: bytes, secret: str, timestamp: str) -> str:
    """Hex HMAC-SHA256 of ``"{timestamp}.{payload}"``."""
    signed_payload = f"{timestamp}.".encode() + payload
    return hmac.new(secret.encode(), signed_payload, hashlib.sha256).hexdigest()


def signature_header(payload: bytes, secret: str, timestamp: Optional[int] = None) -> str:
    """Build a ``Stripe-Signature`` header value for a payload."""
    ts = str(int(time.time()) if timestamp is None else timestamp)
    return f"t={ts},v1={compute_signature(payload, secret, ts)}"


def _parse_header(signature_header: str) -> tuple[str, list[str]]:
    timestamp = ""
    signatures: list[str] = []
    for item in signature_header.split(","):
        key, _, value = item.partition("=")
        key = key.strip()
        if key == "t":
            timestamp = value.strip()
        elif key == "v1" and value.strip():
            signatures.append(value.strip())
    return timestamp, signatures


def verify_signature(
    payload: bytes,
    signature_header: str,
    webhook_secret: str,
    tolerance: int = 0,
    now: Optional[float] = None,
) -> bool:
    """Return True if any ``v1`` signature in the header matches the payload.

    ``tolerance`` (seconds) rejects events whose timestamp is too far from
    ``now``; 0 disables the check.
    """
    if not signature_header or not webhook_secret:
        return False

    timestamp, signatures = _parse_header(signature_header)
    if not timestamp or not signatures:
        return False

    if tolerance > 0:
        try:
            ts = int(timestamp)
        except ValueError:
            return False
        current = time.time() if now is None else now
        if abs(current - ts) > tolerance:
            return False

    computed = compute_signature(payload, webhook_secret, timestamp)
    return any(hmac.compare_digest(computed, sig) for sig in signatures)
