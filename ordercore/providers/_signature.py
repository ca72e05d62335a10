"""
Webhook signatures — HMAC-SHA256, compared in constant time.

    x-webhook-signature: <hex hmac of body>

Stripe's `t=<unix>,v1=<hex>` header is verified by the stripe SDK;
stripe_header() only builds one for tests and local tooling.
"""

from __future__ import annotations

import hashlib
import hmac
import time


def sign(secret: str, payload: bytes) -> str:
    return hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()


def verify_hex(secret: str, payload: bytes, signature: str | None) -> bool:
    if not signature:
        return False
    # Headers arrive latin-1 decoded; compare bytes so non-ASCII input is a mismatch.
    candidate = signature.strip().lower().encode("utf-8", "surrogateescape")
    return hmac.compare_digest(sign(secret, payload).encode(), candidate)


def stripe_header(secret: str, payload: bytes, timestamp: int | None = None) -> str:
    ts = int(time.time()) if timestamp is None else timestamp
    return f"t={ts},v1={sign(secret, f'{ts}.'.encode() + payload)}"


__all__ = ("sign", "verify_hex", "stripe_header")
