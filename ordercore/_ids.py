"""
Identifiers and references.

Order numbers and provider references are human-readable and time-derived;
uniqueness is the store's job, not this module's.
"""

from __future__ import annotations

import secrets
import string
import time
import uuid

_DIGITS = string.digits + string.ascii_lowercase


def base36(n: int) -> str:
    if n < 0:
        raise ValueError("base36 of a negative number")
    if n == 0:
        return "0"
    out: list[str] = []
    while n:
        n, rem = divmod(n, 36)
        out.append(_DIGITS[rem])
    return "".join(reversed(out))


def random36(length: int) -> str:
    return "".join(secrets.choice(_DIGITS) for _ in range(length))


def now_millis() -> int:
    return time.time_ns() // 1_000_000


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def order_number(millis: int | None = None) -> str:
    """ORD-<base36 millis>-<4 random chars>, upper case."""
    ms = now_millis() if millis is None else millis
    return f"ORD-{base36(ms).upper()}-{random36(4).upper()}"


def idempotency_key(order_id: str, millis: int | None = None) -> str:
    ms = now_millis() if millis is None else millis
    return f"payment_{order_id}_{ms}"


__all__ = (
    "base36",
    "random36",
    "now_millis",
    "new_id",
    "order_number",
    "idempotency_key",
)
