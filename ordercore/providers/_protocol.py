"""
Payment gateway capability.

The settlement engine knows providers only through this protocol. Each
provider decides how it opens intents, authenticates its webhooks and maps
its events onto a PaymentSignal.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol

from ordercore.domain import IntentHandle, PaymentProvider, PaymentSignal


class GatewayError(Exception):
    """A provider call was refused or did not complete."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class PaymentGateway(Protocol):
    @property
    def provider(self) -> PaymentProvider: ...

    async def create_intent(
        self,
        amount: int,
        currency: str,
        metadata: Mapping[str, str],
        idempotency_key: str,
    ) -> IntentHandle:
        """Open a charge attempt. Raises on provider failure."""
        ...

    async def cancel_intent(self, provider_ref: str) -> None:
        """Void an intent nobody will pay. Raises on provider failure."""
        ...

    def verify_signature(self, payload: bytes, signature: str | None) -> bool:
        """Constant-time check of the raw body against the signature header."""
        ...

    def parse_event(self, payload: bytes) -> PaymentSignal | None:
        """
        Signal for a verified body, or None for events this provider ignores.

        Raises ValueError on a body that does not parse.
        """
        ...


__all__ = ("GatewayError", "PaymentGateway")
