"""
HMAC gateway — providers without a live API integration.

RAZORPAY, PAYPAL and COD intents are local references; their webhooks share
one JSON body signed with a hex HMAC-SHA256 of the raw bytes:

    {"event": "payment.success", "providerOrderId": "order_...", "amount": 1000}
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ordercore import _ids
from ordercore.domain import IntentHandle, PaymentProvider, PaymentSignal, SignalKind
from ordercore.providers._signature import verify_hex

logger = logging.getLogger(__name__)


class WebhookPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    event: str = Field(min_length=1)
    provider_order_id: str = Field(alias="providerOrderId", min_length=1)
    provider_payment_id: str | None = Field(default=None, alias="providerPaymentId")
    signature: str | None = None
    amount: int | None = None
    status: str | None = None
    payment_method: str | None = Field(default=None, alias="paymentMethod")
    failure_reason: str | None = Field(default=None, alias="failureReason")
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def kind(self) -> SignalKind:
        if self.event == "payment.success" or self.status == "SUCCESS":
            return SignalKind.SUCCEEDED
        if self.event == "payment.failed" or self.status == "FAILED":
            return SignalKind.FAILED
        return SignalKind.UNKNOWN

    def to_domain(self) -> PaymentSignal:
        return PaymentSignal(
            kind=self.kind,
            provider_ref=self.provider_order_id,
            event=self.event,
            provider_payment_id=self.provider_payment_id,
            amount=self.amount,
            payment_method=self.payment_method,
            failure_reason=self.failure_reason,
            metadata=self.metadata,
        )


def _local_reference(provider: PaymentProvider) -> str:
    ms = _ids.now_millis()
    match provider:
        case PaymentProvider.RAZORPAY:
            return f"order_{_ids.base36(ms).upper()}{_ids.random36(6).upper()}"
        case PaymentProvider.PAYPAL:
            return f"PAYPAL-{ms}"
        case PaymentProvider.COD:
            return f"COD-{ms}"
        case _:
            return f"payment_{ms}"


class HmacGateway:
    def __init__(self, provider: PaymentProvider, secret: str) -> None:
        self._provider = provider
        self._secret = secret

    @property
    def provider(self) -> PaymentProvider:
        return self._provider

    async def create_intent(
        self,
        amount: int,
        currency: str,
        metadata: Mapping[str, str],
        idempotency_key: str,
    ) -> IntentHandle:
        ref = _local_reference(self._provider)
        logger.info("%s intent %s opened for %d %s", self._provider.value, ref, amount, currency)
        return IntentHandle(provider_ref=ref, client_secret=ref)

    async def cancel_intent(self, provider_ref: str) -> None:
        # Local references hold nothing on the provider side.
        logger.info("%s intent %s abandoned", self._provider.value, provider_ref)

    def verify_signature(self, payload: bytes, signature: str | None) -> bool:
        return verify_hex(self._secret, payload, signature)

    def parse_event(self, payload: bytes) -> PaymentSignal | None:
        return WebhookPayload.model_validate_json(payload).to_domain()


__all__ = ("HmacGateway", "WebhookPayload")
