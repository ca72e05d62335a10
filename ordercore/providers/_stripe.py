"""
Stripe gateway — PaymentIntents via the stripe SDK.

    gateway = StripeGateway(secret_key="sk_test_...", webhook_secret="whsec_...")
    handle = await gateway.create_intent(1000, "INR", {"orderId": "o1"}, "payment_o1_1700000000000")

Webhooks carry a stripe-signature header; only payment_intent.succeeded,
payment_intent.payment_failed and payment_intent.canceled produce signals.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import stripe
from pydantic import BaseModel, Field

from ordercore.domain import IntentHandle, PaymentProvider, PaymentSignal, SignalKind
from ordercore.providers._protocol import GatewayError

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Event models
# ═══════════════════════════════════════════════════════════════════════════════


class _PaymentError(BaseModel):
    message: str | None = None


class _PaymentIntentObject(BaseModel):
    id: str
    amount: int | None = None
    payment_method: str | dict[str, Any] | None = None
    last_payment_error: _PaymentError | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def payment_method_id(self) -> str | None:
        match self.payment_method:
            case str(method):
                return method
            case {"id": str(method)}:
                return method
            case _:
                return None


class _EventData(BaseModel):
    object: _PaymentIntentObject


class StripeEvent(BaseModel):
    id: str | None = None
    type: str
    data: _EventData

    def to_domain(self) -> PaymentSignal | None:
        intent = self.data.object
        match self.type:
            case "payment_intent.succeeded":
                return PaymentSignal(
                    kind=SignalKind.SUCCEEDED,
                    provider_ref=intent.id,
                    event=self.type,
                    provider_payment_id=intent.id,
                    amount=intent.amount,
                    payment_method=intent.payment_method_id,
                    metadata=intent.metadata,
                )
            case "payment_intent.payment_failed":
                reason = intent.last_payment_error and intent.last_payment_error.message
                return PaymentSignal(
                    kind=SignalKind.FAILED,
                    provider_ref=intent.id,
                    event=self.type,
                    provider_payment_id=intent.id,
                    amount=intent.amount,
                    failure_reason=reason or "Payment failed",
                    metadata=intent.metadata,
                )
            case "payment_intent.canceled":
                return PaymentSignal(
                    kind=SignalKind.FAILED,
                    provider_ref=intent.id,
                    event=self.type,
                    provider_payment_id=intent.id,
                    failure_reason="Payment canceled by user",
                    metadata=intent.metadata,
                )
            case _:
                return None


class _EventEnvelope(BaseModel):
    """Just enough to tell which events we care about before full parsing."""

    type: str


_HANDLED_EVENTS = frozenset(
    {
        "payment_intent.succeeded",
        "payment_intent.payment_failed",
        "payment_intent.canceled",
    }
)


# ═══════════════════════════════════════════════════════════════════════════════
# Gateway
# ═══════════════════════════════════════════════════════════════════════════════


class StripeGateway:
    """
    Stripe PaymentIntents through the official SDK.

    The secret key is passed per request; stripe.api_key stays unset.
    """

    def __init__(
        self,
        secret_key: str,
        webhook_secret: str | None,
        *,
        tolerance_seconds: int = 300,
    ) -> None:
        self._secret_key = secret_key
        self._webhook_secret = webhook_secret
        self._tolerance_seconds = tolerance_seconds

        if not secret_key:
            logger.warning("Stripe gateway has no secret key configured")

    @property
    def provider(self) -> PaymentProvider:
        return PaymentProvider.STRIPE

    # ─── PaymentGateway ───────────────────────────────────────────────────────

    async def create_intent(
        self,
        amount: int,
        currency: str,
        metadata: Mapping[str, str],
        idempotency_key: str,
    ) -> IntentHandle:
        try:
            intent = await stripe.PaymentIntent.create_async(
                api_key=self._secret_key,
                idempotency_key=idempotency_key,
                amount=amount,
                currency=currency.lower(),
                automatic_payment_methods={"enabled": True},
                metadata={k: str(v) for k, v in metadata.items()},
            )
        except stripe.StripeError as exc:
            raise _gateway_error(exc) from exc

        logger.info("Stripe payment intent created: %s", intent.id)
        return IntentHandle(provider_ref=intent.id, client_secret=intent.client_secret or "")

    async def cancel_intent(self, provider_ref: str) -> None:
        try:
            await stripe.PaymentIntent.cancel_async(provider_ref, api_key=self._secret_key)
        except stripe.StripeError as exc:
            raise _gateway_error(exc) from exc
        logger.info("Stripe payment intent cancelled: %s", provider_ref)

    def verify_signature(self, payload: bytes, signature: str | None) -> bool:
        if not self._webhook_secret:
            logger.error("STRIPE_WEBHOOK_SECRET not configured; rejecting webhook")
            return False
        if not signature or not signature.isascii():
            return False
        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"),
                signature,
                self._webhook_secret,
                tolerance=self._tolerance_seconds,
            )
        except (stripe.SignatureVerificationError, UnicodeDecodeError) as exc:
            logger.debug("Stripe signature rejected: %s", exc)
            return False
        return True

    def parse_event(self, payload: bytes) -> PaymentSignal | None:
        envelope = _EventEnvelope.model_validate_json(payload)
        if envelope.type not in _HANDLED_EVENTS:
            logger.info("Ignoring Stripe event type %s", envelope.type)
            return None
        return StripeEvent.model_validate_json(payload).to_domain()


def _gateway_error(exc: stripe.StripeError) -> GatewayError:
    detail = exc.user_message or str(exc)
    if exc.http_status is None:
        return GatewayError(f"Stripe request failed: {detail}")
    return GatewayError(
        f"Stripe API error {exc.http_status}: {detail}", status_code=exc.http_status
    )


__all__ = ("StripeGateway", "StripeEvent")
