"""
Webhook ingress over HTTP.

    app = create_app(runtime.settlement, runtime.settings)

Providers get 401 for a missing or bad signature and 200 for everything
else, with {"success": false, ...} when processing failed. Acknowledging
receipt keeps providers from retrying a delivery that will never succeed;
the failure itself is logged for follow-up.
"""

from __future__ import annotations

import logging

import fastapi
from fastapi import Header, HTTPException, Request, status
from kungfu import Result, Ok, Error
from pydantic import BaseModel, Field

from ordercore.config import Settings
from ordercore.domain import PaymentProvider, Settlement
from ordercore.errors import CoreError, ErrorKind
from ordercore.settlement import SettlementEngine

logger = logging.getLogger(__name__)

_GENERIC_FAILURE = "Webhook processing failed"


# ═══════════════════════════════════════════════════════════════════════════════
# Schemas
# ═══════════════════════════════════════════════════════════════════════════════


class WebhookAck(BaseModel):
    success: bool
    message: str

    @classmethod
    def from_domain(cls, result: Result[Settlement | None, CoreError]) -> WebhookAck:
        match result:
            case Ok(None):
                return cls(success=True, message="Event ignored")
            case Ok(_):
                return cls(success=True, message="Webhook processed successfully")
            case Error(err):
                return cls(success=False, message=err.message)


class SimulateRequest(BaseModel):
    order_id: str = Field(alias="orderId", min_length=1)
    reason: str | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# App
# ═══════════════════════════════════════════════════════════════════════════════


def create_app(engine: SettlementEngine, settings: Settings) -> fastapi.FastAPI:
    app = fastapi.FastAPI(title="ordercore webhooks")

    async def ingest(
        provider: PaymentProvider, body: bytes, signature: str | None
    ) -> WebhookAck:
        if not signature:
            logger.warning("%s webhook without signature", provider.value)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Missing webhook signature",
            )

        try:
            result = await engine.handle_provider_event(provider, body, signature)
        except Exception as exc:
            logger.exception("%s webhook processing failed", provider.value)
            message = _GENERIC_FAILURE if settings.production else (str(exc) or _GENERIC_FAILURE)
            return WebhookAck(success=False, message=message)

        match result:
            case Error(err) if err.kind is ErrorKind.SIGNATURE:
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED, detail=err.message
                )
            case Error(err):
                logger.error("%s webhook not applied: %s", provider.value, err)
        return WebhookAck.from_domain(result)

    @app.post("/webhooks/stripe", response_model=WebhookAck)
    async def stripe_webhook(
        request: Request,
        stripe_signature: str | None = Header(default=None),
    ) -> WebhookAck:
        return await ingest(PaymentProvider.STRIPE, await request.body(), stripe_signature)

    @app.post("/webhooks/payment", response_model=WebhookAck)
    async def payment_webhook(
        request: Request,
        x_razorpay_signature: str | None = Header(default=None),
        x_webhook_signature: str | None = Header(default=None),
    ) -> WebhookAck:
        return await ingest(
            PaymentProvider.RAZORPAY,
            await request.body(),
            x_razorpay_signature or x_webhook_signature,
        )

    @app.post("/webhooks/test/success", response_model=WebhookAck)
    async def simulate_success(req: SimulateRequest) -> WebhookAck:
        return _simulated(await engine.simulate_success(req.order_id), "successful")

    @app.post("/webhooks/test/failure", response_model=WebhookAck)
    async def simulate_failure(req: SimulateRequest) -> WebhookAck:
        result = await engine.simulate_failure(
            req.order_id, req.reason or "Insufficient funds"
        )
        return _simulated(result, "failed")

    return app


def _simulated(result: Result[Settlement, CoreError], outcome: str) -> WebhookAck:
    match result:
        case Ok(settlement):
            return WebhookAck(
                success=True,
                message=f"Payment {settlement.payment.id} marked as {outcome}",
            )
        case Error(err) if err.kind is ErrorKind.FORBIDDEN:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=err.message)
        case Error(err):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=err.message)


__all__ = ("WebhookAck", "SimulateRequest", "create_app")
